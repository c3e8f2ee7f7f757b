from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from .common import utcnow


class Role(str, Enum):
    """
    Member roles. Values are API-stable strings.

    - ADMIN: full access, member management, audit log
    - STAFF: manages events/announcements, reads reports
    - MEMBER: regular congregation member
    """

    ADMIN = "ADMIN"
    STAFF = "STAFF"
    MEMBER = "MEMBER"


PRIVACY_FIELDS = ("show_phone", "show_email", "show_address")


def default_privacy() -> Dict[str, bool]:
    return {name: True for name in PRIVACY_FIELDS}


def merge_privacy(current: Optional[Dict[str, bool]], changes: Dict[str, Optional[bool]]) -> Dict[str, bool]:
    """
    Merge a partial update into stored privacy flags.
    Unknown keys are dropped; missing keys fall back to visible.
    """
    merged = default_privacy()
    for name in PRIVACY_FIELDS:
        if current and name in current:
            merged[name] = bool(current[name])
        if changes.get(name) is not None:
            merged[name] = bool(changes[name])
    return merged


class Member(SQLModel, table=True):
    """
    A registered individual with profile, privacy and login state.

    Notes:
    - email is stored lower-cased and is unique.
    - privacy_settings is a JSON object with PRIVACY_FIELDS keys; always present.
    - deleted_at implements deactivation. Members are never hard-deleted because
      audit rows, RSVPs and messages keep referencing them.
    """

    __tablename__ = "members"

    id: Optional[int] = Field(default=None, primary_key=True)

    email: str = Field(index=True, unique=True)
    first_name: str
    last_name: str

    phone: Optional[str] = Field(default=None)
    address: Optional[str] = Field(default=None)

    role: Role = Field(default=Role.MEMBER, index=True)
    membership_date: datetime = Field(default_factory=utcnow)

    privacy_settings: Dict[str, bool] = Field(
        default_factory=default_privacy,
        sa_column=Column(JSON, nullable=False),
    )
    email_notifications: bool = Field(default=True)

    # ---- Login state ----
    password_hash: str = Field(default="")
    failed_login_attempts: int = Field(default=0)
    account_locked: bool = Field(default=False)
    locked_until: Optional[datetime] = Field(default=None)
    last_login_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = Field(default=None, index=True)

    # -------------------------
    # Convenience helpers
    # -------------------------

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def is_active(self) -> bool:
        return self.deleted_at is None

    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def is_staff_or_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.STAFF)

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        if not self.account_locked:
            return False
        now = now or utcnow()
        if self.locked_until is not None and now > self.locked_until:
            return False
        return True

    def clear_expired_lock(self, now: Optional[datetime] = None) -> bool:
        """Reset lockout bookkeeping once locked_until has passed. Returns True if it did."""
        if not self.account_locked or self.is_locked(now):
            return False
        self.account_locked = False
        self.locked_until = None
        self.failed_login_attempts = 0
        self.updated_at = now or utcnow()
        return True

    def record_failed_login(self, max_attempts: int, lock_minutes: int) -> bool:
        """Returns True when this failure locked the account."""
        self.failed_login_attempts = int(self.failed_login_attempts or 0) + 1
        self.updated_at = utcnow()
        if self.failed_login_attempts >= max_attempts:
            self.account_locked = True
            self.locked_until = utcnow() + timedelta(minutes=lock_minutes)
            return True
        return False

    def record_successful_login(self) -> None:
        now = utcnow()
        self.last_login_at = now
        self.failed_login_attempts = 0
        self.account_locked = False
        self.locked_until = None
        self.updated_at = now
