from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..errors import AuthorizationError, ConflictError, NotAuthenticatedError, NotFoundError, ValidationError
from ..models.common import to_naive_utc, utcnow
from ..models.member import Member, Role, merge_privacy
from ..services.security import MIN_PASSWORD_LENGTH, hash_password, verify_password
from .base import Repository, clamp_page, clean_optional, clean_text, normalize_email, normalize_phone

logger = logging.getLogger(__name__)

# Fields a profile PATCH may touch. Role, privacy and login state have their own paths.
PROFILE_FIELDS = ("first_name", "last_name", "phone", "address")


class MemberRepository(Repository):
    conflict_message = "A member with this email already exists"

    def __init__(self, engine: Engine, *, max_login_attempts: int = 5, lock_minutes: int = 15) -> None:
        super().__init__(engine)
        self.max_login_attempts = max_login_attempts
        self.lock_minutes = lock_minutes

    # -----------------------------
    # Create
    # -----------------------------

    def create(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        password: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        role: Role = Role.MEMBER,
        membership_date: Optional[datetime] = None,
        privacy_settings: Optional[Dict[str, Optional[bool]]] = None,
        email_notifications: bool = True,
    ) -> Member:
        """
        Create a member.

        - Email must be unique (case-insensitive) -> ConflictError.
        - Privacy flags not supplied default to visible.
        - An empty password leaves password_hash blank (login impossible until set).
        """
        normalized_email = normalize_email(email)
        if password is not None and len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        member = Member(
            email=normalized_email,
            first_name=clean_text(first_name, "First name", min_len=2, max_len=100),
            last_name=clean_text(last_name, "Last name", min_len=2, max_len=100),
            phone=normalize_phone(phone),
            address=clean_optional(address, max_len=500),
            role=role or Role.MEMBER,
            membership_date=to_naive_utc(membership_date) or utcnow(),
            privacy_settings=merge_privacy(None, privacy_settings or {}),
            email_notifications=bool(email_notifications),
            password_hash=hash_password(password) if password else "",
        )

        with self._session() as session:
            existing = session.exec(select(Member).where(Member.email == normalized_email)).first()
            if existing:
                raise ConflictError(self.conflict_message)

            session.add(member)
            session.commit()
            session.refresh(member)

        logger.info("member created id=%s role=%s", member.id, member.role.value)
        return member

    # -----------------------------
    # Reads
    # -----------------------------

    def get(self, member_id: int, *, include_inactive: bool = False) -> Member:
        with self._session() as session:
            member = session.get(Member, member_id)
        if member is None or (not include_inactive and not member.is_active()):
            raise NotFoundError("Member", member_id)
        return member

    def get_by_email(self, email: str) -> Member:
        normalized = normalize_email(email)
        with self._session() as session:
            member = session.exec(select(Member).where(Member.email == normalized)).first()
        if member is None:
            raise NotFoundError("Member")
        return member

    def _filtered(self, q: Any, *, search: Optional[str], role: Optional[Role], include_inactive: bool) -> Any:
        if not include_inactive:
            q = q.where(Member.deleted_at.is_(None))
        if role is not None:
            q = q.where(Member.role == role)
        if search:
            like = f"%{search.strip().lower()}%"
            q = q.where(
                or_(
                    func.lower(Member.first_name).like(like),
                    func.lower(Member.last_name).like(like),
                    Member.email.like(like),
                )
            )
        return q

    def list(
        self,
        *,
        search: Optional[str] = None,
        role: Optional[Role] = None,
        include_inactive: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Member]:
        limit, offset = clamp_page(limit, offset)
        with self._session() as session:
            q = self._filtered(select(Member), search=search, role=role, include_inactive=include_inactive)
            q = q.order_by(Member.last_name, Member.first_name, Member.id).offset(offset).limit(limit)
            return list(session.exec(q).all())

    def count(
        self,
        *,
        search: Optional[str] = None,
        role: Optional[Role] = None,
        include_inactive: bool = False,
    ) -> int:
        with self._session() as session:
            q = self._filtered(
                select(func.count()).select_from(Member),
                search=search,
                role=role,
                include_inactive=include_inactive,
            )
            return int(session.exec(q).one() or 0)

    def count_active(self) -> int:
        return self.count()

    # -----------------------------
    # Updates
    # -----------------------------

    def update_profile(self, member_id: int, changes: Dict[str, Any]) -> Member:
        """
        Partial profile update. Only keys present in `changes` are applied;
        phone/address may be set to None to clear them.
        """
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Unsupported profile fields: {', '.join(sorted(unknown))}")

        with self._session() as session:
            member = self._load_active(session, member_id)

            if "first_name" in changes:
                member.first_name = clean_text(changes["first_name"], "First name", min_len=2, max_len=100)
            if "last_name" in changes:
                member.last_name = clean_text(changes["last_name"], "Last name", min_len=2, max_len=100)
            if "phone" in changes:
                member.phone = normalize_phone(changes["phone"])
            if "address" in changes:
                member.address = clean_optional(changes["address"], max_len=500)

            member.updated_at = utcnow()
            session.add(member)
            session.commit()
            session.refresh(member)
            return member

    def update_privacy(self, member_id: int, changes: Dict[str, Optional[bool]]) -> Member:
        with self._session() as session:
            member = self._load_active(session, member_id)
            # Reassign (not mutate) so the JSON column is flagged dirty.
            member.privacy_settings = merge_privacy(member.privacy_settings, changes)
            member.updated_at = utcnow()
            session.add(member)
            session.commit()
            session.refresh(member)
            return member

    def update_notifications(self, member_id: int, email_notifications: bool) -> Member:
        with self._session() as session:
            member = self._load_active(session, member_id)
            member.email_notifications = bool(email_notifications)
            member.updated_at = utcnow()
            session.add(member)
            session.commit()
            session.refresh(member)
            return member

    def change_role(self, member_id: int, role: Role) -> Member:
        with self._session() as session:
            member = self._load_active(session, member_id)
            member.role = role
            member.updated_at = utcnow()
            session.add(member)
            session.commit()
            session.refresh(member)
            return member

    def set_password(self, member_id: int, password: str) -> Member:
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        with self._session() as session:
            member = self._load_active(session, member_id)
            member.password_hash = hash_password(password)
            member.updated_at = utcnow()
            session.add(member)
            session.commit()
            session.refresh(member)
            return member

    def deactivate(self, member_id: int) -> Member:
        """
        Soft lifecycle: stamp deleted_at. The row stays for audit/RSVP history.
        Deactivating twice is a conflict.
        """
        with self._session() as session:
            member = session.get(Member, member_id)
            if member is None:
                raise NotFoundError("Member", member_id)
            if not member.is_active():
                raise ConflictError("Member is already deactivated")

            now = utcnow()
            member.deleted_at = now
            member.updated_at = now
            session.add(member)
            session.commit()
            session.refresh(member)

        logger.info("member deactivated id=%s", member_id)
        return member

    # -----------------------------
    # Login attempts
    # -----------------------------

    def verify_credentials(self, email: str, password: str) -> Member:
        """
        Check a password and record the attempt.

        - Unknown email / deactivated / wrong password -> NotAuthenticatedError
        - Locked account -> AuthorizationError (until locked_until passes)
        - Reaching max_login_attempts failures locks the account
        """
        try:
            normalized = normalize_email(email)
        except ValidationError:
            raise NotAuthenticatedError("Invalid email or password")

        locked_now = False
        with self._session() as session:
            member = session.exec(select(Member).where(Member.email == normalized)).first()
            if member is None or not member.is_active():
                raise NotAuthenticatedError("Invalid email or password")

            if member.is_locked():
                raise AuthorizationError("Account is locked. Try again later.")
            if member.clear_expired_lock():
                logger.info("lock period expired, member unlocked id=%s", member.id)

            if verify_password(password, member.password_hash):
                member.record_successful_login()
                session.add(member)
                session.commit()
                session.refresh(member)
                return member

            locked_now = member.record_failed_login(self.max_login_attempts, self.lock_minutes)
            session.add(member)
            session.commit()

        if locked_now:
            logger.warning("member locked after failed logins id=%s", member.id)
            raise AuthorizationError("Account is locked. Try again later.")
        raise NotAuthenticatedError("Invalid email or password")

    # -----------------------------
    # Internal
    # -----------------------------

    @staticmethod
    def _load_active(session: Session, member_id: int) -> Member:
        member = session.get(Member, member_id)
        if member is None or not member.is_active():
            raise NotFoundError("Member", member_id)
        return member
