from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .common import utcnow


class Priority(str, Enum):
    URGENT = "URGENT"
    NORMAL = "NORMAL"


class Announcement(SQLModel, table=True):
    """
    Congregation announcement.

    Notes:
    - Archived announcements leave the main feed but stay retrievable.
    - Archived announcements cannot be edited until unarchived.
    """

    __tablename__ = "announcements"

    id: Optional[int] = Field(default=None, primary_key=True)

    title: str
    content: str
    priority: Priority = Field(default=Priority.NORMAL, index=True)

    author_id: int = Field(foreign_key="members.id", index=True)

    published_at: datetime = Field(default_factory=utcnow, index=True)
    archived_at: Optional[datetime] = Field(default=None, index=True)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = Field(default=None, index=True)

    def is_archived(self) -> bool:
        return self.archived_at is not None

    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_active(self) -> bool:
        return not self.is_archived() and not self.is_deleted()

    def is_urgent(self) -> bool:
        return self.priority == Priority.URGENT


class MemberAnnouncementView(SQLModel, table=True):
    """Which members have seen which announcements."""

    __tablename__ = "member_announcement_views"
    __table_args__ = (
        UniqueConstraint("member_id", "announcement_id", name="uq_announcement_views_member_announcement"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    member_id: int = Field(foreign_key="members.id", index=True)
    announcement_id: int = Field(foreign_key="announcements.id", index=True)

    viewed_at: datetime = Field(default_factory=utcnow)
