from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .common import utcnow


class RSVPStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    WAITLISTED = "WAITLISTED"
    CANCELLED = "CANCELLED"


class EventRSVP(SQLModel, table=True):
    """
    A member's response to an event.

    One row per (member, event); the unique constraint is the backstop for the
    repository's duplicate check.
    """

    __tablename__ = "event_rsvps"
    __table_args__ = (
        UniqueConstraint("event_id", "member_id", name="uq_event_rsvps_event_member"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    event_id: int = Field(foreign_key="events.id", index=True)
    member_id: int = Field(foreign_key="members.id", index=True)

    status: RSVPStatus = Field(default=RSVPStatus.CONFIRMED, index=True)
    notes: Optional[str] = Field(default=None, max_length=500)

    rsvped_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_active(self) -> bool:
        return self.status != RSVPStatus.CANCELLED
