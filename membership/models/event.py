from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from .common import utcnow


class EventCategory(str, Enum):
    WORSHIP = "WORSHIP"
    BIBLE_STUDY = "BIBLE_STUDY"
    COMMUNITY = "COMMUNITY"
    FELLOWSHIP = "FELLOWSHIP"


CATEGORY_DISPLAY = {
    EventCategory.WORSHIP: "Worship Service",
    EventCategory.BIBLE_STUDY: "Bible Study",
    EventCategory.COMMUNITY: "Community Outreach",
    EventCategory.FELLOWSHIP: "Fellowship",
}

MAX_CAPACITY_LIMIT = 10000


class Event(SQLModel, table=True):
    """
    A scheduled congregation event.

    Notes:
    - max_capacity None means unlimited; RSVPs past capacity are waitlisted.
    - cancelled_at keeps the event visible (marked cancelled); deleted_at hides it.
    """

    __tablename__ = "events"

    id: Optional[int] = Field(default=None, primary_key=True)

    title: str
    description: str
    location: str
    category: EventCategory = Field(default=EventCategory.COMMUNITY, index=True)

    start_time: datetime = Field(index=True)
    end_time: datetime = Field(index=True)

    max_capacity: Optional[int] = Field(default=None)
    image_url: Optional[str] = Field(default=None)

    created_by_id: int = Field(foreign_key="members.id", index=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    cancelled_at: Optional[datetime] = Field(default=None, index=True)
    deleted_at: Optional[datetime] = Field(default=None, index=True)

    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_active(self) -> bool:
        return not self.is_cancelled() and not self.is_deleted()

    def has_started(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.start_time

    def available_spots(self, confirmed_count: int) -> Optional[int]:
        if self.max_capacity is None:
            return None
        return max(0, self.max_capacity - confirmed_count)
