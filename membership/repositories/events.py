from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import select

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.common import to_naive_utc, utcnow
from ..models.event import MAX_CAPACITY_LIMIT, Event, EventCategory
from ..models.member import Member
from .base import Repository, clamp_page, clean_optional, clean_text

logger = logging.getLogger(__name__)

EVENT_FIELDS = (
    "title",
    "description",
    "location",
    "category",
    "start_time",
    "end_time",
    "max_capacity",
    "image_url",
)


def _check_capacity(value: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    try:
        cap = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Event capacity must be an integer")
    if cap < 1:
        raise ValidationError("Event capacity must be at least 1")
    if cap > MAX_CAPACITY_LIMIT:
        raise ValidationError(f"Event capacity cannot exceed {MAX_CAPACITY_LIMIT:,}")
    return cap


def _check_window(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is None:
        raise ValidationError("Event start time is required")
    if end is None:
        raise ValidationError("Event end time is required")
    if end <= start:
        raise ValidationError("End date must be after start date")


class EventRepository(Repository):
    def create(
        self,
        *,
        created_by_id: int,
        title: str,
        description: str,
        location: str,
        start_time: datetime,
        end_time: datetime,
        category: EventCategory = EventCategory.COMMUNITY,
        max_capacity: Optional[int] = None,
        image_url: Optional[str] = None,
    ) -> Event:
        start = to_naive_utc(start_time)
        end = to_naive_utc(end_time)
        _check_window(start, end)

        event = Event(
            title=clean_text(title, "Event title", min_len=3, max_len=200),
            description=clean_text(description, "Event description", max_len=5000),
            location=clean_text(location, "Event location", min_len=3, max_len=500),
            category=category or EventCategory.COMMUNITY,
            start_time=start,
            end_time=end,
            max_capacity=_check_capacity(max_capacity),
            image_url=clean_optional(image_url, max_len=1000),
            created_by_id=created_by_id,
        )

        with self._session() as session:
            creator = session.get(Member, created_by_id)
            if creator is None or not creator.is_active():
                raise NotFoundError("Member", created_by_id)

            session.add(event)
            session.commit()
            session.refresh(event)

        logger.info("event created id=%s start=%s", event.id, event.start_time.isoformat())
        return event

    def get(self, event_id: int) -> Event:
        with self._session() as session:
            event = session.get(Event, event_id)
        if event is None or event.is_deleted():
            raise NotFoundError("Event", event_id)
        return event

    def list(
        self,
        *,
        upcoming_only: bool = True,
        category: Optional[EventCategory] = None,
        include_cancelled: bool = False,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        now: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Event]:
        """
        List non-deleted events ordered by start time.

        upcoming_only keeps events that have not ended yet; start/end narrow
        by start_time (inclusive) and are used by reports.
        """
        limit, offset = clamp_page(limit, offset)
        now = to_naive_utc(now) or utcnow()

        with self._session() as session:
            q = select(Event).where(Event.deleted_at.is_(None))
            if upcoming_only:
                q = q.where(Event.end_time >= now)
            if not include_cancelled:
                q = q.where(Event.cancelled_at.is_(None))
            if category is not None:
                q = q.where(Event.category == category)
            if start is not None:
                q = q.where(Event.start_time >= to_naive_utc(start))
            if end is not None:
                q = q.where(Event.start_time <= to_naive_utc(end))
            q = q.order_by(Event.start_time, Event.id).offset(offset).limit(limit)
            return list(session.exec(q).all())

    def count_upcoming(self, *, now: Optional[datetime] = None, days: int = 30) -> int:
        """Active (not cancelled, not deleted) events starting within [now, now + days]."""
        now = to_naive_utc(now) or utcnow()
        until = now + timedelta(days=days)
        with self._session() as session:
            q = (
                select(func.count())
                .select_from(Event)
                .where(
                    Event.deleted_at.is_(None),
                    Event.cancelled_at.is_(None),
                    Event.start_time >= now,
                    Event.start_time <= until,
                )
            )
            return int(session.exec(q).one() or 0)

    def update(self, event_id: int, changes: Dict[str, Any]) -> Event:
        unknown = set(changes) - set(EVENT_FIELDS)
        if unknown:
            raise ValidationError(f"Unsupported event fields: {', '.join(sorted(unknown))}")

        with self._session() as session:
            event = session.get(Event, event_id)
            if event is None or event.is_deleted():
                raise NotFoundError("Event", event_id)
            if event.is_cancelled():
                raise ValidationError("Cannot update a cancelled event")

            if "title" in changes:
                event.title = clean_text(changes["title"], "Event title", min_len=3, max_len=200)
            if "description" in changes:
                event.description = clean_text(changes["description"], "Event description", max_len=5000)
            if "location" in changes:
                event.location = clean_text(changes["location"], "Event location", min_len=3, max_len=500)
            if "category" in changes and changes["category"] is not None:
                event.category = EventCategory(changes["category"])
            if "max_capacity" in changes:
                event.max_capacity = _check_capacity(changes["max_capacity"])
            if "image_url" in changes:
                event.image_url = clean_optional(changes["image_url"], max_len=1000)

            start = to_naive_utc(changes["start_time"]) if changes.get("start_time") else event.start_time
            end = to_naive_utc(changes["end_time"]) if changes.get("end_time") else event.end_time
            _check_window(start, end)
            event.start_time = start
            event.end_time = end

            event.updated_at = utcnow()
            session.add(event)
            session.commit()
            session.refresh(event)
            return event

    def cancel(self, event_id: int) -> Event:
        with self._session() as session:
            event = session.get(Event, event_id)
            if event is None or event.is_deleted():
                raise NotFoundError("Event", event_id)
            if event.is_cancelled():
                raise ConflictError("Event is already cancelled")

            now = utcnow()
            event.cancelled_at = now
            event.updated_at = now
            session.add(event)
            session.commit()
            session.refresh(event)

        logger.info("event cancelled id=%s", event_id)
        return event

    def delete(self, event_id: int) -> Event:
        """Soft delete: the event disappears from every read path."""
        with self._session() as session:
            event = session.get(Event, event_id)
            if event is None or event.is_deleted():
                raise NotFoundError("Event", event_id)

            now = utcnow()
            event.deleted_at = now
            event.updated_at = now
            session.add(event)
            session.commit()
            session.refresh(event)

        logger.info("event deleted id=%s", event_id)
        return event
