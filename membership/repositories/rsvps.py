from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.common import to_naive_utc, utcnow
from ..models.event import Event
from ..models.event_rsvp import EventRSVP, RSVPStatus
from ..models.member import Member
from .base import Repository, clean_optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RSVPResult:
    """
    Outcome of an RSVP attempt.

    available_spots is None for unlimited-capacity events.
    """
    rsvp: EventRSVP
    waitlisted: bool
    available_spots: Optional[int]
    message: str


@dataclass(frozen=True)
class CancelResult:
    cancelled: EventRSVP
    promoted: Optional[EventRSVP] = None

    @property
    def message(self) -> str:
        if self.promoted is not None:
            return "RSVP cancelled successfully. A waitlisted attendee has been promoted."
        return "RSVP cancelled successfully"


def _confirmed_count(session: Session, event_id: int) -> int:
    q = (
        select(func.count())
        .select_from(EventRSVP)
        .where(EventRSVP.event_id == event_id, EventRSVP.status == RSVPStatus.CONFIRMED)
    )
    return int(session.exec(q).one() or 0)


def _event_for_update(event_id: int) -> Any:
    """Event row locked until commit so concurrent RSVPs see each other's seats. SQLite ignores FOR UPDATE."""
    return select(Event).where(Event.id == event_id).with_for_update()


class EventRSVPRepository(Repository):
    conflict_message = "You have already RSVPed to this event"

    def create(
        self,
        *,
        event_id: int,
        member_id: int,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RSVPResult:
        """
        RSVP a member to an event.

        Guardrails:
        - event must exist and be active, and must not have started
        - member must exist and be active
        - one RSVP per (member, event) -> ConflictError on the second attempt
        - at capacity -> WAITLISTED instead of CONFIRMED
        """
        now = to_naive_utc(now) or utcnow()

        with self._session() as session:
            event = session.exec(_event_for_update(event_id)).first()
            if event is None or event.is_deleted():
                raise NotFoundError("Event", event_id)
            if event.is_cancelled():
                raise ValidationError("Cannot RSVP to a cancelled event")
            if event.has_started(now):
                raise ValidationError("Cannot RSVP to an event that has already started")

            member = session.get(Member, member_id)
            if member is None or not member.is_active():
                raise NotFoundError("Member", member_id)

            existing = session.exec(
                select(EventRSVP).where(EventRSVP.event_id == event_id, EventRSVP.member_id == member_id)
            ).first()
            if existing:
                raise ConflictError(self.conflict_message)

            confirmed = _confirmed_count(session, event_id)
            if event.max_capacity is None or confirmed < event.max_capacity:
                status = RSVPStatus.CONFIRMED
                message = "RSVP confirmed successfully"
            else:
                status = RSVPStatus.WAITLISTED
                message = "Event is full. You have been added to the waitlist"

            rsvp = EventRSVP(
                event_id=event_id,
                member_id=member_id,
                status=status,
                notes=clean_optional(notes, max_len=500),
                rsvped_at=now,
                updated_at=now,
            )
            session.add(rsvp)
            session.commit()
            session.refresh(rsvp)

            after = confirmed + (1 if status == RSVPStatus.CONFIRMED else 0)
            spots = event.available_spots(after)

        logger.info("rsvp event=%s member=%s status=%s", event_id, member_id, status.value)
        return RSVPResult(
            rsvp=rsvp,
            waitlisted=status == RSVPStatus.WAITLISTED,
            available_spots=spots,
            message=message,
        )

    def cancel(self, *, event_id: int, member_id: int, now: Optional[datetime] = None) -> CancelResult:
        """
        Remove a member's RSVP.

        If the removed RSVP was CONFIRMED and the event has a capacity, the
        earliest WAITLISTED RSVP (by rsvped_at) is promoted to CONFIRMED.
        """
        now = to_naive_utc(now) or utcnow()

        with self._session() as session:
            event = session.exec(_event_for_update(event_id)).first()
            if event is None or event.is_deleted():
                raise NotFoundError("Event", event_id)
            if event.has_started(now):
                raise ValidationError("Cannot cancel RSVP for an event that has already started")

            rsvp = session.exec(
                select(EventRSVP).where(EventRSVP.event_id == event_id, EventRSVP.member_id == member_id)
            ).first()
            if rsvp is None:
                raise NotFoundError("RSVP")
            if rsvp.status == RSVPStatus.CANCELLED:
                raise ConflictError("RSVP is already cancelled")

            was_confirmed = rsvp.status == RSVPStatus.CONFIRMED
            session.delete(rsvp)
            session.flush()

            promoted: Optional[EventRSVP] = None
            if was_confirmed and event.max_capacity is not None:
                promoted = session.exec(
                    select(EventRSVP)
                    .where(EventRSVP.event_id == event_id, EventRSVP.status == RSVPStatus.WAITLISTED)
                    .order_by(EventRSVP.rsvped_at, EventRSVP.id)
                ).first()
                if promoted is not None:
                    promoted.status = RSVPStatus.CONFIRMED
                    promoted.updated_at = now
                    session.add(promoted)

            session.commit()
            if promoted is not None:
                session.refresh(promoted)

        if promoted is not None:
            logger.info("waitlist promotion event=%s member=%s", event_id, promoted.member_id)
        rsvp.status = RSVPStatus.CANCELLED
        return CancelResult(cancelled=rsvp, promoted=promoted)

    def get(self, *, event_id: int, member_id: int) -> EventRSVP:
        with self._session() as session:
            rsvp = session.exec(
                select(EventRSVP).where(EventRSVP.event_id == event_id, EventRSVP.member_id == member_id)
            ).first()
        if rsvp is None:
            raise NotFoundError("RSVP")
        return rsvp

    def list_for_event(self, event_id: int, *, status: Optional[RSVPStatus] = None) -> List[EventRSVP]:
        with self._session() as session:
            q = select(EventRSVP).where(EventRSVP.event_id == event_id)
            if status is not None:
                q = q.where(EventRSVP.status == status)
            q = q.order_by(EventRSVP.rsvped_at, EventRSVP.id)
            return list(session.exec(q).all())

    def list_for_member(self, member_id: int) -> List[EventRSVP]:
        with self._session() as session:
            q = select(EventRSVP).where(EventRSVP.member_id == member_id).order_by(EventRSVP.rsvped_at.desc())
            return list(session.exec(q).all())

    def confirmed_count(self, event_id: int) -> int:
        with self._session() as session:
            return _confirmed_count(session, event_id)

    def confirmed_counts(self, event_ids: List[int]) -> Dict[int, int]:
        """Confirmed RSVP count per event, for list/report views."""
        if not event_ids:
            return {}
        with self._session() as session:
            q = (
                select(EventRSVP.event_id, func.count())
                .where(EventRSVP.event_id.in_(event_ids), EventRSVP.status == RSVPStatus.CONFIRMED)
                .group_by(EventRSVP.event_id)
            )
            counts = {int(eid): int(n) for eid, n in session.exec(q).all()}
        return {eid: counts.get(eid, 0) for eid in event_ids}
