from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ..errors import ValidationError
from ..models.event import CATEGORY_DISPLAY, Event, EventCategory
from ..models.event_rsvp import EventRSVP, RSVPStatus
from ..models.member import Member
from ..repositories.registry import Repositories
from ..services.audit import AuditTrail, snapshot
from .deps import get_actor, get_audit, get_optional_actor, get_repos, require_staff

router = APIRouter(prefix="/events", tags=["events"])


# -----------------------------
# Schemas
# -----------------------------

class EventCreate(BaseModel):
    title: str
    description: str
    location: str
    start_time: datetime
    end_time: datetime
    category: EventCategory = EventCategory.COMMUNITY
    max_capacity: Optional[int] = None
    image_url: Optional[str] = None


class EventUpdate(BaseModel):
    """Partial update; only fields sent are applied. max_capacity=null removes the cap."""
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    category: Optional[EventCategory] = None
    max_capacity: Optional[int] = None
    image_url: Optional[str] = None


class RSVPIn(BaseModel):
    notes: Optional[str] = None


# -----------------------------
# Helpers
# -----------------------------

def _event_out(event: Event, confirmed: int, my_status: Optional[RSVPStatus] = None) -> Dict[str, Any]:
    data = event.model_dump()
    data["category_display"] = CATEGORY_DISPLAY.get(event.category, event.category.value)
    data["is_cancelled"] = event.is_cancelled()
    data["confirmed_count"] = confirmed
    data["available_spots"] = event.available_spots(confirmed)
    data["my_rsvp_status"] = my_status.value if my_status is not None else None
    return data


def _rsvp_out(rsvp: EventRSVP) -> Dict[str, Any]:
    return rsvp.model_dump()


def _my_status(repos: Repositories, actor: Optional[Member], event_id: int) -> Optional[RSVPStatus]:
    if actor is None:
        return None
    for r in repos.rsvps.list_for_member(actor.id):
        if r.event_id == event_id:
            return r.status
    return None


# -----------------------------
# Events
# -----------------------------

@router.post("", status_code=201)
def create_event(
    payload: EventCreate,
    request: Request,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    event = repos.events.create(created_by_id=actor.id, **payload.model_dump())
    audit.created(entity_type="Event", entity=event, actor_id=actor.id, request=request)
    return _event_out(event, 0)


@router.get("")
def list_events(
    upcoming_only: bool = True,
    category: Optional[EventCategory] = None,
    include_cancelled: bool = False,
    limit: int = 100,
    offset: int = 0,
    actor: Optional[Member] = Depends(get_optional_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    events = repos.events.list(
        upcoming_only=upcoming_only,
        category=category,
        include_cancelled=include_cancelled,
        limit=limit,
        offset=offset,
    )
    counts = repos.rsvps.confirmed_counts([e.id for e in events])
    mine = {r.event_id: r.status for r in repos.rsvps.list_for_member(actor.id)} if actor else {}
    return {
        "data": [_event_out(e, counts.get(e.id, 0), mine.get(e.id)) for e in events],
        "limit": limit,
        "offset": offset,
    }


@router.get("/{event_id}")
def get_event(
    event_id: int,
    actor: Optional[Member] = Depends(get_optional_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    event = repos.events.get(event_id)
    return _event_out(event, repos.rsvps.confirmed_count(event_id), _my_status(repos, actor, event_id))


@router.patch("/{event_id}")
def update_event(
    event_id: int,
    payload: EventUpdate,
    request: Request,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No event fields to update")

    before = snapshot(repos.events.get(event_id))
    event = repos.events.update(event_id, changes)
    audit.updated(entity_type="Event", entity_id=event_id, before=before, after=event, actor_id=actor.id, request=request)
    return _event_out(event, repos.rsvps.confirmed_count(event_id))


@router.post("/{event_id}/cancel")
def cancel_event(
    event_id: int,
    request: Request,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    before = snapshot(repos.events.get(event_id))
    event = repos.events.cancel(event_id)
    audit.updated(entity_type="Event", entity_id=event_id, before=before, after=event, actor_id=actor.id, request=request)
    return _event_out(event, repos.rsvps.confirmed_count(event_id))


@router.delete("/{event_id}")
def delete_event(
    event_id: int,
    request: Request,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    event = repos.events.delete(event_id)
    audit.deleted(entity_type="Event", entity=event, actor_id=actor.id, request=request)
    return {"ok": True, "id": event_id}


# -----------------------------
# RSVPs
# -----------------------------

@router.post("/{event_id}/rsvp", status_code=201)
def rsvp(
    event_id: int,
    payload: Optional[RSVPIn] = None,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    result = repos.rsvps.create(event_id=event_id, member_id=actor.id, notes=payload.notes if payload else None)
    return {
        "rsvp": _rsvp_out(result.rsvp),
        "waitlisted": result.waitlisted,
        "available_spots": result.available_spots,
        "message": result.message,
    }


@router.delete("/{event_id}/rsvp")
def cancel_rsvp(
    event_id: int,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    result = repos.rsvps.cancel(event_id=event_id, member_id=actor.id)
    return {
        "message": result.message,
        "promoted_member_id": result.promoted.member_id if result.promoted is not None else None,
    }


@router.get("/{event_id}/rsvps")
def list_rsvps(
    event_id: int,
    status: Optional[RSVPStatus] = None,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    event = repos.events.get(event_id)
    rsvps = repos.rsvps.list_for_event(event_id)
    confirmed = sum(1 for r in rsvps if r.status == RSVPStatus.CONFIRMED)
    waitlisted = sum(1 for r in rsvps if r.status == RSVPStatus.WAITLISTED)
    return {
        "event_id": event.id,
        "data": [_rsvp_out(r) for r in rsvps if status is None or r.status == status],
        "confirmed_count": confirmed,
        "waitlisted_count": waitlisted,
        "available_spots": event.available_spots(confirmed),
    }
