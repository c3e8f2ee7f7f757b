from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ..models.common import to_naive_utc, utcnow
from ..models.event_rsvp import RSVPStatus
from ..repositories.registry import Repositories

logger = logging.getLogger(__name__)

DASHBOARD_EVENTS = 5
DASHBOARD_ANNOUNCEMENTS = 5


def member_dashboard(repos: Repositories, member_id: int, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Home screen for one member:
    - profile summary
    - next upcoming events, each with this member's RSVP status (or None)
    - most recent announcements with read state
    - stats (upcoming events, unread announcements, unread messages, active RSVPs)
    """
    now = to_naive_utc(now) or utcnow()
    member = repos.members.get(member_id)

    events = repos.events.list(upcoming_only=True, now=now, limit=DASHBOARD_EVENTS)
    my_rsvps = repos.rsvps.list_for_member(member_id)
    status_by_event = {r.event_id: r.status for r in my_rsvps}

    announcements = repos.announcements.list(limit=DASHBOARD_ANNOUNCEMENTS)
    viewed = repos.announcements.viewed_ids(member_id, [a.id for a in announcements])

    upcoming_ids = {e.id for e in repos.events.list(upcoming_only=True, now=now, limit=1000)}
    active_rsvps = sum(
        1
        for r in my_rsvps
        if r.event_id in upcoming_ids and r.status in (RSVPStatus.CONFIRMED, RSVPStatus.WAITLISTED)
    )

    out = {
        "profile": {
            "id": member.id,
            "email": member.email,
            "first_name": member.first_name,
            "last_name": member.last_name,
            "role": member.role.value,
            "membership_date": member.membership_date,
            "phone": member.phone,
        },
        "upcoming_events": [
            {
                "id": e.id,
                "title": e.title,
                "category": e.category.value,
                "start_time": e.start_time,
                "end_time": e.end_time,
                "location": e.location,
                "rsvp_status": status_by_event[e.id].value if e.id in status_by_event else None,
            }
            for e in events
        ],
        "recent_announcements": [
            {
                "id": a.id,
                "title": a.title,
                "priority": a.priority.value,
                "published_at": a.published_at,
                "is_read": a.id in viewed,
            }
            for a in announcements
        ],
        "stats": {
            "upcoming_events_count": len(upcoming_ids),
            "unread_announcements_count": repos.announcements.unread_count(member_id),
            "unread_messages_count": repos.messages.unread_count(member_id),
            "my_rsvp_count": active_rsvps,
        },
    }

    logger.debug("dashboard member=%s events=%s announcements=%s", member_id, len(events), len(announcements))
    return out
