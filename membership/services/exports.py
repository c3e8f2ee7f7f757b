from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import ValidationError
from ..models.common import to_naive_utc, utcnow
from ..models.event import EventCategory
from ..models.event_rsvp import RSVPStatus
from ..repositories.registry import Repositories
from .privacy import directory_entry

FORMATS = ("csv", "json")

DIRECTORY_COLUMNS = ["id", "first_name", "last_name", "email", "phone", "address", "membership_date"]
EVENT_COLUMNS = [
    "id",
    "title",
    "description",
    "start_time",
    "end_time",
    "location",
    "category",
    "max_capacity",
    "confirmed_count",
    "cancelled",
]
ANNOUNCEMENT_COLUMNS = ["id", "title", "priority", "author_id", "published_at", "archived", "view_count"]
ATTENDANCE_COLUMNS = ["member_id", "first_name", "last_name", "email", "status", "rsvped_at", "notes"]
MEMBER_EXPORT_COLUMNS = [
    "id",
    "email",
    "first_name",
    "last_name",
    "phone",
    "address",
    "role",
    "membership_date",
    "email_notifications",
    "show_email",
    "show_phone",
    "show_address",
    "last_login_at",
    "created_at",
    "deleted_at",
]

# Upper bound per download.
MAX_EXPORT_ROWS = 1000


@dataclass(frozen=True)
class ExportResult:
    name: str
    fmt: str
    columns: List[str]
    rows: List[Dict[str, Any]]
    generated_at: datetime

    @property
    def filename(self) -> str:
        return f"{self.name}_{self.generated_at.date().isoformat()}.{self.fmt}"

    @property
    def content_type(self) -> str:
        return "text/csv" if self.fmt == "csv" else "application/json"

    def render_csv(self) -> str:
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=self.columns, extrasaction="ignore", lineterminator="\n")
        writer.writeheader()
        for row in self.rows:
            writer.writerow({k: _cell(row.get(k)) for k in self.columns})
        return buf.getvalue()

    def json_payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "generated_at": self.generated_at.isoformat(),
            "count": len(self.rows),
            "data": [{k: _jsonable(v) for k, v in row.items()} for row in self.rows],
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    return _jsonable(value)


def check_format(fmt: Optional[str]) -> str:
    f = (fmt or "json").strip().lower()
    if f not in FORMATS:
        raise ValidationError(f"Unsupported export format '{fmt}'. Use one of: {', '.join(FORMATS)}")
    return f


def _window(start: Optional[datetime], end: Optional[datetime], now: datetime, default_days: int = 30):
    end = to_naive_utc(end) or now
    start = to_naive_utc(start) or (end - timedelta(days=default_days))
    if end < start:
        raise ValidationError("Report end date must be after start date")
    return start, end


# -----------------------------
# Reports
# -----------------------------

def member_directory(
    repos: Repositories,
    *,
    viewer_id: Optional[int],
    fmt: str = "json",
    search: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ExportResult:
    """Active members with each member's privacy flags applied."""
    members = repos.members.list(search=search, limit=MAX_EXPORT_ROWS)
    rows = [directory_entry(m, viewer_id) for m in members]
    return ExportResult("member_directory", check_format(fmt), DIRECTORY_COLUMNS, rows, to_naive_utc(now) or utcnow())


def events_report(
    repos: Repositories,
    *,
    fmt: str = "json",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    category: Optional[EventCategory] = None,
    include_cancelled: bool = True,
    now: Optional[datetime] = None,
) -> ExportResult:
    """
    Events starting inside [start, end] with confirmed RSVP counts.
    Without a range this covers the last 30 days.
    """
    now = to_naive_utc(now) or utcnow()
    start, end = _window(start, end, now)

    events = repos.events.list(
        upcoming_only=False,
        category=category,
        include_cancelled=include_cancelled,
        start=start,
        end=end,
        now=now,
        limit=MAX_EXPORT_ROWS,
    )
    counts = repos.rsvps.confirmed_counts([e.id for e in events])

    rows = [
        {
            "id": e.id,
            "title": e.title,
            "description": e.description,
            "start_time": e.start_time,
            "end_time": e.end_time,
            "location": e.location,
            "category": e.category,
            "max_capacity": e.max_capacity,
            "confirmed_count": counts.get(e.id, 0),
            "cancelled": e.is_cancelled(),
        }
        for e in events
    ]
    return ExportResult("events", check_format(fmt), EVENT_COLUMNS, rows, now)


def announcements_report(
    repos: Repositories,
    *,
    fmt: str = "json",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> ExportResult:
    now = to_naive_utc(now) or utcnow()
    start, end = _window(start, end, now)

    items = repos.announcements.list(start=start, end=end, limit=MAX_EXPORT_ROWS)
    items += repos.announcements.list(archived=True, start=start, end=end, limit=MAX_EXPORT_ROWS)
    items.sort(key=lambda a: (a.published_at, a.id), reverse=True)
    views = repos.announcements.view_counts([a.id for a in items])

    rows = [
        {
            "id": a.id,
            "title": a.title,
            "priority": a.priority,
            "author_id": a.author_id,
            "published_at": a.published_at,
            "archived": a.is_archived(),
            "view_count": views.get(a.id, 0),
        }
        for a in items
    ]
    return ExportResult("announcements", check_format(fmt), ANNOUNCEMENT_COLUMNS, rows, now)


def event_attendance(
    repos: Repositories,
    event_id: int,
    *,
    fmt: str = "json",
    status: Optional[RSVPStatus] = None,
    now: Optional[datetime] = None,
) -> ExportResult:
    event = repos.events.get(event_id)
    rsvps = repos.rsvps.list_for_event(event.id, status=status)

    rows: List[Dict[str, Any]] = []
    for r in rsvps:
        member = repos.members.get(r.member_id, include_inactive=True)
        rows.append(
            {
                "member_id": member.id,
                "first_name": member.first_name,
                "last_name": member.last_name,
                "email": member.email,
                "status": r.status,
                "rsvped_at": r.rsvped_at,
                "notes": r.notes,
            }
        )
    return ExportResult(f"event_{event.id}_attendance", check_format(fmt), ATTENDANCE_COLUMNS, rows, to_naive_utc(now) or utcnow())


def member_data_export(
    repos: Repositories,
    *,
    fmt: str = "json",
    include_inactive: bool = False,
    now: Optional[datetime] = None,
) -> ExportResult:
    """Full member records for admins. Credentials and lockout state are never exported."""
    members = repos.members.list(include_inactive=include_inactive, limit=MAX_EXPORT_ROWS)
    rows = []
    for m in members:
        flags = m.privacy_settings or {}
        rows.append(
            {
                "id": m.id,
                "email": m.email,
                "first_name": m.first_name,
                "last_name": m.last_name,
                "phone": m.phone,
                "address": m.address,
                "role": m.role,
                "membership_date": m.membership_date,
                "email_notifications": m.email_notifications,
                "show_email": bool(flags.get("show_email", True)),
                "show_phone": bool(flags.get("show_phone", True)),
                "show_address": bool(flags.get("show_address", True)),
                "last_login_at": m.last_login_at,
                "created_at": m.created_at,
                "deleted_at": m.deleted_at,
            }
        )
    return ExportResult("members", check_format(fmt), MEMBER_EXPORT_COLUMNS, rows, to_naive_utc(now) or utcnow())
