from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response

from ..config import Settings
from ..errors import StoreUnavailableError
from ..models.audit_log import AuditAction
from ..models.event import EventCategory
from ..models.event_rsvp import RSVPStatus
from ..models.member import Member
from ..repositories.registry import Repositories
from ..services import exports
from ..services.reporting import build_health_report, store_down_report
from .deps import get_repos, get_settings, require_admin, require_staff, require_staff_unless_store_down

router = APIRouter(prefix="/admin", tags=["admin"])


def _render(result: exports.ExportResult) -> Response:
    headers = {"Content-Disposition": f'attachment; filename="{result.filename}"'}
    if result.fmt == "csv":
        return Response(content=result.render_csv(), media_type="text/csv", headers=headers)
    return JSONResponse(content=result.json_payload(), headers=headers)


# -----------------------------
# Audit log (read-only)
# -----------------------------

@router.get("/audit-logs")
def list_audit_logs(
    action: Optional[AuditAction] = None,
    entity_type: Optional[str] = None,
    actor_id: Optional[int] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
    actor: Member = Depends(require_admin),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    filters = dict(action=action, entity_type=entity_type, actor_id=actor_id, since=since, until=until)
    entries = repos.audit_logs.list(limit=limit, offset=offset, **filters)
    return {
        "data": [e.model_dump() for e in entries],
        "total": repos.audit_logs.count(**filters),
        "limit": limit,
        "offset": offset,
    }


@router.get("/audit-logs/{entry_id}")
def get_audit_log(
    entry_id: int,
    actor: Member = Depends(require_admin),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    return repos.audit_logs.get(entry_id).model_dump()


# -----------------------------
# Health
# -----------------------------

@router.get("/health")
def admin_health(
    actor: Optional[Member] = Depends(require_staff_unless_store_down),
    repos: Repositories = Depends(get_repos),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Always 200 for an authorized or unverifiable caller: a down store shows up in the body."""
    if actor is None:
        return store_down_report(settings, error=StoreUnavailableError("Database is unavailable")).to_dict()
    return build_health_report(repos, settings).to_dict()


# -----------------------------
# Reports / exports
# -----------------------------

@router.get("/reports/members")
def report_members(
    format: str = "json",
    search: Optional[str] = None,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
) -> Response:
    return _render(exports.member_directory(repos, viewer_id=actor.id, fmt=format, search=search))


@router.get("/reports/events")
def report_events(
    format: str = "json",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    category: Optional[EventCategory] = None,
    include_cancelled: bool = True,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
) -> Response:
    return _render(
        exports.events_report(
            repos,
            fmt=format,
            start=start,
            end=end,
            category=category,
            include_cancelled=include_cancelled,
        )
    )


@router.get("/reports/announcements")
def report_announcements(
    format: str = "json",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
) -> Response:
    return _render(exports.announcements_report(repos, fmt=format, start=start, end=end))


@router.get("/reports/events/{event_id}/attendance")
def report_attendance(
    event_id: int,
    format: str = "json",
    status: Optional[RSVPStatus] = None,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
) -> Response:
    return _render(exports.event_attendance(repos, event_id, fmt=format, status=status))


@router.get("/export/members")
def export_members(
    format: str = "json",
    include_inactive: bool = False,
    actor: Member = Depends(require_admin),
    repos: Repositories = Depends(get_repos),
) -> Response:
    return _render(exports.member_data_export(repos, fmt=format, include_inactive=include_inactive))
