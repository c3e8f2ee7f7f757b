from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ..errors import ValidationError
from ..models.announcement import Announcement, Priority
from ..models.member import Member
from ..repositories.registry import Repositories
from ..services.audit import AuditTrail, snapshot
from .deps import get_actor, get_audit, get_repos, require_staff

router = APIRouter(prefix="/announcements", tags=["announcements"])


class AnnouncementCreate(BaseModel):
    title: str
    content: str
    priority: Priority = Priority.NORMAL


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    priority: Optional[Priority] = None


def _out(a: Announcement, is_read: Optional[bool] = None) -> Dict[str, Any]:
    data = a.model_dump()
    data["is_archived"] = a.is_archived()
    data["is_urgent"] = a.is_urgent()
    if is_read is not None:
        data["is_read"] = is_read
    return data


@router.post("", status_code=201)
def create_announcement(
    payload: AnnouncementCreate,
    request: Request,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    a = repos.announcements.create(
        author_id=actor.id,
        title=payload.title,
        content=payload.content,
        priority=payload.priority,
    )
    audit.created(entity_type="Announcement", entity=a, actor_id=actor.id, request=request)
    return _out(a)


@router.get("")
def list_announcements(
    archived: bool = False,
    priority: Optional[Priority] = None,
    limit: int = 50,
    offset: int = 0,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    items = repos.announcements.list(archived=archived, priority=priority, limit=limit, offset=offset)
    viewed = repos.announcements.viewed_ids(actor.id, [a.id for a in items])
    return {
        "data": [_out(a, a.id in viewed) for a in items],
        "unread_count": repos.announcements.unread_count(actor.id),
        "limit": limit,
        "offset": offset,
    }


@router.get("/unread-count")
def unread_count(actor: Member = Depends(get_actor), repos: Repositories = Depends(get_repos)) -> Dict[str, int]:
    return {"unread_count": repos.announcements.unread_count(actor.id)}


@router.get("/{announcement_id}")
def get_announcement(
    announcement_id: int,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    """Opening an announcement counts as viewing it."""
    a = repos.announcements.get(announcement_id)
    repos.announcements.mark_viewed(announcement_id=a.id, member_id=actor.id)
    return _out(a, True)


@router.patch("/{announcement_id}")
def update_announcement(
    announcement_id: int,
    payload: AnnouncementUpdate,
    request: Request,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No announcement fields to update")

    before = snapshot(repos.announcements.get(announcement_id))
    a = repos.announcements.update(announcement_id, changes)
    audit.updated(
        entity_type="Announcement",
        entity_id=announcement_id,
        before=before,
        after=a,
        actor_id=actor.id,
        request=request,
    )
    return _out(a)


@router.post("/{announcement_id}/archive")
def archive_announcement(
    announcement_id: int,
    request: Request,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    before = snapshot(repos.announcements.get(announcement_id))
    a = repos.announcements.archive(announcement_id)
    audit.updated(
        entity_type="Announcement",
        entity_id=announcement_id,
        before=before,
        after=a,
        actor_id=actor.id,
        request=request,
    )
    return _out(a)


@router.post("/{announcement_id}/unarchive")
def unarchive_announcement(
    announcement_id: int,
    request: Request,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    before = snapshot(repos.announcements.get(announcement_id))
    a = repos.announcements.unarchive(announcement_id)
    audit.updated(
        entity_type="Announcement",
        entity_id=announcement_id,
        before=before,
        after=a,
        actor_id=actor.id,
        request=request,
    )
    return _out(a)


@router.delete("/{announcement_id}")
def delete_announcement(
    announcement_id: int,
    request: Request,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    a = repos.announcements.delete(announcement_id)
    audit.deleted(entity_type="Announcement", entity=a, actor_id=actor.id, request=request)
    return {"ok": True, "id": announcement_id}
