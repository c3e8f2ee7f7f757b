from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ..config import Settings
from ..models.member import Member
from ..models.push_subscription import PushSubscription
from ..repositories.registry import Repositories
from .deps import get_actor, get_repos, get_settings

router = APIRouter(prefix="/push", tags=["push"])


class SubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class SubscribeIn(BaseModel):
    """Same shape as the browser's PushSubscription.toJSON()."""
    endpoint: str
    keys: SubscriptionKeys


class UnsubscribeIn(BaseModel):
    endpoint: str


def _out(sub: PushSubscription) -> Dict[str, Any]:
    return sub.model_dump(exclude={"p256dh", "auth"})


@router.get("/vapid-key")
def vapid_key(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    if not settings.push_enabled:
        raise HTTPException(status_code=503, detail="Push notifications are not configured")
    return {"public_key": settings.vapid_public_key}


@router.get("/status")
def push_status(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    enabled = settings.push_enabled
    message = "Push notifications are enabled" if enabled else "Push notifications are not configured"
    return {"enabled": enabled, "message": message}


@router.post("/subscribe", status_code=201)
def subscribe(
    payload: SubscribeIn,
    request: Request,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    sub = repos.push_subscriptions.upsert(
        member_id=actor.id,
        endpoint=payload.endpoint,
        p256dh=payload.keys.p256dh,
        auth=payload.keys.auth,
        user_agent=request.headers.get("user-agent"),
    )
    return _out(sub)


@router.post("/unsubscribe")
def unsubscribe(
    payload: UnsubscribeIn,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    repos.push_subscriptions.remove(member_id=actor.id, endpoint=payload.endpoint)
    return {"ok": True}


@router.get("/subscriptions")
def list_subscriptions(actor: Member = Depends(get_actor), repos: Repositories = Depends(get_repos)) -> Dict[str, Any]:
    subs = repos.push_subscriptions.list_for_member(actor.id)
    return {"data": [_out(s) for s in subs]}


@router.delete("/subscriptions")
def remove_all_subscriptions(actor: Member = Depends(get_actor), repos: Repositories = Depends(get_repos)) -> Dict[str, Any]:
    """Unsubscribe every device of the acting member."""
    removed = repos.push_subscriptions.remove_all(actor.id)
    return {"ok": True, "removed": removed}
