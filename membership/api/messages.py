from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..errors import ValidationError
from ..models.member import Member
from ..models.message import Message
from ..repositories.registry import Repositories
from .deps import get_actor, get_repos

router = APIRouter(prefix="/messages", tags=["messages"])

FOLDERS = ("inbox", "sent")


class MessageCreate(BaseModel):
    recipient_id: int
    subject: str
    body: str


def _out(m: Message) -> Dict[str, Any]:
    return m.model_dump(exclude={"deleted_by_sender", "deleted_by_recipient"})


@router.post("", status_code=201)
def send_message(
    payload: MessageCreate,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    m = repos.messages.send(
        sender_id=actor.id,
        recipient_id=payload.recipient_id,
        subject=payload.subject,
        body=payload.body,
    )
    return _out(m)


@router.get("")
def list_messages(
    folder: str = "inbox",
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    folder = (folder or "inbox").strip().lower()
    if folder not in FOLDERS:
        raise ValidationError(f"Unknown folder '{folder}'. Use inbox or sent")

    if folder == "inbox":
        items = repos.messages.inbox(actor.id, unread_only=unread_only, limit=limit, offset=offset)
    else:
        items = repos.messages.sent(actor.id, limit=limit, offset=offset)

    return {
        "folder": folder,
        "data": [_out(m) for m in items],
        "unread_count": repos.messages.unread_count(actor.id),
        "limit": limit,
        "offset": offset,
    }


@router.get("/unread-count")
def unread_count(actor: Member = Depends(get_actor), repos: Repositories = Depends(get_repos)) -> Dict[str, int]:
    return {"unread_count": repos.messages.unread_count(actor.id)}


@router.get("/{message_id}")
def get_message(
    message_id: int,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    return _out(repos.messages.get_for(message_id, actor.id))


@router.post("/{message_id}/read")
def mark_read(
    message_id: int,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    return _out(repos.messages.mark_read(message_id, actor.id))


@router.delete("/{message_id}")
def delete_message(
    message_id: int,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    repos.messages.delete_for(message_id, actor.id)
    return {"ok": True, "id": message_id}
