from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from fastapi import Request

from ..models.audit_log import AuditAction, AuditLog
from ..repositories.audit_logs import AuditLogRepository

logger = logging.getLogger(__name__)

# Never copied into an audit payload.
_SECRET_FIELDS = {"password_hash", "password"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def snapshot(obj: Any) -> Dict[str, Any]:
    """JSON-safe dict of a model row, minus secrets."""
    data = obj.model_dump() if hasattr(obj, "model_dump") else dict(obj)
    return {k: _jsonable(v) for k, v in data.items() if k not in _SECRET_FIELDS}


def diff(before: Mapping[str, Any], after: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Per-field {"before": x, "after": y} for keys whose value changed.
    Keys present on only one side count as changed.
    """
    changes: Dict[str, Dict[str, Any]] = {}
    for key in sorted(set(before) | set(after)):
        if key in _SECRET_FIELDS or key == "updated_at":
            continue
        b = before.get(key)
        a = after.get(key)
        if b != a:
            changes[key] = {"before": b, "after": a}
    return changes


def request_origin(request: Optional[Request]) -> Dict[str, str]:
    if request is None:
        return {"ip_address": "", "user_agent": ""}
    client = request.client.host if request.client else ""
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else client
    return {"ip_address": ip or "", "user_agent": request.headers.get("user-agent", "")}


class AuditTrail:
    """
    Records admin actions after they have been committed.

    A failed audit write is logged and swallowed: the admin action itself
    already happened and must not turn into an error response.
    """

    def __init__(self, repo: AuditLogRepository) -> None:
        self.repo = repo

    def record(
        self,
        *,
        action: AuditAction,
        entity_type: str,
        entity_id: Any,
        actor_id: int,
        changes: Optional[Dict[str, Any]] = None,
        request: Optional[Request] = None,
    ) -> Optional[AuditLog]:
        try:
            entry = self.repo.append(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=actor_id,
                changes=changes or {},
                **request_origin(request),
            )
        except Exception:
            logger.exception(
                "audit write failed action=%s entity=%s:%s actor=%s",
                getattr(action, "value", action),
                entity_type,
                entity_id,
                actor_id,
            )
            return None

        logger.info(
            "audit action=%s entity=%s:%s actor=%s",
            entry.action.value,
            entity_type,
            entity_id,
            actor_id,
        )
        return entry

    def created(self, *, entity_type: str, entity: Any, actor_id: int, request: Optional[Request] = None):
        return self.record(
            action=AuditAction.CREATE,
            entity_type=entity_type,
            entity_id=entity.id,
            actor_id=actor_id,
            changes={"created": snapshot(entity)},
            request=request,
        )

    def updated(
        self,
        *,
        entity_type: str,
        entity_id: Any,
        before: Mapping[str, Any],
        after: Any,
        actor_id: int,
        request: Optional[Request] = None,
    ):
        return self.record(
            action=AuditAction.UPDATE,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            changes=diff(before, snapshot(after)),
            request=request,
        )

    def deleted(self, *, entity_type: str, entity: Any, actor_id: int, request: Optional[Request] = None):
        return self.record(
            action=AuditAction.DELETE,
            entity_type=entity_type,
            entity_id=entity.id,
            actor_id=actor_id,
            changes={"deleted": snapshot(entity)},
            request=request,
        )
