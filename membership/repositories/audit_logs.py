from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import select

from ..errors import NotFoundError, ValidationError
from ..models.audit_log import AuditAction, AuditLog
from ..models.common import to_naive_utc, utcnow
from ..models.member import Member
from .base import Repository, clamp_page, clean_text

logger = logging.getLogger(__name__)


class AuditLogRepository(Repository):
    """
    Append-only access to the audit trail.

    No update/delete here. The model's mapper listeners also refuse
    UPDATE/DELETE flushes on AuditLog rows.
    """

    def append(
        self,
        *,
        action: AuditAction,
        entity_type: str,
        entity_id: Any,
        actor_id: int,
        changes: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> AuditLog:
        if entity_id is None or str(entity_id).strip() == "":
            raise ValidationError("Audit entity id is required")

        entry = AuditLog(
            action=AuditAction(action),
            entity_type=clean_text(entity_type, "Audit entity type", max_len=100),
            entity_id=str(entity_id),
            actor_id=actor_id,
            changes=dict(changes or {}),
            ip_address=(ip_address or "")[:100],
            user_agent=(user_agent or "")[:500],
            timestamp=to_naive_utc(timestamp) or utcnow(),
        )

        with self._session() as session:
            # Actor is checked even when deactivated members exist: history stays valid.
            if session.get(Member, actor_id) is None:
                raise NotFoundError("Member", actor_id)

            session.add(entry)
            session.commit()
            session.refresh(entry)

        return entry

    def get(self, entry_id: int) -> AuditLog:
        with self._session() as session:
            entry = session.get(AuditLog, entry_id)
        if entry is None:
            raise NotFoundError("Audit log entry", entry_id)
        return entry

    def _filtered(
        self,
        q: Any,
        *,
        action: Optional[AuditAction],
        entity_type: Optional[str],
        actor_id: Optional[int],
        since: Optional[datetime],
        until: Optional[datetime],
    ) -> Any:
        if action is not None:
            q = q.where(AuditLog.action == AuditAction(action))
        if entity_type:
            q = q.where(AuditLog.entity_type == entity_type)
        if actor_id is not None:
            q = q.where(AuditLog.actor_id == actor_id)
        if since is not None:
            q = q.where(AuditLog.timestamp >= to_naive_utc(since))
        if until is not None:
            q = q.where(AuditLog.timestamp <= to_naive_utc(until))
        return q

    def list(
        self,
        *,
        action: Optional[AuditAction] = None,
        entity_type: Optional[str] = None,
        actor_id: Optional[int] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[AuditLog]:
        limit, offset = clamp_page(limit, offset)
        with self._session() as session:
            q = self._filtered(
                select(AuditLog),
                action=action,
                entity_type=entity_type,
                actor_id=actor_id,
                since=since,
                until=until,
            )
            q = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).offset(offset).limit(limit)
            return list(session.exec(q).all())

    def count(
        self,
        *,
        action: Optional[AuditAction] = None,
        entity_type: Optional[str] = None,
        actor_id: Optional[int] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> int:
        with self._session() as session:
            q = self._filtered(
                select(func.count()).select_from(AuditLog),
                action=action,
                entity_type=entity_type,
                actor_id=actor_id,
                since=since,
                until=until,
            )
            return int(session.exec(q).one() or 0)

    def for_entity(self, entity_type: str, entity_id: Any) -> List[AuditLog]:
        """Full history of one record, oldest first."""
        with self._session() as session:
            q = (
                select(AuditLog)
                .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == str(entity_id))
                .order_by(AuditLog.timestamp, AuditLog.id)
            )
            return list(session.exec(q).all())

    def count_since(self, since: datetime) -> int:
        return self.count(since=since)
