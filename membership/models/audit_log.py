from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, event
from sqlmodel import Field, SQLModel

from ..errors import ImmutableRecordError
from .common import utcnow


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditLog(SQLModel, table=True):
    """
    Append-only record of an administrative action.

    Notes:
    - actor_id must reference an existing member (checked before insert, and
      by the FK when the store enforces it).
    - changes holds {"created": {...}}, {"deleted": {...}} or a per-field
      {"field": {"before": x, "after": y}} diff.
    - Rows are immutable: the mapper listeners below refuse UPDATE and DELETE.
    """

    __tablename__ = "audit_logs"

    id: Optional[int] = Field(default=None, primary_key=True)

    action: AuditAction = Field(index=True)
    entity_type: str = Field(index=True)
    entity_id: str = Field(index=True)

    actor_id: int = Field(foreign_key="members.id", index=True)

    changes: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    ip_address: str = Field(default="")
    user_agent: str = Field(default="")

    timestamp: datetime = Field(default_factory=utcnow, index=True)


@event.listens_for(AuditLog, "before_update")
def _auditlog_before_update(mapper, connection, target: AuditLog) -> None:  # noqa: ANN001
    raise ImmutableRecordError(f"Audit log entry {target.id} is immutable")


@event.listens_for(AuditLog, "before_delete")
def _auditlog_before_delete(mapper, connection, target: AuditLog) -> None:  # noqa: ANN001
    raise ImmutableRecordError(f"Audit log entry {target.id} cannot be deleted")
