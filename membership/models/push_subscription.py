from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .common import utcnow


class PushSubscription(SQLModel, table=True):
    """
    A browser/device Web Push registration for a member.
    A member may have several (one per endpoint).
    """

    __tablename__ = "push_subscriptions"
    __table_args__ = (
        UniqueConstraint("member_id", "endpoint", name="uq_push_subscriptions_member_endpoint"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    member_id: int = Field(foreign_key="members.id", index=True)
    endpoint: str

    p256dh: str
    auth: str
    user_agent: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
