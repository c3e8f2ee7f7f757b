from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from ..config import Settings
from .announcements import AnnouncementRepository
from .audit_logs import AuditLogRepository
from .events import EventRepository
from .members import MemberRepository
from .messages import MessageRepository
from .push_subscriptions import PushSubscriptionRepository
from .rsvps import EventRSVPRepository


@dataclass
class Repositories:
    """
    One accessor per entity, sharing a single engine.

    Built once by create_app and stored on app.state; handlers receive it
    through Depends(get_repos).
    """

    engine: Engine
    members: MemberRepository
    events: EventRepository
    rsvps: EventRSVPRepository
    announcements: AnnouncementRepository
    messages: MessageRepository
    audit_logs: AuditLogRepository
    push_subscriptions: PushSubscriptionRepository


def build_repositories(engine: Engine, settings: Optional[Settings] = None) -> Repositories:
    max_attempts = settings.login_max_attempts if settings is not None else 5
    lock_minutes = settings.login_lock_minutes if settings is not None else 15

    return Repositories(
        engine=engine,
        members=MemberRepository(engine, max_login_attempts=max_attempts, lock_minutes=lock_minutes),
        events=EventRepository(engine),
        rsvps=EventRSVPRepository(engine),
        announcements=AnnouncementRepository(engine),
        messages=MessageRepository(engine),
        audit_logs=AuditLogRepository(engine),
        push_subscriptions=PushSubscriptionRepository(engine),
    )
