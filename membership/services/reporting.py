from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings
from ..database import ping
from ..errors import MembershipError
from ..models.common import to_naive_utc, utcnow
from ..repositories.registry import Repositories

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DEGRADED = "degraded"


@dataclass(frozen=True)
class StoreHealth:
    reachable: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class HealthCounts:
    """
    - active_members: members not deactivated
    - upcoming_events: active events starting in the next `upcoming_days`
    - unread_announcements: outstanding (active member, active announcement) pairs with no view
    - recent_audit_entries: audit rows in the last `recent_audit_days`
    """
    active_members: int
    upcoming_events: int
    unread_announcements: int
    recent_audit_entries: int


@dataclass(frozen=True)
class HealthReport:
    status: str
    checked_at: datetime
    store: StoreHealth
    counts: Optional[HealthCounts]
    warnings: List[str] = field(default_factory=list)
    upcoming_days: int = 30
    recent_audit_days: int = 7

    @property
    def healthy(self) -> bool:
        return self.status == HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["checked_at"] = self.checked_at.isoformat()
        return out


@dataclass(frozen=True)
class HealthBounds:
    upcoming_days: int = 30
    recent_audit_days: int = 7
    max_upcoming_events: int = 500
    max_recent_audit: int = 5000
    slow_store_ms: float = 1000.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings]) -> "HealthBounds":
        if settings is None:
            return cls()
        return cls(
            upcoming_days=settings.health_upcoming_days,
            recent_audit_days=settings.health_recent_audit_days,
            max_upcoming_events=settings.health_max_upcoming_events,
            max_recent_audit=settings.health_max_recent_audit,
            slow_store_ms=settings.health_slow_store_ms,
        )


def _unreachable(now: datetime, bounds: HealthBounds, exc: BaseException) -> HealthReport:
    logger.warning("health: store unreachable: %s", exc)
    return HealthReport(
        status=DEGRADED,
        checked_at=now,
        store=StoreHealth(reachable=False, error=type(exc).__name__),
        counts=None,
        warnings=["Database is unreachable"],
        upcoming_days=bounds.upcoming_days,
        recent_audit_days=bounds.recent_audit_days,
    )


def store_down_report(
    settings: Optional[Settings] = None,
    *,
    error: BaseException,
    now: Optional[datetime] = None,
) -> HealthReport:
    """Degraded report for when the store failed before any counting started. Carries no counts."""
    now = to_naive_utc(now) or utcnow()
    return _unreachable(now, HealthBounds.from_settings(settings), error)


def build_health_report(
    repos: Repositories,
    settings: Optional[Settings] = None,
    *,
    now: Optional[datetime] = None,
) -> HealthReport:
    """
    Summary counts plus a coarse healthy/degraded signal.

    Never raises: an unreachable store (or any failure while counting) yields
    status=degraded with store.reachable=False and counts=None.
    """
    now = to_naive_utc(now) or utcnow()
    bounds = HealthBounds.from_settings(settings)

    try:
        latency_ms = ping(repos.engine)
    except (SQLAlchemyError, MembershipError, OSError) as e:
        return _unreachable(now, bounds, e)

    try:
        counts = HealthCounts(
            active_members=repos.members.count_active(),
            upcoming_events=repos.events.count_upcoming(now=now, days=bounds.upcoming_days),
            unread_announcements=repos.announcements.outstanding_unread(),
            recent_audit_entries=repos.audit_logs.count_since(now - timedelta(days=bounds.recent_audit_days)),
        )
    except (SQLAlchemyError, MembershipError) as e:
        return _unreachable(now, bounds, e)

    warnings: List[str] = []
    if latency_ms > bounds.slow_store_ms:
        warnings.append(f"Database ping took {latency_ms:.0f} ms (limit {bounds.slow_store_ms:.0f} ms)")
    if counts.upcoming_events > bounds.max_upcoming_events:
        warnings.append(
            f"Upcoming events ({counts.upcoming_events}) exceed the bound of {bounds.max_upcoming_events}"
        )
    if counts.recent_audit_entries > bounds.max_recent_audit:
        warnings.append(
            f"Recent audit entries ({counts.recent_audit_entries}) exceed the bound of {bounds.max_recent_audit}"
        )

    return HealthReport(
        status=DEGRADED if warnings else HEALTHY,
        checked_at=now,
        store=StoreHealth(reachable=True, latency_ms=round(latency_ms, 2)),
        counts=counts,
        warnings=warnings,
        upcoming_days=bounds.upcoming_days,
        recent_audit_days=bounds.recent_audit_days,
    )
