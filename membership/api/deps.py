from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, Request

from ..config import Settings
from ..errors import AuthorizationError, NotAuthenticatedError, NotFoundError, StoreUnavailableError
from ..models.member import Member
from ..repositories.registry import Repositories
from ..services.audit import AuditTrail

logger = logging.getLogger(__name__)

ACTOR_HEADER = "X-Member-Id"


def get_repos(request: Request) -> Repositories:
    return request.app.state.repos


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_audit(repos: Repositories = Depends(get_repos)) -> AuditTrail:
    return AuditTrail(repos.audit_logs)


def _parse_member_id(raw: Optional[str]) -> Optional[int]:
    s = (raw or "").strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        raise NotAuthenticatedError(f"Invalid {ACTOR_HEADER} header")


def get_optional_actor(
    x_member_id: Optional[str] = Header(default=None, alias=ACTOR_HEADER),
    repos: Repositories = Depends(get_repos),
) -> Optional[Member]:
    member_id = _parse_member_id(x_member_id)
    if member_id is None:
        return None
    try:
        return repos.members.get(member_id)
    except NotFoundError:
        raise NotAuthenticatedError("Unknown or deactivated member")


def get_actor(actor: Optional[Member] = Depends(get_optional_actor)) -> Member:
    """
    The acting member for this request.

    Sessions are issued upstream; by the time a request reaches us the
    gateway has put the member id in X-Member-Id.
    """
    if actor is None:
        raise NotAuthenticatedError(f"Missing {ACTOR_HEADER} header")
    return actor


def require_staff(actor: Member = Depends(get_actor)) -> Member:
    if not actor.is_staff_or_admin():
        raise AuthorizationError("Staff or admin role required")
    return actor


def require_admin(actor: Member = Depends(get_actor)) -> Member:
    if not actor.is_admin():
        raise AuthorizationError("Admin role required")
    return actor


def require_staff_unless_store_down(
    x_member_id: Optional[str] = Header(default=None, alias=ACTOR_HEADER),
    repos: Repositories = Depends(get_repos),
) -> Optional[Member]:
    """
    Staff check for the admin health route.

    Returns None when the actor lookup itself hits an unreachable store. The
    route then answers with the store-down report, which holds no member data.
    A missing header is still a 401.
    """
    if _parse_member_id(x_member_id) is None:
        raise NotAuthenticatedError(f"Missing {ACTOR_HEADER} header")
    try:
        actor = get_optional_actor(x_member_id, repos)
    except StoreUnavailableError as e:
        logger.warning("health: cannot resolve actor, store unavailable: %s", e)
        return None
    return require_staff(get_actor(actor))


def ensure_self_or_admin(actor: Member, member_id: int) -> None:
    if actor.id != member_id and not actor.is_admin():
        raise AuthorizationError("You can only modify your own profile")
