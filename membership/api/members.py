from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, EmailStr
from pydantic import Field as PydField

from ..errors import ValidationError
from ..models.member import Member, Role
from ..repositories.registry import Repositories
from ..services.audit import AuditTrail, snapshot
from ..services.dashboard import member_dashboard
from ..services.privacy import directory_entry, full_profile, profile_view
from ..services.security import MIN_PASSWORD_LENGTH, generate_temporary_password
from .deps import ensure_self_or_admin, get_actor, get_audit, get_repos, require_admin, require_staff

router = APIRouter(prefix="/members", tags=["members"])


# -----------------------------
# Schemas (do NOT use DB model as input)
# -----------------------------

class RegisterIn(BaseModel):
    email: EmailStr
    password: str = PydField(..., min_length=MIN_PASSWORD_LENGTH)
    first_name: str
    last_name: str
    phone: Optional[str] = None
    address: Optional[str] = None


class LoginIn(BaseModel):
    email: str
    password: str


class MemberCreate(BaseModel):
    """
    Admin-created account. A temporary password is generated server-side
    and returned once in the response.
    """
    email: EmailStr
    first_name: str
    last_name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    role: Role = Role.MEMBER
    membership_date: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class PrivacyUpdate(BaseModel):
    show_phone: Optional[bool] = None
    show_email: Optional[bool] = None
    show_address: Optional[bool] = None


class NotificationUpdate(BaseModel):
    email_notifications: bool


class RoleUpdate(BaseModel):
    role: Role


# -----------------------------
# Self-service
# -----------------------------

@router.post("/register", status_code=201)
def register(payload: RegisterIn, repos: Repositories = Depends(get_repos)) -> Dict[str, Any]:
    member = repos.members.create(
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        address=payload.address,
    )
    return {"member": full_profile(member), "message": "Registration successful"}


@router.post("/login")
def login(payload: LoginIn, repos: Repositories = Depends(get_repos)) -> Dict[str, Any]:
    """
    Credential check with lockout bookkeeping. Session issuance happens
    upstream; this only answers whether the credentials are good.
    """
    member = repos.members.verify_credentials(payload.email, payload.password)
    return {"member": full_profile(member), "message": "Login successful"}


# -----------------------------
# Staff/admin management
# -----------------------------

@router.post("", status_code=201)
def create_member(
    payload: MemberCreate,
    request: Request,
    actor: Member = Depends(require_admin),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    temporary_password = generate_temporary_password()
    member = repos.members.create(
        email=payload.email,
        password=temporary_password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        address=payload.address,
        role=payload.role,
        membership_date=payload.membership_date,
    )
    audit.created(entity_type="Member", entity=member, actor_id=actor.id, request=request)
    return {"member": full_profile(member), "temporary_password": temporary_password}


@router.get("")
def list_members(
    search: Optional[str] = None,
    role: Optional[Role] = None,
    include_inactive: bool = False,
    limit: int = 50,
    offset: int = 0,
    actor: Member = Depends(require_staff),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    members = repos.members.list(
        search=search, role=role, include_inactive=include_inactive, limit=limit, offset=offset
    )
    total = repos.members.count(search=search, role=role, include_inactive=include_inactive)
    return {"data": [full_profile(m) for m in members], "total": total, "limit": limit, "offset": offset}


@router.get("/directory")
def directory(
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    members = repos.members.list(search=search, limit=limit, offset=offset)
    total = repos.members.count(search=search)
    return {
        "data": [directory_entry(m, actor.id) for m in members],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/me/dashboard")
def my_dashboard(actor: Member = Depends(get_actor), repos: Repositories = Depends(get_repos)) -> Dict[str, Any]:
    return member_dashboard(repos, actor.id)


# -----------------------------
# Single member
# -----------------------------

@router.get("/{member_id}")
def get_member(
    member_id: int,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    member = repos.members.get(member_id, include_inactive=actor.is_staff_or_admin())
    return profile_view(member, actor)


@router.patch("/{member_id}")
def update_member(
    member_id: int,
    payload: ProfileUpdate,
    request: Request,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    ensure_self_or_admin(actor, member_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No profile fields to update")

    before = snapshot(repos.members.get(member_id))
    member = repos.members.update_profile(member_id, changes)
    if actor.id != member_id:
        audit.updated(entity_type="Member", entity_id=member_id, before=before, after=member, actor_id=actor.id, request=request)
    return full_profile(member)


@router.patch("/{member_id}/privacy")
def update_privacy(
    member_id: int,
    payload: PrivacyUpdate,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    ensure_self_or_admin(actor, member_id)
    member = repos.members.update_privacy(member_id, payload.model_dump(exclude_unset=True))
    return {"id": member.id, "privacy_settings": member.privacy_settings}


@router.patch("/{member_id}/notifications")
def update_notifications(
    member_id: int,
    payload: NotificationUpdate,
    actor: Member = Depends(get_actor),
    repos: Repositories = Depends(get_repos),
) -> Dict[str, Any]:
    ensure_self_or_admin(actor, member_id)
    member = repos.members.update_notifications(member_id, payload.email_notifications)
    return {"id": member.id, "email_notifications": member.email_notifications}


@router.patch("/{member_id}/role")
def change_role(
    member_id: int,
    payload: RoleUpdate,
    request: Request,
    actor: Member = Depends(require_admin),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    if member_id == actor.id:
        raise ValidationError("Admins cannot change their own role")

    before = snapshot(repos.members.get(member_id))
    member = repos.members.change_role(member_id, payload.role)
    audit.updated(entity_type="Member", entity_id=member_id, before=before, after=member, actor_id=actor.id, request=request)
    return full_profile(member)


@router.post("/{member_id}/deactivate")
def deactivate_member(
    member_id: int,
    request: Request,
    actor: Member = Depends(require_admin),
    repos: Repositories = Depends(get_repos),
    audit: AuditTrail = Depends(get_audit),
) -> Dict[str, Any]:
    if member_id == actor.id:
        raise ValidationError("Admins cannot deactivate themselves")

    member = repos.members.deactivate(member_id)
    removed = repos.push_subscriptions.remove_all(member_id)
    audit.deleted(entity_type="Member", entity=member, actor_id=actor.id, request=request)
    return {"member": full_profile(member), "push_subscriptions_removed": removed}
