from __future__ import annotations

from typing import Any, Dict, Optional

from ..models.member import Member, merge_privacy


def directory_entry(member: Member, viewer_id: Optional[int]) -> Dict[str, Any]:
    """
    Public directory row for `member` as seen by `viewer_id`.

    Hidden fields come back as None (not omitted) so the payload shape is stable.
    A member always sees their own full profile.
    """
    own = viewer_id is not None and member.id == viewer_id
    flags = merge_privacy(member.privacy_settings, {})

    return {
        "id": member.id,
        "first_name": member.first_name,
        "last_name": member.last_name,
        "email": member.email if own or flags["show_email"] else None,
        "phone": member.phone if own or flags["show_phone"] else None,
        "address": member.address if own or flags["show_address"] else None,
        "membership_date": member.membership_date,
    }


def profile_view(member: Member, viewer: Optional[Member]) -> Dict[str, Any]:
    """
    Single-member read. Staff/admin and the member themself get the full
    profile; everybody else gets the directory projection.
    """
    if viewer is not None and (viewer.id == member.id or viewer.is_staff_or_admin()):
        return full_profile(member)
    return directory_entry(member, viewer.id if viewer is not None else None)


def full_profile(member: Member) -> Dict[str, Any]:
    """Everything except credentials."""
    return {
        "id": member.id,
        "email": member.email,
        "first_name": member.first_name,
        "last_name": member.last_name,
        "phone": member.phone,
        "address": member.address,
        "role": member.role.value,
        "membership_date": member.membership_date,
        "privacy_settings": merge_privacy(member.privacy_settings, {}),
        "email_notifications": member.email_notifications,
        "account_locked": member.is_locked(),
        "last_login_at": member.last_login_at,
        "created_at": member.created_at,
        "updated_at": member.updated_at,
        "deleted_at": member.deleted_at,
    }
