# membership/models/__init__.py
# Central import surface for SQLModel table registration.

from .member import Member, Role, PRIVACY_FIELDS, default_privacy, merge_privacy
from .event import Event, EventCategory, CATEGORY_DISPLAY
from .event_rsvp import EventRSVP, RSVPStatus
from .announcement import Announcement, MemberAnnouncementView, Priority
from .message import Message
from .audit_log import AuditAction, AuditLog
from .push_subscription import PushSubscription
from .common import utcnow, to_naive_utc

__all__ = [
    "Member",
    "Role",
    "PRIVACY_FIELDS",
    "default_privacy",
    "merge_privacy",
    "Event",
    "EventCategory",
    "CATEGORY_DISPLAY",
    "EventRSVP",
    "RSVPStatus",
    "Announcement",
    "MemberAnnouncementView",
    "Priority",
    "Message",
    "AuditAction",
    "AuditLog",
    "PushSubscription",
    "utcnow",
    "to_naive_utc",
]
