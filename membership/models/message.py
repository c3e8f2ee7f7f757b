from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from .common import utcnow


class Message(SQLModel, table=True):
    """
    Internal member-to-member message.

    Each side deletes independently (deleted_by_sender / deleted_by_recipient);
    the row itself is kept.
    """

    __tablename__ = "messages"

    id: Optional[int] = Field(default=None, primary_key=True)

    sender_id: int = Field(foreign_key="members.id", index=True)
    recipient_id: int = Field(foreign_key="members.id", index=True)

    subject: str
    body: str

    is_read: bool = Field(default=False, index=True)
    read_at: Optional[datetime] = Field(default=None)
    sent_at: datetime = Field(default_factory=utcnow, index=True)

    deleted_by_sender: bool = Field(default=False)
    deleted_by_recipient: bool = Field(default=False)

    def is_participant(self, member_id: int) -> bool:
        return member_id in (self.sender_id, self.recipient_id)

    def visible_to(self, member_id: int) -> bool:
        if member_id == self.sender_id and not self.deleted_by_sender:
            return True
        if member_id == self.recipient_id and not self.deleted_by_recipient:
            return True
        return False
