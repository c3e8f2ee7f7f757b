from __future__ import annotations

import logging
from typing import List

from sqlalchemy import func
from sqlmodel import select

from ..errors import NotFoundError, ValidationError
from ..models.common import utcnow
from ..models.member import Member
from ..models.message import Message
from .base import Repository, clamp_page, clean_text

logger = logging.getLogger(__name__)


class MessageRepository(Repository):
    def send(self, *, sender_id: int, recipient_id: int, subject: str, body: str) -> Message:
        if sender_id == recipient_id:
            raise ValidationError("Cannot send a message to yourself")

        message = Message(
            sender_id=sender_id,
            recipient_id=recipient_id,
            subject=clean_text(subject, "Subject", min_len=3, max_len=100),
            body=clean_text(body, "Message body", max_len=2000),
        )

        with self._session() as session:
            for member_id in (sender_id, recipient_id):
                member = session.get(Member, member_id)
                if member is None or not member.is_active():
                    raise NotFoundError("Member", member_id)

            session.add(message)
            session.commit()
            session.refresh(message)

        logger.info("message sent id=%s from=%s to=%s", message.id, sender_id, recipient_id)
        return message

    def get_for(self, message_id: int, member_id: int) -> Message:
        """
        Fetch a message as one participant sees it.
        Non-participants and the side that deleted it get NotFound, so ids don't leak.
        """
        with self._session() as session:
            message = session.get(Message, message_id)
        if message is None or not message.visible_to(member_id):
            raise NotFoundError("Message", message_id)
        return message

    def inbox(self, member_id: int, *, unread_only: bool = False, limit: int = 50, offset: int = 0) -> List[Message]:
        limit, offset = clamp_page(limit, offset)
        with self._session() as session:
            q = select(Message).where(
                Message.recipient_id == member_id,
                Message.deleted_by_recipient == False,  # noqa: E712
            )
            if unread_only:
                q = q.where(Message.is_read == False)  # noqa: E712
            q = q.order_by(Message.sent_at.desc(), Message.id.desc()).offset(offset).limit(limit)
            return list(session.exec(q).all())

    def sent(self, member_id: int, *, limit: int = 50, offset: int = 0) -> List[Message]:
        limit, offset = clamp_page(limit, offset)
        with self._session() as session:
            q = (
                select(Message)
                .where(Message.sender_id == member_id, Message.deleted_by_sender == False)  # noqa: E712
                .order_by(Message.sent_at.desc(), Message.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(session.exec(q).all())

    def mark_read(self, message_id: int, member_id: int) -> Message:
        """Only the recipient can mark a message read. Repeat calls keep the first read_at."""
        with self._session() as session:
            message = session.get(Message, message_id)
            if message is None or message.recipient_id != member_id or message.deleted_by_recipient:
                raise NotFoundError("Message", message_id)

            if not message.is_read:
                message.is_read = True
                message.read_at = utcnow()
                session.add(message)
                session.commit()
                session.refresh(message)
            return message

    def delete_for(self, message_id: int, member_id: int) -> Message:
        """Hide the message for one side. The other participant still sees it."""
        with self._session() as session:
            message = session.get(Message, message_id)
            if message is None or not message.visible_to(member_id):
                raise NotFoundError("Message", message_id)

            if member_id == message.sender_id:
                message.deleted_by_sender = True
            if member_id == message.recipient_id:
                message.deleted_by_recipient = True

            session.add(message)
            session.commit()
            session.refresh(message)
            return message

    def unread_count(self, member_id: int) -> int:
        with self._session() as session:
            q = (
                select(func.count())
                .select_from(Message)
                .where(
                    Message.recipient_id == member_id,
                    Message.is_read == False,  # noqa: E712
                    Message.deleted_by_recipient == False,  # noqa: E712
                )
            )
            return int(session.exec(q).one() or 0)
