from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import select

from ..errors import NotFoundError
from ..models.common import utcnow
from ..models.member import Member
from ..models.push_subscription import PushSubscription
from .base import Repository, clean_optional, clean_text

logger = logging.getLogger(__name__)


class PushSubscriptionRepository(Repository):
    conflict_message = "Subscription already exists"

    def upsert(
        self,
        *,
        member_id: int,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: Optional[str] = None,
    ) -> PushSubscription:
        """
        Browsers re-subscribe with the same endpoint after key rotation,
        so an existing (member, endpoint) row gets its keys refreshed.
        """
        endpoint = clean_text(endpoint, "Subscription endpoint", max_len=2000)
        p256dh = clean_text(p256dh, "Subscription p256dh key", max_len=500)
        auth = clean_text(auth, "Subscription auth key", max_len=500)

        with self._session() as session:
            member = session.get(Member, member_id)
            if member is None or not member.is_active():
                raise NotFoundError("Member", member_id)

            sub = session.exec(
                select(PushSubscription).where(
                    PushSubscription.member_id == member_id,
                    PushSubscription.endpoint == endpoint,
                )
            ).first()

            now = utcnow()
            if sub is None:
                sub = PushSubscription(member_id=member_id, endpoint=endpoint, created_at=now)
                created = True
            else:
                created = False

            sub.p256dh = p256dh
            sub.auth = auth
            sub.user_agent = clean_optional(user_agent, max_len=500)
            sub.updated_at = now

            session.add(sub)
            session.commit()
            session.refresh(sub)

        logger.info("push subscription %s member=%s", "created" if created else "refreshed", member_id)
        return sub

    def remove(self, *, member_id: int, endpoint: str) -> None:
        with self._session() as session:
            sub = session.exec(
                select(PushSubscription).where(
                    PushSubscription.member_id == member_id,
                    PushSubscription.endpoint == endpoint,
                )
            ).first()
            if sub is None:
                raise NotFoundError("Subscription")
            session.delete(sub)
            session.commit()

    def remove_all(self, member_id: int) -> int:
        with self._session() as session:
            subs = session.exec(select(PushSubscription).where(PushSubscription.member_id == member_id)).all()
            for sub in subs:
                session.delete(sub)
            session.commit()
            return len(subs)

    def list_for_member(self, member_id: int) -> List[PushSubscription]:
        with self._session() as session:
            q = (
                select(PushSubscription)
                .where(PushSubscription.member_id == member_id)
                .order_by(PushSubscription.created_at, PushSubscription.id)
            )
            return list(session.exec(q).all())

    def count(self) -> int:
        with self._session() as session:
            return int(session.exec(select(func.count()).select_from(PushSubscription)).one() or 0)
