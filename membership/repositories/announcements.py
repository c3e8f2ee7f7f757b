from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..errors import NotFoundError, ValidationError
from ..models.announcement import Announcement, MemberAnnouncementView, Priority
from ..models.common import to_naive_utc, utcnow
from ..models.member import Member
from .base import Repository, clamp_page, clean_text

logger = logging.getLogger(__name__)

TITLE_MIN, TITLE_MAX = 3, 150
CONTENT_MAX = 5000


def _active_filter(q: Any) -> Any:
    return q.where(Announcement.deleted_at.is_(None), Announcement.archived_at.is_(None))


class AnnouncementRepository(Repository):
    def create(
        self,
        *,
        author_id: int,
        title: str,
        content: str,
        priority: Priority = Priority.NORMAL,
    ) -> Announcement:
        now = utcnow()
        announcement = Announcement(
            title=clean_text(title, "Announcement title", min_len=TITLE_MIN, max_len=TITLE_MAX),
            content=clean_text(content, "Announcement content", max_len=CONTENT_MAX),
            priority=priority or Priority.NORMAL,
            author_id=author_id,
            published_at=now,
            created_at=now,
            updated_at=now,
        )

        with self._session() as session:
            author = session.get(Member, author_id)
            if author is None or not author.is_active():
                raise NotFoundError("Member", author_id)

            session.add(announcement)
            session.commit()
            session.refresh(announcement)

        logger.info("announcement created id=%s priority=%s", announcement.id, announcement.priority.value)
        return announcement

    def get(self, announcement_id: int) -> Announcement:
        with self._session() as session:
            announcement = session.get(Announcement, announcement_id)
        if announcement is None or announcement.is_deleted():
            raise NotFoundError("Announcement", announcement_id)
        return announcement

    def list(
        self,
        *,
        archived: bool = False,
        priority: Optional[Priority] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Announcement]:
        """
        Newest first. archived=False is the main feed; archived=True lists the archive.
        start/end filter on created_at (inclusive) for reports.
        """
        limit, offset = clamp_page(limit, offset)
        with self._session() as session:
            q = select(Announcement).where(Announcement.deleted_at.is_(None))
            if archived:
                q = q.where(Announcement.archived_at.is_not(None))
            else:
                q = q.where(Announcement.archived_at.is_(None))
            if priority is not None:
                q = q.where(Announcement.priority == priority)
            if start is not None:
                q = q.where(Announcement.created_at >= to_naive_utc(start))
            if end is not None:
                q = q.where(Announcement.created_at <= to_naive_utc(end))
            q = q.order_by(Announcement.published_at.desc(), Announcement.id.desc()).offset(offset).limit(limit)
            return list(session.exec(q).all())

    def update(self, announcement_id: int, changes: Dict[str, Any]) -> Announcement:
        unknown = set(changes) - {"title", "content", "priority"}
        if unknown:
            raise ValidationError(f"Unsupported announcement fields: {', '.join(sorted(unknown))}")

        with self._session() as session:
            announcement = self._load(session, announcement_id)
            if announcement.is_archived():
                raise ValidationError("Cannot update an archived announcement")

            if "title" in changes:
                announcement.title = clean_text(
                    changes["title"], "Announcement title", min_len=TITLE_MIN, max_len=TITLE_MAX
                )
            if "content" in changes:
                announcement.content = clean_text(changes["content"], "Announcement content", max_len=CONTENT_MAX)
            if changes.get("priority") is not None:
                announcement.priority = Priority(changes["priority"])

            announcement.updated_at = utcnow()
            session.add(announcement)
            session.commit()
            session.refresh(announcement)
            return announcement

    def archive(self, announcement_id: int) -> Announcement:
        """Idempotent: archiving an archived announcement is a no-op."""
        with self._session() as session:
            announcement = self._load(session, announcement_id)
            if not announcement.is_archived():
                now = utcnow()
                announcement.archived_at = now
                announcement.updated_at = now
                session.add(announcement)
                session.commit()
                session.refresh(announcement)
            return announcement

    def unarchive(self, announcement_id: int) -> Announcement:
        with self._session() as session:
            announcement = self._load(session, announcement_id)
            if announcement.is_archived():
                announcement.archived_at = None
                announcement.updated_at = utcnow()
                session.add(announcement)
                session.commit()
                session.refresh(announcement)
            return announcement

    def delete(self, announcement_id: int) -> Announcement:
        with self._session() as session:
            announcement = self._load(session, announcement_id)
            now = utcnow()
            announcement.deleted_at = now
            announcement.updated_at = now
            session.add(announcement)
            session.commit()
            session.refresh(announcement)

        logger.info("announcement deleted id=%s", announcement_id)
        return announcement

    # -----------------------------
    # View tracking
    # -----------------------------

    def mark_viewed(self, *, announcement_id: int, member_id: int) -> MemberAnnouncementView:
        """
        Record that a member has seen an announcement.
        Upsert semantics: repeat views return the first view row.
        """
        with self._session() as session:
            self._load(session, announcement_id)
            member = session.get(Member, member_id)
            if member is None or not member.is_active():
                raise NotFoundError("Member", member_id)

            existing = self._find_view(session, announcement_id, member_id)
            if existing is not None:
                return existing

            view = MemberAnnouncementView(member_id=member_id, announcement_id=announcement_id)
            session.add(view)
            try:
                session.commit()
            except IntegrityError:
                # Concurrent first view from another request; keep theirs.
                session.rollback()
                existing = self._find_view(session, announcement_id, member_id)
                if existing is None:
                    raise
                return existing
            session.refresh(view)
            return view

    def viewed_ids(self, member_id: int, announcement_ids: Iterable[int]) -> Set[int]:
        ids = [int(a) for a in announcement_ids]
        if not ids:
            return set()
        with self._session() as session:
            q = select(MemberAnnouncementView.announcement_id).where(
                MemberAnnouncementView.member_id == member_id,
                MemberAnnouncementView.announcement_id.in_(ids),
            )
            return {int(a) for a in session.exec(q).all()}

    def view_counts(self, announcement_ids: Iterable[int]) -> Dict[int, int]:
        ids = [int(a) for a in announcement_ids]
        if not ids:
            return {}
        with self._session() as session:
            q = (
                select(MemberAnnouncementView.announcement_id, func.count())
                .where(MemberAnnouncementView.announcement_id.in_(ids))
                .group_by(MemberAnnouncementView.announcement_id)
            )
            counts = {int(a): int(n) for a, n in session.exec(q).all()}
        return {a: counts.get(a, 0) for a in ids}

    def unread_count(self, member_id: int) -> int:
        """Active announcements this member has not viewed yet."""
        with self._session() as session:
            viewed = select(MemberAnnouncementView.announcement_id).where(
                MemberAnnouncementView.member_id == member_id
            )
            q = _active_filter(select(func.count()).select_from(Announcement)).where(
                Announcement.id.not_in(viewed)
            )
            return int(session.exec(q).one() or 0)

    def outstanding_unread(self) -> int:
        """
        Unread (active member, active announcement) pairs across the congregation:
        active_members * active_announcements - views recorded between them.
        """
        with self._session() as session:
            members = int(
                session.exec(
                    select(func.count()).select_from(Member).where(Member.deleted_at.is_(None))
                ).one()
                or 0
            )
            announcements = int(session.exec(_active_filter(select(func.count()).select_from(Announcement))).one() or 0)
            views_q = (
                select(func.count())
                .select_from(MemberAnnouncementView)
                .join(Announcement, Announcement.id == MemberAnnouncementView.announcement_id)
                .join(Member, Member.id == MemberAnnouncementView.member_id)
                .where(
                    Member.deleted_at.is_(None),
                    Announcement.deleted_at.is_(None),
                    Announcement.archived_at.is_(None),
                )
            )
            views = int(session.exec(views_q).one() or 0)
        return max(0, members * announcements - views)

    # -----------------------------
    # Internal
    # -----------------------------

    @staticmethod
    def _load(session: Session, announcement_id: int) -> Announcement:
        announcement = session.get(Announcement, announcement_id)
        if announcement is None or announcement.is_deleted():
            raise NotFoundError("Announcement", announcement_id)
        return announcement

    @staticmethod
    def _find_view(session: Session, announcement_id: int, member_id: int) -> Optional[MemberAnnouncementView]:
        return session.exec(
            select(MemberAnnouncementView).where(
                MemberAnnouncementView.announcement_id == announcement_id,
                MemberAnnouncementView.member_id == member_id,
            )
        ).first()
