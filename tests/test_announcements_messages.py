"""Announcements (archive, view tracking) and member-to-member messages."""

import pytest

from membership.errors import NotFoundError, ValidationError
from membership.models.announcement import Priority
from tests.factories import create_announcement


class TestAnnouncements:
    def test_create_validates_title_length(self, repos, staff):
        with pytest.raises(ValidationError):
            create_announcement(repos, author_id=staff.id, title="Hi")

    def test_missing_announcement_is_not_found(self, repos):
        with pytest.raises(NotFoundError):
            repos.announcements.get(12345)

    def test_archive_moves_between_feeds(self, repos, staff):
        a = create_announcement(repos, author_id=staff.id)

        repos.announcements.archive(a.id)

        assert repos.announcements.list() == []
        assert [x.id for x in repos.announcements.list(archived=True)] == [a.id]

        repos.announcements.unarchive(a.id)
        assert [x.id for x in repos.announcements.list()] == [a.id]

    def test_archived_announcement_cannot_be_updated(self, repos, staff):
        a = create_announcement(repos, author_id=staff.id)
        repos.announcements.archive(a.id)

        with pytest.raises(ValidationError):
            repos.announcements.update(a.id, {"title": "Updated title"})

    def test_update_changes_priority(self, repos, staff):
        a = create_announcement(repos, author_id=staff.id)

        updated = repos.announcements.update(a.id, {"priority": "URGENT"})

        assert updated.priority == Priority.URGENT
        assert updated.is_urgent()

    def test_deleted_announcement_is_gone(self, repos, staff):
        a = create_announcement(repos, author_id=staff.id)
        repos.announcements.delete(a.id)

        with pytest.raises(NotFoundError):
            repos.announcements.get(a.id)
        assert repos.announcements.list() == []

    def test_mark_viewed_is_idempotent(self, repos, staff, member):
        a = create_announcement(repos, author_id=staff.id)

        first = repos.announcements.mark_viewed(announcement_id=a.id, member_id=member.id)
        second = repos.announcements.mark_viewed(announcement_id=a.id, member_id=member.id)

        assert first.id == second.id
        assert repos.announcements.view_counts([a.id]) == {a.id: 1}

    def test_unread_count_per_member(self, repos, staff, member):
        a = create_announcement(repos, author_id=staff.id, title="First notice")
        create_announcement(repos, author_id=staff.id, title="Second notice")

        assert repos.announcements.unread_count(member.id) == 2

        repos.announcements.mark_viewed(announcement_id=a.id, member_id=member.id)

        assert repos.announcements.unread_count(member.id) == 1
        assert repos.announcements.viewed_ids(member.id, [a.id]) == {a.id}

    def test_outstanding_unread_counts_member_announcement_pairs(self, repos, staff, member):
        a = create_announcement(repos, author_id=staff.id, title="First notice")
        b = create_announcement(repos, author_id=staff.id, title="Second notice")

        # 2 active members x 2 active announcements
        assert repos.announcements.outstanding_unread() == 4

        repos.announcements.mark_viewed(announcement_id=a.id, member_id=member.id)
        repos.announcements.mark_viewed(announcement_id=b.id, member_id=staff.id)
        assert repos.announcements.outstanding_unread() == 2

        repos.announcements.archive(b.id)
        assert repos.announcements.outstanding_unread() == 1


class TestMessages:
    def test_cannot_message_yourself(self, repos, member):
        with pytest.raises(ValidationError):
            repos.messages.send(sender_id=member.id, recipient_id=member.id, subject="Hello", body="Hi")

    def test_recipient_must_exist(self, repos, member):
        with pytest.raises(NotFoundError):
            repos.messages.send(sender_id=member.id, recipient_id=999, subject="Hello", body="Hi")

    def test_inbox_sent_and_unread(self, repos, member, other_member):
        m = repos.messages.send(
            sender_id=member.id, recipient_id=other_member.id, subject="Potluck", body="Bringing pie."
        )

        assert [x.id for x in repos.messages.sent(member.id)] == [m.id]
        assert [x.id for x in repos.messages.inbox(other_member.id)] == [m.id]
        assert repos.messages.unread_count(other_member.id) == 1

        read = repos.messages.mark_read(m.id, other_member.id)

        assert read.is_read is True
        assert read.read_at is not None
        assert repos.messages.unread_count(other_member.id) == 0

    def test_only_recipient_can_mark_read(self, repos, member, other_member):
        m = repos.messages.send(sender_id=member.id, recipient_id=other_member.id, subject="Potluck", body="Pie.")

        with pytest.raises(NotFoundError):
            repos.messages.mark_read(m.id, member.id)

    def test_non_participant_cannot_read(self, repos, member, other_member, staff):
        m = repos.messages.send(sender_id=member.id, recipient_id=other_member.id, subject="Private", body="Note.")

        with pytest.raises(NotFoundError):
            repos.messages.get_for(m.id, staff.id)

    def test_delete_is_per_side(self, repos, member, other_member):
        m = repos.messages.send(sender_id=member.id, recipient_id=other_member.id, subject="Potluck", body="Pie.")

        repos.messages.delete_for(m.id, other_member.id)

        assert repos.messages.inbox(other_member.id) == []
        with pytest.raises(NotFoundError):
            repos.messages.get_for(m.id, other_member.id)
        assert repos.messages.get_for(m.id, member.id).id == m.id
