"""Events and RSVPs: validation, capacity, waitlist promotion."""

from datetime import timedelta

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from membership.errors import ConflictError, NotFoundError, ValidationError
from membership.models.common import utcnow
from membership.models.event_rsvp import RSVPStatus
from membership.repositories.rsvps import _event_for_update
from tests.factories import create_event, create_member


class TestEvents:
    def test_end_before_start_is_rejected(self, repos, staff):
        start = utcnow() + timedelta(days=1)
        with pytest.raises(ValidationError):
            repos.events.create(
                created_by_id=staff.id,
                title="Backwards",
                description="Ends before it starts",
                location="Chapel",
                start_time=start,
                end_time=start - timedelta(hours=1),
            )

    def test_capacity_bounds(self, repos, staff):
        with pytest.raises(ValidationError):
            create_event(repos, created_by_id=staff.id, max_capacity=0)
        with pytest.raises(ValidationError):
            create_event(repos, created_by_id=staff.id, max_capacity=10001)

    def test_missing_event_is_not_found(self, repos):
        with pytest.raises(NotFoundError):
            repos.events.get(404)

    def test_unknown_creator_is_not_found(self, repos):
        with pytest.raises(NotFoundError):
            create_event(repos, created_by_id=777)

    def test_list_hides_cancelled_and_deleted(self, repos, staff):
        keep = create_event(repos, created_by_id=staff.id, title="Keep me")
        cancelled = create_event(repos, created_by_id=staff.id, title="Cancelled")
        deleted = create_event(repos, created_by_id=staff.id, title="Deleted")
        repos.events.cancel(cancelled.id)
        repos.events.delete(deleted.id)

        assert [e.id for e in repos.events.list()] == [keep.id]
        assert {e.id for e in repos.events.list(include_cancelled=True)} == {keep.id, cancelled.id}
        with pytest.raises(NotFoundError):
            repos.events.get(deleted.id)

    def test_cancel_twice_conflicts_and_blocks_updates(self, repos, staff):
        e = create_event(repos, created_by_id=staff.id)
        repos.events.cancel(e.id)

        with pytest.raises(ConflictError):
            repos.events.cancel(e.id)
        with pytest.raises(ValidationError):
            repos.events.update(e.id, {"title": "New title"})

    def test_partial_update(self, repos, staff):
        e = create_event(repos, created_by_id=staff.id, max_capacity=10)

        updated = repos.events.update(e.id, {"title": "Evening Worship", "max_capacity": None})

        assert updated.title == "Evening Worship"
        assert updated.max_capacity is None
        assert updated.start_time == e.start_time

    def test_count_upcoming_window(self, repos, staff):
        now = utcnow()
        create_event(repos, created_by_id=staff.id, starts_in=timedelta(days=2), now=now)
        create_event(repos, created_by_id=staff.id, starts_in=timedelta(days=45), now=now)

        assert repos.events.count_upcoming(now=now, days=30) == 1
        assert repos.events.count_upcoming(now=now, days=60) == 2


class TestRSVP:
    def test_rsvp_confirms_and_reports_spots(self, repos, staff, member):
        e = create_event(repos, created_by_id=staff.id, max_capacity=3)

        result = repos.rsvps.create(event_id=e.id, member_id=member.id)

        assert result.rsvp.status == RSVPStatus.CONFIRMED
        assert result.waitlisted is False
        assert result.available_spots == 2

    def test_duplicate_rsvp_conflicts(self, repos, staff, member):
        e = create_event(repos, created_by_id=staff.id)
        repos.rsvps.create(event_id=e.id, member_id=member.id)

        with pytest.raises(ConflictError):
            repos.rsvps.create(event_id=e.id, member_id=member.id)

        assert len(repos.rsvps.list_for_event(e.id)) == 1

    def test_missing_event_or_member_is_not_found(self, repos, staff, member):
        e = create_event(repos, created_by_id=staff.id)

        with pytest.raises(NotFoundError):
            repos.rsvps.create(event_id=999, member_id=member.id)
        with pytest.raises(NotFoundError):
            repos.rsvps.create(event_id=e.id, member_id=999)

    def test_cancelled_event_rejects_rsvp(self, repos, staff, member):
        e = create_event(repos, created_by_id=staff.id)
        repos.events.cancel(e.id)

        with pytest.raises(ValidationError):
            repos.rsvps.create(event_id=e.id, member_id=member.id)

    def test_started_event_rejects_rsvp(self, repos, staff, member):
        e = create_event(repos, created_by_id=staff.id)

        with pytest.raises(ValidationError):
            repos.rsvps.create(event_id=e.id, member_id=member.id, now=e.start_time + timedelta(minutes=5))

    def test_full_event_waitlists_then_promotes(self, repos, staff, member, other_member):
        third = create_member(repos, email="third@gracechurch.org")
        e = create_event(repos, created_by_id=staff.id, max_capacity=1)

        first = repos.rsvps.create(event_id=e.id, member_id=member.id)
        second = repos.rsvps.create(event_id=e.id, member_id=other_member.id)
        last = repos.rsvps.create(event_id=e.id, member_id=third.id)

        assert first.rsvp.status == RSVPStatus.CONFIRMED
        assert second.waitlisted is True
        assert last.waitlisted is True
        assert second.available_spots == 0

        cancelled = repos.rsvps.cancel(event_id=e.id, member_id=member.id)

        assert cancelled.promoted is not None
        assert cancelled.promoted.member_id == other_member.id
        assert repos.rsvps.get(event_id=e.id, member_id=other_member.id).status == RSVPStatus.CONFIRMED
        assert repos.rsvps.get(event_id=e.id, member_id=third.id).status == RSVPStatus.WAITLISTED
        assert repos.rsvps.confirmed_count(e.id) == 1

    def test_cancelling_waitlisted_rsvp_promotes_nobody(self, repos, staff, member, other_member):
        e = create_event(repos, created_by_id=staff.id, max_capacity=1)
        repos.rsvps.create(event_id=e.id, member_id=member.id)
        repos.rsvps.create(event_id=e.id, member_id=other_member.id)

        result = repos.rsvps.cancel(event_id=e.id, member_id=other_member.id)

        assert result.promoted is None
        assert result.cancelled.status == RSVPStatus.CANCELLED

    def test_cancel_then_rsvp_again(self, repos, staff, member):
        e = create_event(repos, created_by_id=staff.id)
        repos.rsvps.create(event_id=e.id, member_id=member.id)
        repos.rsvps.cancel(event_id=e.id, member_id=member.id)

        again = repos.rsvps.create(event_id=e.id, member_id=member.id)

        assert again.rsvp.status == RSVPStatus.CONFIRMED

    def test_cancel_without_rsvp_is_not_found(self, repos, staff, member):
        e = create_event(repos, created_by_id=staff.id)

        with pytest.raises(NotFoundError):
            repos.rsvps.cancel(event_id=e.id, member_id=member.id)

    def test_confirmed_counts_per_event(self, repos, staff, member, other_member):
        a = create_event(repos, created_by_id=staff.id, title="Event A")
        b = create_event(repos, created_by_id=staff.id, title="Event B")
        repos.rsvps.create(event_id=a.id, member_id=member.id)
        repos.rsvps.create(event_id=a.id, member_id=other_member.id)

        assert repos.rsvps.confirmed_counts([a.id, b.id]) == {a.id: 2, b.id: 0}

    def test_seat_check_locks_the_event_row(self):
        stmt = _event_for_update(1)

        assert "FOR UPDATE" in str(stmt.compile(dialect=postgresql.dialect()))
        assert "FOR UPDATE" not in str(stmt.compile(dialect=sqlite.dialect()))
