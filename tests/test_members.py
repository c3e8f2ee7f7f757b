"""Member repository: creation rules, privacy, lifecycle and login lockout."""

from datetime import timedelta

import pytest
from sqlmodel import Session

from membership.errors import (
    AuthorizationError,
    ConflictError,
    NotAuthenticatedError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from membership.models.common import utcnow
from membership.models.member import Member, Role
from tests.factories import DEFAULT_PASSWORD, create_member


class TestCreateMember:
    """Tests for MemberRepository.create"""

    def test_privacy_defaults_to_fully_visible(self, repos):
        m = create_member(repos, email="new@gracechurch.org")

        assert m.privacy_settings == {"show_phone": True, "show_email": True, "show_address": True}
        assert m.role == Role.MEMBER
        assert m.email_notifications is True

    def test_partial_privacy_is_merged_with_defaults(self, repos):
        m = create_member(repos, email="quiet@gracechurch.org", privacy_settings={"show_phone": False})

        assert m.privacy_settings == {"show_phone": False, "show_email": True, "show_address": True}

    def test_email_is_lowercased(self, repos):
        m = create_member(repos, email="  Mixed.Case@GraceChurch.org ")

        assert m.email == "mixed.case@gracechurch.org"

    @pytest.mark.parametrize("email", ["not-an-email", "two@@gracechurch.org", "mary@", "mary smith@gracechurch.org", ""])
    def test_malformed_email_is_rejected_before_insert(self, repos, email):
        with pytest.raises(ValidationError):
            create_member(repos, email=email)

        assert repos.members.count(include_inactive=True) == 0

    def test_duplicate_email_conflicts_and_keeps_existing(self, repos):
        original = create_member(repos, email="dup@gracechurch.org", first_name="First")

        with pytest.raises(ConflictError):
            create_member(repos, email="DUP@gracechurch.org", first_name="Second")

        stored = repos.members.get(original.id)
        assert stored.first_name == "First"
        assert repos.members.count() == 1

    def test_short_name_is_rejected(self, repos):
        with pytest.raises(ValidationError):
            create_member(repos, email="x@gracechurch.org", first_name="X")

    def test_bad_phone_is_rejected(self, repos):
        with pytest.raises(ValidationError):
            create_member(repos, email="p@gracechurch.org", phone="555-1234")

    def test_e164_phone_is_accepted(self, repos):
        m = create_member(repos, email="p@gracechurch.org", phone="+15551234567")

        assert m.phone == "+15551234567"

    def test_password_is_hashed(self, repos):
        m = create_member(repos, email="h@gracechurch.org")

        assert m.password_hash
        assert DEFAULT_PASSWORD not in m.password_hash


class TestReadMember:
    def test_missing_member_is_not_found(self, repos):
        with pytest.raises(NotFoundError):
            repos.members.get(9999)

    def test_list_filters_by_search_and_role(self, repos, admin, member, other_member):
        assert [m.id for m in repos.members.list(search="otto")] == [other_member.id]
        assert [m.id for m in repos.members.list(role=Role.ADMIN)] == [admin.id]
        assert repos.members.count_active() == 3

    def test_unreachable_store_raises_store_unavailable(self, unreachable_repos):
        with pytest.raises(StoreUnavailableError):
            unreachable_repos.members.get(1)


class TestUpdateMember:
    def test_privacy_update_is_partial(self, repos, member):
        updated = repos.members.update_privacy(member.id, {"show_email": False})

        assert updated.privacy_settings == {"show_phone": True, "show_email": False, "show_address": True}

        again = repos.members.update_privacy(member.id, {"show_phone": False})
        assert again.privacy_settings == {"show_phone": False, "show_email": False, "show_address": True}

    def test_profile_update_rejects_unknown_fields(self, repos, member):
        with pytest.raises(ValidationError):
            repos.members.update_profile(member.id, {"role": "ADMIN"})

    def test_profile_update_can_clear_phone(self, repos):
        m = create_member(repos, email="c@gracechurch.org", phone="+15550001111")

        updated = repos.members.update_profile(m.id, {"phone": None, "first_name": "Clara"})

        assert updated.phone is None
        assert updated.first_name == "Clara"

    def test_deactivate_hides_member_and_cannot_repeat(self, repos, member):
        repos.members.deactivate(member.id)

        with pytest.raises(NotFoundError):
            repos.members.get(member.id)
        assert repos.members.get(member.id, include_inactive=True).deleted_at is not None

        with pytest.raises(ConflictError):
            repos.members.deactivate(member.id)


class TestLogin:
    def test_good_credentials_reset_counter(self, repos, member):
        with pytest.raises(NotAuthenticatedError):
            repos.members.verify_credentials(member.email, "wrong-password")

        ok = repos.members.verify_credentials(member.email, DEFAULT_PASSWORD)

        assert ok.failed_login_attempts == 0
        assert ok.last_login_at is not None

    def test_fifth_failure_locks_account(self, repos, member):
        for _ in range(4):
            with pytest.raises(NotAuthenticatedError):
                repos.members.verify_credentials(member.email, "wrong-password")

        with pytest.raises(AuthorizationError) as exc:
            repos.members.verify_credentials(member.email, "wrong-password")
        assert not isinstance(exc.value, NotAuthenticatedError)

        # Correct password is refused while locked
        with pytest.raises(AuthorizationError) as exc:
            repos.members.verify_credentials(member.email, DEFAULT_PASSWORD)
        assert not isinstance(exc.value, NotAuthenticatedError)

        stored = repos.members.get(member.id)
        assert stored.account_locked is True
        assert stored.locked_until is not None

    def test_unknown_email_is_not_authenticated(self, repos):
        with pytest.raises(NotAuthenticatedError):
            repos.members.verify_credentials("nobody@gracechurch.org", DEFAULT_PASSWORD)

    def test_deactivated_member_cannot_log_in(self, repos, member):
        repos.members.deactivate(member.id)

        with pytest.raises(NotAuthenticatedError):
            repos.members.verify_credentials(member.email, DEFAULT_PASSWORD)

    def test_expired_lock_starts_a_fresh_count(self, repos, engine, member):
        for _ in range(4):
            with pytest.raises(NotAuthenticatedError):
                repos.members.verify_credentials(member.email, "wrong-password")
        with pytest.raises(AuthorizationError):
            repos.members.verify_credentials(member.email, "wrong-password")

        with Session(engine) as session:
            row = session.get(Member, member.id)
            row.locked_until = utcnow() - timedelta(minutes=1)
            session.add(row)
            session.commit()

        # One wrong password after the lock lapsed is a plain failure, not a relock
        with pytest.raises(NotAuthenticatedError):
            repos.members.verify_credentials(member.email, "wrong-password")

        stored = repos.members.get(member.id)
        assert stored.failed_login_attempts == 1
        assert stored.account_locked is False
        assert stored.locked_until is None

        assert repos.members.verify_credentials(member.email, DEFAULT_PASSWORD).id == member.id
