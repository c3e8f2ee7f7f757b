"""Audit log: append-only access and the swallow-on-failure trail helper."""

from datetime import timedelta

import pytest
from sqlmodel import Session

from membership.errors import ImmutableRecordError, NotFoundError
from membership.models.audit_log import AuditAction, AuditLog
from membership.models.common import utcnow
from membership.repositories.audit_logs import AuditLogRepository
from membership.services.audit import AuditTrail, diff, snapshot


class TestAuditLogRepository:
    def test_append_and_read_back(self, repos, admin, member):
        entry = repos.audit_logs.append(
            action=AuditAction.CREATE,
            entity_type="Member",
            entity_id=member.id,
            actor_id=admin.id,
            changes={"created": {"email": member.email}},
            ip_address="10.0.0.1",
        )

        stored = repos.audit_logs.get(entry.id)
        assert stored.entity_id == str(member.id)
        assert stored.changes == {"created": {"email": member.email}}
        assert [e.id for e in repos.audit_logs.for_entity("Member", member.id)] == [entry.id]

    def test_unknown_actor_is_rejected(self, repos):
        with pytest.raises(NotFoundError):
            repos.audit_logs.append(action=AuditAction.DELETE, entity_type="Event", entity_id=1, actor_id=424242)

    def test_repository_has_no_mutators(self):
        for name in ("update", "delete", "remove", "save"):
            assert not hasattr(AuditLogRepository, name)

    def test_orm_update_is_refused(self, repos, engine, admin):
        entry = repos.audit_logs.append(action=AuditAction.CREATE, entity_type="Event", entity_id=1, actor_id=admin.id)

        with Session(engine) as session:
            row = session.get(AuditLog, entry.id)
            row.entity_type = "Tampered"
            session.add(row)
            with pytest.raises(ImmutableRecordError) as exc:
                session.commit()
        assert exc.value.status_code == 405

        assert repos.audit_logs.get(entry.id).entity_type == "Event"

    def test_orm_delete_is_refused(self, repos, engine, admin):
        entry = repos.audit_logs.append(action=AuditAction.CREATE, entity_type="Event", entity_id=1, actor_id=admin.id)

        with Session(engine) as session:
            row = session.get(AuditLog, entry.id)
            session.delete(row)
            with pytest.raises(ImmutableRecordError):
                session.commit()

        assert repos.audit_logs.get(entry.id).id == entry.id

    def test_count_since_and_filters(self, repos, admin):
        repos.audit_logs.append(action=AuditAction.CREATE, entity_type="Event", entity_id=1, actor_id=admin.id)
        repos.audit_logs.append(
            action=AuditAction.UPDATE,
            entity_type="Event",
            entity_id=1,
            actor_id=admin.id,
            timestamp=utcnow() - timedelta(days=30),
        )

        assert repos.audit_logs.count() == 2
        assert repos.audit_logs.count_since(utcnow() - timedelta(days=7)) == 1
        assert [e.action for e in repos.audit_logs.list(action=AuditAction.UPDATE)] == [AuditAction.UPDATE]


class TestAuditTrail:
    def test_failure_is_logged_and_swallowed(self, repos, caplog):
        trail = AuditTrail(repos.audit_logs)

        result = trail.record(action=AuditAction.CREATE, entity_type="Event", entity_id=1, actor_id=999)

        assert result is None
        assert "audit write failed" in caplog.text
        assert repos.audit_logs.count() == 0

    def test_update_records_field_diff(self, repos, admin, member):
        trail = AuditTrail(repos.audit_logs)
        before = snapshot(member)
        after = repos.members.update_profile(member.id, {"first_name": "Marianne"})

        entry = trail.updated(entity_type="Member", entity_id=member.id, before=before, after=after, actor_id=admin.id)

        assert entry.changes == {"first_name": {"before": "Mary", "after": "Marianne"}}

    def test_snapshot_never_contains_password_hash(self, member):
        assert "password_hash" not in snapshot(member)

    def test_diff_ignores_unchanged_keys(self):
        assert diff({"a": 1, "b": 2}, {"a": 1, "b": 3, "c": 4}) == {
            "b": {"before": 2, "after": 3},
            "c": {"before": None, "after": 4},
        }
