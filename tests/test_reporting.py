"""Health aggregation and downloadable reports."""

import csv
import io
import json
from datetime import timedelta

import pytest

from membership.config import Settings
from membership.errors import ValidationError
from membership.models.audit_log import AuditAction
from membership.models.common import utcnow
from membership.models.member import Role
from membership.services import exports
from membership.services.reporting import DEGRADED, HEALTHY, build_health_report
from tests.factories import create_announcement, create_event, create_member


class TestHealthReport:
    def test_healthy_report_with_counts(self, repos, settings, staff, member):
        now = utcnow()
        create_event(repos, created_by_id=staff.id, starts_in=timedelta(days=3), now=now)
        create_event(repos, created_by_id=staff.id, starts_in=timedelta(days=90), now=now)
        create_announcement(repos, author_id=staff.id)
        repos.audit_logs.append(action=AuditAction.CREATE, entity_type="Event", entity_id=1, actor_id=staff.id)

        report = build_health_report(repos, settings, now=now)

        assert report.status == HEALTHY
        assert report.store.reachable is True
        assert report.store.latency_ms is not None
        assert report.counts.active_members == 2
        assert report.counts.upcoming_events == 1
        assert report.counts.unread_announcements == 2
        assert report.counts.recent_audit_entries == 1
        assert report.warnings == []

    def test_injected_now_moves_the_windows(self, repos, settings, staff):
        now = utcnow()
        create_event(repos, created_by_id=staff.id, starts_in=timedelta(days=3), now=now)
        repos.audit_logs.append(action=AuditAction.CREATE, entity_type="Event", entity_id=1, actor_id=staff.id)

        later = build_health_report(repos, settings, now=now + timedelta(days=60))

        assert later.counts.upcoming_events == 0
        assert later.counts.recent_audit_entries == 0
        assert later.checked_at == now + timedelta(days=60)

    def test_unreachable_store_is_degraded_not_raised(self, unreachable_repos, settings):
        report = build_health_report(unreachable_repos, settings)

        assert report.status == DEGRADED
        assert report.store.reachable is False
        assert report.counts is None
        assert report.warnings

        payload = report.to_dict()
        assert payload["counts"] is None
        assert payload["store"]["reachable"] is False

    def test_counts_out_of_bounds_degrade(self, repos, tmp_path, staff):
        tight = Settings(
            DATABASE_URL=f"sqlite:///{tmp_path / 'unused.sqlite'}",
            HEALTH_MAX_UPCOMING_EVENTS=1,
        )
        create_event(repos, created_by_id=staff.id, title="Event one")
        create_event(repos, created_by_id=staff.id, title="Event two")

        report = build_health_report(repos, tight)

        assert report.status == DEGRADED
        assert report.store.reachable is True
        assert report.counts.upcoming_events == 2
        assert any("Upcoming events" in w for w in report.warnings)

    def test_slow_store_degrades(self, repos, tmp_path):
        slow = Settings(DATABASE_URL=f"sqlite:///{tmp_path / 'unused.sqlite'}", HEALTH_SLOW_STORE_MS=-1)

        report = build_health_report(repos, slow)

        assert report.status == DEGRADED
        assert report.counts is not None
        assert any("ping" in w for w in report.warnings)


class TestExports:
    def test_directory_respects_privacy(self, repos, member):
        hidden = create_member(
            repos,
            email="hidden@gracechurch.org",
            first_name="Hank",
            last_name="Hidden",
            phone="+15550009999",
            privacy_settings={"show_email": False, "show_phone": False},
        )

        result = exports.member_directory(repos, viewer_id=member.id)
        rows = {r["id"]: r for r in result.rows}

        assert rows[hidden.id]["email"] is None
        assert rows[hidden.id]["phone"] is None
        assert rows[member.id]["email"] == member.email

        own = exports.member_directory(repos, viewer_id=hidden.id)
        mine = {r["id"]: r for r in own.rows}[hidden.id]
        assert mine["email"] == "hidden@gracechurch.org"
        assert mine["phone"] == "+15550009999"

    def test_events_report_csv_has_confirmed_counts(self, repos, staff, member):
        e = create_event(repos, created_by_id=staff.id, starts_in=timedelta(days=3))
        create_event(repos, created_by_id=staff.id, starts_in=-timedelta(days=60), title="Old event")
        repos.rsvps.create(event_id=e.id, member_id=member.id)

        # Default window is the 30 days before "now"
        result = exports.events_report(repos, fmt="csv", now=utcnow() + timedelta(days=10))
        rows = list(csv.DictReader(io.StringIO(result.render_csv())))

        assert result.content_type == "text/csv"
        assert result.filename.startswith("events_") and result.filename.endswith(".csv")
        assert [r["id"] for r in rows] == [str(e.id)]
        assert rows[0]["confirmed_count"] == "1"
        assert rows[0]["category"] == "WORSHIP"

    def test_announcements_report_includes_view_counts(self, repos, staff, member):
        a = create_announcement(repos, author_id=staff.id)
        repos.announcements.mark_viewed(announcement_id=a.id, member_id=member.id)

        payload = exports.announcements_report(repos).json_payload()

        assert payload["count"] == 1
        assert payload["data"][0]["view_count"] == 1
        json.dumps(payload)

    def test_attendance_lists_rsvps(self, repos, staff, member):
        e = create_event(repos, created_by_id=staff.id)
        repos.rsvps.create(event_id=e.id, member_id=member.id, notes="Bringing two guests")

        result = exports.event_attendance(repos, e.id)

        assert [r["email"] for r in result.rows] == [member.email]
        assert result.rows[0]["notes"] == "Bringing two guests"

    def test_member_export_never_contains_password_hash(self, repos, admin, member):
        result = exports.member_data_export(repos, fmt="csv")
        text = result.render_csv()

        assert "password_hash" not in result.columns
        assert member.password_hash not in text
        assert admin.email in text
        assert Role.ADMIN.value in text

    def test_unknown_format_is_rejected(self, repos):
        with pytest.raises(ValidationError):
            exports.member_directory(repos, viewer_id=None, fmt="xlsx")
