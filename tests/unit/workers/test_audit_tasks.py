"""Tests for the audit retention task."""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from helpdesk.core.rbac.errors import ValidationError
from helpdesk.db.models import AuditLog
from helpdesk.workers.audit_tasks import celery_app, cleanup_audit_logs
from tests.factories import create_audit_log


pytestmark = pytest.mark.db


@pytest.fixture
def task_sessions(session_factory):
    with patch("helpdesk.workers.audit_tasks.SessionLocal", session_factory):
        yield


class TestCleanupAuditLogs:

    def test_deletes_expired_entries(self, db_session, task_sessions):
        create_audit_log(db_session, action="stale", created_at=datetime.utcnow() - timedelta(days=40))
        create_audit_log(db_session, action="fresh")
        db_session.commit()

        result = cleanup_audit_logs(retention_days=30)

        assert result == {"retention_days": 30, "deleted_count": 1}
        actions = {a for (a,) in db_session.query(AuditLog.action).all()}
        assert actions == {"fresh", "audit_log_cleanup"}

    def test_uses_configured_retention(self, task_sessions):
        result = cleanup_audit_logs()
        assert result["retention_days"] == 90

    def test_invalid_retention_not_retried(self, task_sessions):
        with pytest.raises(ValidationError):
            cleanup_audit_logs(retention_days=400)

    def test_database_error_is_retried(self, task_sessions):
        with patch(
            "helpdesk.services.audit.AuditLogger.cleanup_old_logs",
            side_effect=RuntimeError("connection reset"),
        ), patch.object(cleanup_audit_logs, "retry", side_effect=RuntimeError("retrying")) as retry:
            with pytest.raises(RuntimeError, match="retrying"):
                cleanup_audit_logs(retention_days=30)

        assert retry.call_count == 1


class TestSchedule:

    def test_daily_cleanup_scheduled(self):
        entry = celery_app.conf.beat_schedule["cleanup-audit-logs-daily"]
        assert entry["task"] == "helpdesk.workers.audit_tasks.cleanup_audit_logs"

    def test_routed_to_maintenance_queue(self):
        routes = celery_app.conf.task_routes
        assert routes["helpdesk.workers.audit_tasks.cleanup_audit_logs"]["queue"] == "maintenance"
