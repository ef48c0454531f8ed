"""Celery workers for the helpdesk."""

from helpdesk.workers.audit_tasks import (
    celery_app,
    cleanup_audit_logs,
)

__all__ = [
    "celery_app",
    "cleanup_audit_logs",
]
