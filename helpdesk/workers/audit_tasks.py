"""Celery tasks for audit log retention.

The beat schedule runs ``cleanup_audit_logs`` once a day with the
configured retention period.
"""

from typing import Any, Dict, Optional
import logging

from celery import Celery, shared_task
from celery.schedules import crontab

from helpdesk.core.config import get_settings
from helpdesk.core.rbac.errors import ValidationError
from helpdesk.db.session import SessionLocal
from helpdesk.services.audit import AuditLogger

logger = logging.getLogger(__name__)
settings = get_settings()

# Initialize Celery
celery_app = Celery(
    'helpdesk',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'helpdesk.workers.audit_tasks.cleanup_audit_logs': {'queue': 'maintenance'},
    },
    task_default_queue='default',
    beat_schedule={
        'cleanup-audit-logs-daily': {
            'task': 'helpdesk.workers.audit_tasks.cleanup_audit_logs',
            'schedule': crontab(hour=3, minute=0),
        },
    },
)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def cleanup_audit_logs(self, retention_days: Optional[int] = None) -> Dict[str, Any]:
    """
    Delete audit entries older than the retention period.

    Args:
        retention_days: Override for the configured ``audit_retention_days``

    Returns:
        Dict with the retention period and number of deleted entries
    """
    days = retention_days if retention_days is not None else settings.audit_retention_days
    audit = AuditLogger(SessionLocal, export_limit=settings.audit_export_limit)

    try:
        deleted = audit.cleanup_old_logs(days)
    except ValidationError:
        raise
    except Exception as e:
        logger.error(f"Audit log cleanup failed: {e}")
        raise self.retry(exc=e)

    logger.info(f"Audit log cleanup removed {deleted} entries older than {days} days")
    return {"retention_days": days, "deleted_count": deleted}
