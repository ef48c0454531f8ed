"""Audit logging service.

Writes are best effort: ``AuditLogger.log`` uses its own database session,
so a failed audit write never rolls back or fails the operation being
audited. Failures are reported on the ``helpdesk.audit`` logger.

Reads (listing, statistics, exports) and retention cleanup raise normally.
"""

import csv
import io
import json
import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session, joinedload

from helpdesk.core.rbac.errors import ValidationError
from helpdesk.db.models import AuditLog, AuditSeverity, User

audit_logger = logging.getLogger("helpdesk.audit")

VIOLATION_PREFIX = "permission_violation_"
CLEANUP_ACTION = "audit_log_cleanup"

MAX_PAGE_SIZE = 100
MIN_RETENTION_DAYS = 1
MAX_RETENTION_DAYS = 365

CSV_HEADERS = [
    "Timestamp",
    "User ID",
    "User Name",
    "User Email",
    "Action",
    "Resource Type",
    "Resource ID",
    "Success",
    "IP Address",
    "User Agent",
    "Details",
]


@dataclass
class AuditEntry:
    """A single audit record to be written."""

    action: str
    resource_type: str
    user_id: Optional[uuid.UUID] = None
    resource_id: Optional[Any] = None
    success: bool = True
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    severity: Optional[AuditSeverity] = None

    def to_model(self) -> AuditLog:
        severity = self.severity
        if severity is None:
            severity = AuditSeverity.INFO if self.success else AuditSeverity.WARNING
        return AuditLog.create_entry(
            self.action,
            self.resource_type,
            user_id=self.user_id,
            resource_id=self.resource_id,
            success=self.success,
            details=self.details,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            request_id=self.request_id,
            severity=severity,
        )


@dataclass
class AuditLogFilter:
    user_id: Optional[uuid.UUID] = None
    action: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    success: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    ip_address: Optional[str] = None

    def apply(self, query):
        if self.user_id:
            query = query.filter(AuditLog.user_id == self.user_id)
        if self.action:
            # Substring match so "assign" finds "assign_role" and violations
            query = query.filter(AuditLog.action.ilike(f"%{self.action}%"))
        if self.resource_type:
            query = query.filter(AuditLog.resource_type == self.resource_type)
        if self.resource_id:
            query = query.filter(AuditLog.resource_id == str(self.resource_id))
        if self.success is not None:
            query = query.filter(AuditLog.success == self.success)
        if self.start_date:
            query = query.filter(AuditLog.created_at >= self.start_date)
        if self.end_date:
            query = query.filter(AuditLog.created_at <= self.end_date)
        if self.ip_address:
            query = query.filter(AuditLog.ip_address == self.ip_address)
        return query


@dataclass
class AuditLogPage:
    data: List[Dict[str, Any]] = field(default_factory=list)
    pagination: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "pagination": self.pagination}


def serialize_log(log: AuditLog) -> Dict[str, Any]:
    user = None
    if log.user is not None:
        user = {
            "id": log.user.id,
            "name": log.user.name,
            "email": log.user.email,
            "role": log.user.role.name if log.user.role else None,
        }
    return {
        "id": log.id,
        "user_id": log.user_id,
        "user": user,
        "action": log.action,
        "resource_type": log.resource_type,
        "resource_id": log.resource_id,
        "success": log.success,
        "details": log.details,
        "ip_address": log.ip_address,
        "user_agent": log.user_agent,
        "severity": log.severity,
        "request_id": log.request_id,
        "timestamp": log.created_at,
    }


class AuditLogger:
    """Records and queries audit entries.

    Usage:
        audit = AuditLogger(SessionLocal)
        audit.log_action("view_ticket", "tickets", user_id=user.id, resource_id=ticket.id)
    """

    def __init__(self, session_factory: Callable[[], Session], export_limit: int = 10000):
        self.session_factory = session_factory
        self.export_limit = export_limit

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def log(self, entry: AuditEntry) -> None:
        """Persist an entry. Never raises."""
        db = None
        try:
            db = self.session_factory()
            db.add(entry.to_model())
            db.commit()
        except Exception:
            if db is not None:
                try:
                    db.rollback()
                except Exception:
                    audit_logger.warning("Rollback after failed audit write also failed", exc_info=True)
            audit_logger.exception(
                "Failed to write audit entry %s on %s for user %s",
                entry.action, entry.resource_type, entry.user_id,
            )
        finally:
            if db is not None:
                db.close()

    def log_action(
        self,
        action: str,
        resource_type: str,
        *,
        user_id: Optional[uuid.UUID] = None,
        resource_id: Optional[Any] = None,
        success: bool = True,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_id: Optional[str] = None,
        severity: Optional[AuditSeverity] = None,
    ) -> None:
        self.log(AuditEntry(
            action=action,
            resource_type=resource_type,
            user_id=user_id,
            resource_id=resource_id,
            success=success,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
            request_id=request_id,
            severity=severity,
        ))

    def log_permission_violation(
        self,
        user_id: Optional[uuid.UUID],
        action: str,
        resource_type: str,
        *,
        resource_id: Optional[Any] = None,
        reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> None:
        self.log_action(
            f"{VIOLATION_PREFIX}{action}",
            resource_type,
            user_id=user_id,
            resource_id=resource_id,
            success=False,
            details={
                "attempted_action": action,
                "denial_reason": reason,
                "violation_type": "permission_denied",
            },
            ip_address=ip_address,
            user_agent=user_agent,
            request_id=request_id,
            severity=AuditSeverity.CRITICAL,
        )

    def log_role_assignment(
        self,
        performer_id: uuid.UUID,
        target_user_id: uuid.UUID,
        action: str,
        details: Dict[str, Any],
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self.log_action(
            action,
            "users",
            user_id=performer_id,
            resource_id=target_user_id,
            success=True,
            details={
                **details,
                "target_user_id": str(target_user_id),
                "assignment_type": "role_team_management",
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_audit_logs(
        self,
        filter: Optional[AuditLogFilter] = None,
        page: int = 1,
        limit: int = 50,
    ) -> AuditLogPage:
        """Return one page of entries, newest first."""
        if page < 1:
            raise ValidationError("page must be at least 1", field="page")
        if limit < 1:
            raise ValidationError("limit must be at least 1", field="limit")
        limit = min(limit, MAX_PAGE_SIZE)
        filter = filter or AuditLogFilter()

        db = self.session_factory()
        try:
            query = filter.apply(db.query(AuditLog))
            total = query.count()
            logs = (
                query.options(joinedload(AuditLog.user).joinedload(User.role))
                .order_by(AuditLog.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            total_pages = math.ceil(total / limit) if total else 0
            return AuditLogPage(
                data=[serialize_log(log) for log in logs],
                pagination={
                    "total": total,
                    "page": page,
                    "limit": limit,
                    "total_pages": total_pages,
                    "has_next": page < total_pages,
                    "has_prev": page > 1,
                },
            )
        finally:
            db.close()

    def _export_rows(self, db: Session, filter: Optional[AuditLogFilter]) -> List[AuditLog]:
        query = (filter or AuditLogFilter()).apply(db.query(AuditLog))
        return (
            query.options(joinedload(AuditLog.user).joinedload(User.role))
            .order_by(AuditLog.created_at.desc())
            .limit(self.export_limit)
            .all()
        )

    def export_audit_logs_csv(self, filter: Optional[AuditLogFilter] = None) -> str:
        """Export matching entries as CSV for compliance."""
        db = self.session_factory()
        try:
            logs = self._export_rows(db, filter)

            output = io.StringIO()
            writer = csv.writer(output)
            writer.writerow(CSV_HEADERS)
            for log in logs:
                writer.writerow([
                    log.created_at.isoformat(),
                    str(log.user_id) if log.user_id else "",
                    log.user.name if log.user and log.user.name else "",
                    log.user.email if log.user else "",
                    log.action,
                    log.resource_type,
                    log.resource_id or "",
                    "Yes" if log.success else "No",
                    log.ip_address or "",
                    log.user_agent or "",
                    json.dumps(log.details) if log.details else "",
                ])
            return output.getvalue()
        finally:
            db.close()

    def export_audit_logs_json(self, filter: Optional[AuditLogFilter] = None) -> str:
        """Export matching entries as a JSON document."""
        db = self.session_factory()
        try:
            logs = self._export_rows(db, filter)
            export_data = {
                "exported_at": datetime.utcnow().isoformat(),
                "total_records": len(logs),
                "logs": [serialize_log(log) for log in logs],
            }
            return json.dumps(export_data, indent=2, default=str)
        finally:
            db.close()

    def get_audit_stats(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Summary counts for the monitoring dashboard."""
        period = AuditLogFilter(start_date=start_date, end_date=end_date)

        db = self.session_factory()
        try:
            base = period.apply(db.query(AuditLog))
            total = base.count()
            successful = base.filter(AuditLog.success.is_(True)).count()
            violations = base.filter(AuditLog.action.like(f"{VIOLATION_PREFIX}%"))

            unique_users = period.apply(
                db.query(func.count(distinct(AuditLog.user_id)))
            ).filter(AuditLog.user_id.isnot(None)).scalar() or 0

            top_actions = (
                period.apply(db.query(AuditLog.action, func.count(AuditLog.id).label("count")))
                .group_by(AuditLog.action)
                .order_by(func.count(AuditLog.id).desc(), AuditLog.action)
                .limit(10)
                .all()
            )
            top_resources = (
                period.apply(db.query(AuditLog.resource_type, func.count(AuditLog.id).label("count")))
                .group_by(AuditLog.resource_type)
                .order_by(func.count(AuditLog.id).desc(), AuditLog.resource_type)
                .limit(10)
                .all()
            )
            recent = (
                violations.options(joinedload(AuditLog.user))
                .order_by(AuditLog.created_at.desc())
                .limit(10)
                .all()
            )

            return {
                "total_actions": total,
                "successful_actions": successful,
                "failed_actions": total - successful,
                "permission_violations": violations.count(),
                "unique_users": unique_users,
                "top_actions": [{"action": a, "count": c} for a, c in top_actions],
                "top_resources": [{"resource_type": r, "count": c} for r, c in top_resources],
                "recent_violations": [
                    {
                        "user_id": log.user_id,
                        "action": log.action,
                        "resource_type": log.resource_type,
                        "timestamp": log.created_at,
                        "user": {"name": log.user.name, "email": log.user.email} if log.user else None,
                    }
                    for log in recent
                ],
            }
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def cleanup_old_logs(
        self,
        retention_days: int,
        *,
        performed_by: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Delete entries older than the retention period; return how many.

        Raises:
            ValidationError: retention_days is outside 1..365. Nothing is
                deleted in that case.
        """
        if (
            isinstance(retention_days, bool)
            or not isinstance(retention_days, int)
            or not MIN_RETENTION_DAYS <= retention_days <= MAX_RETENTION_DAYS
        ):
            raise ValidationError(
                f"Retention period must be between {MIN_RETENTION_DAYS} and {MAX_RETENTION_DAYS} days",
                field="retention_days",
            )

        cutoff = (now or datetime.utcnow()) - timedelta(days=retention_days)

        db = self.session_factory()
        try:
            deleted = (
                db.query(AuditLog)
                .filter(AuditLog.created_at < cutoff)
                .delete(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        audit_logger.info("Deleted %d audit entries older than %s", deleted, cutoff.isoformat())
        self.log_action(
            CLEANUP_ACTION,
            "audit_logs",
            user_id=performed_by,
            details={
                "retention_days": retention_days,
                "cutoff": cutoff.isoformat(),
                "deleted_count": deleted,
            },
        )
        return deleted
