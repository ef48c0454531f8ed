"""Audit log query, export and retention endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from helpdesk.api.deps import RBACDependency, get_audit_logger
from helpdesk.api.schemas import Pagination
from helpdesk.core.rbac.permissions import Action, Resource
from helpdesk.db.models import User
from helpdesk.services.audit import AuditLogFilter, AuditLogger

router = APIRouter(prefix="/audit-logs", tags=["audit"])


# Schemas
class AuditUser(BaseModel):
    id: UUID
    name: Optional[str]
    email: str
    role: Optional[str]


class AuditLogResponse(BaseModel):
    id: UUID
    user_id: Optional[UUID]
    user: Optional[AuditUser]
    action: str
    resource_type: str
    resource_id: Optional[str]
    success: bool
    details: Optional[dict]
    ip_address: Optional[str]
    user_agent: Optional[str]
    severity: str
    request_id: Optional[str]
    timestamp: datetime


class AuditLogListResponse(BaseModel):
    data: List[AuditLogResponse]
    pagination: Pagination


class CleanupResponse(BaseModel):
    retention_days: int
    deleted_count: int


def _filter(
    user_id: Optional[UUID] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    success: Optional[bool] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    ip_address: Optional[str] = None,
) -> AuditLogFilter:
    return AuditLogFilter(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        success=success,
        start_date=start_date,
        end_date=end_date,
        ip_address=ip_address,
    )


# Endpoints
@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    filter: AuditLogFilter = Depends(_filter),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, description="Page size, capped at 100"),
    current_user: User = Depends(RBACDependency(
        Action.READ, Resource.AUDIT_LOGS, audit_action="view_audit_logs",
    )),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """
    List audit logs, newest first.

    Supports filtering by user, action (substring), resource, outcome,
    IP address and date range.
    """
    return audit.get_audit_logs(filter, page=page, limit=limit).to_dict()


@router.get("/stats")
async def get_audit_stats(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(RBACDependency(
        Action.READ, Resource.AUDIT_LOGS, audit_action="view_audit_stats",
    )),
    audit: AuditLogger = Depends(get_audit_logger),
) -> Dict[str, Any]:
    """Totals, top actions and resources, and recent permission violations."""
    return audit.get_audit_stats(start_date, end_date)


@router.get("/export/csv")
async def export_audit_logs_csv(
    filter: AuditLogFilter = Depends(_filter),
    current_user: User = Depends(RBACDependency(
        Action.EXPORT, Resource.AUDIT_LOGS, audit_action="export_audit_logs",
    )),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Export audit logs as CSV for compliance."""
    content = audit.export_audit_logs_csv(filter)
    date_str = datetime.utcnow().strftime("%Y%m%d")
    filename = f"audit_logs_{date_str}.csv"

    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.get("/export/json")
async def export_audit_logs_json(
    filter: AuditLogFilter = Depends(_filter),
    current_user: User = Depends(RBACDependency(
        Action.EXPORT, Resource.AUDIT_LOGS, audit_action="export_audit_logs",
    )),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Export audit logs as JSON for compliance."""
    content = audit.export_audit_logs_json(filter)
    date_str = datetime.utcnow().strftime("%Y%m%d")
    filename = f"audit_logs_{date_str}.json"

    return StreamingResponse(
        iter([content]),
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.delete("", response_model=CleanupResponse)
async def cleanup_audit_logs(
    retention_days: int = Query(..., description="Keep entries newer than this many days (1-365)"),
    current_user: User = Depends(RBACDependency(
        Action.DELETE, Resource.AUDIT_LOGS, audit_action="cleanup_audit_logs",
    )),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Delete audit entries older than the retention period."""
    deleted = audit.cleanup_old_logs(retention_days, performed_by=current_user.id)
    return CleanupResponse(retention_days=retention_days, deleted_count=deleted)
