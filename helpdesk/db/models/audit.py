"""Audit log model.

Entries are append-only: they are never updated, and only the retention
cleanup deletes them.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Boolean, Uuid
from sqlalchemy.orm import relationship

from helpdesk.db.base import Base


class AuditSeverity(str, Enum):
    """Severity of an audit entry. Permission violations are CRITICAL."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditLog(Base):
    """
    Immutable audit log entry.

    Records every permission-gated action attempt, allowed or denied.
    """
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Actor information (user_id is None for system actions)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    # Action details
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(String(64), nullable=True, index=True)
    success = Column(Boolean, nullable=False, default=True, index=True)
    details = Column(JSON, nullable=True)

    # Metadata
    severity = Column(String(20), nullable=False, default="info", index=True)
    request_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    user = relationship("User", back_populates="audit_logs")

    def __repr__(self) -> str:
        outcome = "ok" if self.success else "denied"
        return f"<AuditLog {self.action} on {self.resource_type} by user {self.user_id} ({outcome})>"

    @classmethod
    def create_entry(
        cls,
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
        severity: AuditSeverity = AuditSeverity.INFO,
        created_at: Optional[datetime] = None,
    ) -> "AuditLog":
        """Build an entry; ``resource_id`` is stored as text so any id type fits.

        ``created_at`` overrides the timestamp for imports and tests.
        """
        entry = cls(
            action=action,
            resource_type=resource_type,
            user_id=user_id,
            resource_id=str(resource_id) if resource_id is not None else None,
            success=success,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
            request_id=request_id,
            severity=severity.value if isinstance(severity, AuditSeverity) else severity,
        )
        if created_at is not None:
            entry.created_at = created_at
        return entry
