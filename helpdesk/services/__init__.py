"""Helpdesk services."""

from helpdesk.services.audit import AuditEntry, AuditLogFilter, AuditLogger, AuditLogPage
from helpdesk.services.roles import RoleService

__all__ = [
    "AuditEntry",
    "AuditLogFilter",
    "AuditLogger",
    "AuditLogPage",
    "RoleService",
]
