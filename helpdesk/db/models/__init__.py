"""Database models for the helpdesk service."""

from helpdesk.db.models.role import Role
from helpdesk.db.models.team import Team, TeamLeader
from helpdesk.db.models.user import User
from helpdesk.db.models.ticket import Ticket, TicketFollower, KnowledgeBaseArticle
from helpdesk.db.models.audit import AuditLog, AuditSeverity

__all__ = [
    "Role",
    "Team",
    "TeamLeader",
    "User",
    "Ticket",
    "TicketFollower",
    "KnowledgeBaseArticle",
    "AuditLog",
    "AuditSeverity",
]
