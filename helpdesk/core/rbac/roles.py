"""Grant table and default role definitions for helpdesk RBAC.

Three role tiers:
1. Admin/Manager - organization-wide access
2. Team Leader - access scoped to the teams they belong to or lead
3. Employee - access to their own tickets and profile

Every valid permission has one row with an explicit scope for every role.
A row is written with ``grant(admin=..., leader=..., employee=...)``, whose
arguments are all required, and ``GrantTable`` refuses to build from rows
that leave any (role, permission) pair out.
"""

from enum import Enum
from typing import Dict, List, Mapping, Optional

from .permissions import (
    Action,
    Permission,
    PERMISSION_DEFINITIONS,
    Resource,
    RoleName,
)


class GrantScope(str, Enum):
    """How far a granted permission reaches."""

    DENY = "deny"
    OWN = "own"                    # Resources the user created, owns or is assigned
    TEAM = "team"                  # Resources tagged with one of the user's teams
    ORGANIZATION = "organization"  # Any resource


class GrantTableError(ValueError):
    """Raised when a grant table is not total over roles and permissions."""


DENY = GrantScope.DENY
OWN = GrantScope.OWN
TEAM = GrantScope.TEAM
ORG = GrantScope.ORGANIZATION


def grant(*, admin: GrantScope, leader: GrantScope, employee: GrantScope) -> Dict[RoleName, GrantScope]:
    """Build one grant row. Every role must be given a scope."""
    return {
        RoleName.ADMIN_MANAGER: admin,
        RoleName.TEAM_LEADER: leader,
        RoleName.EMPLOYEE: employee,
    }


class GrantTable:
    """Static mapping of (role, action, resource) to a grant scope.

    Built once at process start and injected into the permission engine.
    Lookups are pure; anything outside the table resolves to ``DENY``.
    """

    def __init__(
        self,
        rows: Mapping[Permission, Mapping[RoleName, GrantScope]],
        permissions: Optional[Mapping[str, Permission]] = None,
    ):
        if permissions is None:
            permissions = PERMISSION_DEFINITIONS
        self._rows = {
            Permission(Resource(p.resource), Action(p.action)): dict(row)
            for p, row in rows.items()
        }
        self._validate(permissions)

    def _validate(self, permissions: Mapping[str, Permission]) -> None:
        valid = set(permissions.values())
        unknown = [str(p) for p in self._rows if p not in valid]
        if unknown:
            raise GrantTableError(f"Grants for undefined permissions: {', '.join(sorted(unknown))}")

        missing = []
        for perm in valid:
            row = self._rows.get(perm)
            if row is None:
                missing.append(str(perm))
                continue
            for role in RoleName:
                if not isinstance(row.get(role), GrantScope):
                    missing.append(f"{perm}@{role.value}")
        if missing:
            raise GrantTableError(f"Missing grant entries: {', '.join(sorted(missing))}")

    def lookup(self, role: RoleName, action: Action, resource: Resource) -> GrantScope:
        """Return the grant scope for a role; DENY for unknown combinations."""
        row = self._rows.get(Permission(resource, action))
        if row is None:
            return GrantScope.DENY
        return row.get(role, GrantScope.DENY)

    def is_granted(self, role: RoleName, action: Action, resource: Resource) -> bool:
        return self.lookup(role, action, resource) is not GrantScope.DENY

    def permissions_for(self, role: RoleName) -> List[Permission]:
        """All permissions granted to a role, in a stable order."""
        return sorted(
            (p for p, row in self._rows.items() if row[role] is not GrantScope.DENY),
            key=str,
        )

    def __iter__(self):
        return iter(self._rows.items())


DEFAULT_GRANTS: Dict[Permission, Dict[RoleName, GrantScope]] = {
    # User management - administrators only; leaders see their teams, employees themselves
    Permission(Resource.USERS, Action.CREATE): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.USERS, Action.READ): grant(admin=ORG, leader=TEAM, employee=OWN),
    Permission(Resource.USERS, Action.UPDATE): grant(admin=ORG, leader=DENY, employee=OWN),
    Permission(Resource.USERS, Action.DELETE): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.USERS, Action.ASSIGN): grant(admin=ORG, leader=DENY, employee=DENY),

    # Teams - leaders read the teams they lead, employees their own team
    Permission(Resource.TEAMS, Action.CREATE): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.TEAMS, Action.READ): grant(admin=ORG, leader=TEAM, employee=OWN),
    Permission(Resource.TEAMS, Action.UPDATE): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.TEAMS, Action.DELETE): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.TEAMS, Action.MANAGE): grant(admin=ORG, leader=DENY, employee=DENY),

    # Roles
    Permission(Resource.ROLES, Action.CREATE): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.ROLES, Action.READ): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.ROLES, Action.UPDATE): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.ROLES, Action.DELETE): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.ROLES, Action.ASSIGN): grant(admin=ORG, leader=DENY, employee=DENY),

    # Tickets
    Permission(Resource.TICKETS, Action.CREATE): grant(admin=ORG, leader=TEAM, employee=OWN),
    Permission(Resource.TICKETS, Action.READ): grant(admin=ORG, leader=TEAM, employee=OWN),
    Permission(Resource.TICKETS, Action.UPDATE): grant(admin=ORG, leader=TEAM, employee=OWN),
    Permission(Resource.TICKETS, Action.DELETE): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.TICKETS, Action.ASSIGN): grant(admin=ORG, leader=TEAM, employee=DENY),
    Permission(Resource.TICKETS, Action.COMMENT): grant(admin=ORG, leader=TEAM, employee=OWN),
    Permission(Resource.TICKETS, Action.EXPORT): grant(admin=ORG, leader=TEAM, employee=DENY),

    # Customers
    Permission(Resource.CUSTOMERS, Action.CREATE): grant(admin=ORG, leader=ORG, employee=DENY),
    Permission(Resource.CUSTOMERS, Action.READ): grant(admin=ORG, leader=ORG, employee=ORG),
    Permission(Resource.CUSTOMERS, Action.UPDATE): grant(admin=ORG, leader=ORG, employee=DENY),
    Permission(Resource.CUSTOMERS, Action.DELETE): grant(admin=ORG, leader=DENY, employee=DENY),

    # Ticket followers
    Permission(Resource.FOLLOWERS, Action.CREATE): grant(admin=ORG, leader=TEAM, employee=DENY),
    Permission(Resource.FOLLOWERS, Action.READ): grant(admin=ORG, leader=TEAM, employee=OWN),
    Permission(Resource.FOLLOWERS, Action.DELETE): grant(admin=ORG, leader=TEAM, employee=OWN),

    # Knowledge base - everyone reads, leaders write and edit their own articles
    Permission(Resource.KNOWLEDGE_BASE, Action.CREATE): grant(admin=ORG, leader=TEAM, employee=DENY),
    Permission(Resource.KNOWLEDGE_BASE, Action.READ): grant(admin=ORG, leader=ORG, employee=ORG),
    Permission(Resource.KNOWLEDGE_BASE, Action.UPDATE): grant(admin=ORG, leader=OWN, employee=DENY),
    Permission(Resource.KNOWLEDGE_BASE, Action.DELETE): grant(admin=ORG, leader=DENY, employee=DENY),

    # Notifications are personal
    Permission(Resource.NOTIFICATIONS, Action.READ): grant(admin=OWN, leader=OWN, employee=OWN),
    Permission(Resource.NOTIFICATIONS, Action.UPDATE): grant(admin=OWN, leader=OWN, employee=OWN),

    # Analytics and reports
    Permission(Resource.ANALYTICS, Action.READ): grant(admin=ORG, leader=TEAM, employee=DENY),
    Permission(Resource.ANALYTICS, Action.EXPORT): grant(admin=ORG, leader=TEAM, employee=DENY),
    Permission(Resource.REPORTS, Action.READ): grant(admin=ORG, leader=TEAM, employee=DENY),
    Permission(Resource.REPORTS, Action.EXPORT): grant(admin=ORG, leader=TEAM, employee=DENY),

    # SLA and escalation
    Permission(Resource.SLA, Action.READ): grant(admin=ORG, leader=TEAM, employee=DENY),
    Permission(Resource.SLA, Action.MANAGE): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.ESCALATION, Action.READ): grant(admin=ORG, leader=TEAM, employee=DENY),
    Permission(Resource.ESCALATION, Action.MANAGE): grant(admin=ORG, leader=DENY, employee=DENY),

    # Audit trail
    Permission(Resource.AUDIT_LOGS, Action.READ): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.AUDIT_LOGS, Action.EXPORT): grant(admin=ORG, leader=DENY, employee=DENY),
    Permission(Resource.AUDIT_LOGS, Action.DELETE): grant(admin=ORG, leader=DENY, employee=DENY),
}


def build_default_grant_table() -> GrantTable:
    """Build the grant table used by the running service."""
    return GrantTable(DEFAULT_GRANTS)


# Default roles configuration, used for seeding
DEFAULT_ROLES: Dict[str, dict] = {
    "admin_manager": {
        "name": RoleName.ADMIN_MANAGER.value,
        "description": "Organization-wide access to tickets, users, teams and audit logs",
        "is_system": True,
    },
    "team_leader": {
        "name": RoleName.TEAM_LEADER.value,
        "description": "Manages tickets and reports for the teams they lead",
        "is_system": True,
    },
    "employee": {
        "name": RoleName.EMPLOYEE.value,
        "description": "Works on own and followed tickets",
        "is_system": True,
    },
}


def get_all_default_roles() -> Dict[str, dict]:
    """Get all default role definitions."""
    return DEFAULT_ROLES.copy()
