"""Permission model for helpdesk RBAC.

Defines the closed sets of roles, resources, and actions, and the matrix of
valid (resource, action) pairs. Which role may use which pair is decided by
the grant table in ``roles.py``.

Permission string format: "resource:action"
Examples:
  - tickets:read
  - roles:assign
  - audit_logs:export
"""

from enum import Enum
from typing import NamedTuple, FrozenSet, Optional


class RoleName(str, Enum):
    """The fixed role tiers. Stored on ``Role.name``."""

    ADMIN_MANAGER = "Admin/Manager"
    TEAM_LEADER = "Team Leader"
    EMPLOYEE = "Employee"

    @classmethod
    def from_value(cls, value: Optional[str]) -> Optional["RoleName"]:
        """Map a stored role name to the enum, or None for unknown names."""
        if value is None:
            return None
        if value in _ROLE_ALIASES:
            return _ROLE_ALIASES[value]
        try:
            return cls(value)
        except ValueError:
            return None


_ROLE_ALIASES = {
    "User/Employee": RoleName.EMPLOYEE,
}


class Resource(str, Enum):
    """Resources that can be protected by permissions."""

    # People and organization
    USERS = "users"
    TEAMS = "teams"
    ROLES = "roles"

    # Support work
    TICKETS = "tickets"
    CUSTOMERS = "customers"
    FOLLOWERS = "followers"
    KNOWLEDGE_BASE = "knowledge_base"
    NOTIFICATIONS = "notifications"

    # Reporting and operations
    ANALYTICS = "analytics"
    REPORTS = "reports"
    SLA = "sla"
    ESCALATION = "escalation"
    AUDIT_LOGS = "audit_logs"


class Action(str, Enum):
    """Actions that can be performed on resources."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"

    ASSIGN = "assign"    # Assign tickets, roles, team members
    MANAGE = "manage"    # Structural management (team leadership etc.)
    EXPORT = "export"    # Export data (CSV, JSON)
    COMMENT = "comment"  # Comment on tickets


class Permission(NamedTuple):
    """A permission is a combination of resource and action."""
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.action.value}"

    @classmethod
    def from_string(cls, perm_str: str) -> "Permission":
        """Parse a permission string like 'tickets:read'."""
        parts = perm_str.split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid permission format: {perm_str}")
        return cls(Resource(parts[0]), Action(parts[1]))


CRUD = (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE)

# Maps each resource to its valid actions
PERMISSION_MATRIX: dict[Resource, FrozenSet[Action]] = {
    Resource.USERS: frozenset([*CRUD, Action.ASSIGN]),
    Resource.TEAMS: frozenset([*CRUD, Action.MANAGE]),
    Resource.ROLES: frozenset([*CRUD, Action.ASSIGN]),
    Resource.TICKETS: frozenset([*CRUD, Action.ASSIGN, Action.COMMENT, Action.EXPORT]),
    Resource.CUSTOMERS: frozenset(CRUD),
    Resource.FOLLOWERS: frozenset([Action.CREATE, Action.READ, Action.DELETE]),
    Resource.KNOWLEDGE_BASE: frozenset(CRUD),
    Resource.NOTIFICATIONS: frozenset([Action.READ, Action.UPDATE]),
    Resource.ANALYTICS: frozenset([Action.READ, Action.EXPORT]),
    Resource.REPORTS: frozenset([Action.READ, Action.EXPORT]),
    Resource.SLA: frozenset([Action.READ, Action.MANAGE]),
    Resource.ESCALATION: frozenset([Action.READ, Action.MANAGE]),
    Resource.AUDIT_LOGS: frozenset([Action.READ, Action.EXPORT, Action.DELETE]),
}


def _generate_permission_definitions() -> dict[str, Permission]:
    """Generate all valid permission combinations from the matrix."""
    permissions = {}
    for resource, actions in PERMISSION_MATRIX.items():
        for action in actions:
            perm = Permission(resource, action)
            permissions[str(perm)] = perm
    return permissions


# All valid permissions as a dictionary: "resource:action" -> Permission
PERMISSION_DEFINITIONS = _generate_permission_definitions()


def is_valid_permission(perm_str: str) -> bool:
    """Check if a permission string is valid."""
    return perm_str in PERMISSION_DEFINITIONS


def get_permissions_for_resource(resource: Resource) -> list[str]:
    """Get all valid permission strings for a resource."""
    return [
        str(Permission(resource, action))
        for action in PERMISSION_MATRIX.get(resource, set())
    ]


def get_all_permissions() -> list[str]:
    """Get all valid permission strings."""
    return list(PERMISSION_DEFINITIONS.keys())
