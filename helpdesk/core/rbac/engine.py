"""Permission engine.

Answers whether a user may perform an action on a resource, optionally for a
specific resource instance. Decisions are made in a fixed order:

1. input validation
2. coarse grant lookup for the user's role
3. self-modification lockout for role changes
4. resource existence and scope (team, ownership, follower/assignee access)

The engine only reads. It never writes audit entries; callers that need an
audit trail go through the RBAC middleware or the services.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Union

from sqlalchemy.orm import Session

from helpdesk.db.models import (
    KnowledgeBaseArticle,
    Role,
    Team,
    TeamLeader,
    Ticket,
    TicketFollower,
    User,
)

from .errors import (
    AccessControlError,
    AccessDeniedError,
    ErrorCode,
    InsufficientPermissionsError,
    ResourceNotFoundError,
    RoleAssignmentDeniedError,
    RoleNotFoundError,
    TeamNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from .permissions import Action, Permission, Resource, RoleName
from .roles import GrantScope, GrantTable
from .scope import AccessScope, AccessScopeResolver, coerce_uuid, load_active_user

logger = logging.getLogger(__name__)

# Actions on roles that a user may never apply to themselves
SELF_LOCKED_ROLE_ACTIONS = frozenset([Action.ASSIGN, Action.UPDATE, Action.DELETE])

# Actions implicitly available to followers and assignees of a resource
IMPLICIT_ACTIONS = frozenset([Action.READ, Action.COMMENT])


@dataclass(frozen=True)
class ResourceContext:
    """Describes the specific resource instance a check is about.

    When ``resource_id`` is set for a resource the engine knows how to load
    (tickets, followers, users, teams, knowledge base, roles) the stored
    record is authoritative and every other field is filled from it.
    ``target_user_id`` names the user a role change applies to; it only
    drives the self-modification lockout and never grants ownership.
    """

    resource_id: Optional[object] = None
    team_ids: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    owner_ids: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    assignee_ids: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    follower_ids: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    target_user_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    code: Optional[ErrorCode] = None
    reason: str = ""
    required_permission: Optional[str] = None

    @classmethod
    def allow(cls, reason: str = "granted") -> "Decision":
        return cls(True, None, reason)

    @classmethod
    def deny(cls, code: ErrorCode, reason: str, required_permission: Optional[str] = None) -> "Decision":
        return cls(False, code, reason, required_permission)

    def __bool__(self) -> bool:
        return self.allowed


# ---------------------------------------------------------------------------
# Context loaders: return None when the referenced record does not exist
# ---------------------------------------------------------------------------

def _ids(*values) -> FrozenSet[uuid.UUID]:
    return frozenset(v for v in values if v is not None)


def _load_ticket(db: Session, resource_id: uuid.UUID, caller: User) -> Optional[ResourceContext]:
    ticket = db.get(Ticket, resource_id)
    if ticket is None:
        return None
    followers = db.query(TicketFollower.user_id).filter(TicketFollower.ticket_id == ticket.id).all()
    return ResourceContext(
        resource_id=ticket.id,
        team_ids=_ids(ticket.team_id),
        owner_ids=_ids(ticket.created_by, ticket.assigned_to, ticket.customer_id),
        assignee_ids=_ids(ticket.assigned_to),
        follower_ids=frozenset(row.user_id for row in followers),
    )


def _load_user(db: Session, resource_id: uuid.UUID, caller: User) -> Optional[ResourceContext]:
    user = db.get(User, resource_id)
    if user is None or user.deleted_at is not None:
        return None
    return ResourceContext(
        resource_id=user.id,
        team_ids=_ids(user.team_id),
        owner_ids=_ids(user.id),
        target_user_id=user.id,
    )


def _load_team(db: Session, resource_id: uuid.UUID, caller: User) -> Optional[ResourceContext]:
    team = db.get(Team, resource_id)
    if team is None:
        return None
    # Members and leaders of a team own it for OWN grants on teams
    is_member = caller.team_id == team.id
    if not is_member:
        is_member = db.query(TeamLeader.id).filter(
            TeamLeader.team_id == team.id,
            TeamLeader.user_id == caller.id,
        ).first() is not None
    return ResourceContext(
        resource_id=team.id,
        team_ids=_ids(team.id),
        owner_ids=_ids(caller.id) if is_member else frozenset(),
    )


def _load_article(db: Session, resource_id: uuid.UUID, caller: User) -> Optional[ResourceContext]:
    article = db.get(KnowledgeBaseArticle, resource_id)
    if article is None:
        return None
    return ResourceContext(
        resource_id=article.id,
        team_ids=_ids(article.team_id),
        owner_ids=_ids(article.author_id),
    )


def _load_role(db: Session, resource_id: uuid.UUID, caller: User) -> Optional[ResourceContext]:
    role = db.get(Role, resource_id)
    if role is None:
        return None
    return ResourceContext(resource_id=role.id)


ContextLoader = Callable[[Session, uuid.UUID, User], Optional[ResourceContext]]

CONTEXT_LOADERS: Dict[Resource, ContextLoader] = {
    Resource.TICKETS: _load_ticket,
    Resource.FOLLOWERS: _load_ticket,
    Resource.USERS: _load_user,
    Resource.TEAMS: _load_team,
    Resource.KNOWLEDGE_BASE: _load_article,
    Resource.ROLES: _load_role,
}


class PermissionEngine:
    """Evaluates permission checks against a grant table and access scopes."""

    def __init__(
        self,
        db: Session,
        grants: GrantTable,
        resolver: Optional[AccessScopeResolver] = None,
        loaders: Optional[Dict[Resource, ContextLoader]] = None,
    ):
        self.db = db
        self.grants = grants
        self.resolver = resolver or AccessScopeResolver(db)
        self.loaders = CONTEXT_LOADERS if loaders is None else loaders

    def check_permission(
        self,
        user_id,
        action: Union[Action, str],
        resource: Union[Resource, str],
        context: Optional[ResourceContext] = None,
    ) -> bool:
        """Return True when the user may perform ``action`` on ``resource``."""
        return self.authorize(user_id, action, resource, context).allowed

    def authorize(
        self,
        user_id,
        action: Union[Action, str],
        resource: Union[Resource, str],
        context: Optional[ResourceContext] = None,
    ) -> Decision:
        """Evaluate a permission check and explain the outcome."""
        try:
            action = Action(action)
            resource = Resource(resource)
        except ValueError:
            return Decision.deny(
                ErrorCode.VALIDATION_ERROR,
                f"Unknown permission {resource}:{action}",
            )

        required = str(Permission(resource, action))

        user, role = load_active_user(self.db, user_id)
        if user is None:
            return Decision.deny(ErrorCode.INSUFFICIENT_PERMISSIONS, "user not found or inactive", required)
        if role is None:
            return Decision.deny(ErrorCode.INSUFFICIENT_PERMISSIONS, "user has no role", required)

        grant = self.grants.lookup(role, action, resource)
        if grant is GrantScope.DENY:
            return Decision.deny(
                ErrorCode.INSUFFICIENT_PERMISSIONS,
                f"role {role.value} lacks {required}",
                required,
            )

        if (
            resource is Resource.ROLES
            and action in SELF_LOCKED_ROLE_ACTIONS
            and context is not None
            and coerce_uuid(context.target_user_id) == user.id
        ):
            return Decision.deny(
                ErrorCode.ROLE_ASSIGNMENT_DENIED,
                "users cannot modify their own role",
                required,
            )

        if context is None:
            return Decision.allow(f"{required} granted at {grant.value} scope")

        scope = self.resolver.resolve(user.id)

        resolved = self._resolve_context(resource, context, user)
        if resolved is None:
            if scope.organization_wide:
                return Decision.deny(
                    ErrorCode.RESOURCE_NOT_FOUND,
                    f"{resource.value} {context.resource_id} not found",
                    required,
                )
            return Decision.deny(ErrorCode.ACCESS_DENIED, f"no access to {resource.value}", required)

        if action in IMPLICIT_ACTIONS and (
            user.id in resolved.follower_ids or user.id in resolved.assignee_ids
        ):
            return Decision.allow("follower or assignee")

        return self._check_scope(user, grant, scope, resolved, required)

    def require_permission(
        self,
        user_id,
        action: Union[Action, str],
        resource: Union[Resource, str],
        context: Optional[ResourceContext] = None,
    ) -> None:
        """Like ``authorize`` but raises the matching ``AccessControlError``."""
        decision = self.authorize(user_id, action, resource, context)
        if not decision.allowed:
            raise self._error_for(decision, action, resource, context)

    def scope_for(self, user_id) -> AccessScope:
        return self.resolver.resolve(user_id)

    def accessible_team_ids(self, user_id) -> Optional[FrozenSet[uuid.UUID]]:
        """Team ids the user may see, or None for organization-wide access."""
        scope = self.resolver.resolve(user_id)
        if scope.organization_wide:
            return None
        return scope.team_ids

    def permissions_for_user(self, user_id) -> List[str]:
        """Permission strings granted to the user's role at any scope."""
        user, role = load_active_user(self.db, user_id)
        if user is None or role is None:
            return []
        return [str(p) for p in self.grants.permissions_for(role)]

    def role_for(self, user_id) -> Optional[RoleName]:
        return load_active_user(self.db, user_id)[1]

    def can_assign_ticket_to(self, user_id, ticket_id, assignee_id) -> bool:
        """Whether ``user_id`` may assign the ticket to ``assignee_id``.

        Admin/Managers may assign to any active user. Team Leaders may only
        assign tickets of teams they lead or belong to, and only to members of
        the ticket's team. Everyone else is refused.
        """
        if not self.check_permission(
            user_id, Action.ASSIGN, Resource.TICKETS, ResourceContext(resource_id=ticket_id)
        ):
            return False

        assignee, _ = load_active_user(self.db, assignee_id)
        if assignee is None:
            return False

        role = self.role_for(user_id)
        if role is RoleName.ADMIN_MANAGER:
            return True
        if role is not RoleName.TEAM_LEADER:
            return False

        ticket = self.db.get(Ticket, coerce_uuid(ticket_id))
        if ticket is None or ticket.team_id is None:
            return False
        if not self.scope_for(user_id).includes_team(ticket.team_id):
            return False
        return assignee.team_id == ticket.team_id

    def _resolve_context(
        self,
        resource: Resource,
        context: ResourceContext,
        caller: User,
    ) -> Optional[ResourceContext]:
        loader = self.loaders.get(resource)
        if context.resource_id is None or loader is None:
            return context

        resource_id = coerce_uuid(context.resource_id)
        if resource_id is None:
            return None
        return loader(self.db, resource_id, caller)

    @staticmethod
    def _check_scope(
        user: User,
        grant: GrantScope,
        scope: AccessScope,
        context: ResourceContext,
        required: str,
    ) -> Decision:
        if grant is GrantScope.ORGANIZATION:
            return Decision.allow("organization grant")

        if grant is GrantScope.TEAM and scope.intersects(context.team_ids):
            return Decision.allow("team scope")

        if user.id in context.owner_ids or user.id in context.assignee_ids:
            return Decision.allow("owner")

        return Decision.deny(ErrorCode.ACCESS_DENIED, "resource outside access scope", required)

    @staticmethod
    def _error_for(
        decision: Decision,
        action,
        resource,
        context: Optional[ResourceContext],
    ) -> AccessControlError:
        action = getattr(action, "value", action)
        resource = getattr(resource, "value", resource)
        resource_id = context.resource_id if context is not None else None

        if decision.code is ErrorCode.VALIDATION_ERROR:
            return ValidationError(decision.reason)
        if decision.code is ErrorCode.ROLE_ASSIGNMENT_DENIED:
            return RoleAssignmentDeniedError(
                resource_id,
                context.target_user_id if context is not None else None,
                message="Users cannot modify their own role assignment",
            )
        if decision.code is ErrorCode.RESOURCE_NOT_FOUND:
            if resource == Resource.USERS.value:
                return UserNotFoundError(resource_id)
            if resource == Resource.TEAMS.value:
                return TeamNotFoundError(resource_id)
            if resource == Resource.ROLES.value:
                return RoleNotFoundError(resource_id)
            return ResourceNotFoundError(resource, resource_id)
        if decision.code is ErrorCode.ACCESS_DENIED:
            return AccessDeniedError(action, resource, resource_id)
        return InsufficientPermissionsError(action, resource, decision.required_permission)
