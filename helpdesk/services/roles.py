"""Role and team assignment service.

Every mutation checks permission through the permission engine, validates
that the records involved exist, invalidates the affected user's cached
access scope and records an audit entry.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from helpdesk.core.rbac.cache import ScopeCache
from helpdesk.core.rbac.engine import PermissionEngine, ResourceContext
from helpdesk.core.rbac.errors import (
    AccessControlError,
    RoleNotFoundError,
    TeamAccessDeniedError,
    TeamNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from helpdesk.core.rbac.permissions import Action, Resource, RoleName
from helpdesk.core.rbac.scope import coerce_uuid
from helpdesk.db.models import Role, Team, TeamLeader, User
from helpdesk.services.audit import AuditLogger

logger = logging.getLogger(__name__)

LEADERSHIP_ROLES = (RoleName.TEAM_LEADER, RoleName.ADMIN_MANAGER)


def _parse_id(value, field: str) -> uuid.UUID:
    parsed = coerce_uuid(value)
    if parsed is None:
        raise ValidationError(f"Invalid {field}: {value!r}", field=field)
    return parsed


class RoleService:
    """Assigns roles, team membership and team leadership."""

    def __init__(
        self,
        db: Session,
        engine: PermissionEngine,
        audit: AuditLogger,
        cache: Optional[ScopeCache] = None,
    ):
        self.db = db
        self.engine = engine
        self.audit = audit
        self.cache = cache

    def assign_role(self, performer_id, user_id, role_id) -> User:
        performer_id = _parse_id(performer_id, "performer_id")
        user_id = _parse_id(user_id, "user_id")
        role_id = _parse_id(role_id, "role_id")

        self._require(
            performer_id, Action.ASSIGN, Resource.ROLES, "assign_role",
            ResourceContext(resource_id=role_id, target_user_id=user_id),
        )

        user = self._get_user(user_id)
        role = self.db.get(Role, role_id)
        previous_role_id = user.role_id

        user.role_id = role.id
        self.db.commit()
        self._invalidate(user.id)

        logger.info("User %s assigned role %s to user %s", performer_id, role.name, user.id)
        self.audit.log_role_assignment(
            performer_id,
            user.id,
            "assign_role",
            {
                "previous_role_id": str(previous_role_id) if previous_role_id else None,
                "new_role_id": str(role.id),
                "role_name": role.name,
            },
        )
        return user

    def assign_to_team(self, performer_id, user_id, team_id) -> User:
        performer_id = _parse_id(performer_id, "performer_id")
        user_id = _parse_id(user_id, "user_id")
        team_id = _parse_id(team_id, "team_id")

        self._require_team_management(performer_id, team_id, "assign_team")
        user = self._get_user(user_id)
        team = self._get_team(team_id)
        previous_team_id = user.team_id

        user.team_id = team.id
        self.db.commit()
        self._invalidate(user.id)

        self.audit.log_role_assignment(
            performer_id,
            user.id,
            "assign_team",
            {
                "previous_team_id": str(previous_team_id) if previous_team_id else None,
                "new_team_id": str(team.id),
                "team_name": team.name,
            },
        )
        return user

    def remove_from_team(self, performer_id, user_id, team_id) -> User:
        """Remove a user from their team, dropping any leadership of it."""
        performer_id = _parse_id(performer_id, "performer_id")
        user_id = _parse_id(user_id, "user_id")
        team_id = _parse_id(team_id, "team_id")

        self._require_team_management(performer_id, team_id, "remove_from_team")
        user = self._get_user(user_id)
        team = self._get_team(team_id)
        if user.team_id != team.id:
            raise ValidationError(f"User '{user.id}' is not a member of team '{team.id}'", field="team_id")

        user.team_id = None
        self.db.query(TeamLeader).filter(
            TeamLeader.user_id == user.id,
            TeamLeader.team_id == team.id,
        ).delete(synchronize_session=False)
        self.db.commit()
        self._invalidate(user.id)

        self.audit.log_role_assignment(
            performer_id,
            user.id,
            "remove_from_team",
            {"removed_from_team_id": str(team.id), "team_name": team.name},
        )
        return user

    def assign_team_leadership(self, performer_id, user_id, team_id) -> TeamLeader:
        performer_id = _parse_id(performer_id, "performer_id")
        user_id = _parse_id(user_id, "user_id")
        team_id = _parse_id(team_id, "team_id")

        self._require(performer_id, Action.MANAGE, Resource.TEAMS, "assign_team_leadership")
        user = self._get_user(user_id)
        team = self._get_team(team_id)

        role = RoleName.from_value(user.role.name if user.role else None)
        if role not in LEADERSHIP_ROLES:
            raise ValidationError(
                "Only Team Leaders and Admin/Managers can lead teams",
                field="user_id",
            )

        leadership = self.db.query(TeamLeader).filter(
            TeamLeader.user_id == user.id,
            TeamLeader.team_id == team.id,
        ).first()
        if leadership is not None:
            return leadership

        leadership = TeamLeader(user_id=user.id, team_id=team.id)
        self.db.add(leadership)
        self.db.commit()
        self._invalidate(user.id)

        self.audit.log_role_assignment(
            performer_id,
            user.id,
            "assign_team_leadership",
            {"team_id": str(team.id), "team_name": team.name},
        )
        return leadership

    def remove_team_leadership(self, performer_id, user_id, team_id) -> None:
        performer_id = _parse_id(performer_id, "performer_id")
        user_id = _parse_id(user_id, "user_id")
        team_id = _parse_id(team_id, "team_id")

        self._require(performer_id, Action.MANAGE, Resource.TEAMS, "remove_team_leadership")
        user = self._get_user(user_id)
        team = self._get_team(team_id)

        leadership = self.db.query(TeamLeader).filter(
            TeamLeader.user_id == user.id,
            TeamLeader.team_id == team.id,
        ).first()
        if leadership is None:
            raise ValidationError(f"User '{user.id}' does not lead team '{team.id}'", field="user_id")

        self.db.delete(leadership)
        self.db.commit()
        self._invalidate(user.id)

        self.audit.log_role_assignment(
            performer_id,
            user.id,
            "remove_team_leadership",
            {"team_id": str(team.id), "team_name": team.name},
        )

    def get_user_teams(self, requester_id, user_id) -> List[Team]:
        """Primary team followed by led teams, without duplicates."""
        requester_id = _parse_id(requester_id, "requester_id")
        user_id = _parse_id(user_id, "user_id")

        self.engine.require_permission(
            requester_id, Action.READ, Resource.USERS, ResourceContext(resource_id=user_id)
        )
        user = self._get_user(user_id)

        teams = []
        if user.team is not None:
            teams.append(user.team)
        for leadership in sorted(user.team_leaderships, key=lambda l: l.assigned_at):
            if all(t.id != leadership.team_id for t in teams):
                teams.append(leadership.team)
        return teams

    def get_user_role(self, requester_id, user_id) -> Role:
        requester_id = _parse_id(requester_id, "requester_id")
        user_id = _parse_id(user_id, "user_id")

        self.engine.require_permission(
            requester_id, Action.READ, Resource.USERS, ResourceContext(resource_id=user_id)
        )
        user = self._get_user(user_id)
        if user.role is None:
            raise RoleNotFoundError("none assigned")
        return user.role

    def get_users_by_role(self, requester_id, role_id) -> List[User]:
        """Users holding a role, limited to those the requester may read."""
        requester_id = _parse_id(requester_id, "requester_id")
        role_id = _parse_id(role_id, "role_id")

        self.engine.require_permission(requester_id, Action.READ, Resource.USERS)
        role = self.db.get(Role, role_id)
        if role is None:
            raise RoleNotFoundError(role_id)

        query = self.db.query(User).filter(User.role_id == role.id, User.deleted_at.is_(None))
        team_ids = self.engine.accessible_team_ids(requester_id)
        if team_ids is not None:
            query = query.filter(or_(User.id == requester_id, User.team_id.in_(team_ids)))
        return query.order_by(User.email).all()

    def _require(
        self,
        performer_id: uuid.UUID,
        action: Action,
        resource: Resource,
        audit_action: str,
        context: Optional[ResourceContext] = None,
    ) -> None:
        try:
            self.engine.require_permission(performer_id, action, resource, context)
        except AccessControlError as e:
            self.audit.log_permission_violation(
                performer_id,
                audit_action,
                resource.value,
                resource_id=context.target_user_id if context is not None else None,
                reason=e.message,
            )
            raise

    def _require_team_management(self, performer_id: uuid.UUID, team_id: uuid.UUID, audit_action: str) -> None:
        # Team Leaders may manage membership of teams within their scope
        if self.engine.check_permission(performer_id, Action.MANAGE, Resource.TEAMS):
            return
        if self.engine.check_permission(
            performer_id, Action.READ, Resource.TEAMS, ResourceContext(resource_id=team_id)
        ) and self.engine.role_for(performer_id) is RoleName.TEAM_LEADER:
            return

        self.audit.log_permission_violation(
            performer_id,
            audit_action,
            Resource.TEAMS.value,
            resource_id=team_id,
            reason="caller cannot manage this team",
        )
        raise TeamAccessDeniedError(team_id, performer_id)

    def _get_user(self, user_id: uuid.UUID) -> User:
        user = self.db.get(User, user_id)
        if user is None or user.deleted_at is not None:
            raise UserNotFoundError(user_id)
        return user

    def _get_team(self, team_id: uuid.UUID) -> Team:
        team = self.db.get(Team, team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        return team

    def _invalidate(self, user_id: uuid.UUID) -> None:
        if self.cache is not None:
            self.cache.invalidate(user_id)
