"""Access scope resolution.

An access scope is the set of teams whose data a user may touch, or the
whole organization. It is derived from the user's role, primary team and
team leadership records.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, FrozenSet, Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from helpdesk.db.models import Role, TeamLeader, User

from .permissions import RoleName

if TYPE_CHECKING:
    from .cache import ScopeCache

logger = logging.getLogger(__name__)


def coerce_uuid(value) -> Optional[uuid.UUID]:
    """Parse an id given as UUID or string; None when it is not a valid UUID."""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        return None


@dataclass(frozen=True)
class AccessScope:
    """Immutable description of what a user may reach beyond their own records."""

    organization_wide: bool = False
    team_ids: FrozenSet[uuid.UUID] = field(default_factory=frozenset)

    @classmethod
    def organization(cls) -> "AccessScope":
        return cls(organization_wide=True)

    @classmethod
    def teams(cls, team_ids: Iterable[uuid.UUID]) -> "AccessScope":
        return cls(team_ids=frozenset(team_ids))

    @classmethod
    def self_only(cls) -> "AccessScope":
        return cls()

    @classmethod
    def no_access(cls) -> "AccessScope":
        # Ownership checks still run against a real user; callers treat a
        # missing or inactive user as denied before consulting the scope.
        return cls()

    @property
    def is_self_only(self) -> bool:
        return not self.organization_wide and not self.team_ids

    def includes_team(self, team_id) -> bool:
        if self.organization_wide:
            return True
        return team_id is not None and team_id in self.team_ids

    def intersects(self, team_ids: Iterable[uuid.UUID]) -> bool:
        if self.organization_wide:
            return True
        return any(t in self.team_ids for t in team_ids if t is not None)

    def to_json(self) -> str:
        return json.dumps({
            "organization_wide": self.organization_wide,
            "team_ids": sorted(str(t) for t in self.team_ids),
        })

    @classmethod
    def from_json(cls, raw: str) -> "AccessScope":
        data = json.loads(raw)
        return cls(
            organization_wide=bool(data["organization_wide"]),
            team_ids=frozenset(uuid.UUID(t) for t in data["team_ids"]),
        )


def load_active_user(db: Session, user_id) -> Tuple[Optional[User], Optional[RoleName]]:
    """Load a user together with their role tier.

    Returns ``(None, None)`` for unknown, inactive or soft-deleted users and
    ``(user, None)`` for users without a recognized role.
    """
    uid = coerce_uuid(user_id)
    if uid is None:
        return None, None

    user = db.get(User, uid)
    if user is None or not user.is_available:
        return None, None

    if user.role_id is None:
        return user, None
    role = db.get(Role, user.role_id)
    return user, RoleName.from_value(role.name if role else None)


class AccessScopeResolver:
    """Computes access scopes, optionally through a ``ScopeCache``."""

    def __init__(self, db: Session, cache: Optional["ScopeCache"] = None, max_led_teams: int = 50):
        self.db = db
        self.cache = cache
        self.max_led_teams = max_led_teams

    def resolve(self, user_id) -> AccessScope:
        if self.cache is None:
            return self.compute(user_id)
        return self.cache.get_or_compute(user_id, lambda: self.compute(user_id))

    def compute(self, user_id) -> AccessScope:
        """Compute a scope from the database, bypassing any cache."""
        user, role = load_active_user(self.db, user_id)
        if user is None or role is None:
            return AccessScope.no_access()

        if role is RoleName.ADMIN_MANAGER:
            return AccessScope.organization()

        if role is RoleName.TEAM_LEADER:
            team_ids = set(self._led_team_ids(user.id))
            if user.team_id is not None:
                team_ids.add(user.team_id)
            if not team_ids:
                return AccessScope.self_only()
            return AccessScope.teams(team_ids)

        return AccessScope.self_only()

    def _led_team_ids(self, user_id: uuid.UUID) -> list:
        rows = (
            self.db.query(TeamLeader.team_id)
            .filter(TeamLeader.user_id == user_id)
            .order_by(TeamLeader.assigned_at)
            .limit(self.max_led_teams + 1)
            .all()
        )
        team_ids = [row.team_id for row in rows]
        if len(team_ids) > self.max_led_teams:
            logger.warning(
                "User %s leads more than %d teams; scope truncated",
                user_id, self.max_led_teams,
            )
            team_ids = team_ids[: self.max_led_teams]
        return team_ids
