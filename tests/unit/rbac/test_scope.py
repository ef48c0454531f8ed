"""Tests for access scope resolution."""

import logging
import uuid
from datetime import datetime

import pytest

from helpdesk.core.rbac.cache import MemoryCacheStore, ScopeCache
from helpdesk.core.rbac.scope import AccessScope, AccessScopeResolver, coerce_uuid
from tests.factories import create_team, create_team_leader, create_user


pytestmark = pytest.mark.db


class TestAccessScope:

    def test_self_only(self):
        scope = AccessScope.self_only()
        assert scope.is_self_only
        assert not scope.organization_wide
        assert scope.team_ids == frozenset()

    def test_organization_includes_everything(self):
        scope = AccessScope.organization()
        assert scope.includes_team(uuid.uuid4())
        assert scope.intersects([uuid.uuid4()])
        assert scope.intersects([])

    def test_team_scope(self):
        team_a, team_b = uuid.uuid4(), uuid.uuid4()
        scope = AccessScope.teams([team_a])

        assert scope.includes_team(team_a)
        assert not scope.includes_team(team_b)
        assert not scope.includes_team(None)
        assert scope.intersects([team_b, team_a])
        assert not scope.intersects([team_b, None])

    def test_json_round_trip_preserves_teams(self):
        scope = AccessScope.teams([uuid.uuid4(), uuid.uuid4()])
        assert AccessScope.from_json(scope.to_json()) == scope

    def test_coerce_uuid(self):
        value = uuid.uuid4()
        assert coerce_uuid(value) is value
        assert coerce_uuid(str(value)) == value
        assert coerce_uuid("not-a-uuid") is None
        assert coerce_uuid(None) is None


class TestAccessScopeResolver:

    def test_admin_is_organization_wide(self, db_session, roles):
        admin = create_user(db_session, role=roles["admin_manager"])
        scope = AccessScopeResolver(db_session).resolve(admin.id)
        assert scope.organization_wide

    def test_employee_is_self_only_even_with_team(self, db_session, roles):
        team = create_team(db_session)
        employee = create_user(db_session, role=roles["employee"], team=team)

        scope = AccessScopeResolver(db_session).resolve(employee.id)

        assert scope.is_self_only

    def test_team_leader_gets_own_and_led_teams(self, db_session, roles):
        home, led_a, led_b, other = (create_team(db_session) for _ in range(4))
        leader = create_user(db_session, role=roles["team_leader"], team=home)
        create_team_leader(db_session, user=leader, team=led_a)
        create_team_leader(db_session, user=leader, team=led_b)

        scope = AccessScopeResolver(db_session).resolve(leader.id)

        assert not scope.organization_wide
        assert scope.team_ids == {home.id, led_a.id, led_b.id}
        assert other.id not in scope.team_ids

    def test_team_leader_own_team_counted_once(self, db_session, roles):
        home = create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"], team=home)
        create_team_leader(db_session, user=leader, team=home)

        scope = AccessScopeResolver(db_session).resolve(leader.id)

        assert scope.team_ids == {home.id}

    def test_team_leader_without_teams_is_self_only(self, db_session, roles):
        leader = create_user(db_session, role=roles["team_leader"])
        assert AccessScopeResolver(db_session).resolve(leader.id).is_self_only

    def test_led_teams_are_capped(self, db_session, roles, caplog):
        leader = create_user(db_session, role=roles["team_leader"])
        for _ in range(4):
            create_team_leader(db_session, user=leader, team=create_team(db_session))

        with caplog.at_level(logging.WARNING, logger="helpdesk.core.rbac.scope"):
            scope = AccessScopeResolver(db_session, max_led_teams=3).resolve(leader.id)

        assert len(scope.team_ids) == 3
        assert "scope truncated" in caplog.text

    @pytest.mark.parametrize("user_id", [None, "garbage", uuid.uuid4()])
    def test_unknown_user_has_no_access(self, db_session, roles, user_id):
        scope = AccessScopeResolver(db_session).resolve(user_id)
        assert scope == AccessScope.no_access()
        assert not scope.organization_wide

    def test_inactive_admin_has_no_access(self, db_session, roles):
        admin = create_user(db_session, role=roles["admin_manager"], is_active=False)
        assert not AccessScopeResolver(db_session).resolve(admin.id).organization_wide

    def test_deleted_admin_has_no_access(self, db_session, roles):
        admin = create_user(db_session, role=roles["admin_manager"], deleted_at=datetime.utcnow())
        assert not AccessScopeResolver(db_session).resolve(admin.id).organization_wide

    def test_user_without_role_has_no_access(self, db_session, roles):
        team = create_team(db_session)
        user = create_user(db_session, team=team)
        assert AccessScopeResolver(db_session).resolve(user.id).is_self_only

    def test_resolution_is_deterministic(self, db_session, roles):
        leader = create_user(db_session, role=roles["team_leader"], team=create_team(db_session))
        resolver = AccessScopeResolver(db_session)
        assert resolver.resolve(leader.id) == resolver.resolve(leader.id)

    def test_resolve_goes_through_cache(self, db_session, roles):
        team = create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"], team=team)
        cache = ScopeCache(MemoryCacheStore(), ttl=60)
        resolver = AccessScopeResolver(db_session, cache)

        first = resolver.resolve(leader.id)
        leader.team_id = None
        db_session.flush()

        # Stale until invalidated
        assert resolver.resolve(leader.id) == first

        cache.invalidate(leader.id)
        assert resolver.resolve(leader.id).is_self_only
