"""Tests for role and team assignment."""

import uuid
from datetime import datetime

import pytest

from helpdesk.core.rbac.cache import MemoryCacheStore, ScopeCache
from helpdesk.core.rbac.engine import PermissionEngine
from helpdesk.core.rbac.errors import (
    AccessDeniedError,
    InsufficientPermissionsError,
    RoleAssignmentDeniedError,
    RoleNotFoundError,
    TeamAccessDeniedError,
    TeamNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from helpdesk.core.rbac.scope import AccessScopeResolver
from helpdesk.db.models import AuditLog, TeamLeader
from helpdesk.services.roles import RoleService
from tests.factories import create_team, create_team_leader, create_user


pytestmark = pytest.mark.db


@pytest.fixture
def cache():
    return ScopeCache(MemoryCacheStore(), ttl=60)


@pytest.fixture
def service(db_session, grants, audit, cache):
    engine = PermissionEngine(db_session, grants, AccessScopeResolver(db_session, cache))
    return RoleService(db_session, engine, audit, cache)


@pytest.fixture
def admin(db_session, roles):
    return create_user(db_session, role=roles["admin_manager"])


def _actions(db_session):
    return [entry.action for entry in db_session.query(AuditLog).order_by(AuditLog.created_at)]


class TestAssignRole:

    def test_admin_assigns_role(self, db_session, service, admin, roles):
        user = create_user(db_session, role=roles["employee"])

        service.assign_role(admin.id, user.id, roles["team_leader"].id)

        db_session.refresh(user)
        assert user.role_id == roles["team_leader"].id
        entry = db_session.query(AuditLog).one()
        assert entry.action == "assign_role"
        assert entry.user_id == admin.id
        assert entry.details["role_name"] == "Team Leader"
        assert entry.details["previous_role_id"] == str(roles["employee"].id)

    def test_admin_cannot_change_own_role(self, db_session, service, admin, roles):
        with pytest.raises(RoleAssignmentDeniedError) as exc_info:
            service.assign_role(admin.id, admin.id, roles["employee"].id)

        assert exc_info.value.code.value == "ROLE_ASSIGNMENT_DENIED"
        db_session.refresh(admin)
        assert admin.role_id == roles["admin_manager"].id
        assert _actions(db_session) == ["permission_violation_assign_role"]

    def test_team_leader_cannot_assign_roles(self, db_session, service, roles):
        leader = create_user(db_session, role=roles["team_leader"])
        user = create_user(db_session, role=roles["employee"])

        with pytest.raises(InsufficientPermissionsError):
            service.assign_role(leader.id, user.id, roles["admin_manager"].id)

        db_session.refresh(user)
        assert user.role_id == roles["employee"].id

    def test_missing_role(self, db_session, service, admin, roles):
        user = create_user(db_session, role=roles["employee"])
        with pytest.raises(RoleNotFoundError):
            service.assign_role(admin.id, user.id, uuid.uuid4())

    def test_missing_user(self, service, admin, roles):
        with pytest.raises(UserNotFoundError):
            service.assign_role(admin.id, uuid.uuid4(), roles["employee"].id)

    def test_malformed_id(self, service, admin, roles):
        with pytest.raises(ValidationError):
            service.assign_role(admin.id, "not-a-uuid", roles["employee"].id)

    def test_promotion_invalidates_cached_scope(self, db_session, service, cache, admin, roles):
        user = create_user(db_session, role=roles["employee"], team=create_team(db_session))
        assert service.engine.scope_for(user.id).is_self_only

        service.assign_role(admin.id, user.id, roles["admin_manager"].id)

        assert service.engine.scope_for(user.id).organization_wide


class TestTeamMembership:

    def test_admin_assigns_team(self, db_session, service, admin, roles):
        team = create_team(db_session, name="Billing")
        user = create_user(db_session, role=roles["employee"])

        service.assign_to_team(admin.id, user.id, team.id)

        db_session.refresh(user)
        assert user.team_id == team.id
        assert _actions(db_session) == ["assign_team"]

    def test_leader_manages_own_team(self, db_session, service, roles):
        team = create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"])
        create_team_leader(db_session, user=leader, team=team)
        user = create_user(db_session, role=roles["employee"])

        service.assign_to_team(leader.id, user.id, team.id)

        db_session.refresh(user)
        assert user.team_id == team.id

    def test_leader_cannot_manage_other_team(self, db_session, service, roles):
        led, other = create_team(db_session), create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"])
        create_team_leader(db_session, user=leader, team=led)
        user = create_user(db_session, role=roles["employee"])

        with pytest.raises(TeamAccessDeniedError):
            service.assign_to_team(leader.id, user.id, other.id)

        db_session.refresh(user)
        assert user.team_id is None
        assert _actions(db_session) == ["permission_violation_assign_team"]

    def test_employee_cannot_manage_own_team(self, db_session, service, roles):
        team = create_team(db_session)
        employee = create_user(db_session, role=roles["employee"], team=team)
        user = create_user(db_session, role=roles["employee"])

        with pytest.raises(TeamAccessDeniedError):
            service.assign_to_team(employee.id, user.id, team.id)

    def test_missing_team(self, db_session, service, admin, roles):
        user = create_user(db_session, role=roles["employee"])
        with pytest.raises(TeamNotFoundError):
            service.assign_to_team(admin.id, user.id, uuid.uuid4())

    def test_remove_from_team_drops_leadership(self, db_session, service, admin, roles):
        team = create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"], team=team)
        create_team_leader(db_session, user=leader, team=team)

        service.remove_from_team(admin.id, leader.id, team.id)

        db_session.refresh(leader)
        assert leader.team_id is None
        assert db_session.query(TeamLeader).count() == 0

    def test_remove_non_member_rejected(self, db_session, service, admin, roles):
        team = create_team(db_session)
        user = create_user(db_session, role=roles["employee"])

        with pytest.raises(ValidationError):
            service.remove_from_team(admin.id, user.id, team.id)


class TestTeamLeadership:

    def test_assign_leadership(self, db_session, service, cache, admin, roles):
        team = create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"])
        assert service.engine.scope_for(leader.id).is_self_only

        service.assign_team_leadership(admin.id, leader.id, team.id)

        assert service.engine.scope_for(leader.id).team_ids == {team.id}
        assert _actions(db_session) == ["assign_team_leadership"]

    def test_assign_leadership_is_idempotent(self, db_session, service, admin, roles):
        team = create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"])

        first = service.assign_team_leadership(admin.id, leader.id, team.id)
        second = service.assign_team_leadership(admin.id, leader.id, team.id)

        assert first.id == second.id
        assert db_session.query(TeamLeader).count() == 1

    def test_employee_cannot_lead(self, db_session, service, admin, roles):
        team = create_team(db_session)
        employee = create_user(db_session, role=roles["employee"])

        with pytest.raises(ValidationError):
            service.assign_team_leadership(admin.id, employee.id, team.id)

    def test_leader_cannot_appoint_leaders(self, db_session, service, roles):
        team = create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"])
        create_team_leader(db_session, user=leader, team=team)
        other = create_user(db_session, role=roles["team_leader"])

        with pytest.raises(InsufficientPermissionsError):
            service.assign_team_leadership(leader.id, other.id, team.id)

    def test_remove_leadership(self, db_session, service, admin, roles):
        team = create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"])
        create_team_leader(db_session, user=leader, team=team)

        service.remove_team_leadership(admin.id, leader.id, team.id)

        assert db_session.query(TeamLeader).count() == 0
        assert service.engine.scope_for(leader.id).is_self_only

    def test_remove_missing_leadership(self, db_session, service, admin, roles):
        team = create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"])

        with pytest.raises(ValidationError):
            service.remove_team_leadership(admin.id, leader.id, team.id)


class TestGetUserTeams:

    def test_primary_then_led_teams(self, db_session, service, admin, roles):
        home, led = create_team(db_session), create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"], team=home)
        create_team_leader(db_session, user=leader, team=home)
        create_team_leader(db_session, user=leader, team=led)

        teams = service.get_user_teams(admin.id, leader.id)

        assert [t.id for t in teams] == [home.id, led.id]

    def test_user_reads_own_teams(self, db_session, service, roles):
        team = create_team(db_session)
        employee = create_user(db_session, role=roles["employee"], team=team)

        assert [t.id for t in service.get_user_teams(employee.id, employee.id)] == [team.id]

    def test_employee_cannot_read_others(self, db_session, service, roles):
        team = create_team(db_session)
        employee = create_user(db_session, role=roles["employee"], team=team)
        colleague = create_user(db_session, role=roles["employee"], team=team)

        with pytest.raises(AccessDeniedError):
            service.get_user_teams(employee.id, colleague.id)

    def test_leader_reads_team_members(self, db_session, service, roles):
        team = create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"])
        create_team_leader(db_session, user=leader, team=team)
        member = create_user(db_session, role=roles["employee"], team=team)

        assert [t.id for t in service.get_user_teams(leader.id, member.id)] == [team.id]


class TestGetUserRole:

    def test_admin_reads_any_role(self, db_session, service, admin, roles):
        employee = create_user(db_session, role=roles["employee"])

        assert service.get_user_role(admin.id, employee.id).id == roles["employee"].id

    def test_employee_reads_own_role_only(self, db_session, service, roles):
        team = create_team(db_session)
        employee = create_user(db_session, role=roles["employee"], team=team)
        colleague = create_user(db_session, role=roles["employee"], team=team)

        assert service.get_user_role(employee.id, employee.id).name == "Employee"
        with pytest.raises(AccessDeniedError):
            service.get_user_role(employee.id, colleague.id)

    def test_user_without_role(self, db_session, service, admin):
        user = create_user(db_session)

        with pytest.raises(RoleNotFoundError):
            service.get_user_role(admin.id, user.id)

    def test_missing_user(self, service, admin):
        with pytest.raises(UserNotFoundError):
            service.get_user_role(admin.id, uuid.uuid4())


class TestGetUsersByRole:

    def test_admin_lists_all_holders(self, db_session, service, admin, roles):
        support, billing = create_team(db_session), create_team(db_session)
        first = create_user(db_session, role=roles["employee"], team=support, email="a@example.com")
        second = create_user(db_session, role=roles["employee"], team=billing, email="b@example.com")
        create_user(db_session, role=roles["employee"], team=billing, deleted_at=datetime.utcnow())

        users = service.get_users_by_role(admin.id, roles["employee"].id)

        assert [u.id for u in users] == [first.id, second.id]

    def test_missing_role(self, service, admin):
        with pytest.raises(RoleNotFoundError):
            service.get_users_by_role(admin.id, uuid.uuid4())

    def test_leader_sees_own_teams_only(self, db_session, service, roles):
        support, billing = create_team(db_session), create_team(db_session)
        leader = create_user(db_session, role=roles["team_leader"], team=support)
        member = create_user(db_session, role=roles["employee"], team=support)
        create_user(db_session, role=roles["employee"], team=billing)

        users = service.get_users_by_role(leader.id, roles["employee"].id)

        assert [u.id for u in users] == [member.id]

    def test_employee_sees_only_self(self, db_session, service, roles):
        team = create_team(db_session)
        employee = create_user(db_session, role=roles["employee"], team=team)
        create_user(db_session, role=roles["employee"], team=team)

        assert [u.id for u in service.get_users_by_role(employee.id, roles["employee"].id)] == [employee.id]
        assert service.get_users_by_role(employee.id, roles["admin_manager"].id) == []
