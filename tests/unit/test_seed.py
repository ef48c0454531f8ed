"""Tests for role seeding."""

import pytest

from helpdesk.db.models import Role
from helpdesk.db.seed import seed_default_roles


pytestmark = pytest.mark.db


class TestSeedDefaultRoles:

    def test_creates_system_roles(self, db_session):
        roles = seed_default_roles(db_session)

        assert set(roles) == {"admin_manager", "team_leader", "employee"}
        assert {r.name for r in db_session.query(Role)} == {"Admin/Manager", "Team Leader", "Employee"}
        assert all(r.is_system for r in roles.values())

    def test_idempotent(self, db_session):
        first = seed_default_roles(db_session)
        second = seed_default_roles(db_session)

        assert db_session.query(Role).count() == 3
        assert {k: r.id for k, r in first.items()} == {k: r.id for k, r in second.items()}
