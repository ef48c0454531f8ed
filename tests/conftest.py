"""Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database. The settings module reads
the environment on first import, so the overrides below must run before any
``helpdesk`` module is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RBAC_CACHE_BACKEND", "none")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import helpdesk.db.models  # noqa: F401
from helpdesk.core.rbac.cache import MemoryCacheStore, ScopeCache
from helpdesk.core.rbac.engine import PermissionEngine
from helpdesk.core.rbac.roles import build_default_grant_table
from helpdesk.core.rbac.scope import AccessScopeResolver
from helpdesk.db.base import Base
from helpdesk.db.seed import seed_default_roles
from helpdesk.services.audit import AuditLogger


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def roles(db_session):
    """The three system roles keyed by admin_manager, team_leader and employee."""
    return seed_default_roles(db_session)


@pytest.fixture
def grants():
    return build_default_grant_table()


@pytest.fixture
def scope_cache():
    return ScopeCache(MemoryCacheStore(), ttl=60)


@pytest.fixture
def engine(db_session, grants):
    """Permission engine without caching, so every check reads the database."""
    return PermissionEngine(db_session, grants, AccessScopeResolver(db_session))


@pytest.fixture
def audit(session_factory):
    return AuditLogger(session_factory)


@pytest.fixture
def client(db_session, session_factory, grants):
    """FastAPI test client bound to the per-test database."""
    from helpdesk.api import deps
    from helpdesk.api.main import app
    from helpdesk.core.rbac.cache import NullCacheStore

    def _get_db():
        yield db_session

    app.dependency_overrides[deps.get_db] = _get_db
    app.dependency_overrides[deps.get_grant_table] = lambda: grants
    app.dependency_overrides[deps.get_scope_cache] = lambda: ScopeCache(NullCacheStore())
    app.dependency_overrides[deps.get_audit_logger] = lambda: AuditLogger(session_factory)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user."""
    from helpdesk.core.security import create_access_token

    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers
