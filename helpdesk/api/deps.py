from functools import lru_cache
from typing import Generator, Optional, Union

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from helpdesk.core.config import get_settings
from helpdesk.core.rbac.cache import ScopeCache, build_scope_cache
from helpdesk.core.rbac.engine import PermissionEngine, ResourceContext
from helpdesk.core.rbac.errors import UnauthenticatedError
from helpdesk.core.rbac.middleware import RBACConfig, RBACDenied, RequestContext, with_rbac
from helpdesk.core.rbac.permissions import Action, Resource
from helpdesk.core.rbac.roles import GrantTable, build_default_grant_table
from helpdesk.core.rbac.scope import AccessScopeResolver
from helpdesk.core.security import decode_token
from helpdesk.db.models import User
from helpdesk.db.session import SessionLocal
from helpdesk.services.audit import AuditLogger
from helpdesk.services.roles import RoleService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_grant_table() -> GrantTable:
    return build_default_grant_table()


@lru_cache
def get_scope_cache() -> ScopeCache:
    settings = get_settings()
    return build_scope_cache(
        settings.rbac_cache_backend,
        settings.rbac_scope_cache_ttl,
        redis_url=settings.redis_url,
    )


@lru_cache
def get_audit_logger() -> AuditLogger:
    return AuditLogger(SessionLocal, export_limit=get_settings().audit_export_limit)


def get_engine(
    db: Session = Depends(get_db),
    grants: GrantTable = Depends(get_grant_table),
    cache: ScopeCache = Depends(get_scope_cache),
) -> PermissionEngine:
    resolver = AccessScopeResolver(db, cache, max_led_teams=get_settings().rbac_max_led_teams)
    return PermissionEngine(db, grants, resolver)


def get_role_service(
    db: Session = Depends(get_db),
    engine: PermissionEngine = Depends(get_engine),
    audit: AuditLogger = Depends(get_audit_logger),
    cache: ScopeCache = Depends(get_scope_cache),
) -> RoleService:
    return RoleService(db, engine, audit, cache)


def get_optional_user(
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(oauth2_scheme),
) -> Optional[User]:
    """Resolve the bearer token to an active user, or None."""
    if not token:
        return None

    user_id = decode_token(token)
    if user_id is None:
        return None

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_available:
        return None
    return user


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    """Get current authenticated user from the JWT bearer token."""
    if user is None:
        raise UnauthenticatedError("Could not validate credentials")
    return user


class RBACDependency:
    """
    FastAPI dependency running ``with_rbac`` in front of an endpoint.

    Usage:
        @router.get("/{ticket_id}")
        async def get_ticket(
            ticket_id: UUID,
            current_user: User = Depends(RBACDependency(
                Action.READ, Resource.TICKETS,
                audit_action="view_ticket",
                resource_id_param="ticket_id",
            )),
        ):
            ...

    Returns the authenticated user (None only when ``require_auth`` is off).
    """

    def __init__(
        self,
        action: Optional[Union[Action, str]] = None,
        resource: Optional[Union[Resource, str]] = None,
        *,
        audit_action: Optional[str] = None,
        require_auth: bool = True,
        resource_id_param: Optional[str] = None,
    ):
        self.required_permission = (action, resource) if action and resource else None
        self.audit_action = audit_action
        self.require_auth = require_auth
        self.resource_id_param = resource_id_param

    def __call__(
        self,
        request: Request,
        user: Optional[User] = Depends(get_optional_user),
        engine: PermissionEngine = Depends(get_engine),
        audit: AuditLogger = Depends(get_audit_logger),
    ) -> Optional[User]:
        context = None
        if self.resource_id_param:
            context = ResourceContext(resource_id=request.path_params.get(self.resource_id_param))

        config = RBACConfig(
            require_auth=self.require_auth,
            required_permission=self.required_permission,
            audit_action=self.audit_action,
            context=context,
        )
        result = with_rbac(
            RequestContext.from_request(request, user.id if user else None),
            config,
            engine=engine,
            audit=audit,
        )
        if not result.allowed:
            raise RBACDenied(result)
        return user
