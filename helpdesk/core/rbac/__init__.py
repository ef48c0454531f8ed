"""RBAC (Role-Based Access Control) module for the helpdesk.

This module defines the permission model, the grant table, access scopes,
the permission engine and the RBAC middleware.
"""

from .permissions import Permission, Resource, Action, RoleName, PERMISSION_DEFINITIONS
from .roles import GrantScope, GrantTable, GrantTableError, build_default_grant_table
from .scope import AccessScope, AccessScopeResolver
from .cache import ScopeCache, MemoryCacheStore, RedisCacheStore, NullCacheStore, build_scope_cache
from .engine import Decision, PermissionEngine, ResourceContext
from .middleware import RBACConfig, RBACDenied, RBACResult, RequestContext, with_rbac

__all__ = [
    "Permission",
    "Resource",
    "Action",
    "RoleName",
    "PERMISSION_DEFINITIONS",
    "GrantScope",
    "GrantTable",
    "GrantTableError",
    "build_default_grant_table",
    "AccessScope",
    "AccessScopeResolver",
    "ScopeCache",
    "MemoryCacheStore",
    "RedisCacheStore",
    "NullCacheStore",
    "build_scope_cache",
    "Decision",
    "PermissionEngine",
    "ResourceContext",
    "RBACConfig",
    "RBACDenied",
    "RBACResult",
    "RequestContext",
    "with_rbac",
]
