"""RBAC middleware.

``with_rbac`` is the single entry point protecting a handler: it checks
authentication, evaluates the required permission through the permission
engine and records one audit entry when an audit action is configured.
It returns a result instead of raising, so it can sit in front of any
handler; ``helpdesk.api.deps.RBACDependency`` adapts it to FastAPI.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple, Union

from fastapi import Request

from .engine import Decision, PermissionEngine, ResourceContext
from .errors import (
    AccessControlError,
    ErrorCode,
    UnauthenticatedError,
    internal_error_response,
    to_error_response,
)
from .permissions import Action, Resource

if TYPE_CHECKING:
    from helpdesk.services.audit import AuditLogger

logger = logging.getLogger(__name__)

VIOLATION_PREFIX = "permission_violation_"

# Sensitive fields to redact from audit details
SENSITIVE_FIELDS = {
    "password",
    "password_hash",
    "token",
    "access_token",
    "refresh_token",
    "api_key",
    "secret",
    "client_secret",
}

# Decision codes that are not plain 403 denials
DECISION_STATUS = {
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 400,
}


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # First hop is the original client
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def redact_sensitive(data: Any) -> Any:
    """Redact sensitive fields from data."""
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if k.lower() in SENSITIVE_FIELDS else redact_sensitive(v)
            for k, v in data.items()
        }
    elif isinstance(data, list):
        return [redact_sensitive(item) for item in data]
    return data


@dataclass(frozen=True)
class RequestContext:
    """What the middleware needs to know about an incoming request."""

    user_id: Optional[uuid.UUID] = None
    method: str = "GET"
    path: str = "/"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request, user_id: Optional[uuid.UUID] = None) -> "RequestContext":
        return cls(
            user_id=user_id,
            method=request.method,
            path=request.url.path,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            request_id=request.headers.get("x-request-id") or str(uuid.uuid4())[:8],
        )


@dataclass(frozen=True)
class RBACConfig:
    require_auth: bool = True
    required_permission: Optional[Tuple[Union[Action, str], Union[Resource, str]]] = None
    audit_action: Optional[str] = None
    context: Optional[ResourceContext] = None


@dataclass(frozen=True)
class RBACResult:
    allowed: bool
    status_code: int = 200
    body: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls) -> "RBACResult":
        return cls(True)

    @classmethod
    def denied(cls, status_code: int, body: Dict[str, Any]) -> "RBACResult":
        return cls(False, status_code, body)


class RBACDenied(Exception):
    """Raised by the FastAPI adapter; rendered by the app's exception handler."""

    def __init__(self, result: RBACResult):
        super().__init__(result.body.get("message", "Access denied"))
        self.result = result

    @property
    def status_code(self) -> int:
        return self.result.status_code


def _decision_body(decision: Decision, action: str, resource: str) -> Dict[str, Any]:
    required = decision.required_permission or f"{resource}:{action}"
    body = {
        "error": "PermissionDenied",
        "code": decision.code.value,
        "message": f"Cannot {action} {resource}: {decision.reason}",
    }
    if decision.code is not ErrorCode.VALIDATION_ERROR:
        body["required_permission"] = required
    return body


def _evaluate(
    request: RequestContext,
    config: RBACConfig,
    engine: PermissionEngine,
) -> Tuple[RBACResult, Optional[Decision]]:
    if request.user_id is None and config.require_auth:
        return RBACResult.denied(401, to_error_response(UnauthenticatedError())), None

    if config.required_permission is None:
        return RBACResult.ok(), None

    action, resource = config.required_permission
    decision = engine.authorize(request.user_id, action, resource, config.context)
    if decision.allowed:
        return RBACResult.ok(), decision

    status_code = DECISION_STATUS.get(decision.code, 403)
    body = _decision_body(decision, getattr(action, "value", action), getattr(resource, "value", resource))
    return RBACResult.denied(status_code, body), decision


def with_rbac(
    request: RequestContext,
    config: RBACConfig,
    *,
    engine: PermissionEngine,
    audit: Optional["AuditLogger"] = None,
) -> RBACResult:
    """Authenticate and authorize a request, auditing the outcome."""
    decision = None
    try:
        result, decision = _evaluate(request, config, engine)
    except AccessControlError as e:
        result = RBACResult.denied(e.status_code, to_error_response(e))
    except Exception:
        logger.exception("RBAC evaluation failed for %s %s", request.method, request.path)
        result = RBACResult.denied(500, internal_error_response())

    if config.audit_action and audit is not None:
        _record(audit, request, config, result, decision)

    return result


def _record(
    audit: "AuditLogger",
    request: RequestContext,
    config: RBACConfig,
    result: RBACResult,
    decision: Optional[Decision],
) -> None:
    resource_type = "unknown"
    if config.required_permission is not None:
        resource_type = getattr(config.required_permission[1], "value", config.required_permission[1])
    resource_id = config.context.resource_id if config.context is not None else None

    action = config.audit_action
    if decision is not None and not decision.allowed:
        action = f"{VIOLATION_PREFIX}{config.audit_action}"

    details = {
        "method": request.method,
        "path": request.path,
        "status_code": result.status_code,
    }
    if not result.allowed:
        details["code"] = result.body.get("code")
        if result.body.get("required_permission"):
            details["required_permission"] = result.body["required_permission"]

    audit.log_action(
        action=action,
        resource_type=resource_type,
        user_id=request.user_id,
        resource_id=resource_id,
        success=result.allowed,
        details=redact_sensitive(details),
        ip_address=request.ip_address,
        user_agent=request.user_agent,
        request_id=request.request_id,
    )
