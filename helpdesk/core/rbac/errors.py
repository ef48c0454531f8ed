"""Access control error taxonomy.

Each error carries a machine-readable code and the HTTP status it maps to,
so routers and the RBAC middleware can render them uniformly.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    ACCESS_DENIED = "ACCESS_DENIED"
    ROLE_ASSIGNMENT_DENIED = "ROLE_ASSIGNMENT_DENIED"
    TEAM_ACCESS_DENIED = "TEAM_ACCESS_DENIED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    TEAM_NOT_FOUND = "TEAM_NOT_FOUND"
    ROLE_NOT_FOUND = "ROLE_NOT_FOUND"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class AccessControlError(Exception):
    """Base class for errors raised by access-controlled operations."""

    status_code = 403

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        required_permission: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.required_permission = required_permission
        if status_code is not None:
            self.status_code = status_code

    @property
    def name(self) -> str:
        return type(self).__name__


class UnauthenticatedError(AccessControlError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, ErrorCode.UNAUTHENTICATED)


class InsufficientPermissionsError(AccessControlError):
    """The grant table does not allow this action for the caller's role."""

    def __init__(self, action: str, resource: str, required_permission: Optional[str] = None):
        super().__init__(
            f"Insufficient permissions to {action} {resource}",
            ErrorCode.INSUFFICIENT_PERMISSIONS,
            required_permission or f"{resource}:{action}",
        )


class AccessDeniedError(AccessControlError):
    """The role may perform the action, but not on this particular resource."""

    def __init__(self, action: str, resource: str, resource_id: Optional[Any] = None):
        target = f"{resource} '{resource_id}'" if resource_id is not None else resource
        super().__init__(
            f"Access denied to {action} {target}",
            ErrorCode.ACCESS_DENIED,
            f"{resource}:{action}",
        )


class RoleAssignmentDeniedError(AccessControlError):
    def __init__(self, role_id: Any, target_user_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"Permission denied to assign role '{role_id}' to user '{target_user_id}'",
            ErrorCode.ROLE_ASSIGNMENT_DENIED,
            "roles:assign",
        )


class TeamAccessDeniedError(AccessControlError):
    def __init__(self, team_id: Any, user_id: Any):
        super().__init__(
            f"Access denied to team '{team_id}' for user '{user_id}'",
            ErrorCode.TEAM_ACCESS_DENIED,
            "teams:read",
        )


class UserNotFoundError(AccessControlError):
    status_code = 404

    def __init__(self, user_id: Any):
        super().__init__(f"User with ID '{user_id}' not found", ErrorCode.USER_NOT_FOUND)


class TeamNotFoundError(AccessControlError):
    status_code = 404

    def __init__(self, team_id: Any):
        super().__init__(f"Team with ID '{team_id}' not found", ErrorCode.TEAM_NOT_FOUND)


class RoleNotFoundError(AccessControlError):
    status_code = 404

    def __init__(self, role_id: Any):
        super().__init__(f"Role with ID '{role_id}' not found", ErrorCode.ROLE_NOT_FOUND)


class ResourceNotFoundError(AccessControlError):
    status_code = 404

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} with ID '{resource_id}' not found",
            ErrorCode.RESOURCE_NOT_FOUND,
        )


class ValidationError(AccessControlError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR)
        self.field = field


def to_error_response(error: AccessControlError) -> Dict[str, Any]:
    """Render an access control error as the JSON body returned to clients."""
    body = {
        "error": error.name,
        "code": error.code.value,
        "message": error.message,
    }
    if error.required_permission:
        body["required_permission"] = error.required_permission
    return body


def internal_error_response() -> Dict[str, Any]:
    return {
        "error": "InternalServerError",
        "code": ErrorCode.INTERNAL_SERVER_ERROR.value,
        "message": "An internal error occurred",
    }
