from helpdesk.api.schemas.common import (
    AccessScopeResponse,
    ErrorResponse,
    Pagination,
    TeamResponse,
    UserResponse,
)

__all__ = [
    "AccessScopeResponse",
    "ErrorResponse",
    "Pagination",
    "TeamResponse",
    "UserResponse",
]
