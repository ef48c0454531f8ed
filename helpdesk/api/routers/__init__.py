"""API routers for the helpdesk."""

from . import audit
from . import teams
from . import tickets
from . import users

__all__ = [
    "audit",
    "teams",
    "tickets",
    "users",
]
