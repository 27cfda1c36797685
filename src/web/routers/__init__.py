"""
FastAPI Routers - Modular endpoint organization.

Router modules:
- auth: session logout
- users: user listing, role/team assignment, soft delete
- teams: team listing, members, deletion
- tickets: scope-filtered tickets, updates, assignment
- cache: permission cache monitoring (admin)
"""

from .auth import router as auth_router
from .users import router as users_router
from .teams import router as teams_router
from .tickets import router as tickets_router
from .cache import router as cache_router

__all__ = [
    "auth_router",
    "users_router",
    "teams_router",
    "tickets_router",
    "cache_router",
]
