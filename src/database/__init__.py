"""
Database Layer for the helpdesk RBAC service.

This module provides:
- SQLAlchemy ORM models for roles, grants, teams, users, sessions and tickets
- Engine and session management
- The SQLAlchemy-backed RBAC store and default role seeding
- Compilation of scope filters to SQL
"""

from .models import (
    Base,
    Role,
    RolePermission,
    Team,
    TeamLeader,
    User,
    UserSession,
    Ticket,
    TicketFollower,
)
from .connection import (
    create_sync_engine,
    create_session_factory,
    init_schema,
    session_scope,
    dispose_engine,
)
from .rbac_store import SQLAlchemyRBACStore, seed_default_roles
from .query_helpers import compile_predicate

__all__ = [
    # Models
    "Base",
    "Role",
    "RolePermission",
    "Team",
    "TeamLeader",
    "User",
    "UserSession",
    "Ticket",
    "TicketFollower",
    # Connection
    "create_sync_engine",
    "create_session_factory",
    "init_schema",
    "session_scope",
    "dispose_engine",
    # Store
    "SQLAlchemyRBACStore",
    "seed_default_roles",
    "compile_predicate",
]
