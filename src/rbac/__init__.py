"""
Helpdesk Role-Based Access Control (RBAC)

Three role kinds with fixed default reach:

    Admin/Manager   - organization-wide
    Team Leader     - primary team plus led teams, and own records
    User/Employee   - own records only (created, assigned, customer, following)

Usage:
    from rbac import PermissionEngine, PermissionCache, Action, ResourceType

    engine = PermissionEngine(store, cache)
    engine.check_permission(user_id, Action.READ, ResourceType.TICKETS)
    scope = engine.require_access_scope(user_id, Action.READ, ResourceType.TICKETS)
    predicate = TICKET_FILTER.to_filter(scope)

FastAPI dependencies live in rbac.dependencies.
"""

from .roles import RoleKind, RoleInfo, ROLES, get_role_info, resolve_role_kind
from .permissions import (
    Action,
    ResourceType,
    GrantScope,
    PermissionGrant,
    DEFAULT_ROLE_GRANTS,
    get_default_grants,
    permission_string,
)
from .scope import AccessScope, RecordRef, ScopeKind
from .errors import (
    AuthorizationError,
    NoRoleError,
    InsufficientPermissionsError,
    ScopeConflictError,
    StoreUnavailableError,
)
from .store import (
    RoleRecord,
    UserRecord,
    SessionRecord,
    UserSnapshot,
    InMemoryRBACStore,
)
from .cache import PermissionCache, SessionValidation, assess_cache_health
from .audit import DecisionRecord, LoggingAuditSink, MemoryAuditSink
from .engine import DecisionReason, PermissionDecision, PermissionEngine
from .sessions import SessionValidator
from .filters import (
    ListFilters,
    TICKET_FILTER,
    USER_FILTER,
    TEAM_FILTER,
    ARTICLE_FILTER,
    get_scope_filter,
)

__all__ = [
    # Roles
    "RoleKind",
    "RoleInfo",
    "ROLES",
    "get_role_info",
    "resolve_role_kind",

    # Permissions
    "Action",
    "ResourceType",
    "GrantScope",
    "PermissionGrant",
    "DEFAULT_ROLE_GRANTS",
    "get_default_grants",
    "permission_string",

    # Scope
    "AccessScope",
    "RecordRef",
    "ScopeKind",

    # Errors
    "AuthorizationError",
    "NoRoleError",
    "InsufficientPermissionsError",
    "ScopeConflictError",
    "StoreUnavailableError",

    # Store
    "RoleRecord",
    "UserRecord",
    "SessionRecord",
    "UserSnapshot",
    "InMemoryRBACStore",

    # Cache
    "PermissionCache",
    "SessionValidation",
    "assess_cache_health",

    # Audit
    "DecisionRecord",
    "LoggingAuditSink",
    "MemoryAuditSink",

    # Engine
    "DecisionReason",
    "PermissionDecision",
    "PermissionEngine",
    "SessionValidator",

    # Filters
    "ListFilters",
    "TICKET_FILTER",
    "USER_FILTER",
    "TEAM_FILTER",
    "ARTICLE_FILTER",
    "get_scope_filter",
]
