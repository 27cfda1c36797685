"""
FastAPI Dependencies

Route protection built on the permission engine. Services are taken from
the application's ServiceRegistry (request.app.state.services).

Usage:
    from rbac.dependencies import require_auth, require_permission, require_access_scope

    @router.get("/me")
    def me(user: UserSnapshot = Depends(require_auth)):
        ...

    @router.post("/teams")
    def create_team(user: UserSnapshot = Depends(require_permission(Action.CREATE, ResourceType.TEAMS))):
        ...

    @router.get("/tickets")
    def list_tickets(scope: AccessScope = Depends(require_access_scope(Action.READ, ResourceType.TICKETS))):
        ...

A missing or invalid session is rejected with 401 before the engine is
consulted. Denials raise InsufficientPermissionsError (403).
"""

import logging
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config.settings import Settings
from core.service_registry import (
    PERMISSION_ENGINE,
    SESSION_VALIDATOR,
    SETTINGS,
    ServiceRegistry,
)

from .cache import SessionValidation
from .engine import PermissionEngine
from .errors import InsufficientPermissionsError
from .permissions import Action, ResourceType
from .roles import RoleKind
from .scope import AccessScope
from .sessions import SessionValidator
from .store import UserSnapshot

logger = logging.getLogger(__name__)


# =============================================================================
# HTTP BEARER SECURITY
# =============================================================================

security = HTTPBearer(auto_error=False)


# =============================================================================
# SERVICES
# =============================================================================

def get_services(request: Request) -> ServiceRegistry:
    return request.app.state.services


def get_engine(services: ServiceRegistry = Depends(get_services)) -> PermissionEngine:
    return services.require(PERMISSION_ENGINE)


def get_session_validator(services: ServiceRegistry = Depends(get_services)) -> SessionValidator:
    return services.require(SESSION_VALIDATOR)


# =============================================================================
# AUTHENTICATION
# =============================================================================

def get_session_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: ServiceRegistry = Depends(get_services),
) -> Optional[str]:
    """Session token from the session cookie, falling back to a Bearer header."""
    settings: Settings = services.require(SETTINGS)
    token = request.cookies.get(settings.rbac.session_cookie_name)
    if token:
        return token
    if credentials is not None:
        return credentials.credentials
    return None


def get_current_session(
    request: Request,
    token: Optional[str] = Depends(get_session_token),
    validator: SessionValidator = Depends(get_session_validator),
) -> SessionValidation:
    """
    Validate the session for the current request.

    The result is cached on request.state for the rest of the request.
    """
    cached = getattr(request.state, "rbac_session", None)
    if cached is not None:
        return cached

    validation = validator.validate(token)
    if validation is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.rbac_session = validation
    return validation


def require_auth(validation: SessionValidation = Depends(get_current_session)) -> UserSnapshot:
    """Require an authenticated user and return their snapshot."""
    return validation.snapshot


# =============================================================================
# AUTHORIZATION
# =============================================================================

def require_permission(action: Action, resource: ResourceType) -> Callable:
    """
    Require (action, resource) for the current user.

    Usage:
        @router.put("/users/{user_id}/role")
        def assign_role(user = Depends(require_permission(Action.ASSIGN, ResourceType.ROLES))):
            ...
    """

    def dependency(
        user: UserSnapshot = Depends(require_auth),
        engine: PermissionEngine = Depends(get_engine),
    ) -> UserSnapshot:
        engine.require_permission(user.user_id, action, resource)
        return user

    dependency.__name__ = f"require_{resource.value}_{action.value}"
    return dependency


def require_access_scope(action: Action, resource: ResourceType) -> Callable:
    """Require (action, resource) and return the AccessScope to filter lists by."""

    def dependency(
        user: UserSnapshot = Depends(require_auth),
        engine: PermissionEngine = Depends(get_engine),
    ) -> AccessScope:
        return engine.require_access_scope(user.user_id, action, resource)

    dependency.__name__ = f"scope_{resource.value}_{action.value}"
    return dependency


def require_role(*kinds: RoleKind) -> Callable:
    """
    Require one of the given role kinds.

    Used for operational endpoints that are not tied to a resource grant.
    """
    allowed = frozenset(kinds)

    def dependency(
        user: UserSnapshot = Depends(require_auth),
        engine: PermissionEngine = Depends(get_engine),
    ) -> UserSnapshot:
        snapshot = engine.get_user_snapshot(user.user_id)
        if snapshot is None or not snapshot.is_authorizable or snapshot.role_kind not in allowed:
            logger.info(
                f"Role check failed for user {user.user_id}",
                extra={"user_id": user.user_id, "required_roles": sorted(k.value for k in allowed)},
            )
            raise InsufficientPermissionsError(
                "role:" + "|".join(sorted(k.value for k in allowed)),
                reason="ROLE_LACKS_GRANT",
            )
        return snapshot

    return dependency


require_admin = require_role(RoleKind.ADMIN)
