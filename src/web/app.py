"""
FastAPI application for the helpdesk permission engine.

Routes:
- POST   /api/auth/logout        : end the current session
- GET    /api/users/me           : caller profile, role and access scope
- GET    /api/users              : users visible to the caller
- GET    /api/users/{id}         : one user (record-level check)
- PUT    /api/users/{id}/role    : assign a role
- PUT    /api/users/{id}/team    : assign a team
- DELETE /api/users/{id}         : soft delete a user
- GET    /api/teams              : teams visible to the caller
- GET    /api/teams/{id}/members : members of a team
- DELETE /api/teams/{id}         : delete a team
- GET    /api/tickets            : tickets visible to the caller
- GET    /api/tickets/{id}       : one ticket (record-level check)
- PATCH  /api/tickets/{id}       : update a ticket
- GET    /api/cache-stats        : permission cache statistics (admin)
- POST   /api/cache-stats        : clear or clean up the cache (admin)
- GET    /health                 : liveness

Services (database engine, RBAC store, permission cache, engine, session
validator) are built in the lifespan and kept in a per-app ServiceRegistry.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from config.database import DatabaseSettings, get_database_settings
from config.settings import Settings, get_settings
from core.service_registry import (
    AUDIT_SINK,
    DB_ENGINE,
    DB_SESSION_FACTORY,
    PERMISSION_CACHE,
    PERMISSION_ENGINE,
    RBAC_STORE,
    SESSION_VALIDATOR,
    SETTINGS,
    ServiceRegistry,
)
from database.connection import (
    create_session_factory,
    create_sync_engine,
    dispose_engine,
    init_schema,
    session_scope,
)
from database.rbac_store import SQLAlchemyRBACStore, seed_default_roles
from rbac.audit import LoggingAuditSink
from rbac.cache import PermissionCache
from rbac.engine import PermissionEngine
from rbac.roles import aliases_from_settings
from rbac.sessions import SessionValidator
from security.api_errors import RequestIDMiddleware, register_exception_handlers
from web.routers import (
    auth_router,
    cache_router,
    teams_router,
    tickets_router,
    users_router,
)

logger = logging.getLogger(__name__)


# =============================================================================
# SERVICES
# =============================================================================

def build_services(settings: Settings, db_settings: DatabaseSettings) -> ServiceRegistry:
    """
    Build and wire all services for one application instance.

    Shutdown hooks run in reverse order: the cache cleanup thread stops
    before the database engine is disposed.
    """
    registry = ServiceRegistry()
    registry.register(SETTINGS, settings)

    db_engine = create_sync_engine(db_settings)
    init_schema(db_engine)
    session_factory = create_session_factory(db_engine)
    registry.register(DB_ENGINE, db_engine, shutdown=lambda: dispose_engine(db_engine))
    registry.register(DB_SESSION_FACTORY, session_factory)

    if settings.seed_default_roles:
        with session_scope(session_factory) as session:
            seed_default_roles(session)

    store = SQLAlchemyRBACStore(session_factory, aliases_from_settings(settings.rbac))
    registry.register(RBAC_STORE, store)

    cache = PermissionCache(settings.cache)
    cache.start()
    registry.register(PERMISSION_CACHE, cache, shutdown=cache.shutdown)

    audit_sink = LoggingAuditSink()
    registry.register(AUDIT_SINK, audit_sink)

    engine = PermissionEngine(
        store,
        cache,
        audit_sink=audit_sink,
        emit_allowed=settings.rbac.emit_allowed_decisions,
    )
    registry.register(PERMISSION_ENGINE, engine)
    registry.register(SESSION_VALIDATOR, SessionValidator(store, engine, cache))

    logger.info(
        f"Services ready: {', '.join(registry.registered_names)}",
        extra={"environment": settings.environment},
    )
    return registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    registry = build_services(app.state.settings, app.state.db_settings)
    app.state.services = registry
    try:
        yield
    finally:
        registry.shutdown()
        logger.info("Services shut down")


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    db_settings: Optional[DatabaseSettings] = None,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
    app.state.settings = settings
    app.state.db_settings = db_settings or get_database_settings()

    register_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(teams_router)
    app.include_router(tickets_router)
    app.include_router(cache_router)

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "healthy", "app": settings.app_name}

    return app
