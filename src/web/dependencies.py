"""
FastAPI Dependency Injection for database sessions.

Usage in endpoints:
    @router.get("/api/tickets")
    def list_tickets(db: Session = Depends(get_db)):
        ...

Mutations that change a user's role or team commit explicitly and then
invalidate the user's cached permissions before responding.
"""

from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from core.service_registry import DB_SESSION_FACTORY, ServiceRegistry
from database.connection import session_scope
from rbac.dependencies import get_services


def get_db(services: ServiceRegistry = Depends(get_services)) -> Generator[Session, None, None]:
    """Request-scoped session; commits on success, rolls back on error."""
    with session_scope(services.require(DB_SESSION_FACTORY)) as session:
        yield session
