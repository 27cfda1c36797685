"""
Database Connection Module

Engine and session management for the RBAC store. Engines are created
explicitly and owned by the caller (the application lifespan), so tests can
run several isolated databases side by side.

Usage:
    engine = create_sync_engine(settings)
    factory = create_session_factory(engine)

    with session_scope(factory) as session:
        session.add(record)
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool, QueuePool, StaticPool

from config.database import DatabaseSettings, get_database_settings

from .models import Base

logger = logging.getLogger(__name__)


def create_sync_engine(settings: Optional[DatabaseSettings] = None) -> Engine:
    """
    Create a synchronous SQLAlchemy engine.

    Args:
        settings: Database settings. If None, loads from environment.

    Returns:
        Engine: Synchronous SQLAlchemy engine.
    """
    settings = settings or get_database_settings()

    logger.info(
        "Creating sync database engine",
        extra={"sqlite": settings.is_sqlite, "memory": settings.is_memory},
    )

    # Pool configuration differs for SQLite vs PostgreSQL
    if settings.is_memory:
        pool_class = StaticPool
        pool_kwargs = {}
    elif settings.is_sqlite:
        pool_class = NullPool
        pool_kwargs = {}
    else:
        pool_class = QueuePool
        pool_kwargs = {
            "pool_size": settings.pool_size,
            "max_overflow": settings.max_overflow,
            "pool_timeout": settings.pool_timeout,
            "pool_recycle": settings.pool_recycle,
            "pool_pre_ping": settings.pool_pre_ping,
        }

    return create_engine(
        settings.sync_url,
        echo=settings.echo_sql,
        poolclass=pool_class,
        connect_args=settings.get_connect_args(),
        **pool_kwargs,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to engine."""
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )


def init_schema(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Transactional session as a context manager.

    Yields:
        Session: SQLAlchemy session that commits on success, rolls back on error.
    """
    session = factory()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine(engine: Engine) -> None:
    """Close all pooled connections. Call during application shutdown."""
    logger.info("Closing sync database engine")
    engine.dispose()
