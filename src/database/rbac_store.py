"""
SQLAlchemy-backed role/permission and session store.

Implements rbac.store.RolePermissionStore and rbac.store.SessionStore.
Role names are resolved into RoleKind here, once, on the way out of the
database. Any SQLAlchemy failure surfaces as StoreUnavailableError.
"""

import logging
from typing import FrozenSet, Iterable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from rbac.errors import StoreUnavailableError
from rbac.permissions import (
    DEFAULT_ROLE_GRANTS,
    Action,
    GrantScope,
    PermissionGrant,
    ResourceType,
)
from rbac.roles import ROLES, RoleKind, build_alias_index, resolve_role_kind
from rbac.store import RoleRecord, SessionRecord, UserRecord

from .models import Role, RolePermission, TeamLeader, User, UserSession

logger = logging.getLogger(__name__)


def _to_grant(row: RolePermission) -> Optional[PermissionGrant]:
    try:
        return PermissionGrant(
            action=Action(row.action),
            resource=ResourceType(row.resource),
            scope=GrantScope(row.scope) if row.scope else None,
        )
    except ValueError:
        logger.warning(
            f"Ignoring unknown grant {row.resource}:{row.action} on role {row.role_id}",
            extra={"role_id": row.role_id},
        )
        return None


class SQLAlchemyRBACStore:
    """Reads RBAC data through short-lived sessions from session_factory."""

    def __init__(
        self,
        session_factory: sessionmaker,
        role_aliases: Optional[Mapping[RoleKind, Iterable[str]]] = None,
    ):
        self._session_factory = session_factory
        self._alias_index = build_alias_index(role_aliases)

    def _read(self, operation: str, fn):
        try:
            with self._session_factory() as session:
                return fn(session)
        except SQLAlchemyError as e:
            logger.error(
                f"RBAC store read failed: {operation}: {e}",
                extra={"operation": operation},
            )
            raise StoreUnavailableError(operation, e) from e

    def get_role_by_id(self, role_id: str) -> Optional[RoleRecord]:
        def load(session: Session) -> Optional[RoleRecord]:
            role = session.execute(
                select(Role).options(selectinload(Role.permissions)).where(Role.id == role_id)
            ).scalar_one_or_none()
            if role is None:
                return None
            grants = (_to_grant(p) for p in role.permissions)
            return RoleRecord(
                id=role.id,
                name=role.name,
                kind=resolve_role_kind(role.name, self._alias_index),
                grants=frozenset(g for g in grants if g is not None),
                description=role.description,
            )

        return self._read("get_role_by_id", load)

    def get_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        def load(session: Session) -> Optional[UserRecord]:
            user = session.get(User, user_id)
            if user is None:
                return None
            return UserRecord(
                id=user.id,
                email=user.email,
                name=user.name,
                role_id=user.role_id,
                team_id=user.team_id,
                is_active=user.is_active,
                is_deleted=user.is_deleted,
            )

        return self._read("get_user_by_id", load)

    def get_team_leaderships(self, user_id: str) -> FrozenSet[str]:
        def load(session: Session) -> FrozenSet[str]:
            rows = session.execute(
                select(TeamLeader.team_id).where(TeamLeader.user_id == user_id)
            ).scalars()
            return frozenset(rows)

        return self._read("get_team_leaderships", load)

    def get_session(self, token: str) -> Optional[SessionRecord]:
        def load(session: Session) -> Optional[SessionRecord]:
            row = session.get(UserSession, token)
            if row is None:
                return None
            return SessionRecord(token=row.token, user_id=row.user_id, expires_at=row.expires_at)

        return self._read("get_session", load)


def seed_default_roles(session: Session) -> dict:
    """
    Create the system roles and their default grants if missing.

    Existing roles keep their grants; only missing grants are added.
    Returns role kind -> role id.
    """
    role_ids = {}
    for kind, info in ROLES.items():
        role = session.execute(select(Role).where(Role.name == info.name)).scalar_one_or_none()
        if role is None:
            role = Role(name=info.name, description=info.description)
            session.add(role)
            session.flush()
            logger.info(f"Seeded role {info.name}")

        existing = {
            (p.action, p.resource)
            for p in session.execute(
                select(RolePermission).where(RolePermission.role_id == role.id)
            ).scalars()
        }
        for grant in DEFAULT_ROLE_GRANTS[kind]:
            if (grant.action.value, grant.resource.value) in existing:
                continue
            session.add(RolePermission(
                role_id=role.id,
                action=grant.action.value,
                resource=grant.resource.value,
                scope=grant.scope.value if grant.scope else None,
            ))
        role_ids[kind] = role.id

    session.flush()
    return role_ids
