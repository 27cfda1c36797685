"""
Store contracts and value types.

The engine reads roles, users, leaderships and sessions through two narrow
protocols. Adapters resolve stored role names into RoleKind before handing
data to the engine, so nothing downstream compares role-name strings.

Adapters:
    InMemoryRBACStore         dict-backed, used by tests and local seeding
    SQLAlchemyRBACStore       database.rbac_store
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Protocol, Set

from .errors import StoreUnavailableError
from .permissions import PermissionGrant
from .roles import RoleKind, build_alias_index, resolve_role_kind

logger = logging.getLogger(__name__)


# =============================================================================
# VALUE TYPES
# =============================================================================

@dataclass(frozen=True)
class RoleRecord:
    """A stored role with its grants and resolved kind."""
    id: str
    name: str
    kind: Optional[RoleKind]
    grants: FrozenSet[PermissionGrant] = frozenset()
    description: Optional[str] = None


@dataclass(frozen=True)
class UserRecord:
    id: str
    email: str
    name: str = ""
    role_id: Optional[str] = None
    team_id: Optional[str] = None
    is_active: bool = True
    is_deleted: bool = False


@dataclass(frozen=True)
class SessionRecord:
    token: str
    user_id: str
    expires_at: datetime

    @property
    def expires_at_ts(self) -> float:
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires.timestamp()


@dataclass(frozen=True)
class UserSnapshot:
    """
    Everything the engine needs to authorize one user.

    Snapshots are immutable and cached as a unit; a role or team change
    replaces the whole snapshot.
    """
    user_id: str
    email: str
    name: str
    role_id: Optional[str]
    role_name: Optional[str]
    role_kind: Optional[RoleKind]
    grants: FrozenSet[PermissionGrant]
    team_id: Optional[str]
    led_team_ids: FrozenSet[str]
    is_active: bool = True
    is_deleted: bool = False

    @property
    def is_authorizable(self) -> bool:
        """False for inactive, deleted or roleless users (fail closed)."""
        return self.is_active and not self.is_deleted and self.role_kind is not None

    @property
    def team_scope_ids(self) -> FrozenSet[str]:
        """Primary team plus every led team."""
        teams: Set[str] = set(self.led_team_ids)
        if self.team_id:
            teams.add(self.team_id)
        return frozenset(teams)


# =============================================================================
# PROTOCOLS
# =============================================================================

class RolePermissionStore(Protocol):
    def get_role_by_id(self, role_id: str) -> Optional[RoleRecord]: ...

    def get_user_by_id(self, user_id: str) -> Optional[UserRecord]: ...

    def get_team_leaderships(self, user_id: str) -> FrozenSet[str]: ...


class SessionStore(Protocol):
    def get_session(self, token: str) -> Optional[SessionRecord]: ...


def load_user_snapshot(store: RolePermissionStore, user_id: str) -> Optional[UserSnapshot]:
    """
    Assemble a snapshot from the store.

    Returns None for an unknown user. A dangling role_id yields a snapshot
    without a role kind. Store failures propagate.
    """
    user = store.get_user_by_id(user_id)
    if user is None:
        return None

    role = store.get_role_by_id(user.role_id) if user.role_id else None
    led_teams = store.get_team_leaderships(user_id)

    return UserSnapshot(
        user_id=user.id,
        email=user.email,
        name=user.name,
        role_id=role.id if role else None,
        role_name=role.name if role else None,
        role_kind=role.kind if role else None,
        grants=role.grants if role else frozenset(),
        team_id=user.team_id,
        led_team_ids=frozenset(led_teams),
        is_active=user.is_active,
        is_deleted=user.is_deleted,
    )


# =============================================================================
# IN-MEMORY ADAPTER
# =============================================================================

class InMemoryRBACStore:
    """
    Thread-safe in-memory implementation of both store protocols.

    Set `available = False` to make every read raise StoreUnavailableError.
    """

    def __init__(self, role_aliases: Optional[Mapping[RoleKind, Iterable[str]]] = None):
        self._alias_index = build_alias_index(role_aliases)
        self._roles: Dict[str, RoleRecord] = {}
        self._users: Dict[str, UserRecord] = {}
        self._teams: Dict[str, str] = {}
        self._leaderships: Dict[str, Set[str]] = {}
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.RLock()
        self.available = True
        self.reads = 0

    def _check_available(self, operation: str) -> None:
        self.reads += 1
        if not self.available:
            raise StoreUnavailableError(operation)

    # ----- reads -------------------------------------------------------------

    def get_role_by_id(self, role_id: str) -> Optional[RoleRecord]:
        with self._lock:
            self._check_available("get_role_by_id")
            return self._roles.get(role_id)

    def get_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            self._check_available("get_user_by_id")
            return self._users.get(user_id)

    def get_team_leaderships(self, user_id: str) -> FrozenSet[str]:
        with self._lock:
            self._check_available("get_team_leaderships")
            return frozenset(self._leaderships.get(user_id, ()))

    def get_session(self, token: str) -> Optional[SessionRecord]:
        with self._lock:
            self._check_available("get_session")
            return self._sessions.get(token)

    # ----- writes ------------------------------------------------------------

    def add_role(
        self,
        role_id: str,
        name: str,
        grants: Iterable[PermissionGrant] = (),
        description: Optional[str] = None,
    ) -> RoleRecord:
        role = RoleRecord(
            id=role_id,
            name=name,
            kind=resolve_role_kind(name, self._alias_index),
            grants=frozenset(grants),
            description=description,
        )
        with self._lock:
            self._roles[role_id] = role
        if role.kind is None:
            logger.warning(f"Role '{name}' does not match any known role kind")
        return role

    def add_team(self, team_id: str, name: str = "") -> None:
        with self._lock:
            self._teams[team_id] = name or team_id

    def add_user(self, user_id: str, email: Optional[str] = None, **fields) -> UserRecord:
        user = UserRecord(id=user_id, email=email or f"{user_id}@example.com", **fields)
        with self._lock:
            self._users[user_id] = user
        return user

    def update_user(self, user_id: str, **fields) -> UserRecord:
        with self._lock:
            user = replace(self._users[user_id], **fields)
            self._users[user_id] = user
        return user

    def set_user_role(self, user_id: str, role_id: Optional[str]) -> UserRecord:
        return self.update_user(user_id, role_id=role_id)

    def set_user_team(self, user_id: str, team_id: Optional[str]) -> UserRecord:
        return self.update_user(user_id, team_id=team_id)

    def add_leadership(self, user_id: str, team_id: str) -> None:
        with self._lock:
            self._leaderships.setdefault(user_id, set()).add(team_id)

    def remove_leadership(self, user_id: str, team_id: str) -> None:
        with self._lock:
            self._leaderships.get(user_id, set()).discard(team_id)

    def add_session(self, token: str, user_id: str, expires_at: datetime) -> SessionRecord:
        session = SessionRecord(token=token, user_id=user_id, expires_at=expires_at)
        with self._lock:
            self._sessions[token] = session
        return session

    def delete_session(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)
