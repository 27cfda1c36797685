"""
Helpdesk Role Definitions

Three role kinds, in decreasing order of reach:

    ADMIN        - Admin/Manager. Organization-wide access.
    TEAM_LEADER  - Team Leader. Own team plus every team they lead.
    EMPLOYEE     - User/Employee. Own records only.

Roles are stored by name. The stored name is resolved into a RoleKind once,
at the store boundary, and everything downstream switches on the enum.
A name that matches no alias resolves to None and is treated as "no role".
"""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional


class RoleKind(str, Enum):
    """The closed set of role kinds the engine understands."""

    ADMIN = "admin"
    """
    Full access to every team, user and ticket.
    Stored as: "Admin/Manager"
    """

    TEAM_LEADER = "team_leader"
    """
    Manages the tickets of their own team and of the teams they lead.
    Stored as: "Team Leader"
    """

    EMPLOYEE = "employee"
    """
    Works their own tickets: created, assigned or followed.
    Stored as: "User/Employee"
    """


@dataclass(frozen=True)
class RoleInfo:
    """Complete information about a role kind."""
    kind: RoleKind
    name: str           # Canonical stored name
    description: str


# =============================================================================
# ROLE REGISTRY
# =============================================================================

ROLES: dict[RoleKind, RoleInfo] = {
    RoleKind.ADMIN: RoleInfo(
        kind=RoleKind.ADMIN,
        name="Admin/Manager",
        description="Full system access with all permissions",
    ),
    RoleKind.TEAM_LEADER: RoleInfo(
        kind=RoleKind.TEAM_LEADER,
        name="Team Leader",
        description="Team management with team-scoped permissions",
    ),
    RoleKind.EMPLOYEE: RoleInfo(
        kind=RoleKind.EMPLOYEE,
        name="User/Employee",
        description="Basic user with limited permissions",
    ),
}


def get_role_info(kind: RoleKind) -> RoleInfo:
    """Get complete information about a role kind."""
    return ROLES[kind]


# =============================================================================
# NAME RESOLUTION
# =============================================================================

DEFAULT_ROLE_ALIASES: Dict[RoleKind, tuple] = {
    RoleKind.ADMIN: ("Admin/Manager", "Admin", "Manager"),
    RoleKind.TEAM_LEADER: ("Team Leader", "TeamLeader"),
    RoleKind.EMPLOYEE: ("User/Employee", "Employee", "User"),
}


def _normalize(name: str) -> str:
    return " ".join(name.strip().lower().split())


def build_alias_index(
    aliases: Optional[Mapping[RoleKind, Iterable[str]]] = None,
) -> Dict[str, RoleKind]:
    """Flatten an alias table into a normalized name -> kind lookup."""
    index: Dict[str, RoleKind] = {}
    for kind, names in (aliases or DEFAULT_ROLE_ALIASES).items():
        for name in names:
            key = _normalize(name)
            if key in index and index[key] is not kind:
                raise ValueError(
                    f"Role alias '{name}' maps to both {index[key].value} and {kind.value}"
                )
            index[key] = kind
    return index


_DEFAULT_INDEX = build_alias_index()


def resolve_role_kind(
    name: Optional[str],
    index: Optional[Mapping[str, RoleKind]] = None,
) -> Optional[RoleKind]:
    """
    Resolve a stored role name into a RoleKind.

    Matching is case-insensitive and ignores repeated whitespace.
    Returns None for a missing or unrecognized name.
    """
    if not name:
        return None
    return (index if index is not None else _DEFAULT_INDEX).get(_normalize(name))


def aliases_from_settings(rbac_settings) -> Dict[RoleKind, tuple]:
    """Alias table taken from RBACSettings."""
    return {
        RoleKind.ADMIN: tuple(rbac_settings.admin_role_names),
        RoleKind.TEAM_LEADER: tuple(rbac_settings.team_leader_role_names),
        RoleKind.EMPLOYEE: tuple(rbac_settings.employee_role_names),
    }
