"""
Helpdesk Permission Definitions

A permission is an (action, resource) pair. Roles hold a set of grants;
MANAGE on a resource implies every other action on that resource.

Resources:
    users, teams, roles, tickets, audit_logs, knowledge_base, sla_policies,
    analytics, followers, escalation, reports

Each grant may narrow or widen the role's default reach with a scope:
    own           - only records the user owns or collaborates on
    team          - records of the user's teams (plus own records)
    organization  - every record
"""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional

from .roles import RoleKind


class Action(str, Enum):
    """Actions a grant can allow."""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    ASSIGN = "assign"
    MANAGE = "manage"   # Implies every action on the resource


class ResourceType(str, Enum):
    """Resource types protected by the engine."""
    USERS = "users"
    TEAMS = "teams"
    ROLES = "roles"
    TICKETS = "tickets"
    AUDIT_LOGS = "audit_logs"
    KNOWLEDGE_BASE = "knowledge_base"
    SLA_POLICIES = "sla_policies"
    ANALYTICS = "analytics"
    FOLLOWERS = "followers"
    ESCALATION = "escalation"
    REPORTS = "reports"


class GrantScope(str, Enum):
    """Reach attached to a single grant."""
    OWN = "own"
    TEAM = "team"
    ORGANIZATION = "organization"


GRANT_SCOPE_WIDTH: Dict[GrantScope, int] = {
    GrantScope.OWN: 0,
    GrantScope.TEAM: 1,
    GrantScope.ORGANIZATION: 2,
}


@dataclass(frozen=True)
class PermissionGrant:
    """A single (action, resource) grant held by a role."""
    action: Action
    resource: ResourceType
    scope: Optional[GrantScope] = None

    def covers(self, action: Action, resource: ResourceType) -> bool:
        """True if this grant allows action on resource (MANAGE is a wildcard)."""
        if self.resource is not resource:
            return False
        return self.action is action or self.action is Action.MANAGE


def permission_string(action: Action, resource: ResourceType) -> str:
    """Render a permission the way API clients see it, e.g. 'tickets:read'."""
    return f"{resource.value}:{action.value}"


def matching_grants(
    grants: Iterable[PermissionGrant],
    action: Action,
    resource: ResourceType,
) -> list:
    """All grants that allow action on resource."""
    return [g for g in grants if g.covers(action, resource)]


ROLE_DEFAULT_SCOPE: Dict[RoleKind, GrantScope] = {
    RoleKind.ADMIN: GrantScope.ORGANIZATION,
    RoleKind.TEAM_LEADER: GrantScope.TEAM,
    RoleKind.EMPLOYEE: GrantScope.OWN,
}


def effective_scope(
    kind: RoleKind,
    grants: Iterable[PermissionGrant],
) -> Optional[GrantScope]:
    """
    Reach granted by the given matching grants for a role kind.

    Unscoped grants fall back to the role default. When several grants
    match, the widest wins. Admins always reach the whole organization.
    Returns None when there are no grants.
    """
    grants = list(grants)
    if not grants:
        return None
    if kind is RoleKind.ADMIN:
        return GrantScope.ORGANIZATION
    scopes = [g.scope or ROLE_DEFAULT_SCOPE[kind] for g in grants]
    return max(scopes, key=GRANT_SCOPE_WIDTH.__getitem__)


# =============================================================================
# DEFAULT ROLE MATRIX
# =============================================================================

def _grants(resource: ResourceType, scope: GrantScope, *actions: Action) -> list:
    return [PermissionGrant(action, resource, scope) for action in actions]


_ORG = GrantScope.ORGANIZATION
_TEAM = GrantScope.TEAM
_OWN = GrantScope.OWN

_CRUD = (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE)

DEFAULT_ROLE_GRANTS: Dict[RoleKind, FrozenSet[PermissionGrant]] = {
    RoleKind.ADMIN: frozenset(
        _grants(ResourceType.USERS, _ORG, *_CRUD, Action.ASSIGN)
        + _grants(ResourceType.TEAMS, _ORG, *_CRUD, Action.MANAGE)
        + _grants(ResourceType.ROLES, _ORG, *_CRUD, Action.ASSIGN)
        + _grants(ResourceType.TICKETS, _ORG, *_CRUD, Action.ASSIGN)
        + _grants(ResourceType.KNOWLEDGE_BASE, _ORG, *_CRUD)
        + _grants(ResourceType.ANALYTICS, _ORG, Action.READ)
        + _grants(ResourceType.REPORTS, _ORG, Action.READ)
        + _grants(ResourceType.AUDIT_LOGS, _ORG, Action.READ)
        + _grants(ResourceType.FOLLOWERS, _ORG, Action.MANAGE)
        + _grants(ResourceType.SLA_POLICIES, _ORG, Action.MANAGE)
        + _grants(ResourceType.ESCALATION, _ORG, Action.MANAGE)
    ),
    RoleKind.TEAM_LEADER: frozenset(
        _grants(ResourceType.TEAMS, _TEAM, Action.READ)
        + _grants(ResourceType.ANALYTICS, _TEAM, Action.READ)
        + _grants(ResourceType.REPORTS, _TEAM, Action.READ)
        + _grants(
            ResourceType.TICKETS, _TEAM,
            Action.CREATE, Action.READ, Action.UPDATE, Action.ASSIGN,
        )
        + _grants(ResourceType.FOLLOWERS, _TEAM, Action.CREATE, Action.DELETE)
        + _grants(ResourceType.KNOWLEDGE_BASE, _TEAM, Action.CREATE)
        + _grants(ResourceType.KNOWLEDGE_BASE, _ORG, Action.READ)
        + _grants(ResourceType.KNOWLEDGE_BASE, _OWN, Action.UPDATE)
        + _grants(ResourceType.SLA_POLICIES, _ORG, Action.READ)
        + _grants(ResourceType.ESCALATION, _ORG, Action.READ)
    ),
    RoleKind.EMPLOYEE: frozenset(
        _grants(ResourceType.USERS, _OWN, Action.READ, Action.UPDATE)
        + _grants(ResourceType.TEAMS, _OWN, Action.READ)
        + _grants(ResourceType.TICKETS, _OWN, Action.CREATE, Action.READ, Action.UPDATE)
        + _grants(ResourceType.FOLLOWERS, _OWN, Action.DELETE)
        + _grants(ResourceType.KNOWLEDGE_BASE, _ORG, Action.READ)
    ),
}


def get_default_grants(kind: RoleKind) -> FrozenSet[PermissionGrant]:
    """Get the default grant set for a role kind."""
    return DEFAULT_ROLE_GRANTS.get(kind, frozenset())
