"""
Access scope value objects.

An AccessScope says how far a user's visibility reaches:

    OrganizationWide  - every record
    TeamRestricted    - records of the given teams, plus the user's own
    SelfOnly          - the user's own records (and, when sharing is
                        enabled, records shared with them, e.g. followed
                        tickets)

Scopes are pure values: hashable, comparable and safe to cache. They carry
no database handles. Query builders translate them into predicates
(see rbac.filters); the engine uses `permits()` for single-record checks.
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from .permissions import ResourceType


class ScopeKind(str, Enum):
    """The three visibility levels, widest first."""
    ORGANIZATION_WIDE = "organization_wide"
    TEAM_RESTRICTED = "team_restricted"
    SELF_ONLY = "self_only"


SCOPE_WIDTH = {
    ScopeKind.SELF_ONLY: 0,
    ScopeKind.TEAM_RESTRICTED: 1,
    ScopeKind.ORGANIZATION_WIDE: 2,
}


@dataclass(frozen=True)
class RecordRef:
    """
    The access-relevant facts about one record.

    owner_ids holds every user that owns the record in the resource's sense
    (ticket creator, assignee and customer; the user itself for a user
    record). collaborator_ids holds users the record is shared with
    (ticket followers).
    """
    resource: ResourceType
    id: Optional[str] = None
    team_id: Optional[str] = None
    owner_ids: FrozenSet[str] = frozenset()
    collaborator_ids: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class AccessScope:
    """Visibility scope for one user."""

    kind: ScopeKind
    """Which of the three visibility levels applies."""

    user_id: Optional[str] = None
    """The user the scope belongs to; drives the self-exception."""

    team_ids: FrozenSet[str] = frozenset()
    """Allowed teams. Only meaningful for TEAM_RESTRICTED."""

    member_team_id: Optional[str] = None
    """The user's own team (membership, not leadership)."""

    include_shared: bool = True
    """Whether records shared with the user count as their own."""

    def __post_init__(self):
        if self.kind is ScopeKind.TEAM_RESTRICTED and self.user_id is None:
            raise ValueError("TeamRestricted scope requires a user_id")
        if self.kind is not ScopeKind.TEAM_RESTRICTED and self.team_ids:
            raise ValueError(f"{self.kind.value} scope cannot carry team_ids")

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def organization_wide(cls, user_id: Optional[str] = None) -> "AccessScope":
        return cls(kind=ScopeKind.ORGANIZATION_WIDE, user_id=user_id)

    @classmethod
    def team_restricted(
        cls,
        user_id: str,
        team_ids: Iterable[str],
        member_team_id: Optional[str] = None,
    ) -> "AccessScope":
        teams = frozenset(t for t in team_ids if t)
        return cls(
            kind=ScopeKind.TEAM_RESTRICTED,
            user_id=user_id,
            team_ids=teams,
            member_team_id=member_team_id,
        )

    @classmethod
    def self_only(
        cls,
        user_id: Optional[str],
        member_team_id: Optional[str] = None,
        include_shared: bool = True,
    ) -> "AccessScope":
        return cls(
            kind=ScopeKind.SELF_ONLY,
            user_id=user_id,
            member_team_id=member_team_id,
            include_shared=include_shared,
        )

    @classmethod
    def nothing(cls, user_id: Optional[str]) -> "AccessScope":
        """Fail-closed scope for users without a usable role."""
        return cls.self_only(user_id, member_team_id=None, include_shared=False)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def is_organization_wide(self) -> bool:
        return self.kind is ScopeKind.ORGANIZATION_WIDE

    @property
    def width(self) -> int:
        return SCOPE_WIDTH[self.kind]

    def allows_team(self, team_id: Optional[str]) -> bool:
        """True if records of this team are visible through the team clause."""
        if team_id is None:
            return self.is_organization_wide
        if self.is_organization_wide:
            return True
        if self.kind is ScopeKind.TEAM_RESTRICTED:
            return team_id in self.team_ids
        return False

    def visible_teams(self) -> Optional[FrozenSet[str]]:
        """
        Teams whose data the user may see.

        None means every team. The member team is always included, so a
        team restriction can never hide the user's own team.
        """
        if self.is_organization_wide:
            return None
        teams = set(self.team_ids)
        if self.member_team_id and self.include_shared:
            teams.add(self.member_team_id)
        return frozenset(teams)

    def owns(self, record: RecordRef) -> bool:
        """Self-exception: the record belongs to, or is shared with, the user."""
        if self.user_id is None:
            return False
        if self.user_id in record.owner_ids:
            return True
        if self.include_shared and self.user_id in record.collaborator_ids:
            return True
        # Teams have no owner column; a user's own team counts as theirs
        if (
            record.resource is ResourceType.TEAMS
            and self.include_shared
            and self.member_team_id is not None
            and record.id == self.member_team_id
        ):
            return True
        return False

    def permits(self, record: RecordRef) -> bool:
        """Single-record visibility check, consistent with rbac.filters."""
        if self.is_organization_wide:
            return True
        if self.owns(record):
            return True
        if self.kind is ScopeKind.TEAM_RESTRICTED:
            return record.team_id is not None and record.team_id in self.team_ids
        return False

    def is_at_least(self, other: "AccessScope") -> bool:
        """Width comparison by kind only."""
        return self.width >= other.width

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "user_id": self.user_id,
            "team_ids": sorted(self.team_ids),
            "member_team_id": self.member_team_id,
            "include_shared": self.include_shared,
        }
