"""
Scope-aware query filters.

Each list endpoint translates the caller's AccessScope (plus any explicit
list filters) into a typed predicate through the ScopeFilter of its
resource:

    TICKET_FILTER.to_filter(scope, ListFilters(team_id="t1"))

Translation rules:
- OrganizationWide matches everything.
- TeamRestricted matches the scope's teams OR the user's own records.
- SelfOnly matches the user's own records (and shared ones when enabled).
- An explicit team filter outside the scope raises ScopeConflictError.

Predicates are backend neutral. `evaluate()` runs them against in-memory
rows; database.query_helpers compiles them to SQLAlchemy clauses.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Tuple, Type, Union

from .errors import ScopeConflictError
from .permissions import ResourceType
from .scope import AccessScope, RecordRef, ScopeKind


# =============================================================================
# FIELDS
# =============================================================================

class TicketField(str, Enum):
    ID = "id"
    TEAM_ID = "team_id"
    CREATED_BY = "created_by_id"
    ASSIGNED_TO = "assigned_to_id"
    CUSTOMER = "customer_id"
    FOLLOWERS = "follower_ids"      # collection of user ids
    STATUS = "status"


class UserField(str, Enum):
    ID = "id"
    TEAM_ID = "team_id"
    ROLE_ID = "role_id"
    IS_DELETED = "is_deleted"


class TeamField(str, Enum):
    ID = "id"


class ArticleField(str, Enum):
    ID = "id"
    TEAM_ID = "team_id"
    AUTHOR = "author_id"


FilterField = Union[TicketField, UserField, TeamField, ArticleField]
_FIELD_TYPES = (TicketField, UserField, TeamField, ArticleField)


def _check_field(field: Any) -> None:
    if not isinstance(field, _FIELD_TYPES):
        raise TypeError(f"Unknown filter field: {field!r}")


# =============================================================================
# PREDICATES
# =============================================================================

class Predicate:
    """Base class for filter predicates."""


@dataclass(frozen=True)
class MatchAll(Predicate):
    pass


@dataclass(frozen=True)
class MatchNone(Predicate):
    pass


@dataclass(frozen=True)
class FieldEquals(Predicate):
    field: FilterField
    value: Any

    def __post_init__(self):
        _check_field(self.field)


@dataclass(frozen=True)
class FieldIn(Predicate):
    field: FilterField
    values: FrozenSet[Any]

    def __post_init__(self):
        _check_field(self.field)


@dataclass(frozen=True)
class Contains(Predicate):
    """A collection field contains value."""
    field: FilterField
    value: Any

    def __post_init__(self):
        _check_field(self.field)


@dataclass(frozen=True)
class AnyOf(Predicate):
    clauses: Tuple[Predicate, ...]


@dataclass(frozen=True)
class AllOf(Predicate):
    clauses: Tuple[Predicate, ...]


def any_of(*clauses: Predicate) -> Predicate:
    """OR, simplified."""
    kept = []
    for clause in clauses:
        if isinstance(clause, MatchAll):
            return MatchAll()
        if isinstance(clause, MatchNone):
            continue
        kept.append(clause)
    if not kept:
        return MatchNone()
    if len(kept) == 1:
        return kept[0]
    return AnyOf(tuple(kept))


def all_of(*clauses: Predicate) -> Predicate:
    """AND, simplified."""
    kept = []
    for clause in clauses:
        if isinstance(clause, MatchNone):
            return MatchNone()
        if isinstance(clause, MatchAll):
            continue
        kept.append(clause)
    if not kept:
        return MatchAll()
    if len(kept) == 1:
        return kept[0]
    return AllOf(tuple(kept))


def field_in(field: FilterField, values: Iterable[Any]) -> Predicate:
    values = frozenset(values)
    if not values:
        return MatchNone()
    return FieldIn(field, values)


def evaluate(predicate: Predicate, row: Mapping[str, Any]) -> bool:
    """Evaluate a predicate against a row keyed by field value."""
    if isinstance(predicate, MatchAll):
        return True
    if isinstance(predicate, MatchNone):
        return False
    if isinstance(predicate, FieldEquals):
        return row.get(predicate.field.value) == predicate.value
    if isinstance(predicate, FieldIn):
        return row.get(predicate.field.value) in predicate.values
    if isinstance(predicate, Contains):
        return predicate.value in (row.get(predicate.field.value) or ())
    if isinstance(predicate, AnyOf):
        return any(evaluate(c, row) for c in predicate.clauses)
    if isinstance(predicate, AllOf):
        return all(evaluate(c, row) for c in predicate.clauses)
    raise TypeError(f"Unsupported predicate: {predicate!r}")


# =============================================================================
# LIST FILTERS
# =============================================================================

@dataclass(frozen=True)
class ListFilters:
    """Explicit filters supplied by the caller (query parameters)."""
    team_id: Optional[str] = None
    status: Optional[str] = None


# =============================================================================
# SCOPE FILTERS
# =============================================================================

class ScopeFilter:
    """
    Translation from AccessScope to a predicate for one resource type.

    Subclasses name their team column and say what "own" means.
    """

    resource: ResourceType
    fields: Type[Enum]
    team_field: FilterField

    def to_filter(
        self,
        scope: AccessScope,
        extra: Optional[ListFilters] = None,
    ) -> Predicate:
        extra = extra or ListFilters()
        if extra.team_id is not None:
            self._check_team_filter(scope, extra.team_id)

        clauses = [self.visibility(scope)]
        if extra.team_id is not None:
            clauses.append(FieldEquals(self.team_field, extra.team_id))
        clauses.extend(self.extra_clauses(extra))
        return all_of(*clauses)

    def visibility(self, scope: AccessScope) -> Predicate:
        if scope.kind is ScopeKind.ORGANIZATION_WIDE:
            return MatchAll()
        own = self.self_clause(scope)
        if scope.kind is ScopeKind.TEAM_RESTRICTED:
            return any_of(field_in(self.team_field, scope.team_ids), own)
        return own

    def _check_team_filter(self, scope: AccessScope, team_id: str) -> None:
        visible = scope.visible_teams()
        if visible is not None and team_id not in visible:
            raise ScopeConflictError(requested_team_id=team_id, user_id=scope.user_id)

    def self_clause(self, scope: AccessScope) -> Predicate:
        raise NotImplementedError

    def extra_clauses(self, extra: ListFilters) -> list:
        return []

    def record_ref(self, row: Mapping[str, Any]) -> RecordRef:
        raise NotImplementedError


class TicketScopeFilter(ScopeFilter):
    resource = ResourceType.TICKETS
    fields = TicketField
    team_field = TicketField.TEAM_ID

    def self_clause(self, scope: AccessScope) -> Predicate:
        if scope.user_id is None:
            return MatchNone()
        clauses = [
            FieldEquals(TicketField.CREATED_BY, scope.user_id),
            FieldEquals(TicketField.ASSIGNED_TO, scope.user_id),
            FieldEquals(TicketField.CUSTOMER, scope.user_id),
        ]
        if scope.include_shared:
            clauses.append(Contains(TicketField.FOLLOWERS, scope.user_id))
        return any_of(*clauses)

    def extra_clauses(self, extra: ListFilters) -> list:
        if extra.status:
            return [FieldEquals(TicketField.STATUS, extra.status)]
        return []

    def record_ref(self, row: Mapping[str, Any]) -> RecordRef:
        owners = {
            row.get(TicketField.CREATED_BY.value),
            row.get(TicketField.ASSIGNED_TO.value),
            row.get(TicketField.CUSTOMER.value),
        }
        owners.discard(None)
        return RecordRef(
            resource=self.resource,
            id=row.get(TicketField.ID.value),
            team_id=row.get(TicketField.TEAM_ID.value),
            owner_ids=frozenset(owners),
            collaborator_ids=frozenset(row.get(TicketField.FOLLOWERS.value) or ()),
        )


class UserScopeFilter(ScopeFilter):
    resource = ResourceType.USERS
    fields = UserField
    team_field = UserField.TEAM_ID

    def self_clause(self, scope: AccessScope) -> Predicate:
        if scope.user_id is None:
            return MatchNone()
        return FieldEquals(UserField.ID, scope.user_id)

    def extra_clauses(self, extra: ListFilters) -> list:
        return [FieldEquals(UserField.IS_DELETED, False)]

    def record_ref(self, row: Mapping[str, Any]) -> RecordRef:
        user_id = row.get(UserField.ID.value)
        return RecordRef(
            resource=self.resource,
            id=user_id,
            team_id=row.get(UserField.TEAM_ID.value),
            owner_ids=frozenset({user_id}) if user_id else frozenset(),
        )


class TeamScopeFilter(ScopeFilter):
    """
    Teams have no owner column. A user's own team plays the owner role,
    so SelfOnly sees the member team and nothing else.
    """
    resource = ResourceType.TEAMS
    fields = TeamField
    team_field = TeamField.ID

    def self_clause(self, scope: AccessScope) -> Predicate:
        if scope.member_team_id is None or not scope.include_shared:
            return MatchNone()
        return FieldEquals(TeamField.ID, scope.member_team_id)

    def record_ref(self, row: Mapping[str, Any]) -> RecordRef:
        team_id = row.get(TeamField.ID.value)
        return RecordRef(resource=self.resource, id=team_id, team_id=team_id)


class ArticleScopeFilter(ScopeFilter):
    resource = ResourceType.KNOWLEDGE_BASE
    fields = ArticleField
    team_field = ArticleField.TEAM_ID

    def self_clause(self, scope: AccessScope) -> Predicate:
        if scope.user_id is None:
            return MatchNone()
        return FieldEquals(ArticleField.AUTHOR, scope.user_id)

    def record_ref(self, row: Mapping[str, Any]) -> RecordRef:
        author = row.get(ArticleField.AUTHOR.value)
        return RecordRef(
            resource=self.resource,
            id=row.get(ArticleField.ID.value),
            team_id=row.get(ArticleField.TEAM_ID.value),
            owner_ids=frozenset({author}) if author else frozenset(),
        )


TICKET_FILTER = TicketScopeFilter()
USER_FILTER = UserScopeFilter()
TEAM_FILTER = TeamScopeFilter()
ARTICLE_FILTER = ArticleScopeFilter()

SCOPE_FILTERS = {
    f.resource: f for f in (TICKET_FILTER, USER_FILTER, TEAM_FILTER, ARTICLE_FILTER)
}


def get_scope_filter(resource: ResourceType) -> ScopeFilter:
    try:
        return SCOPE_FILTERS[resource]
    except KeyError:
        raise ValueError(f"No scope filter for resource {resource.value}")
