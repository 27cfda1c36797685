"""
Database Query Helpers

Compiles rbac.filters predicates into SQLAlchemy clauses.

Usage:
    from database.query_helpers import compile_predicate, TICKET_COLUMNS

    predicate = TICKET_FILTER.to_filter(scope, ListFilters(team_id=team_id))
    stmt = select(Ticket).where(compile_predicate(predicate, TICKET_COLUMNS))
"""

from typing import Any, Callable, Dict, List, Mapping, Union

from sqlalchemy import and_, false, or_, true
from sqlalchemy.orm import selectinload

from rbac.filters import (
    AllOf,
    AnyOf,
    Contains,
    FieldEquals,
    FieldIn,
    MatchAll,
    MatchNone,
    Predicate,
    TeamField,
    TicketField,
    UserField,
)

from .models import Team, Ticket, TicketFollower, User


class CollectionColumn:
    """A to-many field; builds a membership clause for one value."""

    def __init__(self, build: Callable[[Any], Any]):
        self.build = build


ColumnSpec = Union[Any, CollectionColumn]

TICKET_COLUMNS: Dict[TicketField, ColumnSpec] = {
    TicketField.ID: Ticket.id,
    TicketField.TEAM_ID: Ticket.team_id,
    TicketField.CREATED_BY: Ticket.created_by_id,
    TicketField.ASSIGNED_TO: Ticket.assigned_to_id,
    TicketField.CUSTOMER: Ticket.customer_id,
    TicketField.STATUS: Ticket.status,
    TicketField.FOLLOWERS: CollectionColumn(
        lambda user_id: Ticket.followers.any(TicketFollower.user_id == user_id)
    ),
}

USER_COLUMNS: Dict[UserField, ColumnSpec] = {
    UserField.ID: User.id,
    UserField.TEAM_ID: User.team_id,
    UserField.ROLE_ID: User.role_id,
    UserField.IS_DELETED: User.is_deleted,
}

TEAM_COLUMNS: Dict[TeamField, ColumnSpec] = {
    TeamField.ID: Team.id,
}


def compile_predicate(predicate: Predicate, columns: Mapping[Any, ColumnSpec]):
    """Translate a predicate into a SQLAlchemy boolean clause."""
    if isinstance(predicate, MatchAll):
        return true()
    if isinstance(predicate, MatchNone):
        return false()
    if isinstance(predicate, FieldEquals):
        return _column(predicate.field, columns) == predicate.value
    if isinstance(predicate, FieldIn):
        return _column(predicate.field, columns).in_(sorted(predicate.values))
    if isinstance(predicate, Contains):
        spec = _column(predicate.field, columns)
        if not isinstance(spec, CollectionColumn):
            raise TypeError(f"Field {predicate.field.value} is not a collection")
        return spec.build(predicate.value)
    if isinstance(predicate, AnyOf):
        return or_(*(compile_predicate(c, columns) for c in predicate.clauses))
    if isinstance(predicate, AllOf):
        return and_(*(compile_predicate(c, columns) for c in predicate.clauses))
    raise TypeError(f"Unsupported predicate: {predicate!r}")


def _column(field, columns: Mapping[Any, ColumnSpec]) -> ColumnSpec:
    try:
        return columns[field]
    except KeyError:
        raise TypeError(f"Field {field!r} has no column mapping")


def ticket_with_followers() -> List[Any]:
    """Eager loading options for tickets rendered with their followers."""
    return [selectinload(Ticket.followers)]
