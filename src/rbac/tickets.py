"""
Ticket-specific access rules layered on the engine.

- Status changes follow a fixed transition table.
- Assignment: admins may assign to anyone; team leaders only to members of
  the ticket's team, and only for teams in their scope; nobody else may
  assign.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from .engine import PermissionEngine
from .permissions import Action, ResourceType
from .roles import RoleKind
from .scope import RecordRef


class TicketStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_FOR_CUSTOMER = "WAITING_FOR_CUSTOMER"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


STATUS_TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.OPEN: frozenset({
        TicketStatus.IN_PROGRESS,
        TicketStatus.WAITING_FOR_CUSTOMER,
        TicketStatus.CLOSED,
    }),
    TicketStatus.IN_PROGRESS: frozenset({
        TicketStatus.WAITING_FOR_CUSTOMER,
        TicketStatus.RESOLVED,
        TicketStatus.OPEN,
        TicketStatus.CLOSED,
    }),
    TicketStatus.WAITING_FOR_CUSTOMER: frozenset({
        TicketStatus.IN_PROGRESS,
        TicketStatus.RESOLVED,
        TicketStatus.CLOSED,
    }),
    TicketStatus.RESOLVED: frozenset({
        TicketStatus.CLOSED,
        TicketStatus.IN_PROGRESS,
        TicketStatus.OPEN,
    }),
    # Closed tickets can be reopened
    TicketStatus.CLOSED: frozenset({
        TicketStatus.IN_PROGRESS,
        TicketStatus.OPEN,
    }),
}


def can_transition(current: TicketStatus, target: TicketStatus) -> bool:
    """Check if a status change is allowed. Staying put is always allowed."""
    if current is target:
        return True
    return target in STATUS_TRANSITIONS.get(current, frozenset())


def can_assign_to_user(
    engine: PermissionEngine,
    user_id: str,
    ticket: RecordRef,
    assignee_id: str,
) -> bool:
    """Check if user may assign the ticket to assignee."""
    if not engine.check_record_permission(user_id, Action.ASSIGN, ResourceType.TICKETS, ticket).allowed:
        return False

    actor = engine.get_user_snapshot(user_id)
    assignee = engine.get_user_snapshot(assignee_id)
    if actor is None or assignee is None or not assignee.is_active or assignee.is_deleted:
        return False

    if actor.role_kind is RoleKind.ADMIN:
        return True

    if actor.role_kind is RoleKind.TEAM_LEADER:
        team_id: Optional[str] = ticket.team_id
        if team_id is None or team_id not in actor.team_scope_ids:
            return False
        return assignee.team_id == team_id

    return False
