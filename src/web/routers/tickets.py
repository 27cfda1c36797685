"""
Ticket Endpoints

- GET   /api/tickets          scope-filtered list (teamId, status filters)
- GET   /api/tickets/{id}     record-level read
- PATCH /api/tickets/{id}     record-level update, status transitions, assignment
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from database.models import Ticket
from database.query_helpers import TICKET_COLUMNS, compile_predicate, ticket_with_followers
from rbac.dependencies import get_engine, require_access_scope, require_auth
from rbac.engine import PermissionEngine
from rbac.errors import InsufficientPermissionsError
from rbac.filters import TICKET_FILTER, ListFilters
from rbac.permissions import Action, ResourceType, permission_string
from rbac.scope import AccessScope
from rbac.store import UserSnapshot
from rbac.tickets import TicketStatus, can_assign_to_user, can_transition
from security.api_errors import ErrorCode, raise_api_error
from web.dependencies import get_db

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/tickets",
    tags=["Tickets"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
    },
)


class TicketUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TicketStatus] = None
    assigned_to_id: Optional[str] = Field(None, alias="assignedToId")


def _load_ticket(db: Session, ticket_id: str) -> Ticket:
    ticket = db.execute(
        select(Ticket).options(*ticket_with_followers()).where(Ticket.id == ticket_id)
    ).scalar_one_or_none()
    if ticket is None:
        raise_api_error(ErrorCode.RESOURCE_NOT_FOUND, "Ticket not found")
    return ticket


@router.get("")
def list_tickets(
    team_id: Optional[str] = Query(None, alias="teamId"),
    status: Optional[TicketStatus] = Query(None),
    scope: AccessScope = Depends(require_access_scope(Action.READ, ResourceType.TICKETS)),
    db: Session = Depends(get_db),
):
    """List the tickets visible to the caller."""
    predicate = TICKET_FILTER.to_filter(
        scope,
        ListFilters(team_id=team_id, status=status.value if status else None),
    )
    tickets = db.execute(
        select(Ticket)
        .options(*ticket_with_followers())
        .where(compile_predicate(predicate, TICKET_COLUMNS))
        .order_by(Ticket.created_at.desc())
    ).scalars().all()

    return {
        "tickets": [t.to_dict() for t in tickets],
        "total": len(tickets),
        "scope": scope.kind.value,
    }


@router.get("/{ticket_id}")
def get_ticket(
    ticket_id: str,
    user: UserSnapshot = Depends(require_auth),
    engine: PermissionEngine = Depends(get_engine),
    db: Session = Depends(get_db),
):
    ticket = _load_ticket(db, ticket_id)
    engine.require_permission(
        user.user_id, Action.READ, ResourceType.TICKETS, TICKET_FILTER.record_ref(ticket.to_row())
    )
    return ticket.to_dict()


@router.patch("/{ticket_id}")
def update_ticket(
    ticket_id: str,
    body: TicketUpdateRequest,
    user: UserSnapshot = Depends(require_auth),
    engine: PermissionEngine = Depends(get_engine),
    db: Session = Depends(get_db),
):
    """Update a ticket. Reassignment additionally needs tickets:assign."""
    ticket = _load_ticket(db, ticket_id)
    record = TICKET_FILTER.record_ref(ticket.to_row())
    engine.require_permission(user.user_id, Action.UPDATE, ResourceType.TICKETS, record)

    if body.status is not None:
        current = TicketStatus(ticket.status)
        if not can_transition(current, body.status):
            raise_api_error(
                ErrorCode.INVALID_STATUS_TRANSITION,
                f"Cannot change status from {current.value} to {body.status.value}",
            )
        ticket.status = body.status.value

    if body.assigned_to_id is not None and body.assigned_to_id != ticket.assigned_to_id:
        if not can_assign_to_user(engine, user.user_id, record, body.assigned_to_id):
            raise InsufficientPermissionsError(
                permission_string(Action.ASSIGN, ResourceType.TICKETS),
                context={"user_id": user.user_id, "record_id": ticket_id},
            )
        ticket.assigned_to_id = body.assigned_to_id

    if body.title is not None:
        ticket.title = body.title
    if body.description is not None:
        ticket.description = body.description

    db.commit()
    logger.info(
        f"Ticket {ticket_id} updated by {user.user_id}",
        extra={"ticket_id": ticket_id, "user_id": user.user_id},
    )
    return ticket.to_dict()
