"""
Team Endpoints

- GET    /api/teams                  teams visible to the caller
- GET    /api/teams/{id}/members     members of one team (team access required)
- DELETE /api/teams/{id}             delete a team (teams:delete)

Deleting a team unassigns its members and drops its leaderships; every
affected user's cached permissions are invalidated after the commit.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from database.models import Team, TeamLeader, User
from database.query_helpers import TEAM_COLUMNS, compile_predicate
from rbac.dependencies import get_engine, require_access_scope, require_permission
from rbac.engine import PermissionEngine
from rbac.errors import ScopeConflictError
from rbac.filters import TEAM_FILTER
from rbac.permissions import Action, ResourceType
from rbac.scope import AccessScope
from rbac.store import UserSnapshot
from security.api_errors import ErrorCode, raise_api_error
from web.dependencies import get_db

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/teams",
    tags=["Teams"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
    },
)


def _team_dict(team: Team) -> dict:
    return {
        "id": team.id,
        "name": team.name,
        "description": team.description,
        "leaderIds": sorted(leader.user_id for leader in team.leaders),
    }


@router.get("")
def list_teams(
    scope: AccessScope = Depends(require_access_scope(Action.READ, ResourceType.TEAMS)),
    db: Session = Depends(get_db),
):
    predicate = TEAM_FILTER.to_filter(scope)
    teams = db.execute(
        select(Team).where(compile_predicate(predicate, TEAM_COLUMNS)).order_by(Team.name)
    ).scalars().all()
    return {"teams": [_team_dict(t) for t in teams], "total": len(teams)}


@router.get("/{team_id}/members")
def list_team_members(
    team_id: str,
    user: UserSnapshot = Depends(require_permission(Action.READ, ResourceType.TEAMS)),
    engine: PermissionEngine = Depends(get_engine),
    db: Session = Depends(get_db),
):
    if not engine.can_access_team_data(user.user_id, team_id):
        raise ScopeConflictError(team_id, user.user_id)

    team = db.get(Team, team_id)
    if team is None:
        raise_api_error(ErrorCode.RESOURCE_NOT_FOUND, "Team not found")

    members = db.execute(
        select(User)
        .where(User.team_id == team_id, User.is_deleted.is_(False))
        .order_by(User.email)
    ).scalars().all()
    return {"team": _team_dict(team), "members": [m.to_dict() for m in members]}


@router.delete("/{team_id}")
def delete_team(
    team_id: str,
    actor: UserSnapshot = Depends(require_permission(Action.DELETE, ResourceType.TEAMS)),
    engine: PermissionEngine = Depends(get_engine),
    db: Session = Depends(get_db),
):
    team = db.get(Team, team_id)
    if team is None:
        raise_api_error(ErrorCode.RESOURCE_NOT_FOUND, "Team not found")

    members = db.execute(select(User).where(User.team_id == team_id)).scalars().all()
    leader_ids = db.execute(
        select(TeamLeader.user_id).where(TeamLeader.team_id == team_id)
    ).scalars().all()

    affected = {m.id for m in members} | set(leader_ids)
    for member in members:
        member.team_id = None
    db.delete(team)
    db.commit()

    for user_id in affected:
        engine.invalidate_user(user_id)

    logger.info(
        f"Team {team_id} deleted by {actor.user_id}; {len(affected)} users affected",
        extra={"team_id": team_id, "actor_id": actor.user_id, "affected": len(affected)},
    )
    return {"success": True, "affectedUsers": len(affected)}
