"""
User Endpoints

- GET    /api/users/me            caller profile and access scope
- GET    /api/users               scope-filtered list (teamId filter)
- GET    /api/users/{id}          record-level read
- PUT    /api/users/{id}/role     assign role   (roles:assign)
- PUT    /api/users/{id}/team     assign team   (users:assign)
- DELETE /api/users/{id}          soft delete   (users:delete)

Role, team and deletion changes commit first and then invalidate the
user's cached permissions before the response is sent.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from database.models import Role, Team, User
from database.query_helpers import USER_COLUMNS, compile_predicate
from rbac.dependencies import get_engine, require_access_scope, require_auth, require_permission
from rbac.engine import PermissionEngine
from rbac.filters import USER_FILTER, ListFilters
from rbac.permissions import Action, ResourceType
from rbac.scope import AccessScope
from rbac.store import UserSnapshot
from security.api_errors import ErrorCode, raise_api_error
from web.dependencies import get_db

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/users",
    tags=["Users"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
    },
)


class AssignRoleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role_id: str = Field(..., alias="roleId", min_length=1)


class AssignTeamRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_id: Optional[str] = Field(None, alias="teamId")


def _load_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None or user.is_deleted:
        raise_api_error(ErrorCode.USER_NOT_FOUND, "User not found")
    return user


@router.get("/me")
def get_me(
    user: UserSnapshot = Depends(require_auth),
    engine: PermissionEngine = Depends(get_engine),
):
    scope = engine.get_user_permissions(user.user_id)
    return {
        "id": user.user_id,
        "email": user.email,
        "name": user.name,
        "role": user.role_name,
        "roleKind": user.role_kind.value if user.role_kind else None,
        "teamId": user.team_id,
        "ledTeamIds": sorted(user.led_team_ids),
        "scope": scope.kind.value,
        "permissions": sorted(
            f"{g.resource.value}:{g.action.value}" for g in engine.grants_for(user.user_id)
        ),
    }


@router.get("")
def list_users(
    team_id: Optional[str] = Query(None, alias="teamId"),
    scope: AccessScope = Depends(require_access_scope(Action.READ, ResourceType.USERS)),
    db: Session = Depends(get_db),
):
    """List the users visible to the caller. Soft-deleted users are excluded."""
    predicate = USER_FILTER.to_filter(scope, ListFilters(team_id=team_id))
    users = db.execute(
        select(User).where(compile_predicate(predicate, USER_COLUMNS)).order_by(User.email)
    ).scalars().all()
    return {"users": [u.to_dict() for u in users], "total": len(users)}


@router.get("/{user_id}")
def get_user(
    user_id: str,
    user: UserSnapshot = Depends(require_auth),
    engine: PermissionEngine = Depends(get_engine),
    db: Session = Depends(get_db),
):
    target = _load_user(db, user_id)
    engine.require_permission(
        user.user_id,
        Action.READ,
        ResourceType.USERS,
        USER_FILTER.record_ref({"id": target.id, "team_id": target.team_id}),
    )
    return target.to_dict()


@router.put("/{user_id}/role")
def assign_role(
    user_id: str,
    body: AssignRoleRequest,
    actor: UserSnapshot = Depends(require_permission(Action.ASSIGN, ResourceType.ROLES)),
    engine: PermissionEngine = Depends(get_engine),
    db: Session = Depends(get_db),
):
    target = _load_user(db, user_id)
    role = db.get(Role, body.role_id)
    if role is None:
        raise_api_error(ErrorCode.RESOURCE_NOT_FOUND, "Role not found")

    target.role_id = role.id
    db.commit()
    engine.invalidate_user(user_id)

    logger.info(
        f"Role of user {user_id} changed to {role.name} by {actor.user_id}",
        extra={"user_id": user_id, "role_id": role.id, "actor_id": actor.user_id},
    )
    return {"success": True, "user": target.to_dict()}


@router.put("/{user_id}/team")
def assign_team(
    user_id: str,
    body: AssignTeamRequest,
    actor: UserSnapshot = Depends(require_permission(Action.ASSIGN, ResourceType.USERS)),
    engine: PermissionEngine = Depends(get_engine),
    db: Session = Depends(get_db),
):
    target = _load_user(db, user_id)
    if body.team_id is not None and db.get(Team, body.team_id) is None:
        raise_api_error(ErrorCode.RESOURCE_NOT_FOUND, "Team not found")

    target.team_id = body.team_id
    db.commit()
    engine.invalidate_user(user_id)

    logger.info(
        f"Team of user {user_id} changed by {actor.user_id}",
        extra={"user_id": user_id, "team_id": body.team_id, "actor_id": actor.user_id},
    )
    return {"success": True, "user": target.to_dict()}


@router.delete("/{user_id}")
def soft_delete_user(
    user_id: str,
    actor: UserSnapshot = Depends(require_permission(Action.DELETE, ResourceType.USERS)),
    engine: PermissionEngine = Depends(get_engine),
    db: Session = Depends(get_db),
):
    if user_id == actor.user_id:
        raise_api_error(ErrorCode.VALIDATION_ERROR, "You cannot delete your own account")

    target = _load_user(db, user_id)
    target.is_deleted = True
    target.is_active = False
    target.deleted_at = datetime.utcnow()
    db.commit()
    engine.invalidate_user(user_id)

    logger.info(
        f"User {user_id} soft-deleted by {actor.user_id}",
        extra={"user_id": user_id, "actor_id": actor.user_id},
    )
    return {"success": True}
