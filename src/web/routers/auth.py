"""
Session Endpoints

- POST /api/auth/logout   end the current session
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy import delete
from sqlalchemy.orm import Session

from core.service_registry import SETTINGS, ServiceRegistry
from database.models import UserSession
from rbac.dependencies import get_services, get_session_token, get_session_validator
from rbac.sessions import SessionValidator
from web.dependencies import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/logout")
def logout(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    validator: SessionValidator = Depends(get_session_validator),
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
):
    """Delete the session row and drop it from the cache. Idempotent."""
    if token:
        db.execute(delete(UserSession).where(UserSession.token == token))
        db.commit()
        validator.logout(token)

    response.delete_cookie(services.require(SETTINGS).rbac.session_cookie_name)
    return {"success": True}
