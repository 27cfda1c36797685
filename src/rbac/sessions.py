"""
Session validation backed by the permission cache.

A token is valid when the session exists, has not expired, and belongs to
an active, non-deleted user. Successful validations are cached together
with the user's snapshot; sessions about to expire are not cached.
"""

import logging
import time
from typing import Callable, Optional

from .cache import PermissionCache, SessionValidation
from .engine import PermissionEngine
from .errors import StoreUnavailableError
from .store import SessionStore

logger = logging.getLogger(__name__)


class SessionValidator:

    def __init__(
        self,
        session_store: SessionStore,
        engine: PermissionEngine,
        cache: PermissionCache,
        clock: Callable[[], float] = time.time,
    ):
        self.session_store = session_store
        self.engine = engine
        self.cache = cache
        self._clock = clock

    def validate(self, token: Optional[str]) -> Optional[SessionValidation]:
        """Return the validated session, or None if the token is not usable."""
        if not token:
            return None

        cached = self.cache.get_session_validation(token)
        if cached is not None:
            return cached

        generation = self.cache.generation
        try:
            session = self.session_store.get_session(token)
        except StoreUnavailableError:
            raise
        except Exception as e:
            raise StoreUnavailableError("get_session", e) from e

        if session is None:
            return None
        if session.expires_at_ts <= self._clock():
            logger.debug(f"Session for user {session.user_id} has expired")
            return None

        snapshot = self.engine.get_user_snapshot(session.user_id)
        if snapshot is None or not snapshot.is_active or snapshot.is_deleted:
            return None

        validation = SessionValidation(session=session, snapshot=snapshot)
        self.cache.set_session_validation(validation, generation)
        return validation

    def logout(self, token: str) -> None:
        """Forget a session token."""
        self.cache.invalidate_session(token)
