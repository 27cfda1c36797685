"""
Permission Engine - allow/deny decisions and access scopes.

Decision order for a record check:
1. Resolve the user's snapshot (cache, then store). Unknown, inactive,
   deleted or roleless users are denied with NO_ROLE.
2. Coarse check: the role must hold (action, resource) or (MANAGE, resource).
   Otherwise ROLE_LACKS_GRANT.
3. Narrowing: the matching grants give a reach (own/team/organization;
   unscoped grants use the role default). The record must fall inside that
   reach. Owned and shared records are always inside it. Denials are
   TEAM_MISMATCH for a team reach and RECORD_NOT_OWNED for an own reach.

Store failures propagate as StoreUnavailableError; they never become an
allow and are never cached.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

from .audit import AuditSink, DecisionRecord, emit
from .cache import PermissionCache
from .errors import (
    InsufficientPermissionsError,
    NoRoleError,
    StoreUnavailableError,
)
from .permissions import (
    Action,
    GrantScope,
    PermissionGrant,
    ResourceType,
    effective_scope,
    matching_grants,
    permission_string,
)
from .roles import RoleKind
from .scope import AccessScope, RecordRef, ScopeKind
from .store import RolePermissionStore, UserSnapshot, load_user_snapshot

logger = logging.getLogger(__name__)


class DecisionReason(str, Enum):
    """Why a decision came out the way it did."""
    OK = "OK"
    NO_ROLE = "NO_ROLE"
    ROLE_LACKS_GRANT = "ROLE_LACKS_GRANT"
    TEAM_MISMATCH = "TEAM_MISMATCH"
    RECORD_NOT_OWNED = "RECORD_NOT_OWNED"


@dataclass(frozen=True)
class PermissionDecision:
    """Outcome of a permission check."""
    allowed: bool
    reason: DecisionReason
    required_permission: str

    @classmethod
    def allow(cls, required_permission: str) -> "PermissionDecision":
        return cls(True, DecisionReason.OK, required_permission)

    @classmethod
    def deny(cls, reason: DecisionReason, required_permission: str) -> "PermissionDecision":
        return cls(False, reason, required_permission)


class PermissionEngine:
    """
    Authorizes users against their role grants and team data.

    The engine is stateless apart from the injected cache; it is safe to
    share across request threads.
    """

    def __init__(
        self,
        store: RolePermissionStore,
        cache: PermissionCache,
        audit_sink: Optional[AuditSink] = None,
        emit_allowed: bool = False,
    ):
        self.store = store
        self.cache = cache
        self.audit_sink = audit_sink
        self.emit_allowed = emit_allowed

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def get_user_snapshot(self, user_id: str) -> Optional[UserSnapshot]:
        """Cached snapshot, loaded from the store on a miss."""
        cached = self.cache.get_user(user_id)
        if cached is not None:
            return cached

        generation = self.cache.generation
        try:
            snapshot = load_user_snapshot(self.store, user_id)
        except StoreUnavailableError:
            logger.error(f"Store unavailable while loading user {user_id}")
            raise
        except Exception as e:
            logger.error(
                f"Store error while loading user {user_id}: {e}",
                extra={"user_id": user_id},
            )
            raise StoreUnavailableError("load_user_snapshot", e) from e

        if snapshot is not None:
            self.cache.set_user(snapshot, generation)
        return snapshot

    def _require_role(self, user_id: str) -> UserSnapshot:
        snapshot = self.get_user_snapshot(user_id)
        if snapshot is None:
            raise NoRoleError(user_id, "user not found")
        if not snapshot.is_active or snapshot.is_deleted:
            raise NoRoleError(user_id, "user inactive or deleted")
        if snapshot.role_kind is None:
            raise NoRoleError(user_id, "no recognized role")
        return snapshot

    # =========================================================================
    # CHECKS
    # =========================================================================

    def check_permission(self, user_id: str, action: Action, resource: ResourceType) -> bool:
        """Coarse check: does the user's role allow action on resource at all."""
        return self.check_record_permission(user_id, action, resource, None).allowed

    def check_record_permission(
        self,
        user_id: str,
        action: Action,
        resource: ResourceType,
        record: Optional[RecordRef] = None,
    ) -> PermissionDecision:
        """Full check, narrowed to one record when given."""
        required = permission_string(action, resource)
        snapshot = None
        try:
            snapshot = self._require_role(user_id)
        except NoRoleError as e:
            logger.debug(e.message)
            decision = PermissionDecision.deny(DecisionReason.NO_ROLE, required)
        else:
            decision = self._decide(snapshot, action, resource, record, required)

        self._emit(user_id, action, resource, record, decision, snapshot)
        return decision

    def _decide(
        self,
        snapshot: UserSnapshot,
        action: Action,
        resource: ResourceType,
        record: Optional[RecordRef],
        required: str,
    ) -> PermissionDecision:
        grants = matching_grants(snapshot.grants, action, resource)
        if not grants:
            return PermissionDecision.deny(DecisionReason.ROLE_LACKS_GRANT, required)

        if record is None or snapshot.role_kind is RoleKind.ADMIN:
            return PermissionDecision.allow(required)

        scope = self._scope_for(snapshot, effective_scope(snapshot.role_kind, grants))
        if scope.permits(record):
            return PermissionDecision.allow(required)

        if scope.kind is ScopeKind.TEAM_RESTRICTED:
            return PermissionDecision.deny(DecisionReason.TEAM_MISMATCH, required)
        return PermissionDecision.deny(DecisionReason.RECORD_NOT_OWNED, required)

    def require_permission(
        self,
        user_id: str,
        action: Action,
        resource: ResourceType,
        record: Optional[RecordRef] = None,
    ) -> PermissionDecision:
        """Like check_record_permission, but raises on denial."""
        decision = self.check_record_permission(user_id, action, resource, record)
        if not decision.allowed:
            raise InsufficientPermissionsError(
                decision.required_permission,
                reason=decision.reason.value,
                context={"user_id": user_id, "record_id": record.id if record else None},
            )
        return decision

    # =========================================================================
    # SCOPES
    # =========================================================================

    @staticmethod
    def _scope_for(snapshot: UserSnapshot, reach: Optional[GrantScope]) -> AccessScope:
        if reach is GrantScope.ORGANIZATION:
            return AccessScope.organization_wide(snapshot.user_id)
        if reach is GrantScope.TEAM:
            return AccessScope.team_restricted(
                snapshot.user_id,
                snapshot.team_scope_ids,
                member_team_id=snapshot.team_id,
            )
        return AccessScope.self_only(snapshot.user_id, member_team_id=snapshot.team_id)

    def get_user_permissions(self, user_id: str) -> AccessScope:
        """
        The user's default visibility scope, from their role kind.

        Admin -> OrganizationWide, team leader -> TeamRestricted(primary and
        led teams), employee -> SelfOnly. Users without a usable role get a
        SelfOnly scope limited to literally their own records.
        """
        try:
            snapshot = self._require_role(user_id)
        except NoRoleError as e:
            logger.debug(e.message)
            return AccessScope.nothing(user_id)

        if snapshot.role_kind is RoleKind.ADMIN:
            return self._scope_for(snapshot, GrantScope.ORGANIZATION)
        if snapshot.role_kind is RoleKind.TEAM_LEADER:
            return self._scope_for(snapshot, GrantScope.TEAM)
        return self._scope_for(snapshot, GrantScope.OWN)

    def require_access_scope(
        self,
        user_id: str,
        action: Action,
        resource: ResourceType,
    ) -> AccessScope:
        """
        Scope for listing a resource, honouring per-grant scopes.

        Raises InsufficientPermissionsError when the role cannot perform
        the action at all.
        """
        self.require_permission(user_id, action, resource)
        snapshot = self._require_role(user_id)
        grants = matching_grants(snapshot.grants, action, resource)
        return self._scope_for(snapshot, effective_scope(snapshot.role_kind, grants))

    def can_access_team_data(self, user_id: str, team_id: str) -> bool:
        """True for admins, for teams in the user's team scope, and for the user's own team."""
        try:
            snapshot = self._require_role(user_id)
        except NoRoleError:
            return False

        scope = self.get_user_permissions(user_id)
        if scope.is_organization_wide:
            return True
        if team_id in scope.team_ids:
            return True
        return snapshot.team_id is not None and snapshot.team_id == team_id

    def get_team_ids(self, user_id: str) -> FrozenSet[str]:
        """Primary plus led teams; empty for users without a usable role."""
        try:
            return self._require_role(user_id).team_scope_ids
        except NoRoleError:
            return frozenset()

    def grants_for(self, user_id: str) -> FrozenSet[PermissionGrant]:
        try:
            return self._require_role(user_id).grants
        except NoRoleError:
            return frozenset()

    # =========================================================================
    # INVALIDATION
    # =========================================================================

    def invalidate_user(self, user_id: str) -> None:
        """Call synchronously after any role or team change for the user."""
        self.cache.invalidate_user(user_id)

    # =========================================================================
    # AUDIT
    # =========================================================================

    def _emit(
        self,
        user_id: str,
        action: Action,
        resource: ResourceType,
        record: Optional[RecordRef],
        decision: PermissionDecision,
        snapshot: Optional[UserSnapshot],
    ) -> None:
        if decision.allowed and not self.emit_allowed:
            return
        emit(self.audit_sink, DecisionRecord(
            user_id=user_id,
            action=action.value,
            resource=resource.value,
            allowed=decision.allowed,
            reason=decision.reason.value,
            required_permission=decision.required_permission,
            record_id=record.id if record else None,
            role_name=snapshot.role_name if snapshot else None,
        ))
