"""
Permission Engine Tests

Fail-closed behaviour, coarse and record-level checks, access scopes,
invalidation and store outages.
"""

import pytest

from rbac.engine import DecisionReason, PermissionEngine
from rbac.errors import InsufficientPermissionsError, StoreUnavailableError
from rbac.permissions import Action, PermissionGrant, ResourceType
from rbac.roles import RoleKind
from rbac.scope import RecordRef, ScopeKind

LEADER_ROLE = "role-leader"

TEAM_A = "team-a"
TEAM_B = "team-b"
TEAM_C = "team-c"


def ticket(team_id=None, created_by="someone", assigned_to=None, followers=(), ticket_id="tk-1"):
    owners = {created_by, assigned_to} - {None}
    return RecordRef(
        resource=ResourceType.TICKETS,
        id=ticket_id,
        team_id=team_id,
        owner_ids=frozenset(owners),
        collaborator_ids=frozenset(followers),
    )


# =============================================================================
# FAIL CLOSED
# =============================================================================

class TestFailClosed:
    """Users without a usable role are denied everything"""

    @pytest.mark.parametrize("user_id", ["norole", "contractor", "ghost"])
    def test_every_pair_denied(self, engine, user_id):
        for action in Action:
            for resource in ResourceType:
                assert engine.check_permission(user_id, action, resource) is False

    @pytest.mark.parametrize("user_id", ["norole", "contractor", "ghost"])
    def test_scope_is_self_only(self, engine, user_id):
        scope = engine.get_user_permissions(user_id)
        assert scope.kind is ScopeKind.SELF_ONLY
        assert scope.visible_teams() == frozenset()

    def test_unknown_role_name_is_not_admin(self, engine):
        """The 'Contractor' role carries admin grants but matches no role kind"""
        decision = engine.check_record_permission("contractor", Action.READ, ResourceType.TICKETS)
        assert not decision.allowed
        assert decision.reason is DecisionReason.NO_ROLE

    def test_inactive_user_denied(self, engine, store):
        store.update_user("admin", is_active=False)
        assert engine.check_permission("admin", Action.READ, ResourceType.TICKETS) is False

    def test_deleted_user_denied(self, engine, store):
        store.update_user("admin", is_deleted=True)
        assert engine.check_permission("admin", Action.READ, ResourceType.TICKETS) is False
        assert engine.get_user_permissions("admin").kind is ScopeKind.SELF_ONLY

    def test_no_role_cannot_access_teams(self, engine):
        assert engine.can_access_team_data("norole", TEAM_A) is False
        assert engine.get_team_ids("norole") == frozenset()
        assert engine.grants_for("norole") == frozenset()


# =============================================================================
# COARSE CHECKS
# =============================================================================

class TestCoarseChecks:

    def test_role_lacks_grant(self, engine):
        decision = engine.check_record_permission("employee", Action.DELETE, ResourceType.USERS)
        assert not decision.allowed
        assert decision.reason is DecisionReason.ROLE_LACKS_GRANT
        assert decision.required_permission == "users:delete"

    def test_manage_wildcard(self, engine, store):
        store.add_role("role-sla", "User/Employee", [
            PermissionGrant(Action.MANAGE, ResourceType.SLA_POLICIES),
        ])
        store.set_user_role("loner", "role-sla")
        for action in Action:
            assert engine.check_permission("loner", action, ResourceType.SLA_POLICIES)

    def test_require_permission_raises(self, engine):
        with pytest.raises(InsufficientPermissionsError) as exc_info:
            engine.require_permission("employee", Action.ASSIGN, ResourceType.ROLES)
        assert exc_info.value.required_permission == "roles:assign"
        assert exc_info.value.reason == "ROLE_LACKS_GRANT"
        body = exc_info.value.to_response()
        assert body["code"] == "INSUFFICIENT_PERMISSIONS"
        assert body["error"] == "Insufficient permissions"
        assert body["requiredPermission"] == "roles:assign"


# =============================================================================
# END-TO-END SCENARIOS
# =============================================================================

class TestScenarios:

    def test_employee_without_team(self, engine):
        """Coarse READ is allowed; someone else's ticket is RECORD_NOT_OWNED"""
        assert engine.check_permission("loner", Action.READ, ResourceType.TICKETS) is True

        decision = engine.check_record_permission(
            "loner", Action.READ, ResourceType.TICKETS, ticket(team_id=TEAM_A)
        )
        assert not decision.allowed
        assert decision.reason is DecisionReason.RECORD_NOT_OWNED

    def test_leader_other_team_is_team_mismatch(self, engine):
        decision = engine.check_record_permission(
            "leader", Action.UPDATE, ResourceType.TICKETS, ticket(team_id=TEAM_B)
        )
        assert not decision.allowed
        assert decision.reason is DecisionReason.TEAM_MISMATCH

    @pytest.mark.parametrize("team_id", [TEAM_A, TEAM_C])
    def test_leader_own_and_led_team_allowed(self, engine, team_id):
        decision = engine.check_record_permission(
            "leader", Action.UPDATE, ResourceType.TICKETS, ticket(team_id=team_id)
        )
        assert decision.allowed
        assert decision.reason is DecisionReason.OK

    def test_admin_is_organization_wide(self, engine):
        scope = engine.get_user_permissions("admin")
        assert scope.kind is ScopeKind.ORGANIZATION_WIDE
        for team_id in (TEAM_A, TEAM_B, "never-heard-of-it"):
            assert engine.can_access_team_data("admin", team_id)

    def test_role_change_visible_after_invalidation(self, engine, store):
        """Employee promoted to Team Leader; the next check uses the new grants"""
        assert engine.check_permission("employee", Action.ASSIGN, ResourceType.TICKETS) is False

        store.set_user_role("employee", LEADER_ROLE)
        engine.invalidate_user("employee")

        assert engine.check_permission("employee", Action.ASSIGN, ResourceType.TICKETS) is True
        assert engine.get_user_permissions("employee").kind is ScopeKind.TEAM_RESTRICTED

    def test_without_invalidation_snapshot_is_cached(self, engine, store):
        engine.check_permission("employee", Action.READ, ResourceType.TICKETS)
        store.set_user_role("employee", LEADER_ROLE)
        assert engine.check_permission("employee", Action.ASSIGN, ResourceType.TICKETS) is False


# =============================================================================
# RECORD CHECKS
# =============================================================================

class TestRecordChecks:

    def test_self_exception_for_leader(self, engine):
        """A leader's own ticket in a foreign team stays visible"""
        decision = engine.check_record_permission(
            "leader", Action.READ, ResourceType.TICKETS, ticket(team_id=TEAM_B, created_by="leader")
        )
        assert decision.allowed

    def test_employee_sees_assigned_and_followed(self, engine):
        assigned = ticket(team_id=TEAM_B, assigned_to="employee")
        followed = ticket(team_id=TEAM_B, followers={"employee"})
        assert engine.check_record_permission("employee", Action.READ, ResourceType.TICKETS, assigned).allowed
        assert engine.check_record_permission("employee", Action.READ, ResourceType.TICKETS, followed).allowed

    def test_employee_does_not_see_team_tickets(self, engine):
        decision = engine.check_record_permission(
            "employee", Action.READ, ResourceType.TICKETS, ticket(team_id=TEAM_A)
        )
        assert decision.reason is DecisionReason.RECORD_NOT_OWNED

    def test_admin_sees_any_record(self, engine):
        decision = engine.check_record_permission(
            "admin", Action.DELETE, ResourceType.TICKETS, ticket(team_id=TEAM_B)
        )
        assert decision.allowed

    def test_grant_scope_widens_employee(self, engine):
        """Knowledge base READ is organization-wide even for employees"""
        article = RecordRef(
            resource=ResourceType.KNOWLEDGE_BASE, id="kb-1", team_id=TEAM_B,
            owner_ids=frozenset({"someone"}),
        )
        assert engine.check_record_permission(
            "employee", Action.READ, ResourceType.KNOWLEDGE_BASE, article
        ).allowed

    def test_grant_scope_narrows_leader(self, engine):
        """Leaders update only their own articles"""
        team_article = RecordRef(
            resource=ResourceType.KNOWLEDGE_BASE, id="kb-1", team_id=TEAM_A,
            owner_ids=frozenset({"someone"}),
        )
        own_article = RecordRef(
            resource=ResourceType.KNOWLEDGE_BASE, id="kb-2", team_id=TEAM_B,
            owner_ids=frozenset({"leader"}),
        )
        denied = engine.check_record_permission(
            "leader", Action.UPDATE, ResourceType.KNOWLEDGE_BASE, team_article
        )
        assert denied.reason is DecisionReason.RECORD_NOT_OWNED
        assert engine.check_record_permission(
            "leader", Action.UPDATE, ResourceType.KNOWLEDGE_BASE, own_article
        ).allowed


# =============================================================================
# SCOPES
# =============================================================================

class TestScopes:

    def test_leader_scope(self, engine):
        scope = engine.get_user_permissions("leader")
        assert scope.kind is ScopeKind.TEAM_RESTRICTED
        assert scope.team_ids == frozenset({TEAM_A, TEAM_C})
        assert scope.member_team_id == TEAM_A

    def test_employee_scope(self, engine):
        scope = engine.get_user_permissions("employee")
        assert scope.kind is ScopeKind.SELF_ONLY
        assert scope.user_id == "employee"

    def test_require_access_scope_follows_grant(self, engine):
        scope = engine.require_access_scope("employee", Action.READ, ResourceType.KNOWLEDGE_BASE)
        assert scope.kind is ScopeKind.ORGANIZATION_WIDE

    def test_require_access_scope_denies(self, engine):
        with pytest.raises(InsufficientPermissionsError):
            engine.require_access_scope("leader", Action.READ, ResourceType.USERS)

    def test_can_access_team_data(self, engine):
        assert engine.can_access_team_data("leader", TEAM_A)
        assert engine.can_access_team_data("leader", TEAM_C)
        assert not engine.can_access_team_data("leader", TEAM_B)
        assert engine.can_access_team_data("employee", TEAM_A)
        assert not engine.can_access_team_data("employee", TEAM_B)

    def test_get_team_ids(self, engine):
        assert engine.get_team_ids("leader") == frozenset({TEAM_A, TEAM_C})
        assert engine.get_team_ids("loner") == frozenset()

    def test_leadership_change_after_invalidation(self, engine, store):
        assert not engine.can_access_team_data("leader", TEAM_B)
        store.add_leadership("leader", TEAM_B)
        engine.invalidate_user("leader")
        assert engine.can_access_team_data("leader", TEAM_B)


# =============================================================================
# CACHING AND OUTAGES
# =============================================================================

class TestStoreAccess:

    def test_snapshot_cached(self, engine, store):
        engine.check_permission("employee", Action.READ, ResourceType.TICKETS)
        reads = store.reads
        engine.check_permission("employee", Action.UPDATE, ResourceType.TICKETS)
        assert store.reads == reads

    def test_store_outage_propagates(self, engine, store):
        store.available = False
        with pytest.raises(StoreUnavailableError):
            engine.check_permission("employee", Action.READ, ResourceType.TICKETS)
        with pytest.raises(StoreUnavailableError):
            engine.get_user_permissions("employee")

    def test_outage_is_not_cached(self, engine, store, cache):
        store.available = False
        with pytest.raises(StoreUnavailableError):
            engine.check_permission("employee", Action.READ, ResourceType.TICKETS)
        assert cache.get_user("employee") is None

        store.available = True
        assert engine.check_permission("employee", Action.READ, ResourceType.TICKETS) is True

    def test_unexpected_store_error_is_wrapped(self, cache):
        class BrokenStore:
            def get_user_by_id(self, user_id):
                raise ConnectionError("refused")

        engine = PermissionEngine(BrokenStore(), cache)
        with pytest.raises(StoreUnavailableError) as exc_info:
            engine.check_permission("u", Action.READ, ResourceType.TICKETS)
        assert isinstance(exc_info.value.cause, ConnectionError)
        assert exc_info.value.status_code == 503

    def test_invalidation_during_load_is_not_cached(self, store, cache):
        """A snapshot read before an invalidation must not be cached after it"""

        class RacingStore:
            def get_user_by_id(self, user_id):
                cache.invalidate_user(user_id)
                return store.get_user_by_id(user_id)

            def get_role_by_id(self, role_id):
                return store.get_role_by_id(role_id)

            def get_team_leaderships(self, user_id):
                return store.get_team_leaderships(user_id)

        engine = PermissionEngine(RacingStore(), cache)
        snapshot = engine.get_user_snapshot("employee")
        assert snapshot.role_kind is RoleKind.EMPLOYEE
        assert cache.get_user("employee") is None


# =============================================================================
# AUDIT
# =============================================================================

class TestAudit:

    def test_denials_are_recorded(self, engine, audit_sink):
        engine.check_permission("employee", Action.DELETE, ResourceType.USERS)
        assert len(audit_sink.denials) == 1
        record = audit_sink.denials[0]
        assert record.user_id == "employee"
        assert record.reason == "ROLE_LACKS_GRANT"
        assert record.required_permission == "users:delete"
        assert record.role_name == "User/Employee"

    def test_allows_not_recorded_by_default(self, engine, audit_sink):
        engine.check_permission("admin", Action.READ, ResourceType.TICKETS)
        assert audit_sink.records == []

    def test_allows_recorded_when_enabled(self, store, cache, audit_sink):
        engine = PermissionEngine(store, cache, audit_sink=audit_sink, emit_allowed=True)
        engine.check_record_permission(
            "admin", Action.READ, ResourceType.TICKETS, ticket(ticket_id="tk-9")
        )
        assert audit_sink.records[0].allowed
        assert audit_sink.records[0].record_id == "tk-9"

    def test_failing_sink_does_not_change_outcome(self, store, cache):
        class FailingSink:
            def record(self, decision):
                raise RuntimeError("audit down")

        engine = PermissionEngine(store, cache, audit_sink=FailingSink())
        assert engine.check_permission("employee", Action.DELETE, ResourceType.USERS) is False

    def test_record_to_dict(self, engine, audit_sink):
        engine.check_permission("norole", Action.READ, ResourceType.TICKETS)
        data = audit_sink.denials[0].to_dict()
        assert data["reason"] == "NO_ROLE"
        assert data["role_name"] is None
        assert isinstance(data["timestamp"], str)
