"""Tests for scope-aware list filters and their in-memory evaluation."""

import pytest

from rbac.errors import ScopeConflictError
from rbac.filters import (
    ARTICLE_FILTER,
    TEAM_FILTER,
    TICKET_FILTER,
    USER_FILTER,
    AllOf,
    FieldEquals,
    ListFilters,
    MatchAll,
    MatchNone,
    TicketField,
    UserField,
    all_of,
    any_of,
    evaluate,
    field_in,
    get_scope_filter,
)
from rbac.permissions import ResourceType
from rbac.scope import AccessScope


TICKETS = [
    {"id": "t1", "team_id": "a", "created_by_id": "u", "assigned_to_id": None,
     "customer_id": None, "follower_ids": [], "status": "OPEN"},
    {"id": "t2", "team_id": "b", "created_by_id": "x", "assigned_to_id": "u",
     "customer_id": None, "follower_ids": [], "status": "OPEN"},
    {"id": "t3", "team_id": "b", "created_by_id": "x", "assigned_to_id": None,
     "customer_id": None, "follower_ids": ["u"], "status": "CLOSED"},
    {"id": "t4", "team_id": "a", "created_by_id": "x", "assigned_to_id": None,
     "customer_id": None, "follower_ids": [], "status": "OPEN"},
    {"id": "t5", "team_id": "b", "created_by_id": "x", "assigned_to_id": None,
     "customer_id": None, "follower_ids": [], "status": "RESOLVED"},
    {"id": "t6", "team_id": None, "created_by_id": "x", "assigned_to_id": None,
     "customer_id": "u", "follower_ids": [], "status": "OPEN"},
]


def visible(predicate, rows=TICKETS):
    return {row["id"] for row in rows if evaluate(predicate, row)}


# =============================================================================
# PREDICATE HELPERS
# =============================================================================

class TestPredicates:

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            FieldEquals("team_id", "a")

    def test_any_of_simplifies(self):
        clause = FieldEquals(TicketField.ID, "t1")
        assert any_of() == MatchNone()
        assert any_of(MatchNone(), clause) == clause
        assert any_of(clause, MatchAll()) == MatchAll()

    def test_all_of_simplifies(self):
        clause = FieldEquals(TicketField.ID, "t1")
        assert all_of() == MatchAll()
        assert all_of(MatchAll(), clause) == clause
        assert all_of(clause, MatchNone()) == MatchNone()

    def test_empty_field_in_matches_nothing(self):
        assert field_in(TicketField.TEAM_ID, []) == MatchNone()

    def test_get_scope_filter(self):
        assert get_scope_filter(ResourceType.TICKETS) is TICKET_FILTER
        with pytest.raises(ValueError):
            get_scope_filter(ResourceType.ROLES)


# =============================================================================
# TICKETS
# =============================================================================

class TestTicketFilter:

    def test_organization_wide(self):
        assert TICKET_FILTER.to_filter(AccessScope.organization_wide("admin")) == MatchAll()
        assert visible(MatchAll()) == {"t1", "t2", "t3", "t4", "t5", "t6"}

    def test_team_restricted_adds_own_records(self):
        scope = AccessScope.team_restricted("u", ["a"], member_team_id="a")
        assert visible(TICKET_FILTER.to_filter(scope)) == {"t1", "t2", "t3", "t4", "t6"}

    def test_self_only(self):
        scope = AccessScope.self_only("u", member_team_id="a")
        assert visible(TICKET_FILTER.to_filter(scope)) == {"t1", "t2", "t3", "t6"}

    def test_nothing_scope_skips_followers(self):
        assert visible(TICKET_FILTER.to_filter(AccessScope.nothing("u"))) == {"t1", "t2", "t6"}

    def test_status_filter(self):
        scope = AccessScope.self_only("u")
        predicate = TICKET_FILTER.to_filter(scope, ListFilters(status="CLOSED"))
        assert visible(predicate) == {"t3"}

    def test_team_filter_inside_scope(self):
        scope = AccessScope.team_restricted("u", ["a", "b"])
        predicate = TICKET_FILTER.to_filter(scope, ListFilters(team_id="b"))
        assert visible(predicate) == {"t2", "t3", "t5"}

    def test_team_filter_outside_scope_rejected(self):
        """An explicit team outside the scope is an error, not an empty list"""
        scope = AccessScope.team_restricted("u", ["a"], member_team_id="a")
        with pytest.raises(ScopeConflictError) as exc_info:
            TICKET_FILTER.to_filter(scope, ListFilters(team_id="b"))
        assert exc_info.value.code == "TEAM_ACCESS_DENIED"
        assert exc_info.value.status_code == 403

    def test_self_only_member_team_filter(self):
        """An employee filtering by their own team sees their own tickets in it"""
        scope = AccessScope.self_only("u", member_team_id="a")
        predicate = TICKET_FILTER.to_filter(scope, ListFilters(team_id="a"))
        assert visible(predicate) == {"t1"}

    def test_admin_any_team_filter(self):
        predicate = TICKET_FILTER.to_filter(
            AccessScope.organization_wide("admin"), ListFilters(team_id="zzz")
        )
        assert predicate == FieldEquals(TicketField.TEAM_ID, "zzz")

    def test_filters_agree_with_permits(self):
        scopes = [
            AccessScope.organization_wide("u"),
            AccessScope.team_restricted("u", ["a"], member_team_id="a"),
            AccessScope.self_only("u", member_team_id="a"),
            AccessScope.nothing("u"),
        ]
        for scope in scopes:
            predicate = TICKET_FILTER.to_filter(scope)
            for row in TICKETS:
                assert evaluate(predicate, row) == scope.permits(TICKET_FILTER.record_ref(row))

    def test_monotonic_widths(self):
        own = visible(TICKET_FILTER.to_filter(AccessScope.self_only("u", member_team_id="a")))
        team = visible(TICKET_FILTER.to_filter(
            AccessScope.team_restricted("u", ["a"], member_team_id="a")
        ))
        org = visible(TICKET_FILTER.to_filter(AccessScope.organization_wide("u")))
        assert own <= team <= org

    def test_record_ref(self):
        ref = TICKET_FILTER.record_ref(TICKETS[2])
        assert ref.owner_ids == frozenset({"x"})
        assert ref.collaborator_ids == frozenset({"u"})
        assert ref.team_id == "b"


# =============================================================================
# OTHER RESOURCES
# =============================================================================

class TestUserFilter:

    USERS = [
        {"id": "u", "team_id": "a", "is_deleted": False},
        {"id": "v", "team_id": "a", "is_deleted": False},
        {"id": "w", "team_id": "b", "is_deleted": False},
        {"id": "gone", "team_id": "a", "is_deleted": True},
    ]

    def test_deleted_users_always_excluded(self):
        predicate = USER_FILTER.to_filter(AccessScope.organization_wide("admin"))
        assert predicate == FieldEquals(UserField.IS_DELETED, False)
        assert visible(predicate, self.USERS) == {"u", "v", "w"}

    def test_team_restricted(self):
        scope = AccessScope.team_restricted("u", ["b"], member_team_id="a")
        assert visible(USER_FILTER.to_filter(scope), self.USERS) == {"u", "w"}

    def test_self_only_sees_self(self):
        scope = AccessScope.self_only("u", member_team_id="a")
        assert visible(USER_FILTER.to_filter(scope), self.USERS) == {"u"}

    def test_combined_clauses(self):
        scope = AccessScope.team_restricted("u", ["a"])
        predicate = USER_FILTER.to_filter(scope, ListFilters(team_id="a"))
        assert isinstance(predicate, AllOf)
        assert visible(predicate, self.USERS) == {"u", "v"}


class TestTeamFilter:

    TEAMS = [{"id": "a"}, {"id": "b"}, {"id": "c"}]

    def test_self_only_sees_member_team(self):
        scope = AccessScope.self_only("u", member_team_id="a")
        assert visible(TEAM_FILTER.to_filter(scope), self.TEAMS) == {"a"}

    def test_team_restricted(self):
        scope = AccessScope.team_restricted("u", ["c"], member_team_id="a")
        assert visible(TEAM_FILTER.to_filter(scope), self.TEAMS) == {"a", "c"}

    def test_no_team_sees_nothing(self):
        assert TEAM_FILTER.to_filter(AccessScope.nothing("u")) == MatchNone()


class TestArticleFilter:

    ARTICLES = [
        {"id": "k1", "team_id": "a", "author_id": "u"},
        {"id": "k2", "team_id": "a", "author_id": "x"},
        {"id": "k3", "team_id": "b", "author_id": "x"},
    ]

    def test_self_only_sees_authored(self):
        scope = AccessScope.self_only("u")
        assert visible(ARTICLE_FILTER.to_filter(scope), self.ARTICLES) == {"k1"}

    def test_team_restricted(self):
        scope = AccessScope.team_restricted("u", ["a"])
        assert visible(ARTICLE_FILTER.to_filter(scope), self.ARTICLES) == {"k1", "k2"}
