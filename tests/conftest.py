"""Pytest configuration and fixtures for test suite."""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Set test environment BEFORE any other imports
os.environ.setdefault("APP_ENVIRONMENT", "test")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


from config.settings import RBACCacheSettings
from rbac.audit import MemoryAuditSink
from rbac.cache import PermissionCache
from rbac.engine import PermissionEngine
from rbac.permissions import get_default_grants
from rbac.roles import RoleKind
from rbac.sessions import SessionValidator
from rbac.store import InMemoryRBACStore


# =============================================================================
# CLOCK
# =============================================================================

class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def datetime_in(self, seconds: float) -> datetime:
        return datetime.fromtimestamp(self.now + seconds, tz=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# IN-MEMORY DIRECTORY
# =============================================================================

ADMIN_ROLE = "role-admin"
LEADER_ROLE = "role-leader"
EMPLOYEE_ROLE = "role-employee"
UNKNOWN_ROLE = "role-contractor"

TEAM_A = "team-a"
TEAM_B = "team-b"
TEAM_C = "team-c"


@pytest.fixture
def store():
    """
    Directory with one user per role kind.

    - admin:     Admin/Manager, member of team A
    - leader:    Team Leader, member of team A, also leads team C
    - employee:  User/Employee, member of team A
    - outsider:  User/Employee, member of team B
    - loner:     User/Employee, no team
    - norole:    no role at all
    - contractor: role name that matches no role kind
    """
    s = InMemoryRBACStore()
    s.add_role(ADMIN_ROLE, "Admin/Manager", get_default_grants(RoleKind.ADMIN))
    s.add_role(LEADER_ROLE, "Team Leader", get_default_grants(RoleKind.TEAM_LEADER))
    s.add_role(EMPLOYEE_ROLE, "User/Employee", get_default_grants(RoleKind.EMPLOYEE))
    s.add_role(UNKNOWN_ROLE, "Contractor", get_default_grants(RoleKind.ADMIN))

    for team_id in (TEAM_A, TEAM_B, TEAM_C):
        s.add_team(team_id)

    s.add_user("admin", role_id=ADMIN_ROLE, team_id=TEAM_A)
    s.add_user("leader", role_id=LEADER_ROLE, team_id=TEAM_A)
    s.add_leadership("leader", TEAM_C)
    s.add_user("employee", role_id=EMPLOYEE_ROLE, team_id=TEAM_A)
    s.add_user("outsider", role_id=EMPLOYEE_ROLE, team_id=TEAM_B)
    s.add_user("loner", role_id=EMPLOYEE_ROLE)
    s.add_user("norole", team_id=TEAM_A)
    s.add_user("contractor", role_id=UNKNOWN_ROLE, team_id=TEAM_A)
    return s


@pytest.fixture
def cache(clock):
    return PermissionCache(RBACCacheSettings(), clock=clock)


@pytest.fixture
def audit_sink():
    return MemoryAuditSink()


@pytest.fixture
def engine(store, cache, audit_sink):
    return PermissionEngine(store, cache, audit_sink=audit_sink)


@pytest.fixture
def validator(store, engine, cache, clock):
    return SessionValidator(store, engine, cache, clock=clock)
