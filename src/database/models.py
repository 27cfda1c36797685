"""
SQLAlchemy ORM Models for the helpdesk RBAC store.

Tables:
- roles: Role definitions (name resolved to a RoleKind by the store)
- role_permissions: (role, action, resource) grants with optional scope
- teams: Teams
- team_leaders: Team leadership, independent of membership
- users: Users with optional role and primary team
- user_sessions: Session tokens
- tickets: Tickets (team, creator, assignee, customer, status)
- ticket_followers: Users explicitly following a ticket

Primary keys are UUID strings so the schema runs unchanged on SQLite.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column, String, Boolean, DateTime, Text, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship


Base = declarative_base()


def _uuid() -> str:
    return str(uuid4())


# =============================================================================
# ROLES
# =============================================================================

class Role(Base):
    """A named role. Names are matched to role kinds by alias."""
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    permissions = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
    )
    users = relationship("User", back_populates="role")

    def __repr__(self):
        return f"<Role(id={self.id}, name={self.name})>"


class RolePermission(Base):
    """
    Role grant.

    (role_id, action, resource) is unique; scope is one of own/team/organization
    or NULL for the role default.
    """
    __tablename__ = "role_permissions"

    id = Column(String(36), primary_key=True, default=_uuid)
    role_id = Column(
        String(36),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
    )
    action = Column(String(20), nullable=False)
    resource = Column(String(50), nullable=False)
    scope = Column(String(20), nullable=True)

    role = relationship("Role", back_populates="permissions")

    __table_args__ = (
        UniqueConstraint("role_id", "action", "resource", name="uq_role_permission"),
        Index("ix_role_permission_role", "role_id"),
    )

    def __repr__(self):
        return f"<RolePermission(role={self.role_id}, {self.resource}:{self.action})>"


# =============================================================================
# TEAMS
# =============================================================================

class Team(Base):
    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    members = relationship("User", back_populates="team")
    leaders = relationship(
        "TeamLeader",
        back_populates="team",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Team(id={self.id}, name={self.name})>"


class TeamLeader(Base):
    """A user leading a team. Leaders need not be members."""
    __tablename__ = "team_leaders"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    team_id = Column(
        String(36),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
    )

    team = relationship("Team", back_populates="leaders")
    user = relationship("User", back_populates="leaderships")

    __table_args__ = (
        UniqueConstraint("user_id", "team_id", name="uq_team_leader"),
        Index("ix_team_leader_user", "user_id"),
    )


# =============================================================================
# USERS AND SESSIONS
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False, default="")
    role_id = Column(
        String(36),
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True,
    )
    team_id = Column(
        String(36),
        ForeignKey("teams.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active = Column(Boolean, default=True, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    role = relationship("Role", back_populates="users")
    team = relationship("Team", back_populates="members")
    leaderships = relationship(
        "TeamLeader",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    sessions = relationship(
        "UserSession",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_user_team", "team_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "roleId": self.role_id,
            "teamId": self.team_id,
            "isActive": self.is_active,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"


class UserSession(Base):
    __tablename__ = "user_sessions"

    token = Column(String(255), primary_key=True)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("ix_session_user", "user_id"),
    )


# =============================================================================
# TICKETS
# =============================================================================

class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(30), nullable=False, default="OPEN")
    team_id = Column(
        String(36),
        ForeignKey("teams.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    assigned_to_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    customer_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    followers = relationship(
        "TicketFollower",
        back_populates="ticket",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_ticket_team", "team_id"),
        Index("ix_ticket_created_by", "created_by_id"),
        Index("ix_ticket_assigned_to", "assigned_to_id"),
    )

    @property
    def follower_ids(self) -> list:
        return [f.user_id for f in self.followers]

    def to_row(self) -> dict:
        """Access-relevant columns, keyed the way rbac.filters expects."""
        return {
            "id": self.id,
            "team_id": self.team_id,
            "created_by_id": self.created_by_id,
            "assigned_to_id": self.assigned_to_id,
            "customer_id": self.customer_id,
            "follower_ids": self.follower_ids,
            "status": self.status,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "teamId": self.team_id,
            "createdById": self.created_by_id,
            "assignedToId": self.assigned_to_id,
            "customerId": self.customer_id,
            "followerIds": self.follower_ids,
        }


class TicketFollower(Base):
    __tablename__ = "ticket_followers"

    id = Column(String(36), primary_key=True, default=_uuid)
    ticket_id = Column(
        String(36),
        ForeignKey("tickets.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    ticket = relationship("Ticket", back_populates="followers")

    __table_args__ = (
        UniqueConstraint("ticket_id", "user_id", name="uq_ticket_follower"),
    )
