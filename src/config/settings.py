"""
Application settings loaded from environment variables.

All settings can be overridden via environment variables. Nested groups use
their own prefix so they can be tuned independently:

    APP_ENVIRONMENT=production
    RBAC_CACHE_USER_TTL_SECONDS=120
    RBAC_EMIT_ALLOWED_DECISIONS=true
"""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RBACCacheSettings(BaseSettings):
    """Permission cache sizing and expiry."""

    model_config = SettingsConfigDict(
        env_prefix="RBAC_CACHE_",
        env_file=".env",
        extra="ignore",
    )

    user_ttl_seconds: float = Field(
        default=300.0, gt=0,
        description="How long a user snapshot stays cached"
    )
    user_max_entries: int = Field(
        default=1000, ge=1,
        description="Maximum number of cached user snapshots"
    )
    session_ttl_seconds: float = Field(
        default=600.0, gt=0,
        description="How long a session validation stays cached"
    )
    session_max_entries: int = Field(
        default=2000, ge=1,
        description="Maximum number of cached session validations"
    )
    session_min_remaining_seconds: float = Field(
        default=60.0, ge=0,
        description="Sessions expiring sooner than this are never cached"
    )
    eviction_fraction: float = Field(
        default=0.1, gt=0, le=1,
        description="Share of the oldest entries dropped when a cache is full"
    )
    cleanup_interval_seconds: float = Field(
        default=300.0, gt=0,
        description="Interval of the background expiry sweep"
    )


class RBACSettings(BaseSettings):
    """Permission engine behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="RBAC_",
        env_file=".env",
        extra="ignore",
    )

    emit_allowed_decisions: bool = Field(
        default=False,
        description="Send allowed decisions to the audit sink as well as denials"
    )
    session_cookie_name: str = Field(
        default="session-token",
        description="Cookie carrying the session token"
    )

    # Stored role names are matched case-insensitively against these aliases
    admin_role_names: List[str] = Field(
        default=["Admin/Manager", "Admin", "Manager"],
    )
    team_leader_role_names: List[str] = Field(
        default=["Team Leader", "TeamLeader"],
    )
    employee_role_names: List[str] = Field(
        default=["User/Employee", "Employee", "User"],
    )


class Settings(BaseSettings):
    """Top-level application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = Field(default="Helpdesk RBAC", description="Application name")
    environment: str = Field(default="development", description="Deployment environment")
    debug: bool = Field(default=False)
    seed_default_roles: bool = Field(
        default=True,
        description="Create the system roles and their grants on startup"
    )

    rbac: RBACSettings = Field(default_factory=RBACSettings)
    cache: RBACCacheSettings = Field(default_factory=RBACCacheSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
