"""Configuration module for the helpdesk RBAC service."""

from .database import DatabaseSettings, get_database_settings
from .settings import RBACCacheSettings, RBACSettings, Settings, get_settings

__all__ = [
    "DatabaseSettings",
    "get_database_settings",
    "RBACCacheSettings",
    "RBACSettings",
    "Settings",
    "get_settings",
]
