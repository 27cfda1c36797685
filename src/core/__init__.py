"""
Core Module - Shared infrastructure for cross-cutting concerns.

This module provides:
- The per-application service registry
"""

from .service_registry import ServiceNotRegisteredError, ServiceRegistry

__all__ = [
    "ServiceRegistry",
    "ServiceNotRegisteredError",
]
