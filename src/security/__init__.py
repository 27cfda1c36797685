"""
Security module for the helpdesk service.

Provides the standardized API error format and exception handlers.
"""

from .api_errors import (
    APIError,
    ErrorCode,
    ErrorResponse,
    RequestIDMiddleware,
    raise_api_error,
    register_exception_handlers,
)

__all__ = [
    "APIError",
    "ErrorCode",
    "ErrorResponse",
    "RequestIDMiddleware",
    "raise_api_error",
    "register_exception_handlers",
]
