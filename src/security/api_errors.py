"""
Unified API Error Response System.

Every error leaves the API in one shape:

    {
        "error": "Insufficient permissions",
        "code": "INSUFFICIENT_PERMISSIONS",
        "message": "...",
        "requiredPermission": "tickets:read",     (permission denials only)
        "status_code": 403,
        "timestamp": "...",
        "request_id": "...",
        "path": "/api/tickets/42"
    }

Messages never echo record or team identifiers.

Usage:
    from security.api_errors import APIError, ErrorCode, raise_api_error

    raise_api_error(ErrorCode.RESOURCE_NOT_FOUND, "Ticket not found")
"""

from __future__ import annotations

import logging
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from rbac.errors import AuthorizationError

logger = logging.getLogger(__name__)


# =============================================================================
# ERROR CODES
# =============================================================================


class ErrorCode(str, Enum):
    """
    Standardized error codes for API responses.

    Authorization codes match the codes carried by rbac.errors exceptions.
    """

    # Authentication (401)
    AUTH_REQUIRED = "AUTH_REQUIRED"

    # Authorization (403)
    PERMISSION_ERROR = "PERMISSION_ERROR"
    NO_ROLE = "NO_ROLE"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    TEAM_ACCESS_DENIED = "TEAM_ACCESS_DENIED"

    # Validation (400, 422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"

    # Resources (404, 405, 409)
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"

    # Server (500, 503)
    SERVER_INTERNAL_ERROR = "SERVER_INTERNAL_ERROR"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


# =============================================================================
# ERROR CODE TO HTTP STATUS MAPPING
# =============================================================================

ERROR_CODE_STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.AUTH_REQUIRED: status.HTTP_401_UNAUTHORIZED,

    ErrorCode.PERMISSION_ERROR: status.HTTP_403_FORBIDDEN,
    ErrorCode.NO_ROLE: status.HTTP_403_FORBIDDEN,
    ErrorCode.INSUFFICIENT_PERMISSIONS: status.HTTP_403_FORBIDDEN,
    ErrorCode.TEAM_ACCESS_DENIED: status.HTTP_403_FORBIDDEN,

    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_STATUS_TRANSITION: status.HTTP_400_BAD_REQUEST,

    ErrorCode.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RESOURCE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.METHOD_NOT_ALLOWED: status.HTTP_405_METHOD_NOT_ALLOWED,

    ErrorCode.SERVER_INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}

# Short headline used in the "error" field
ERROR_TITLES: Dict[int, str] = {
    400: "Bad request",
    401: "Authentication required",
    403: "Insufficient permissions",
    404: "Not found",
    405: "Method not allowed",
    409: "Conflict",
    422: "Validation failed",
    500: "Internal server error",
    503: "Service unavailable",
}


# =============================================================================
# ERROR RESPONSE MODELS
# =============================================================================


class FieldError(BaseModel):
    """Individual field validation error."""
    field: str = Field(..., description="Field name that caused the error")
    message: str = Field(..., description="Error message for this field")
    code: str = Field(default="invalid", description="Error code for this field")


class ErrorResponse(BaseModel):
    """
    Standardized API error response.

    All API errors return this format for consistent client handling.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "error": "Insufficient permissions",
                "code": "INSUFFICIENT_PERMISSIONS",
                "message": "You do not have permission to perform this action (tickets:read)",
                "requiredPermission": "tickets:read",
                "status_code": 403,
                "timestamp": "2026-01-29T12:00:00Z",
                "request_id": "550e8400-e29b-41d4-a716-446655440000",
                "path": "/api/tickets/42",
            }
        },
    )

    error: str = Field(..., description="Short error headline")
    code: str = Field(..., description="Error code from ErrorCode enum")
    message: str = Field(..., description="Human-readable error message")
    required_permission: Optional[str] = Field(
        None,
        alias="requiredPermission",
        description="Permission the caller lacked, e.g. 'tickets:read'",
    )
    status_code: int = Field(..., description="HTTP status code")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    request_id: str = Field(..., description="Unique request identifier for tracking")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")
    field_errors: Optional[List[FieldError]] = Field(None, description="Field-specific validation errors")

    def to_content(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# API ERROR EXCEPTION
# =============================================================================


class APIError(Exception):
    """
    Non-authorization failure raised from a route handler: missing rows,
    invalid status changes, bad input.

    Usage:
        raise APIError(
            code=ErrorCode.RESOURCE_NOT_FOUND,
            message="Ticket not found",
        )
    """

    def __init__(
        self,
        code: Union[ErrorCode, str],
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        required_permission: Optional[str] = None,
        log_error: bool = True,
    ):
        self.code = code if isinstance(code, ErrorCode) else ErrorCode(code)
        self.message = message
        self.status_code = status_code or ERROR_CODE_STATUS_MAP.get(
            self.code, status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        self.details = details
        self.required_permission = required_permission
        self.log_error = log_error
        super().__init__(message)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def raise_api_error(
    code: Union[ErrorCode, str],
    message: str,
    status_code: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
    **kwargs
) -> None:
    """
    Raise an APIError; extra keyword arguments land in details.

    Usage:
        raise_api_error(ErrorCode.VALIDATION_ERROR, "Invalid status", field="status")
    """
    if kwargs:
        details = details or {}
        details.update(kwargs)

    raise APIError(code=code, message=message, status_code=status_code, details=details)

def get_request_id(request: Request) -> str:
    """Request id from the header, the middleware, or a fresh uuid."""
    return (
        request.headers.get("X-Request-ID")
        or getattr(request.state, "request_id", None)
        or str(uuid.uuid4())
    )


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    error: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    **fields: Any,
) -> JSONResponse:
    """Render the standard error body with the request id attached."""
    request_id = get_request_id(request)
    body = ErrorResponse(
        error=error or ERROR_TITLES.get(status_code, "Error"),
        code=code,
        message=message,
        status_code=status_code,
        timestamp=_now(),
        request_id=request_id,
        path=request.url.path,
        **fields,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.to_content(),
        headers={"X-Request-ID": request_id, **(headers or {})},
    )


def _log(request: Request, status_code: int, summary: str, **context: Any) -> None:
    level = logging.WARNING if status_code < 500 else logging.ERROR
    logger.log(
        level,
        f"[{get_request_id(request)}] {request.method} {request.url.path}: {summary}",
        extra={"status_code": status_code, "path": request.url.path, **context},
    )


# Fallback codes for plain HTTPExceptions raised by FastAPI or dependencies
HTTP_STATUS_CODES: Dict[int, ErrorCode] = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.AUTH_REQUIRED,
    403: ErrorCode.INSUFFICIENT_PERMISSIONS,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    409: ErrorCode.RESOURCE_CONFLICT,
    503: ErrorCode.STORE_UNAVAILABLE,
}


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================


def register_exception_handlers(app: FastAPI) -> None:
    """
    Install the handlers that turn every failure into an ErrorResponse.

    Authorization failures keep their engine code and the permission that
    was missing. Store outages become 503 with a Retry-After hint so clients
    can tell an outage from a denial.
    """

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        if exc.log_error:
            _log(request, exc.status_code, exc.code.value, details=exc.details)
        return _error_response(
            request,
            exc.status_code,
            exc.code.value,
            exc.message,
            required_permission=exc.required_permission,
            details=exc.details,
        )

    @app.exception_handler(AuthorizationError)
    async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
        _log(request, exc.status_code, f"{type(exc).__name__} {exc.code}", context=exc.context)
        return _error_response(
            request,
            exc.status_code,
            exc.code,
            exc.message if exc.status_code < 500 else exc.public_message,
            error=exc.public_message,
            headers={"Retry-After": "5"} if exc.status_code == 503 else None,
            required_permission=exc.required_permission,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        field_errors = [
            FieldError(
                field=".".join(str(loc) for loc in error["loc"] if loc != "body") or "body",
                message=error["msg"],
                code=error["type"],
            )
            for error in exc.errors()
        ]
        _log(request, 422, f"{len(field_errors)} invalid field(s)")
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            ErrorCode.VALIDATION_ERROR.value,
            "Request validation failed",
            field_errors=field_errors,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.SERVER_INTERNAL_ERROR)
        _log(request, exc.status_code, str(exc.detail))
        return _error_response(
            request,
            exc.status_code,
            code.value,
            str(exc.detail) if exc.detail else "An error occurred",
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Internal details are logged, never returned."""
        logger.error(
            f"[{get_request_id(request)}] Unhandled {type(exc).__name__}: {exc}",
            extra={"path": request.url.path, "traceback": traceback.format_exc()},
            exc_info=True,
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorCode.SERVER_INTERNAL_ERROR.value,
            "An unexpected error occurred. Please try again later.",
            details={"support": f"Reference ID: {get_request_id(request)}"},
        )


# =============================================================================
# REQUEST ID MIDDLEWARE
# =============================================================================


class RequestIDMiddleware:
    """ASGI middleware that tags every request and response with X-Request-ID."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = dict(scope.get("headers", []))
        request_id = incoming.get(b"x-request-id", b"").decode() or str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_request_id(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                if not any(name.lower() == b"x-request-id" for name, _ in headers):
                    headers.append((b"x-request-id", request_id.encode()))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_request_id)
