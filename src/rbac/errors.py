"""
Permission errors.

Every error carries a stable machine-readable code, an HTTP status and a
user-facing message that never echoes record or team identifiers.

    NoRoleError            internal; the engine turns it into a denial
    StoreUnavailableError  the role/session store failed; maps to 503
    ScopeConflictError     a list filter asked for a team outside the scope
    InsufficientPermissionsError  a check was denied; maps to 403
"""

from typing import Any, Dict, Optional


class AuthorizationError(Exception):
    """Base class for all RBAC errors."""

    code: str = "PERMISSION_ERROR"
    status_code: int = 403
    public_message: str = "Insufficient permissions"

    def __init__(
        self,
        message: Optional[str] = None,
        required_permission: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.public_message
        self.required_permission = required_permission
        self.context = context or {}
        super().__init__(self.message)

    def to_response(self) -> Dict[str, Any]:
        """Client-facing body. Internal context is never included."""
        body: Dict[str, Any] = {
            "error": self.public_message,
            "code": self.code,
            "message": self.message,
        }
        if self.required_permission:
            body["requiredPermission"] = self.required_permission
        return body


class NoRoleError(AuthorizationError):
    """User has no usable role, or is inactive or deleted."""
    code = "NO_ROLE"

    def __init__(self, user_id: str, detail: str = "no role assigned"):
        self.user_id = user_id
        super().__init__(
            message=f"User {user_id} cannot be authorized: {detail}",
            context={"user_id": user_id, "detail": detail},
        )


class InsufficientPermissionsError(AuthorizationError):
    """A permission check was denied."""
    code = "INSUFFICIENT_PERMISSIONS"

    def __init__(
        self,
        required_permission: str,
        reason: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.reason = reason
        super().__init__(
            message=f"You do not have permission to perform this action ({required_permission})",
            required_permission=required_permission,
            context=context,
        )


class ScopeConflictError(AuthorizationError):
    """An explicit filter requested data outside the caller's scope."""
    code = "TEAM_ACCESS_DENIED"
    public_message = "Access denied to the requested team"

    def __init__(self, requested_team_id: Optional[str] = None, user_id: Optional[str] = None):
        super().__init__(
            message="You do not have access to the requested team",
            context={"requested_team_id": requested_team_id, "user_id": user_id},
        )


class StoreUnavailableError(AuthorizationError):
    """The role/permission or session store could not be reached."""
    code = "STORE_UNAVAILABLE"
    status_code = 503
    public_message = "Authorization service temporarily unavailable"

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(
            message="Authorization service temporarily unavailable",
            context={"operation": operation, "cause": repr(cause) if cause else None},
        )
