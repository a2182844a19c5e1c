"""Error hierarchy for authorization and ticket lifecycle failures.

Every error carries a stable ``code`` so clients can tell a missing
session (redirect to login) from a denied action (show a message).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, cast

from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from fastapi import FastAPI, Request


class SimpleITError(Exception):
    """Base exception for SimpleIT."""

    status_code = 400

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AuthenticationMissing(SimpleITError):
    """No actor or session on the request."""

    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__("AUTHENTICATION_REQUIRED", message)


class AuthorizationDenied(SimpleITError):
    """Actor is known but lacks the permission or role level."""

    status_code = 403

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        *,
        required: str | None = None,
        actual_role: str | None = None,
        **context: Any,
    ) -> None:
        details: dict[str, Any] = {}
        if required is not None:
            details["required"] = required
        if actual_role is not None:
            details["role"] = actual_role
        details.update(context)
        super().__init__("FORBIDDEN", message, details)


class InvalidTransition(SimpleITError):
    """Requested ticket status is not reachable for the actor's role."""

    status_code = 400

    def __init__(self, current_status: str, attempted_status: str, role: str) -> None:
        message = f"Cannot transition from {current_status} to {attempted_status}"
        super().__init__(
            "INVALID_TRANSITION",
            message,
            {
                "current_status": current_status,
                "attempted_status": attempted_status,
                "role": role,
            },
        )


class ValidationError(SimpleITError):
    status_code = 422

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__("VALIDATION_ERROR", message, {"field": field} if field else None)


class NotFoundError(SimpleITError):
    status_code = 404

    def __init__(self, resource: str, identifier: str | int | None = None) -> None:
        message = f"{resource} not found"
        if identifier is not None:
            message += f": {identifier}"
        super().__init__("NOT_FOUND", message)


class ConcurrentUpdateError(SimpleITError):
    """Row changed between read and conditional write."""

    status_code = 409

    def __init__(self, resource: str, identifier: str | int) -> None:
        super().__init__(
            "CONCURRENT_UPDATE",
            f"{resource} {identifier} was modified by another request",
            {"resource": resource, "id": identifier},
        )


async def simpleit_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Render a SimpleITError as the standard error envelope."""
    error = cast("SimpleITError", exc)
    return JSONResponse(
        status_code=error.status_code,
        content={
            "success": False,
            "error": {
                "code": error.code,
                "message": error.message,
                "details": error.details or None,
            },
            "meta": {"timestamp": datetime.now(UTC).isoformat()},
        },
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SimpleITError, simpleit_exception_handler)
