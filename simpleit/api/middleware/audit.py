"""Audit logging middleware.

Logs successful mutating requests (POST, PATCH, PUT, DELETE) to
activity_logs. Skips GET requests, health checks, metrics, and the
auth routes, which write their own LOGIN/LOGOUT entries.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from simpleit.api.auth import verify_jwt
from simpleit.config import get_settings
from simpleit.storage.activity import AuditAction, EntityType, log_activity

if TYPE_CHECKING:
    from fastapi import Request, Response

logger = logging.getLogger(__name__)

_SKIP_PATHS = {"/health", "/metrics", "/auth/login", "/auth/logout"}
_AUDIT_METHODS = {"POST", "PATCH", "PUT", "DELETE"}

_METHOD_ACTIONS = {
    "POST": AuditAction.CREATE,
    "PATCH": AuditAction.UPDATE,
    "PUT": AuditAction.UPDATE,
    "DELETE": AuditAction.DELETE,
}

# Sub-resource verbs that carry a more specific action than the method
_SUFFIX_ACTIONS = {
    "status": AuditAction.STATUS_CHANGE,
    "assign": AuditAction.ASSIGN,
}

_ENTITY_TYPES = {
    "tickets": EntityType.TICKET,
    "users": EntityType.USER,
    "employees": EntityType.EMPLOYEE,
    "assets": EntityType.ASSET,
}


def _extract_resource(path: str) -> tuple[str, str | None]:
    """Extract resource_type and resource_id from path.

    /tickets            -> ("tickets", None)
    /tickets/12         -> ("tickets", "12")
    /tickets/12/status  -> ("tickets", "12")
    """
    parts = [p for p in path.strip("/").split("/") if p]
    resource_type = parts[0] if parts else ""
    resource_id = parts[1] if len(parts) >= 2 else None
    return resource_type, resource_id


def _audit_action(method: str, path: str) -> AuditAction:
    parts = [p for p in path.strip("/").split("/") if p]
    if len(parts) >= 3 and parts[-1] in _SUFFIX_ACTIONS:
        return _SUFFIX_ACTIONS[parts[-1]]
    return _METHOD_ACTIONS[method]


def _actor_id(request: Request) -> int | None:
    actor = getattr(request.state, "actor", None)
    if actor is not None:
        return int(actor.id)

    # Fall back to the token when the route did not resolve an actor
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    try:
        payload = verify_jwt(auth_header[7:], get_settings().auth.jwt_secret)
    except ValueError:
        return None
    user_id = payload.get("user_id")
    return None if user_id is None else int(user_id)


class AuditMiddleware(BaseHTTPMiddleware):
    """Middleware that logs mutating API requests to activity_logs."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # Skip non-mutating methods and excluded paths
        if request.method not in _AUDIT_METHODS:
            return await call_next(request)

        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        response = await call_next(request)

        # Only log successful mutations (2xx status)
        if response.status_code < 200 or response.status_code >= 300:
            return response

        resource_type, resource_id = _extract_resource(request.url.path)
        entity_type = _ENTITY_TYPES.get(resource_type)
        if entity_type is None:
            logger.debug("No audit entity for path %s", request.url.path)
            return response

        await log_activity(
            _actor_id(request),
            _audit_action(request.method, request.url.path),
            entity_type,
            entity_id=resource_id,
            details={"method": request.method, "path": request.url.path},
            ip_address=request.client.host if request.client else None,
        )
        return response
