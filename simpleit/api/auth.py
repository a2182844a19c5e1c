"""JWT authentication and RBAC guards for the API.

Tokens carry the user's id, role and reporting line. Guards resolve the
token to an Actor, then check it against the permission policy; a
missing token and a denied action surface as different errors (401/403).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
import uuid
from base64 import urlsafe_b64decode, urlsafe_b64encode
from collections.abc import Awaitable, Callable
from typing import Any

import bcrypt
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from simpleit.config import get_settings
from simpleit.errors import AuthenticationMissing, AuthorizationDenied
from simpleit.monitoring.metrics import authorization_denials_total
from simpleit.rbac.actor import Actor
from simpleit.rbac.permissions import Permission
from simpleit.rbac.policy import get_policy
from simpleit.rbac.roles import get_role_display_name, parse_role, role_level
from simpleit.storage import users as user_store
from simpleit.storage.activity import AuditAction, EntityType, log_activity

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

_redis: Any = None

_LOGIN_MAX_ATTEMPTS = 5
_LOGIN_WINDOW_SECONDS = 900  # 15 minutes

ActorDependency = Callable[[Request], Awaitable[Actor]]


async def _get_redis() -> Any:
    """Lazily create and cache Redis connection for rate limiting and revocation."""
    global _redis
    if _redis is None:
        from redis.asyncio import Redis

        settings = get_settings()
        _redis = Redis.from_url(settings.redis.url, decode_responses=True)
    return _redis


async def blacklist_token(jti: str, ttl: int) -> None:
    """Add a JWT ID to the Redis blacklist with TTL.

    After TTL expires, the key auto-deletes (token would be expired anyway).
    """
    try:
        r = await _get_redis()
        await r.setex(f"jwt_blacklist:{jti}", ttl, "1")
    except Exception:
        logger.warning("Failed to blacklist token jti=%s", jti, exc_info=True)


async def is_token_blacklisted(jti: str) -> bool:
    """Check if a JWT ID is in the Redis blacklist."""
    try:
        r = await _get_redis()
        return await r.exists(f"jwt_blacklist:{jti}") > 0
    except Exception:
        logger.debug("Blacklist check failed, allowing request", exc_info=True)
        return False


async def _check_rate_limit(ip: str, username: str) -> bool:
    """Check login rate limit. Returns True if request should be BLOCKED."""
    try:
        r = await _get_redis()
        key = f"login_rl:{ip}:{username}"
        count = await r.incr(key)
        if count == 1:
            await r.expire(key, _LOGIN_WINDOW_SECONDS)
        return int(count) > _LOGIN_MAX_ATTEMPTS
    except Exception:
        logger.debug("Rate limit check failed, allowing request", exc_info=True)
        return False


class LoginRequest(BaseModel):
    username: str
    password: str


def _b64_encode(data: bytes) -> str:
    return urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64_decode(s: str) -> bytes:
    padding = 4 - len(s) % 4
    return urlsafe_b64decode(s + "=" * padding)


def create_jwt(payload: dict[str, Any], secret: str, expires_in: int = 86400) -> str:
    """Create a simple JWT token (HS256)."""
    header = {"alg": "HS256", "typ": "JWT"}
    payload = {
        **payload,
        "exp": int(time.time()) + expires_in,
        "iat": int(time.time()),
        "jti": str(uuid.uuid4()),
    }

    header_b64 = _b64_encode(json.dumps(header).encode())
    payload_b64 = _b64_encode(json.dumps(payload).encode())

    message = f"{header_b64}.{payload_b64}"
    signature = hmac.new(secret.encode(), message.encode(), hashlib.sha256).digest()
    sig_b64 = _b64_encode(signature)

    return f"{message}.{sig_b64}"


def verify_jwt(token: str, secret: str) -> dict[str, Any]:
    """Verify and decode a JWT token."""
    parts = token.split(".")
    if len(parts) != 3:
        msg = "Invalid token format"
        raise ValueError(msg)

    message = f"{parts[0]}.{parts[1]}"
    expected_sig = hmac.new(secret.encode(), message.encode(), hashlib.sha256).digest()
    actual_sig = _b64_decode(parts[2])

    if not hmac.compare_digest(expected_sig, actual_sig):
        msg = "Invalid signature"
        raise ValueError(msg)

    payload = json.loads(_b64_decode(parts[1]))
    if payload.get("exp", 0) < time.time():
        msg = "Token expired"
        raise ValueError(msg)

    result: dict[str, Any] = payload
    return result


async def _verified_claims(request: Request) -> dict[str, Any]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise AuthenticationMissing("Missing authorization token")

    settings = get_settings()
    try:
        payload = verify_jwt(auth_header[7:], settings.auth.jwt_secret)
    except ValueError as e:
        raise AuthenticationMissing(str(e)) from e

    jti = payload.get("jti")
    if jti and await is_token_blacklisted(jti):
        raise AuthenticationMissing("Token has been revoked")

    if "user_id" not in payload:
        raise AuthenticationMissing("Token has no user")
    return payload


async def get_current_actor(request: Request) -> Actor:
    """FastAPI dependency: resolve the bearer token to an Actor."""
    claims = await _verified_claims(request)
    actor = Actor.from_claims(claims)
    request.state.actor = actor
    return actor


def require_permission(permission: Permission | str) -> ActorDependency:
    """Create a dependency that admits only actors holding ``permission``.

    Usage:
        _perm = Depends(require_permission(Permission.TICKETS_ASSIGN))
        async def endpoint(actor: Actor = _perm): ...
    """
    required = Permission(permission)

    async def _check_permission(request: Request) -> Actor:
        actor = await get_current_actor(request)
        if not get_policy().has_permission(actor.role, required):
            authorization_denials_total.labels(required=required.value).inc()
            logger.info(
                "Permission denied",
                extra={"actor_id": actor.id, "role": actor.raw_role, "permission": required.value},
            )
            raise AuthorizationDenied(required=required.value, actual_role=actor.raw_role)
        return actor

    return _check_permission


def require_role_level(min_role: str) -> ActorDependency:
    """Create a dependency that admits actors at or above ``min_role``.

    Role strings are compared case-insensitively ("Admin" == "admin").
    """
    role = parse_role(min_role)
    if role is None:
        msg = f"Unknown minimum role: {min_role!r}"
        raise ValueError(msg)
    min_level = role_level(role)

    async def _check_role_level(request: Request) -> Actor:
        actor = await get_current_actor(request)
        if actor.level < min_level:
            authorization_denials_total.labels(required=f"role:{role.value}").inc()
            raise AuthorizationDenied(
                "Insufficient role level",
                required=role.value,
                actual_role=actor.raw_role,
                level=actor.level,
                required_level=min_level,
            )
        return actor

    return _check_role_level


@router.post("/login")
async def login(login_data: LoginRequest, request: Request) -> dict[str, Any]:
    """Authenticate a user and return a JWT token.

    Rate-limited: max 5 attempts per 15 minutes per IP+username.
    """
    settings = get_settings()
    client_ip = request.client.host if request.client else "unknown"
    ttl_seconds = settings.auth.jwt_ttl_hours * 3600

    if await _check_rate_limit(client_ip, login_data.username):
        raise HTTPException(status_code=429, detail="Too many login attempts. Try again later.")

    user = await user_store.get_user_by_username(login_data.username)
    if (
        user
        and user.get("is_active", True)
        and bcrypt.checkpw(login_data.password.encode(), str(user["password_hash"]).encode())
    ):
        token = create_jwt(
            {
                "sub": user["username"],
                "role": user["role"],
                "user_id": user["id"],
                "employee_id": user.get("employee_id"),
                "manager_id": user.get("manager_id"),
            },
            settings.auth.jwt_secret,
            expires_in=ttl_seconds,
        )
        await user_store.touch_last_login(user["id"])
        await log_activity(
            user["id"], AuditAction.LOGIN, EntityType.SESSION, ip_address=client_ip
        )
        return {"token": token, "token_type": "bearer", "expires_in": ttl_seconds}

    await log_activity(
        None,
        AuditAction.LOGIN_FAILED,
        EntityType.SESSION,
        details={"username": login_data.username},
        ip_address=client_ip,
    )
    raise HTTPException(status_code=401, detail="Invalid credentials")


@router.post("/logout")
async def logout(request: Request) -> dict[str, str]:
    """Invalidate the current JWT token via the Redis blacklist."""
    claims = await _verified_claims(request)

    jti = claims.get("jti")
    if jti:
        settings = get_settings()
        await blacklist_token(jti, settings.auth.effective_blacklist_ttl)
        logger.info("Token blacklisted: jti=%s user=%s", jti, claims.get("sub"))

    await log_activity(int(claims["user_id"]), AuditAction.LOGOUT, EntityType.SESSION)
    return {"status": "logged_out"}


@router.get("/me")
async def me(request: Request) -> dict[str, Any]:
    """Current actor with its effective role, level and permissions."""
    actor = await get_current_actor(request)
    permissions = sorted(p.value for p in get_policy().permissions_for(actor.role))
    return {
        "id": actor.id,
        "username": actor.username,
        "role": actor.role.value,
        "role_display_name": get_role_display_name(actor.role),
        "level": actor.level,
        "employee_id": actor.employee_id,
        "manager_id": actor.manager_id,
        "permissions": permissions,
    }
