"""
JWT utilities for tenant tokens.

Tokens carry the identity (sub, email), the restaurant scope (restaurant_id)
and the role/permissions claimed at issue time. Every token gets a unique
``jti`` so it can be correlated in logs without exposing the token itself.
"""

from __future__ import annotations

import hashlib
import time
import uuid
from typing import Any

import jwt

from shared.config.settings import settings
from shared.config.logging import get_logger, audit_auth_event
from shared.utils.exceptions import AuthenticationError

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"


def _hash_jti(jti: str) -> str:
    """Hash JTI for logging. Returns first 8 characters of SHA256."""
    return hashlib.sha256(jti.encode()).hexdigest()[:8]


def sign_jwt(payload: dict[str, Any], ttl_seconds: int | None = None) -> str:
    """
    Sign a JWT token with the given payload.

    Args:
        payload: Claims to include (sub, email, restaurant_id, role, permissions).
        ttl_seconds: Token lifetime in seconds. Defaults to access token expiry.

    Returns:
        Signed JWT token string.
    """
    if ttl_seconds is None:
        ttl_seconds = settings.jwt_access_token_expire_minutes * 60

    now = int(time.time())
    data = {
        **payload,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + ttl_seconds,
        "type": "access",
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(data, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Raises:
        AuthenticationError: If token is invalid, expired or malformed.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        audit_auth_event("TOKEN_REJECTED", success=False, reason="expired")
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError as e:
        # Log the actual error, return a generic message to the client
        audit_auth_event("TOKEN_REJECTED", success=False, reason=str(e))
        raise AuthenticationError("Invalid token")

    if payload.get("type") not in ("access", None):
        raise AuthenticationError("Invalid token: invalid type claim")

    sub = payload.get("sub")
    if sub is not None and not isinstance(sub, str):
        raise AuthenticationError("Invalid token: malformed subject claim")

    restaurant_id = payload.get("restaurant_id")
    if restaurant_id is not None and not isinstance(restaurant_id, str):
        raise AuthenticationError("Invalid token: malformed restaurant_id claim")

    if "role" not in payload:
        raise AuthenticationError("Invalid token: missing role claim")

    jti = payload.get("jti")
    if jti:
        logger.debug("Token verified", jti_hash=_hash_jti(jti))
    return payload


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header value.

    Raises:
        AuthenticationError: If the header is missing or not a bearer token.
    """
    if not authorization:
        raise AuthenticationError("Missing Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Invalid Authorization header")
    return token.strip()
