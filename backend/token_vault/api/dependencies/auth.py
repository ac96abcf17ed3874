"""
Caller authentication for the token API.

Verifies an HS256 JWT from the Authorization header. This only answers
"is the caller authorized"; it performs no per-account checks.
"""

import logging
from typing import Any, Optional

import jwt
from fastapi import Header, Request

from token_vault.platform.errors import AuthenticationError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def require_caller(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> dict[str, Any]:
    """
    Decode and verify the caller's bearer JWT.

    Returns:
        Decoded claims

    Raises:
        AuthenticationError: Missing, malformed, expired or badly signed token
    """
    secret = request.app.state.config.jwt_secret
    if not secret:
        logger.error("JWT_SECRET not configured; rejecting request")
        raise AuthenticationError("Caller authentication is not configured")

    if not authorization:
        raise AuthenticationError("Authorization header required")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Invalid authorization header format")

    try:
        claims = jwt.decode(token.strip(), secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    request.state.caller = claims.get("sub")
    return claims
