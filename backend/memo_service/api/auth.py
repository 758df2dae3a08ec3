"""Caller identity from bearer tokens.

Tokens are issued elsewhere; this service only verifies the signature and
reads the user id from the ``sub`` claim.
"""

import logging
import os
from typing import Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from memo_service.api.exceptions import AuthError, BackendMisconfiguredError

logger = logging.getLogger(__name__)

# auto_error=False so a missing header reaches our AuthError handler
security = HTTPBearer(auto_error=False)

DEFAULT_ALGORITHM = "HS256"
DEFAULT_AUDIENCE = "authenticated"


def verify_token(token: str) -> dict[str, Any]:
    """Verify a JWT and return its claims.

    Configuration (env vars):
    - AUTH_JWT_SECRET: signing secret (required)
    - AUTH_JWT_ALGORITHM: default "HS256"
    - AUTH_JWT_AUDIENCE: expected audience, default "authenticated"; empty disables the check

    Raises:
        BackendMisconfiguredError: If AUTH_JWT_SECRET is not set.
        AuthError: If the token is invalid or expired.
    """
    secret = os.getenv("AUTH_JWT_SECRET")
    if not secret:
        raise BackendMisconfiguredError("AUTH_JWT_SECRET")

    algorithm = os.getenv("AUTH_JWT_ALGORITHM", DEFAULT_ALGORITHM)
    audience = os.getenv("AUTH_JWT_AUDIENCE", DEFAULT_AUDIENCE)

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            audience=audience or None,
            options={"verify_aud": bool(audience)},
        )
    except JWTError as e:
        logger.info(f"JWT verification failed: {e}")
        raise AuthError("Could not validate credentials") from e


async def get_caller_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """FastAPI dependency returning the authenticated user id."""
    if credentials is None or not credentials.credentials:
        raise AuthError("Missing bearer token")

    payload = verify_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid authentication credentials")

    return str(user_id)
