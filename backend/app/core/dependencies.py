"""
Authentication dependencies for FastAPI.

This module resolves the bearer token on a request into the current
principal. Session issuance lives in the platform's auth service.
"""

from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from backend.app.core.exceptions import AuthenticationError
from backend.app.core.jwt import decode_access_token
from backend.app.models.enums import UserRole

# HTTP Bearer security scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Checks:
    1. A bearer token is present
    2. The token signature and expiry are valid
    3. The payload carries a user_id and a known role

    Returns:
        Decoded token payload containing user information

    Raises:
        AuthenticationError: 401 if authentication fails for any reason
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Unauthorized")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    if not payload.get("user_id"):
        raise AuthenticationError("Invalid token payload")

    try:
        UserRole(payload.get("role"))
    except ValueError:
        raise AuthenticationError("Invalid role in token")

    return payload
