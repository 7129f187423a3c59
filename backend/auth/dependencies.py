"""
FastAPI dependencies for authentication.

The requester's identity is resolved here once per request and handed to
route handlers, which pass it explicitly to every core operation.
"""

import logging
from typing import Optional

from fastapi import Cookie, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database import get_db
from errors import AuthenticationError, AuthorizationError
from models import User
from auth.security import TOKEN_COOKIE_NAME, verify_token

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme for JWT authentication
security = HTTPBearer(auto_error=False)


def _resolve_token(
    credentials: Optional[HTTPAuthorizationCredentials], cookie_token: Optional[str]
) -> Optional[str]:
    # The Authorization header wins over the cookie when both are present
    if credentials and credentials.credentials:
        return credentials.credentials
    return cookie_token or None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    token: Optional[str] = Cookie(None, alias=TOKEN_COOKIE_NAME),
    db: Session = Depends(get_db),
) -> User:
    """
    Extract and validate the current user from a session token.

    The token is read from the ``Authorization: Bearer`` header, falling back
    to the ``token`` cookie set at login.

    Returns:
        User object if authentication succeeds

    Raises:
        AuthenticationError: missing, invalid or expired token, or unknown user
        AuthorizationError: the account is inactive

    Example:
        @app.get("/api/protected")
        async def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    logger.debug("Attempting to authenticate user")

    raw_token = _resolve_token(credentials, token)
    if not raw_token:
        logger.info("No authentication credentials provided")
        raise AuthenticationError("Not authenticated")

    payload = verify_token(raw_token)
    if payload is None:
        raise AuthenticationError("Invalid or expired token")

    if payload.get("type") != "access":
        logger.info(f"Invalid token type: {payload.get('type')}")
        raise AuthenticationError("Invalid token type")

    # Parse user_id safely (malformed tokens should return 401, not 500)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        logger.info(f"Invalid user_id format in token: {payload.get('sub')}")
        raise AuthenticationError("Invalid token format")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.info(f"User not found for id: {user_id}")
        raise AuthenticationError("User not found")

    if not user.is_active:
        logger.info(f"Inactive user attempted access: {user_id}")
        raise AuthorizationError("Account is inactive")

    logger.debug(f"User authenticated via JWT: {user.email}")
    return user
