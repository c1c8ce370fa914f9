"""
Authentication dependencies for FastAPI
Provides JWT token validation and user extraction
"""

from typing import Optional

import jwt
from fastapi import Header, HTTPException, status

from app.core.config import config
from app.core.logger import logger
from app.models.user import User


class TokenError(Exception):
    """Token could not be decoded or validated"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


def decode_jwt(token: str) -> dict:
    """
    Decode and validate a JWT token

    Raises:
        TokenError: If token is invalid or expired
    """
    try:
        return jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid token: {str(e)}", metadata={"event": "invalid_token"})
        raise TokenError("Invalid token")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    authorization: Optional[str] = Header(None)
) -> User:
    """
    Dependency to extract and validate current user from JWT token.
    Raises 401 if authentication fails.
    """
    if not authorization:
        raise _unauthorized("Authentication required")

    if not authorization.startswith("Bearer "):
        raise _unauthorized("Invalid authorization header format. Expected 'Bearer <token>'")

    token = authorization.split(" ", 1)[1]

    try:
        payload = decode_jwt(token)
    except TokenError as e:
        logger.warning(f"Authentication failed: {e.message}", metadata={"event": "auth_failed"})
        raise _unauthorized(e.message)

    user_id = payload.get("id") or payload.get("user_id") or payload.get("sub")
    if not user_id:
        raise _unauthorized("Invalid token: Missing user identifier")

    return User(
        id=str(user_id),
        email=payload.get("email"),
        display_name=payload.get("display_name") or payload.get("name"),
        roles=payload.get("roles", []),
    )


async def get_current_user_optional(
    authorization: Optional[str] = Header(None)
) -> Optional[User]:
    """Returns User if a valid token was provided, None otherwise"""
    if not authorization:
        return None

    try:
        return await get_current_user(authorization)
    except HTTPException:
        return None
