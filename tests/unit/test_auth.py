"""Unit tests for JWT authentication dependencies"""
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException

from app.core.config import config
from app.dependencies.auth import TokenError, decode_jwt, get_current_user, get_current_user_optional


def make_token(payload, secret=None, expires_in=timedelta(hours=1)):
    claims = dict(payload)
    claims["exp"] = datetime.now(timezone.utc) + expires_in
    return jwt.encode(claims, secret or config.jwt_secret, algorithm=config.jwt_algorithm)


class TestDecodeJwt:
    """Token decoding"""

    def test_valid_token(self):
        token = make_token({"sub": "user-a"})
        assert decode_jwt(token)["sub"] == "user-a"

    def test_expired_token(self):
        token = make_token({"sub": "user-a"}, expires_in=timedelta(seconds=-10))

        with pytest.raises(TokenError) as exc_info:
            decode_jwt(token)

        assert exc_info.value.message == "Token has expired"

    def test_wrong_secret(self):
        token = make_token({"sub": "user-a"}, secret="another-secret-that-is-long-enough")

        with pytest.raises(TokenError) as exc_info:
            decode_jwt(token)

        assert exc_info.value.message == "Invalid token"


class TestGetCurrentUser:
    """User extraction from the Authorization header"""

    @pytest.mark.asyncio
    async def test_user_from_token(self):
        token = make_token({"id": "user-a", "email": "a@example.com", "display_name": "Alice"})

        user = await get_current_user(f"Bearer {token}")

        assert user.id == "user-a"
        assert user.email == "a@example.com"
        assert user.display_name == "Alice"

    @pytest.mark.asyncio
    async def test_missing_header(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(None)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_scheme(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("Basic abc")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_token_without_user_id(self):
        token = make_token({"email": "a@example.com"})

        with pytest.raises(HTTPException):
            await get_current_user(f"Bearer {token}")

    @pytest.mark.asyncio
    async def test_optional_returns_none_for_anonymous(self):
        assert await get_current_user_optional(None) is None
        assert await get_current_user_optional("Bearer garbage") is None
