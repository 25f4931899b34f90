"""Tests for Appwrite JWT decoding."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException

from planbase.features.users.auth import verify_jwt_token
from planbase.features.users.dependencies import get_authorization_header


def token(**claims) -> str:
    return jwt.encode(claims, "appwrite-signing-key", algorithm="HS256")


class TestVerifyJwtToken:
    """Tests for verify_jwt_token()."""

    def test_returns_claims(self) -> None:
        exp = datetime.now(timezone.utc) + timedelta(minutes=15)
        payload = verify_jwt_token(token(userId="aw-123", exp=exp))
        assert payload["userId"] == "aw-123"

    def test_expired(self) -> None:
        exp = datetime.now(timezone.utc) - timedelta(minutes=1)
        with pytest.raises(HTTPException) as exc_info:
            verify_jwt_token(token(userId="aw-123", exp=exp))
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Token has expired"

    def test_malformed(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            verify_jwt_token("not-a-jwt")
        assert exc_info.value.status_code == 401


class TestRateLimitKey:
    """Tests for the slowapi key function."""

    def test_uses_authorization_header(self) -> None:
        class FakeRequest:
            headers = {"Authorization": "Bearer abc"}

        assert get_authorization_header(FakeRequest()) == "Bearer abc"

    def test_anonymous_without_header(self) -> None:
        class FakeRequest:
            headers = {}

        assert get_authorization_header(FakeRequest()) == "anonymous"
