"""Tests for bearer token verification."""

import time

import jwt
import pytest

from journeylog.config import settings
from journeylog.utils.security import decode_access_token


def _token(claims: dict, secret: str | None = None) -> str:
    return jwt.encode(claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


def test_valid_token_returns_subject() -> None:
    payload = decode_access_token(_token({"sub": "alice", "exp": int(time.time()) + 60}))
    assert payload["sub"] == "alice"


def test_expired_token_rejected() -> None:
    with pytest.raises(jwt.InvalidTokenError):
        decode_access_token(_token({"sub": "alice", "exp": int(time.time()) - 60}))


def test_wrong_secret_rejected() -> None:
    with pytest.raises(jwt.InvalidTokenError):
        decode_access_token(_token({"sub": "alice"}, secret="not-the-secret"))


def test_missing_subject_rejected() -> None:
    with pytest.raises(jwt.InvalidTokenError):
        decode_access_token(_token({"exp": int(time.time()) + 60}))
