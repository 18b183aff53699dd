"""Tests for access tokens."""

import pytest
from jose import jwt

from auth import (
    TokenManager, AuthError, InvalidTokenError, SessionExpiredError, JWT_ALGORITHM
)

SECRET = "test-secret"
ADDRESS = "EfwuhAAAWyXWYHZZ3rYm4rUuQCy3qVFiEU"


def test_token_round_trip():
    """An issued token verifies to its address."""
    tokens = TokenManager(SECRET, expiry_minutes=5)
    issued = tokens.create_access_token(ADDRESS)

    assert tokens.verify_token(issued['token']) == ADDRESS
    claims = jwt.decode(issued['token'], SECRET, algorithms=[JWT_ALGORITHM])
    assert claims['sub'] == ADDRESS
    assert 'expires_at' in issued


def test_expired_token():
    """Expired tokens are refused."""
    tokens = TokenManager(SECRET, expiry_minutes=-1)
    issued = tokens.create_access_token(ADDRESS)

    with pytest.raises(SessionExpiredError):
        tokens.verify_token(issued['token'])


def test_token_from_other_secret():
    """Tokens signed with another secret are refused."""
    issued = TokenManager("other-secret").create_access_token(ADDRESS)

    with pytest.raises(InvalidTokenError):
        TokenManager(SECRET).verify_token(issued['token'])

    with pytest.raises(InvalidTokenError):
        TokenManager(SECRET).verify_token("not-a-jwt")


def test_random_secret_when_unset():
    """Without a configured secret tokens only verify on the same manager."""
    first = TokenManager("")
    second = TokenManager(None)
    issued = first.create_access_token(ADDRESS)

    assert first.verify_token(issued['token']) == ADDRESS
    with pytest.raises(AuthError):
        second.verify_token(issued['token'])


def test_empty_address():
    """Tokens need a subject."""
    with pytest.raises(AuthError):
        TokenManager(SECRET).create_access_token("  ")
