from __future__ import annotations

from datetime import timedelta

import jwt
import pytest

from lms.services.token_service import REFRESH_AUDIENCE, TokenService
from tests.conftest import make_settings

ACCESS = "access-secret-for-token-tests-0123456789"
REFRESH = "refresh-secret-for-token-tests-0123456789"


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(access_secret=ACCESS, refresh_secret=REFRESH)


def test_access_token_round_trip(tokens: TokenService) -> None:
    token = tokens.create_access_token(sub="user-1", roles=["teacher"])
    claims = tokens.decode_access_token(token)
    assert claims["sub"] == "user-1"
    assert claims["roles"] == ["teacher"]
    assert claims["exp"] - claims["iat"] == 15 * 60


def test_every_token_gets_its_own_jti(tokens: TokenService) -> None:
    a = tokens.decode_access_token(tokens.create_access_token(sub="u", roles=[]))
    b = tokens.decode_access_token(tokens.create_access_token(sub="u", roles=[]))
    assert a["jti"] != b["jti"]


def test_refresh_token_carries_identity_only(tokens: TokenService) -> None:
    claims = tokens.decode_refresh_token(tokens.create_refresh_token(sub="user-1"))
    assert claims["sub"] == "user-1"
    assert claims["aud"] == REFRESH_AUDIENCE
    assert "roles" not in claims


def test_refresh_token_is_not_an_access_token(tokens: TokenService) -> None:
    refresh = tokens.create_refresh_token(sub="user-1")
    with pytest.raises(jwt.InvalidTokenError):
        tokens.decode_access_token(refresh)


def test_access_token_is_not_a_refresh_token(tokens: TokenService) -> None:
    access = tokens.create_access_token(sub="user-1", roles=["student"])
    with pytest.raises(jwt.InvalidTokenError):
        tokens.decode_refresh_token(access)


def test_expired_access_token(tokens: TokenService) -> None:
    stale = TokenService(
        access_secret=ACCESS, refresh_secret=REFRESH, access_ttl=timedelta(seconds=-1)
    )
    token = stale.create_access_token(sub="user-1", roles=[])
    with pytest.raises(jwt.ExpiredSignatureError):
        tokens.decode_access_token(token)


def test_foreign_secret_rejected(tokens: TokenService) -> None:
    forged = TokenService(
        access_secret="someone-elses-secret-0123456789abcdef", refresh_secret=REFRESH
    ).create_access_token(sub="user-1", roles=["admin"])
    with pytest.raises(jwt.InvalidSignatureError):
        tokens.decode_access_token(forged)


def test_alg_none_rejected(tokens: TokenService) -> None:
    unsigned = jwt.encode(
        {"sub": "user-1", "roles": ["admin"]}, key=None, algorithm="none"
    )
    with pytest.raises(jwt.InvalidTokenError):
        tokens.decode_access_token(unsigned)


def test_from_settings_uses_configured_lifetimes() -> None:
    settings = make_settings(jwt_access_ttl_minutes=5, jwt_refresh_ttl_days=30)
    tokens = TokenService.from_settings(settings)
    assert tokens.access_ttl == timedelta(minutes=5)
    assert tokens.refresh_ttl == timedelta(days=30)
    claims = tokens.decode_access_token(tokens.create_access_token(sub="u", roles=[]))
    assert claims["exp"] - claims["iat"] == 5 * 60
