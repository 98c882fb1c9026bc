"""Unit tests for TokenService.

Covers access token minting and validation, claim decoding and refresh
token generation.
"""

import base64
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest

from identityhub.models.user import Role, User
from identityhub.services.token_service import JWT_ALGORITHM, TokenService

from conftest import TEST_JWT_SECRET, make_settings


def _make_user(**overrides) -> User:
    values = {
        "id": uuid4(),
        "email": "alice@example.com",
        "username": "alice@example.com",
        "password_hash": "x",
        "roles": [Role.USER],
        "created_at": datetime.now(timezone.utc),
    }
    values.update(overrides)
    return User(**values)


def _encode(payload: dict, secret: str = TEST_JWT_SECRET) -> str:
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def _valid_payload(**overrides) -> dict:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(uuid4()),
        "iss": "IdentityHub",
        "aud": "IdentityHubClient",
        "iat": now,
        "nbf": now,
        "exp": now + timedelta(minutes=5),
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Minting
# ---------------------------------------------------------------------------

class TestMintAccessToken:
    """Tests for mint_access_token."""

    def test_claims_carry_identity(self, tokens):
        user = _make_user(roles=[Role.ADMIN, Role.USER])
        token, _ = tokens.mint_access_token(user)

        payload = jwt.decode(
            token, TEST_JWT_SECRET, algorithms=[JWT_ALGORITHM], audience="IdentityHubClient"
        )
        assert payload["sub"] == str(user.id)
        assert payload["unique_name"] == user.username
        assert payload["email"] == user.email
        assert payload["role"] == ["Admin", "User"]
        assert payload["iss"] == "IdentityHub"
        assert payload["aud"] == "IdentityHubClient"

    def test_fresh_jti_per_token(self, tokens):
        user = _make_user()
        first, _ = tokens.mint_access_token(user)
        second, _ = tokens.mint_access_token(user)

        assert tokens.decode_claims(first).jti != tokens.decode_claims(second).jti

    def test_expiry_defaults_to_development_tier(self, tokens):
        before = datetime.now(timezone.utc)
        _, expires_at = tokens.mint_access_token(_make_user())

        assert timedelta(minutes=59) < expires_at - before <= timedelta(minutes=60, seconds=5)

    @pytest.mark.parametrize(
        "environment,minutes",
        [("development", 60), ("staging", 30), ("production", 15)],
    )
    def test_expiry_follows_environment_tier(self, environment, minutes):
        service = TokenService(make_settings(environment=environment))
        before = datetime.now(timezone.utc)
        _, expires_at = service.mint_access_token(_make_user())

        delta = expires_at - before
        assert timedelta(minutes=minutes - 1) < delta <= timedelta(minutes=minutes, seconds=5)

    def test_explicit_expiry_overrides_tier(self):
        service = TokenService(make_settings(environment="production", jwt_expiry_minutes=90))
        before = datetime.now(timezone.utc)
        _, expires_at = service.mint_access_token(_make_user())

        assert expires_at - before > timedelta(minutes=89)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidateAccessToken:
    """Tests for validate_access_token / authenticate."""

    def test_minted_token_is_valid(self, tokens):
        token, _ = tokens.mint_access_token(_make_user())
        assert tokens.validate_access_token(token) is True

    def test_authenticate_returns_claims(self, tokens):
        user = _make_user()
        token, expires_at = tokens.mint_access_token(user)

        claims = tokens.authenticate(token)

        assert claims is not None
        assert claims.user_id == str(user.id)
        assert claims.email == user.email
        assert claims.roles == ["User"]
        assert claims.expires_at == expires_at

    def test_reported_expiry_matches_exp_claim(self, tokens):
        token, expires_at = tokens.mint_access_token(_make_user())

        payload = jwt.decode(token, options={"verify_signature": False})

        assert expires_at.microsecond == 0
        assert payload["exp"] == int(expires_at.timestamp())

    def test_expired_token_rejected(self, tokens):
        past = datetime.now(timezone.utc) - timedelta(minutes=10)
        token = _encode(_valid_payload(iat=past, nbf=past, exp=past + timedelta(minutes=1)))
        assert tokens.validate_access_token(token) is False

    def test_wrong_signature_rejected(self, tokens):
        token = _encode(_valid_payload(), secret="another-secret-key-that-is-long-enough-123")
        assert tokens.validate_access_token(token) is False

    def test_wrong_issuer_rejected(self, tokens):
        assert tokens.validate_access_token(_encode(_valid_payload(iss="Other"))) is False

    def test_wrong_audience_rejected(self, tokens):
        assert tokens.validate_access_token(_encode(_valid_payload(aud="Other"))) is False

    def test_missing_subject_rejected(self, tokens):
        payload = _valid_payload()
        del payload["sub"]
        assert tokens.validate_access_token(_encode(payload)) is False

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c", None])
    def test_malformed_tokens_rejected(self, tokens, token):
        assert tokens.validate_access_token(token) is False

    def test_single_role_string_is_normalized(self, tokens):
        token = _encode(_valid_payload(role="Admin"))
        assert tokens.authenticate(token).roles == ["Admin"]


# ---------------------------------------------------------------------------
# Decoding and refresh tokens
# ---------------------------------------------------------------------------

class TestDecodeClaims:
    def test_decodes_without_verification(self, tokens):
        token = _encode(_valid_payload(email="bob@example.com"), secret="unrelated-secret-value-1234567890")
        assert tokens.decode_claims(token).email == "bob@example.com"

    def test_unparsable_token_raises(self, tokens):
        with pytest.raises(ValueError):
            tokens.decode_claims("garbage")


class TestRefreshTokenGeneration:
    def test_is_base64_of_32_bytes(self):
        value = TokenService.generate_refresh_token()
        assert len(base64.b64decode(value)) == 32

    def test_values_do_not_repeat(self):
        values = {TokenService.generate_refresh_token() for _ in range(200)}
        assert len(values) == 200
