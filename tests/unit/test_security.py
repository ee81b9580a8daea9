"""Tests for password hashing, access tokens, refresh tokens and OAuth state."""

from datetime import timedelta

import jwt
import pytest

from starter.config import settings
from starter.core.security import (
    create_access_token,
    create_oauth_state,
    create_refresh_token,
    decode_access_token,
    get_password_hash,
    hash_token,
    validate_password_strength,
    verify_access_token,
    verify_oauth_state,
    verify_password,
)


@pytest.mark.unit
class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = get_password_hash("Secret123!")

        assert hashed != "Secret123!"
        assert verify_password("Secret123!", hashed)
        assert not verify_password("Secret123?", hashed)

    def test_long_password(self):
        """Passwords past bcrypt's 72 byte limit still distinguish their tails."""
        base = "A1!" + "x" * 80
        hashed = get_password_hash(base + "tail-one")

        assert verify_password(base + "tail-one", hashed)
        assert not verify_password(base + "tail-two", hashed)

    def test_missing_hash_never_matches(self):
        assert not verify_password("anything", None)
        assert not verify_password("anything", "")

    def test_garbage_hash_never_matches(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")


@pytest.mark.unit
class TestPasswordStrength:
    @pytest.mark.parametrize(
        ("password", "fragment"),
        [
            ("Ab1!", "at least 8"),
            ("lowercase1!", "uppercase"),
            ("UPPERCASE1!", "lowercase"),
            ("NoDigits!!", "digit"),
            ("NoSpecial123", "special"),
        ],
    )
    def test_rejected(self, password, fragment):
        is_valid, message = validate_password_strength(password)

        assert not is_valid
        assert fragment in message

    def test_accepted(self):
        assert validate_password_strength("Passw0rd!") == (True, None)


@pytest.mark.unit
class TestAccessTokens:
    def test_claims(self):
        token = create_access_token("user-1", "a@example.com", "ADMIN")

        payload = decode_access_token(token)

        assert payload["sub"] == "user-1"
        assert payload["email"] == "a@example.com"
        assert payload["role"] == "ADMIN"
        assert payload["type"] == "access"
        assert payload["exp"] - payload["iat"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        assert payload["jti"]

    def test_tokens_are_unique(self):
        assert create_access_token("u", "e@example.com", "USER") != create_access_token(
            "u", "e@example.com", "USER"
        )

    def test_expired(self):
        token = create_access_token(
            "user-1", "a@example.com", "USER", expires_delta=timedelta(seconds=-1)
        )

        with pytest.raises(jwt.ExpiredSignatureError):
            decode_access_token(token)
        assert verify_access_token(token) is None

    def test_wrong_secret(self):
        token = jwt.encode(
            {"sub": "user-1", "type": "access", "exp": 9999999999},
            "a-completely-different-secret-value",
            algorithm="HS256",
        )

        with pytest.raises(jwt.InvalidTokenError):
            decode_access_token(token)

    def test_wrong_type(self):
        """An OAuth state value is signed with the same key but is not an access token."""
        with pytest.raises(jwt.InvalidTokenError):
            decode_access_token(create_oauth_state("google"))

    def test_missing_subject(self):
        token = jwt.encode(
            {"type": "access", "exp": 9999999999}, settings.SECRET_KEY, algorithm="HS256"
        )

        with pytest.raises(jwt.InvalidTokenError):
            decode_access_token(token)

    def test_verify_returns_subject(self):
        assert verify_access_token(create_access_token("user-9", "z@example.com", "USER")) == "user-9"
        assert verify_access_token("not.a.token") is None


@pytest.mark.unit
class TestRefreshTokens:
    def test_opaque_and_random(self):
        first, second = create_refresh_token(), create_refresh_token()

        assert first != second
        assert len(first) >= 43
        with pytest.raises(jwt.DecodeError):
            jwt.decode(first, options={"verify_signature": False})

    def test_hash_is_stable_sha256(self):
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != hash_token("abd")
        assert len(hash_token("abc")) == 64


@pytest.mark.unit
class TestOAuthState:
    def test_round_trip(self):
        assert verify_oauth_state(create_oauth_state("github"), "github")

    def test_provider_mismatch(self):
        assert not verify_oauth_state(create_oauth_state("github"), "google")

    def test_forged(self):
        assert not verify_oauth_state("forged", "google")
