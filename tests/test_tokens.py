"""Unit tests for auth/tokens.py -- bcrypt hashing and JWT encode/decode.

Covers:
- hash_password() output verifies, wrong password and malformed hashes do not
- create_access_token() carries sub, email, iat, exp and optional roles
- decode_access_token() returns None for expired, tampered, foreign-key and
  subject-less tokens
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import jwt

from auth import tokens
from auth.tokens import create_access_token, decode_access_token, hash_password, verify_password


class TestPasswordHashing:
    def test_hash_verifies(self) -> None:
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed) is True

    def test_wrong_password_rejected(self) -> None:
        hashed = hash_password("correct horse")
        assert verify_password("battery staple", hashed) is False

    def test_malformed_hash_returns_false(self) -> None:
        """A corrupt stored hash must read as a mismatch, never raise."""
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_same_password_hashes_differently(self) -> None:
        """bcrypt salts every hash."""
        assert hash_password("repeat") != hash_password("repeat")

    def test_dummy_hash_is_valid_bcrypt(self) -> None:
        assert tokens._DUMMY_HASH.startswith("$2")
        assert verify_password("not the dummy", tokens._DUMMY_HASH) is False


class TestAccessTokens:
    def test_round_trip_claims(self) -> None:
        token = create_access_token("user-1", "a@example.com", ["administrador"])
        payload = decode_access_token(token)
        assert payload is not None
        assert payload["sub"] == "user-1"
        assert payload["email"] == "a@example.com"
        assert payload["roles"] == ["administrador"]
        assert payload["exp"] > payload["iat"]

    def test_roles_omitted_when_none(self) -> None:
        payload = decode_access_token(create_access_token("user-1", "a@example.com"))
        assert payload is not None
        assert "roles" not in payload

    def test_custom_expiry(self) -> None:
        payload = decode_access_token(create_access_token("u", "a@example.com", expire_seconds=60))
        assert payload is not None
        assert payload["exp"] - payload["iat"] == 60

    def test_expired_token_rejected(self) -> None:
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"sub": "user-1", "email": "a@example.com", "iat": past, "exp": past + timedelta(minutes=5)},
            tokens._settings.secret_key,
            algorithm="HS256",
        )
        assert decode_access_token(token) is None

    def test_tampered_token_rejected(self) -> None:
        token = create_access_token("user-1", "a@example.com")
        header, payload, signature = token.split(".")
        flipped = signature[:-2] + ("AA" if signature[-2:] != "AA" else "BB")
        assert decode_access_token(f"{header}.{payload}.{flipped}") is None

    def test_token_signed_with_other_key_rejected(self) -> None:
        token = jwt.encode(
            {"sub": "user-1", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            "x" * 64,
            algorithm="HS256",
        )
        assert decode_access_token(token) is None

    def test_token_without_subject_rejected(self) -> None:
        token = jwt.encode(
            {"email": "a@example.com", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            tokens._settings.secret_key,
            algorithm="HS256",
        )
        assert decode_access_token(token) is None

    def test_garbage_rejected(self) -> None:
        assert decode_access_token("not.a.jwt") is None
