"""Unit tests for tokens, password hashing and API key helpers."""

from datetime import timedelta

import pytest

from core.security import (
    PasswordHasher,
    TokenService,
    api_key_preview,
    generate_api_key,
    hash_api_key,
    looks_like_api_key,
)

SECRET = "test-secret-key-for-unit-tests-only"


class TestTokenService:
    def test_access_token_round_trip(self):
        service = TokenService(secret_key=SECRET)
        token = service.create_access_token("user-1", "cook@reciperank.io")

        payload = service.verify_access_token(token)
        assert payload.sub == "user-1"
        assert payload.email == "cook@reciperank.io"
        assert payload.type == "access"

    def test_refresh_token_is_not_an_access_token(self):
        service = TokenService(secret_key=SECRET)
        _, refresh = service.create_token_pair("user-1")

        assert service.verify_access_token(refresh) is None
        assert service.verify_refresh_token(refresh).sub == "user-1"

    def test_wrong_secret(self):
        token = TokenService(secret_key=SECRET).create_access_token("user-1")
        assert TokenService(secret_key="another-secret").verify_access_token(token) is None

    def test_expired(self):
        service = TokenService(secret_key=SECRET)
        token = service._encode("user-1", "access", timedelta(seconds=-5))
        assert service.decode_token(token) is None

    def test_garbage(self):
        assert TokenService(secret_key=SECRET).decode_token("not.a.token") is None


class TestPasswordHasher:
    def test_hash_and_verify(self):
        hasher = PasswordHasher(rounds=4)
        hashed = hasher.hash("banana123")

        assert hashed != "banana123"
        assert hasher.verify("banana123", hashed)
        assert not hasher.verify("banana124", hashed)

    @pytest.mark.parametrize("stored", [None, ""])
    def test_missing_hash_never_verifies(self, stored):
        assert PasswordHasher(rounds=4).verify("banana123", stored) is False


class TestApiKeys:
    def test_generated_keys_are_unique(self):
        first, second = generate_api_key(), generate_api_key()
        assert first != second
        assert looks_like_api_key(first)

    def test_hash_is_stable_sha256(self):
        key = generate_api_key()
        assert hash_api_key(key) == hash_api_key(key)
        assert len(hash_api_key(key)) == 64

    def test_preview(self):
        assert api_key_preview("rr_live_AbCdEfGhIjKlMnOp") == "rr_live_AbCd...MnOp"

    def test_jwt_is_not_an_api_key(self):
        assert not looks_like_api_key("eyJhbGciOiJIUzI1NiJ9.e30.sig")
