"""Tests for Argon2id hashing and token generation."""

from __future__ import annotations

import base64
import re

import pytest

from ticketzetu.auth.passwords import (
    generate_secure_token,
    hash_password,
    hash_password_async,
    passwords_match,
)

USER_ID = "5f0c6d2e-8a1b-4c3d-9e7f-0123456789ab"


class TestHashPassword:
    def test_deterministic_per_user(self):
        assert hash_password("correct-horse", USER_ID) == hash_password("correct-horse", USER_ID)

    def test_salted_by_user_id(self):
        other = "9a8b7c6d-0000-4000-8000-000000000000"
        assert hash_password("correct-horse", USER_ID) != hash_password("correct-horse", other)

    def test_encoding_is_unpadded_base64_of_32_bytes(self):
        encoded = hash_password("correct-horse", USER_ID)
        assert "=" not in encoded
        raw = base64.b64decode(encoded + "=" * (-len(encoded) % 4))
        assert len(raw) == 32

    @pytest.mark.asyncio()
    async def test_async_matches_sync(self):
        assert await hash_password_async("pw-12345678", USER_ID) == hash_password("pw-12345678", USER_ID)


class TestPasswordsMatch:
    def test_equal(self):
        h = hash_password("correct-horse", USER_ID)
        assert passwords_match(h, h)

    def test_different(self):
        assert not passwords_match(
            hash_password("correct-horse", USER_ID),
            hash_password("battery-staple", USER_ID),
        )


class TestSecureToken:
    def test_length_and_alphabet(self):
        token = generate_secure_token()
        assert len(token) == 32
        assert re.fullmatch(r"[A-Za-z0-9_-]{32}", token)

    def test_unique(self):
        assert len({generate_secure_token() for _ in range(500)}) == 500
