"""Password hashing and secure token helpers.

Passwords are hashed with Argon2id using the user's id as the salt, so the
hash is deterministic per user and can be recomputed and compared in
constant time on sign-in.
"""

from __future__ import annotations

import asyncio
import base64
import secrets

from argon2.low_level import Type, hash_secret_raw

# Argon2id parameters
ARGON2_TIME_COST = 1
ARGON2_MEMORY_COST = 64 * 1024  # KiB
ARGON2_PARALLELISM = 4
ARGON2_HASH_LEN = 32

TOKEN_BYTES = 32
TOKEN_LENGTH = 32


def hash_password(password: str, user_id: str) -> str:
    """Argon2id hash of `password` salted with `user_id`, base64 without padding."""
    raw = hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=str(user_id).encode("utf-8"),
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=ARGON2_HASH_LEN,
        type=Type.ID,
    )
    return base64.b64encode(raw).decode("ascii").rstrip("=")


async def hash_password_async(password: str, user_id: str) -> str:
    """hash_password off the event loop; Argon2 is deliberately slow."""
    return await asyncio.to_thread(hash_password, password, user_id)


def passwords_match(candidate_hash: str, stored_hash: str) -> bool:
    """Constant-time comparison of two encoded hashes."""
    return secrets.compare_digest(candidate_hash.encode("utf-8"), stored_hash.encode("utf-8"))


def generate_secure_token(length: int = TOKEN_LENGTH) -> str:
    """URL-safe random token: 32 random bytes, base64url, first `length` chars."""
    return base64.urlsafe_b64encode(secrets.token_bytes(TOKEN_BYTES)).decode("ascii")[:length]
