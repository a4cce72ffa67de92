"""
Cryptographic helpers — password hashing and credential hashing.

Uses argon2 for passwords (via argon2-cffi) and SHA-256 for verification
codes and reset tokens, so plaintext credentials are never persisted.
"""

from __future__ import annotations

import hashlib
import hmac

from argon2 import PasswordHasher

_password_hasher = PasswordHasher()


def hash_password(plain_password: str) -> str:
    """Hash *plain_password* with argon2id.

    Returns:
        Argon2 hash string (includes algorithm parameters and salt).
    """
    return _password_hasher.hash(plain_password)


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used to hash verification codes and reset tokens before storing them in
    the database so the plaintext is never persisted.

    Args:
        token: The plaintext token string to hash.

    Returns:
        64-character lowercase hex string.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def token_matches(plain_token: str, stored_hash: str) -> bool:
    """Constant-time comparison of *plain_token* against a stored SHA-256 hash."""
    return hmac.compare_digest(hash_token(plain_token), stored_hash)
