"""
Random credential generators — pure, side-effect-free functions.

Both generators use the ``secrets`` module; collisions between users'
verification codes are acceptable and not checked.
"""

from __future__ import annotations

import secrets
import string

# 48 random bytes -> 64 URL-safe characters, 384 bits of entropy
RESET_TOKEN_BYTES = 48


def generate_otp_code(length: int = 6) -> str:
    """Generate a uniformly random numeric code (``000000``–``999999`` by default).

    Args:
        length: Number of digits (default 6).

    Returns:
        String of random decimal digits; leading zeros are kept.
    """
    return "".join(secrets.choice(string.digits) for _ in range(length))


def generate_secure_token(length: int = RESET_TOKEN_BYTES) -> str:
    """Generate a cryptographically secure URL-safe random token.

    Args:
        length: Number of random bytes before base64 encoding (default 48).
            The resulting string will be longer than *length* characters.

    Returns:
        URL-safe base64-encoded token string.
    """
    return secrets.token_urlsafe(length)
