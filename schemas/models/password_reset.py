"""
Password reset token document model.

Maps to the `password-resets` MongoDB collection.

token_hash stores SHA-256(token); the token itself only travels in the reset
link. used flips to True when a consume() claims the token, before the
password update runs, and flips back if that update fails.
"""

from __future__ import annotations

from typing import Optional

from schemas.models.base import MongoBaseModel, UtcDatetime


class PasswordResetDoc(MongoBaseModel):
    """Document model for the `password-resets` collection."""

    user_id: str
    email: str
    token_hash: str
    created_at: UtcDatetime
    expires_at: UtcDatetime
    used: bool = False
    used_at: Optional[UtcDatetime] = None
    used_ip: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
