"""
User document model.

Maps to the `users` MongoDB collection, the identity store behind
MongoIdentityStore. Only password accounts are created here; email_verified
is set once a registration verification code has been consumed.
"""

from __future__ import annotations

from typing import Optional

from schemas.models.base import MongoBaseModel, UtcDatetime


class UserDoc(MongoBaseModel):
    """
    Document model for the `users` collection.

    status values: ACTIVE (only value currently in use)
    """

    email: str
    email_verified: bool = False
    password_hash: Optional[str] = None
    display_name: Optional[str] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None
    password_changed_at: Optional[UtcDatetime] = None
    status: str = "ACTIVE"
