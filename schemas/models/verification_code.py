"""
Verification code document model.

Maps to the `verification-codes` MongoDB collection.

code_hash stores SHA-256(code); the 6-digit code itself only travels in the
email. attempts counts failed comparisons and only ever goes up; once it
reaches the configured cap the record is deleted. is_verified flips to True
on the first correct submission and the record then waits to be consumed by
account creation.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel, UtcDatetime


class VerificationCodeDoc(MongoBaseModel):
    """Document model for the `verification-codes` collection."""

    email: str
    code_hash: str
    created_at: UtcDatetime
    expires_at: UtcDatetime
    attempts: int = Field(default=0, ge=0)
    is_verified: bool = False
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
