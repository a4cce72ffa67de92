"""
Response DTOs for the credential endpoints.

Every success body carries ``success: true``; failures use ErrorResponse.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class SuccessResponse(BaseModel):
    """Generic success body with an optional human-readable message."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: Optional[str] = None


class AccountCreatedResponse(SuccessResponse):
    user_id: str


class ResetTokenStatusResponse(SuccessResponse):
    valid: bool = True


class UsernameAvailabilityResponse(SuccessResponse):
    """``reason`` is one of required, length, reserved, taken when unavailable."""

    available: bool
    reason: Optional[str] = None
