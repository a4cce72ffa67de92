"""
Request DTOs for the credential endpoints.

SendVerificationCodeRequest   — POST /verification/send
VerifyCodeRequest             — POST /verification/verify
CreateVerifiedAccountRequest  — POST /verification/create-account
CheckUsernameRequest          — POST /verification/check-username
RequestPasswordResetRequest   — POST /password-reset/request
ValidateResetTokenRequest     — POST /password-reset/validate
CompletePasswordResetRequest  — POST /password-reset/complete

Bodies accept camelCase aliases (``userId``, ``newPassword``,
``recaptchaToken``) as sent by the web client.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SendVerificationCodeRequest(BaseModel):
    """Request body for POST /verification/send."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=3, max_length=254)
    captcha_token: Optional[str] = Field(default=None, alias="recaptchaToken")


class VerifyCodeRequest(BaseModel):
    """Request body for POST /verification/verify.

    ``code`` is the 6-digit code from the email; format is checked by the
    manager so a malformed code is reported as ``validation_error``.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=3, max_length=254)
    code: str = Field(max_length=16)


class CreateVerifiedAccountRequest(BaseModel):
    """Request body for POST /verification/create-account."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1, max_length=256)
    display_name: str = Field(alias="displayName", min_length=1, max_length=100)
    captcha_token: Optional[str] = Field(default=None, alias="recaptchaToken")


class CheckUsernameRequest(BaseModel):
    """Request body for POST /verification/check-username."""

    username: str = Field(max_length=100)


class RequestPasswordResetRequest(BaseModel):
    """Request body for POST /password-reset/request."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=3, max_length=254)
    captcha_token: Optional[str] = Field(default=None, alias="recaptchaToken")


class ValidateResetTokenRequest(BaseModel):
    """Request body for POST /password-reset/validate."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1, max_length=64)
    token: str = Field(min_length=1, max_length=256)


class CompletePasswordResetRequest(BaseModel):
    """Request body for POST /password-reset/complete."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1, max_length=64)
    token: str = Field(min_length=1, max_length=256)
    new_password: str = Field(alias="newPassword", min_length=1, max_length=256)
