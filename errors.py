"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses.

error_from_outcome() is the single translation point from a failed service
Outcome to an AppError. Verification code failures keep their precise kind;
the reset-token family (not found, invalid, expired, used) collapses into one
``invalid_or_expired_token`` code so a caller cannot tell token states apart.

Non-AppError exceptions bubble up as 500s (with Sentry reporting in production).
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from services.outcome import ErrorKind, Outcome
from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class PolicyRejectedError(AppError):
    status_code = 400
    error_code = "policy_rejected"


class CaptchaFailedError(AppError):
    status_code = 400
    error_code = "captcha_failed"


class CodeMismatchError(AppError):
    status_code = 400
    error_code = "mismatch"


class ExpiredError(AppError):
    status_code = 410
    error_code = "expired"


class InvalidOrExpiredTokenError(AppError):
    status_code = 400
    error_code = "invalid_or_expired_token"


class EmailNotVerifiedError(AppError):
    status_code = 403
    error_code = "email_not_verified"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"


class UsernameUnavailableError(AppError):
    status_code = 400
    error_code = "username_unavailable"


class AlreadyPendingError(AppError):
    status_code = 409
    error_code = "already_pending"


class RateLimitError(AppError):
    status_code = 429
    error_code = "rate_limit_exceeded"


class AttemptsExhaustedError(AppError):
    status_code = 429
    error_code = "attempts_exhausted"


class EmailDeliveryError(AppError):
    status_code = 502
    error_code = "email_failed"


class UpstreamUnavailableError(AppError):
    status_code = 503
    error_code = "upstream_unavailable"


class ServiceError(AppError):
    status_code = 500
    error_code = "service_error"


_GENERIC_FAILURE = "Something went wrong. Please try again later."

# Kind -> (error class, public message)
_VERIFICATION_ERRORS: dict[ErrorKind, tuple[type[AppError], str]] = {
    ErrorKind.VALIDATION_ERROR: (ValidationError, "Invalid request."),
    ErrorKind.POLICY_REJECTED: (
        PolicyRejectedError,
        "This email address is not allowed to register.",
    ),
    ErrorKind.ALREADY_PENDING: (
        AlreadyPendingError,
        "A verification code was already sent. Check your inbox.",
    ),
    ErrorKind.RATE_LIMITED: (RateLimitError, "Too many requests. Try again later."),
    ErrorKind.CAPTCHA_FAILED: (CaptchaFailedError, "Security verification failed."),
    ErrorKind.NOT_FOUND: (NotFoundError, "No verification code was found."),
    ErrorKind.EXPIRED: (ExpiredError, "The verification code has expired."),
    ErrorKind.ATTEMPTS_EXHAUSTED: (
        AttemptsExhaustedError,
        "Too many incorrect attempts. Request a new code.",
    ),
    ErrorKind.MISMATCH: (CodeMismatchError, "The verification code is incorrect."),
    ErrorKind.CONFLICT: (ConflictError, "An account with this email already exists."),
    ErrorKind.EMAIL_FAILED: (EmailDeliveryError, "The email could not be sent."),
    ErrorKind.UPSTREAM_UNAVAILABLE: (UpstreamUnavailableError, _GENERIC_FAILURE),
    ErrorKind.SERVICE_ERROR: (ServiceError, _GENERIC_FAILURE),
}

_RESET_TOKEN_FAMILY = frozenset(
    {
        ErrorKind.NOT_FOUND,
        ErrorKind.INVALID_TOKEN,
        ErrorKind.EXPIRED,
        ErrorKind.ALREADY_USED,
    }
)


VERIFICATION_FLOW = "verification"
ACCOUNT_FLOW = "account"
RESET_FLOW = "reset"


def error_from_outcome(outcome: Outcome, *, flow: str = VERIFICATION_FLOW) -> AppError:
    """Translate a failed Outcome into the AppError to raise at the HTTP boundary."""
    kind = outcome.error or ErrorKind.SERVICE_ERROR
    details = dict(outcome.details) or None

    if flow == RESET_FLOW and kind in _RESET_TOKEN_FAMILY:
        return InvalidOrExpiredTokenError("This reset link is invalid or has expired.")

    if kind is ErrorKind.UPDATE_FAILED:
        if outcome.cause is ErrorKind.POLICY_REJECTED:
            return PolicyRejectedError(
                "The new password does not meet the requirements.",
                field="new_password",
                details=details,
            )
        return ServiceError(_GENERIC_FAILURE)

    if kind is ErrorKind.USERNAME_UNAVAILABLE:
        return UsernameUnavailableError(
            "This username is not available.", field="display_name", details=details
        )

    if flow == ACCOUNT_FLOW:
        if kind is ErrorKind.NOT_FOUND:
            return EmailNotVerifiedError("This email address has not been verified.")
        if kind is ErrorKind.POLICY_REJECTED:
            return PolicyRejectedError(
                "The password does not meet the requirements.",
                field="password",
                details=details,
            )

    error_cls, message = _VERIFICATION_ERRORS.get(kind, (ServiceError, _GENERIC_FAILURE))
    if error_cls in (EmailDeliveryError, UpstreamUnavailableError, ServiceError):
        details = None
    return error_cls(message, details=details)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        headers = None
        if isinstance(exc, RateLimitError) and exc.details:
            retry_after = exc.details.get("retry_after_seconds")
            if retry_after:
                headers = {"Retry-After": str(retry_after)}
        return JSONResponse(
            status_code=exc.status_code, content=exc.to_dict(), headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
        error = ValidationError("Invalid request.", details={"fields": fields})
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "An internal server error occurred.", "code": "internal_error"},
        )
