"""
Typed results returned by the credential managers and the orchestrator.

Managers never raise across the manager/orchestrator boundary: every
operation returns an Outcome carrying either a value or an ErrorKind plus
machine-readable details (remaining minutes, remaining attempts, retry-after
seconds). Translation to HTTP errors happens in errors.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "validation_error"
    POLICY_REJECTED = "policy_rejected"
    ALREADY_PENDING = "already_pending"
    RATE_LIMITED = "rate_limited"
    CAPTCHA_FAILED = "captcha_failed"
    NOT_FOUND = "not_found"
    INVALID_TOKEN = "invalid_token"
    EXPIRED = "expired"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    ALREADY_USED = "already_used"
    MISMATCH = "mismatch"
    EMAIL_FAILED = "email_failed"
    UPDATE_FAILED = "update_failed"
    CONFLICT = "conflict"
    USERNAME_UNAVAILABLE = "username_unavailable"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    SERVICE_ERROR = "service_error"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Success-or-failure result of a credential operation.

    ``cause`` classifies the underlying failure of a compound error (e.g. an
    ``update_failed`` caused by a ``policy_rejected`` password).
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    cause: Optional[ErrorKind] = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(
        cls,
        error: ErrorKind,
        *,
        cause: Optional[ErrorKind] = None,
        **details: Any,
    ) -> "Outcome[T]":
        return cls(ok=False, error=error, cause=cause, details=details)

    def __bool__(self) -> bool:
        return self.ok


@dataclass(frozen=True)
class IssuedCredential:
    """A freshly persisted credential and the plaintext secret to deliver.

    The secret exists only in memory for the duration of the issue request;
    the store holds its hash.
    """

    record_id: Any
    email: str
    secret: str
    expires_at: Any
    user_id: Optional[str] = None
    display_name: Optional[str] = None
