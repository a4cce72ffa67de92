"""IdentityStore protocol — services depend on this, not the concrete implementation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol


class IdentityErrorKind(str, Enum):
    POLICY_VIOLATION = "policy_violation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"


class IdentityError(Exception):
    """Raised by identity store operations; ``kind`` classifies the failure."""

    def __init__(
        self, kind: IdentityErrorKind, message: str = "", details: Optional[list] = None
    ) -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.details = details


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str
    display_name: Optional[str] = None
    email_verified: bool = False


class IdentityStore(Protocol):
    async def find_by_email(self, email: str) -> Optional[Identity]: ...

    async def update_credential(self, user_id: str, new_secret: str) -> None: ...

    async def mark_email_verified(self, user_id: str) -> None: ...

    async def create_account(
        self, email: str, secret: str, display_name: Optional[str]
    ) -> Identity: ...

    async def display_name_taken(self, display_name: str) -> bool: ...
