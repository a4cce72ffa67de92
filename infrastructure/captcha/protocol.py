"""CaptchaVerifier protocol — services depend on this, not the concrete implementation."""

from dataclasses import dataclass, field
from typing import Optional, Protocol


@dataclass(frozen=True)
class CaptchaResult:
    success: bool
    score: Optional[float] = None
    error_codes: list[str] = field(default_factory=list)
    # Verifier could not reach its upstream (as opposed to a rejected token)
    unavailable: bool = False


class CaptchaVerifier(Protocol):
    async def verify(
        self, response_token: Optional[str], client_ip: Optional[str]
    ) -> CaptchaResult: ...
