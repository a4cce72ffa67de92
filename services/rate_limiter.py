"""
Store-backed sliding-window rate limiter.

There is no counter table: each credential collection is its own issuance
log, and a window is a count of records created after ``now - window``.
Limits therefore survive restarts and are shared by every process.

The limiter fails open: if the store cannot be queried the request is
allowed and ``rate_limit_check_degraded`` is logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Protocol

from pymongo.errors import PyMongoError

from services.outcome import ErrorKind, Outcome
from services.ttl_policy import seconds_until
from shared.datetime_utils import Clock, utcnow
from shared.logging import get_logger, hash_ip, mask_email

log = get_logger(__name__)

_UNKNOWN_IP = "unknown"


class IdentityKind(str, Enum):
    """Which record field a window is keyed on."""

    EMAIL = "email"
    IP = "ip_address"


class IssuanceLog(Protocol):
    @property
    def name(self) -> str: ...

    async def count_issued_since(
        self, field: str, value: str, since: datetime
    ) -> int: ...

    async def oldest_issued_since(
        self, field: str, value: str, since: datetime
    ) -> Optional[datetime]: ...


@dataclass(frozen=True)
class RateLimitRule:
    kind: IdentityKind
    value: Optional[str]
    max_count: int


class RateLimiter:
    """Counts issuance records for one credential collection."""

    def __init__(self, issuance_log: IssuanceLog, clock: Clock = utcnow) -> None:
        self._log = issuance_log
        self._clock = clock

    async def check(
        self,
        kind: IdentityKind,
        value: str,
        *,
        window: timedelta,
        max_count: int,
    ) -> Outcome[None]:
        now = self._clock()
        window_start = now - window
        try:
            count = await self._log.count_issued_since(kind.value, value, window_start)
            if count < max_count:
                return Outcome.success()
            oldest = await self._log.oldest_issued_since(
                kind.value, value, window_start
            )
        except PyMongoError as e:
            log.warning(
                "rate_limit_check_degraded",
                collection=self._log.name,
                identity_kind=kind.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return Outcome.success()

        # The window frees up when the oldest counted record ages out
        retry_after = seconds_until(oldest + window, now) if oldest else 1
        log.info(
            "rate_limit_exceeded",
            collection=self._log.name,
            identity_kind=kind.value,
            identity=mask_email(value) if kind is IdentityKind.EMAIL else hash_ip(value),
            count=count,
            max_count=max_count,
            retry_after_seconds=retry_after,
        )
        return Outcome.failure(
            ErrorKind.RATE_LIMITED, retry_after_seconds=max(1, retry_after)
        )

    async def check_all(
        self, rules: Iterable[RateLimitRule], *, window: timedelta
    ) -> Outcome[None]:
        """AND-combine independent rules; the first tripped rule is reported."""
        for rule in rules:
            if not rule.value:
                continue
            if rule.kind is IdentityKind.IP and rule.value == _UNKNOWN_IP:
                continue
            outcome = await self.check(
                rule.kind, rule.value, window=window, max_count=rule.max_count
            )
            if not outcome:
                return outcome
        return Outcome.success()
