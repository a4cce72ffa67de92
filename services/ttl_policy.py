"""
Clock/TTL policy — pure functions over PolicySettings.

Expiry is exclusive: a credential is expired at ``expires_at`` itself, and
still valid one second earlier.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from config import PolicySettings


def verification_code_expiry(policy: PolicySettings, now: datetime) -> datetime:
    return now + timedelta(minutes=policy.verification_code_ttl_minutes)


def reset_token_expiry(policy: PolicySettings, now: datetime) -> datetime:
    return now + timedelta(minutes=policy.reset_token_ttl_minutes)


def rate_limit_window(policy: PolicySettings) -> timedelta:
    return timedelta(minutes=policy.rate_limit_window_minutes)


def rate_limit_window_start(policy: PolicySettings, now: datetime) -> datetime:
    return now - rate_limit_window(policy)


def verification_validity_cutoff(policy: PolicySettings, now: datetime) -> datetime:
    """Oldest creation time a verified code may have and still create an account."""
    return now - timedelta(hours=policy.verification_validity_hours)


def is_expired(expires_at: datetime, now: datetime) -> bool:
    return now >= expires_at


def seconds_until(moment: datetime, now: datetime) -> int:
    """Whole seconds from *now* until *moment*, rounded up; 0 if already past."""
    remaining = (moment - now).total_seconds()
    if remaining <= 0:
        return 0
    return max(1, math.ceil(remaining))


def minutes_until(moment: datetime, now: datetime) -> int:
    """Whole minutes from *now* until *moment*, rounded up; 0 if already past."""
    remaining = (moment - now).total_seconds()
    if remaining <= 0:
        return 0
    return max(1, math.ceil(remaining / 60))


def verified_code_expiry(policy: PolicySettings, created_at: datetime) -> datetime:
    """A verified code stays on record until the account-creation window closes."""
    return created_at + timedelta(hours=policy.verification_validity_hours)
