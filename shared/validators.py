"""
Input validators — framework-agnostic, pure functions.

All validators are stateless; policy (allowed-domain pattern, dev mode,
minimum password length) is passed in by the caller.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from config import PolicySettings

_GENERAL_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_VERIFICATION_CODE_PATTERN = re.compile(r"^[0-9]{6}$")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20

DISPOSABLE_EMAIL_DOMAINS = frozenset(
    {
        "10minutemail.com",
        "guerrillamail.com",
        "mailinator.com",
        "tempmail.org",
        "yopmail.com",
        "maildrop.cc",
        "throwaway.email",
        "temp-mail.org",
        "sharklasers.com",
        "grr.la",
        "guerrillamailblock.com",
        "pokemail.net",
        "spam4.me",
        "dispostable.com",
        "fakeinbox.com",
        "mailnesia.com",
        "mytrashmail.com",
    }
)


def normalize_email(email: str) -> str:
    """Strip surrounding whitespace and lowercase *email*."""
    return email.strip().lower()


def is_valid_email_format(email: str) -> bool:
    """Return True if *email* is a syntactically valid address."""
    return bool(_GENERAL_EMAIL_PATTERN.match(email))


def is_allowed_registration_email(email: str, policy: PolicySettings) -> bool:
    """Return True if *email* may request a registration verification code.

    Outside dev mode only addresses matching ``policy.allowed_email_pattern``
    (the institutional domains) are accepted. In dev mode any syntactically
    valid address is accepted, disposable ones included.
    """
    email = normalize_email(email)
    if re.match(policy.allowed_email_pattern, email):
        return True
    if not policy.dev_mode:
        return False
    return is_valid_email_format(email)


def is_disposable_email(email: str) -> bool:
    """Return True if *email* belongs to a known throwaway-mail provider."""
    _, _, domain = normalize_email(email).partition("@")
    return domain in DISPOSABLE_EMAIL_DOMAINS


def is_valid_verification_code(code: str) -> bool:
    """Return True if *code* is exactly six ASCII digits."""
    return bool(_VERIFICATION_CODE_PATTERN.match(code))


def validate_password(password: str, min_length: int = 8) -> Tuple[bool, List[str]]:
    """
    Validate a new password against the strength policy.

    Returns:
        Tuple[bool, List[str]]: (is_valid, missing_requirements)
    """
    if not password:
        return False, ["Password is required"]

    missing = []

    if len(password) < min_length:
        missing.append(f"At least {min_length} characters")

    if len(password) > 128:
        missing.append("Maximum 128 characters")

    if not re.search(r"[A-Za-z]", password):
        missing.append("At least one letter")

    if not re.search(r"[0-9]", password):
        missing.append("At least one number")

    # Only printable ASCII and spaces
    if not re.match(r"^[\x20-\x7E]+$", password):
        missing.append("Contains invalid characters")

    return len(missing) == 0, missing


# Names nobody may register as-is
RESERVED_USERNAMES = frozenset(
    {
        "admin", "administrator", "administrators", "admins",
        "root", "system", "sysadmin", "systemadmin",
        "moderator", "moderators", "mod", "mods",
        "staff", "staffs", "official", "officials",
        "manager", "managers", "supervisor", "supervisors",
        "owner", "owners", "master", "masters",
        "service", "services", "support", "supports",
        "help", "helper", "helpers", "bot", "bots",
        "api", "apis", "server", "servers",
        "test", "tests", "testing", "tester", "testers",
        "demo", "demos", "sample", "samples",
        "guest", "guests", "user", "users",
        "null", "undefined", "none", "empty",
        "lingubible", "ln", "hk", "lingnan",
        "webmaster", "postmaster", "hostmaster",
    }
)

# Names containing any of these read as staff accounts
_RESERVED_USERNAME_FRAGMENTS = (
    "admin", "administrator", "root", "system", "moderator", "mod",
    "staff", "official", "manager", "supervisor", "owner", "master",
    "support", "service", "bot", "api", "lingubible",
)


def username_problem(username: Optional[str]) -> Optional[str]:
    """
    Check a display name against the username rules.

    Returns:
        None when the name is acceptable, otherwise the reason:
        ``"required"``, ``"length"`` (outside 3-20 characters) or
        ``"reserved"`` (an admin-like or brand word).
    """
    name = (username or "").strip()
    if not name:
        return "required"
    if not USERNAME_MIN_LENGTH <= len(name) <= USERNAME_MAX_LENGTH:
        return "length"
    lowered = name.lower()
    if lowered in RESERVED_USERNAMES:
        return "reserved"
    if any(fragment in lowered for fragment in _RESERVED_USERNAME_FRAGMENTS):
        return "reserved"
    return None
