"""
Unit tests for the shared/ utility modules.

Covers:
- shared.validators      (normalize_email, is_valid_email_format,
                          is_allowed_registration_email, is_disposable_email,
                          is_valid_verification_code, validate_password,
                          username_problem)
- shared.generators      (generate_otp_code, generate_secure_token)
- shared.datetime_utils  (parse_datetime, ensure_utc)
- shared.ip_utils        (get_client_ip, get_user_agent)
- shared.crypto          (hash_password, hash_token, token_matches)
- shared.logging         (hash_ip, mask_email, redact_sensitive_fields)
"""

from __future__ import annotations

import hashlib
import string
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from config import PolicySettings
from shared.crypto import hash_password, hash_token, token_matches
from shared.datetime_utils import ensure_utc, parse_datetime
from shared.generators import generate_otp_code, generate_secure_token
from shared.ip_utils import MAX_USER_AGENT_LENGTH, get_client_ip, get_user_agent
from shared.logging import hash_ip, mask_email, redact_sensitive_fields
from shared.validators import (
    is_allowed_registration_email,
    is_disposable_email,
    is_valid_email_format,
    is_valid_verification_code,
    normalize_email,
    username_problem,
    validate_password,
)


# ---------------------------------------------------------------------------
# shared.validators
# ---------------------------------------------------------------------------


def test_normalize_email():
    assert normalize_email("  Alice@LN.edu.HK ") == "alice@ln.edu.hk"


@pytest.mark.parametrize(
    "email, expected",
    [
        ("student@ln.edu.hk", True),
        ("a.b+c@example.com", True),
        ("no-at-sign", False),
        ("missing@tld", False),
        ("", False),
    ],
)
def test_is_valid_email_format(email, expected):
    assert is_valid_email_format(email) is expected


@pytest.mark.parametrize(
    "email, dev_mode, expected",
    [
        ("student@ln.edu.hk", False, True),
        ("staff@ln.hk", False, True),
        ("Student@LN.EDU.HK", False, True),
        ("someone@gmail.com", False, False),
        ("student@ln.edu.hk.evil.com", False, False),
        ("someone@gmail.com", True, True),
        ("not-an-email", True, False),
    ],
    ids=[
        "institutional",
        "institutional_short",
        "mixed_case",
        "external_rejected",
        "suffix_attack",
        "dev_mode_external",
        "dev_mode_malformed",
    ],
)
def test_is_allowed_registration_email(email, dev_mode, expected):
    policy = PolicySettings(dev_mode=dev_mode)
    assert is_allowed_registration_email(email, policy) is expected


def test_is_disposable_email():
    assert is_disposable_email("x@mailinator.com") is True
    assert is_disposable_email("x@ln.edu.hk") is False


@pytest.mark.parametrize(
    "code, expected",
    [
        ("123456", True),
        ("000000", True),
        ("12345", False),
        ("1234567", False),
        ("12a456", False),
        ("١٢٣٤٥٦", False),  # non-ASCII digits
        ("", False),
    ],
)
def test_is_valid_verification_code(code, expected):
    assert is_valid_verification_code(code) is expected


@pytest.mark.parametrize(
    "password, valid",
    [
        ("abcdefg1", True),
        ("short1", False),
        ("allletters", False),
        ("12345678", False),
        ("pässword1", False),
        ("a1" * 65, False),
        ("", False),
    ],
    ids=["ok", "too_short", "no_digit", "no_letter", "non_ascii", "too_long", "empty"],
)
def test_validate_password(password, valid):
    ok, missing = validate_password(password)
    assert ok is valid
    assert bool(missing) is not valid


def test_validate_password_custom_min_length():
    ok, missing = validate_password("abcdefg1", min_length=12)
    assert ok is False
    assert missing == ["At least 12 characters"]


@pytest.mark.parametrize(
    "username, expected",
    [
        ("Chan Tai Man", None),
        ("  Ada  ", None),
        ("", "required"),
        ("   ", "required"),
        (None, "required"),
        ("Al", "length"),
        ("x" * 21, "length"),
        ("Admin", "reserved"),
        ("guest", "reserved"),
        ("TheRealModerator", "reserved"),
        ("lingubible_fan", "reserved"),
    ],
)
def test_username_problem(username, expected):
    assert username_problem(username) == expected


# ---------------------------------------------------------------------------
# shared.generators
# ---------------------------------------------------------------------------


class TestGenerateOtpCode:
    def test_six_digits(self):
        code = generate_otp_code()
        assert len(code) == 6
        assert all(c in string.digits for c in code)

    def test_produces_variety(self):
        assert len({generate_otp_code() for _ in range(50)}) > 1


class TestGenerateSecureToken:
    def test_url_safe_characters(self):
        allowed = set(string.ascii_letters + string.digits + "-_")
        assert set(generate_secure_token()) <= allowed

    def test_default_entropy(self):
        # 48 bytes -> 64 base64 characters
        assert len(generate_secure_token()) == 64

    def test_produces_variety(self):
        assert generate_secure_token() != generate_secure_token()


# ---------------------------------------------------------------------------
# shared.datetime_utils
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        ("2026-03-01T12:00:00Z", datetime(2026, 3, 1, 12, tzinfo=timezone.utc)),
        (0, datetime(1970, 1, 1, tzinfo=timezone.utc)),
        ("not a date", None),
    ],
)
def test_parse_datetime(value, expected):
    assert parse_datetime(value) == expected


def test_ensure_utc_naive_assumed_utc():
    result = ensure_utc(datetime(2026, 3, 1, 12))
    assert result.tzinfo == timezone.utc
    assert result.hour == 12


# ---------------------------------------------------------------------------
# shared.ip_utils
# ---------------------------------------------------------------------------


def _make_request(headers: dict, client_host: str | None) -> MagicMock:
    req = MagicMock()
    req.headers = headers
    if client_host is None:
        req.client = None
    else:
        req.client.host = client_host
    return req


@pytest.mark.parametrize(
    "headers, client_host, expected_ip",
    [
        (
            {"CF-Connecting-IP": "1.2.3.4", "X-Real-IP": "9.9.9.9"},
            "10.0.0.1",
            "1.2.3.4",
        ),
        ({"X-Forwarded-For": "11.22.33.44, 99.99.99.99"}, "10.0.0.1", "11.22.33.44"),
        ({"X-Real-IP": "55.66.77.88"}, "10.0.0.1", "55.66.77.88"),
        ({}, "192.168.1.50", "192.168.1.50"),
        ({}, None, None),
    ],
    ids=["cloudflare", "x_forwarded_for_multi", "x_real_ip", "fallback", "no_client"],
)
def test_get_client_ip(headers, client_host, expected_ip):
    assert get_client_ip(_make_request(headers, client_host)) == expected_ip


def test_get_user_agent_truncated():
    req = _make_request({"User-Agent": "x" * 1000}, "10.0.0.1")
    assert len(get_user_agent(req)) == MAX_USER_AGENT_LENGTH


def test_get_user_agent_missing():
    assert get_user_agent(_make_request({}, "10.0.0.1")) is None


# ---------------------------------------------------------------------------
# shared.crypto
# ---------------------------------------------------------------------------


class TestHashPassword:
    def test_differs_from_input(self):
        assert hash_password("secret") != "secret"

    def test_unique_salts(self):
        assert hash_password("same") != hash_password("same")


def test_hash_token_known_value():
    assert hash_token("123456") == hashlib.sha256(b"123456").hexdigest()


def test_token_matches():
    stored = hash_token("123456")
    assert token_matches("123456", stored) is True
    assert token_matches("654321", stored) is False


# ---------------------------------------------------------------------------
# shared.logging
# ---------------------------------------------------------------------------


def test_hash_ip_production_hides_address():
    hashed = hash_ip("203.0.113.7", production=True)
    assert hashed != "203.0.113.7"
    assert hashed == hash_ip("203.0.113.7", production=True)


def test_hash_ip_development_passthrough():
    assert hash_ip("203.0.113.7", production=False) == "203.0.113.7"


def test_mask_email_hides_local_part():
    masked = mask_email("student@ln.edu.hk")
    assert masked.endswith("@ln.edu.hk")
    assert "student" not in masked


def test_redact_sensitive_fields():
    event = {
        "event": "x",
        "password": "hunter2",
        "new_password": "hunter3",
        "code": "123456",
        "reset_token": "abc",
        "user_id": "u1",
    }
    redacted = redact_sensitive_fields(None, "info", dict(event))
    assert redacted["password"] != "hunter2"
    assert redacted["new_password"] != "hunter3"
    assert redacted["code"] != "123456"
    assert redacted["reset_token"] != "abc"
    assert redacted["user_id"] == "u1"
    assert redacted["event"] == "x"
