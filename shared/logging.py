"""
Centralized structured logging.

This module sets up structured logging with:
- Settings-driven configuration (console for development, JSON in production)
- Redaction of secrets (passwords, tokens, verification codes)
- IP hashing and email masking helpers for privacy in production

Call setup_logging() once at start-up (create_app does this); modules get
their logger with get_logger(__name__).
"""

from __future__ import annotations

import hashlib
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

import structlog
from structlog.stdlib import BoundLogger
from structlog.types import EventDict, Processor

from config import LoggingSettings

# Sensitive fields to redact from logs
REDACTED_FIELDS = {
    "password",
    "new_password",
    "new_secret",
    "secret",
    "token",
    "code",
    "otp_code",
    "captcha_token",
    "api_key",
    "authorization",
    "cookie",
}

# Substrings that mark a key as sensitive even when it is not listed above
_SENSITIVE_FRAGMENTS = ("password", "token", "secret")

# Keys that carry hashes or metadata about secrets, never the secrets
_SAFE_KEYS = {"level", "event", "timestamp", "logger", "token_id", "error_code"}


def get_logger(name: str) -> BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured structlog BoundLogger instance

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("verification_code_issued", email=mask_email(email))
    """
    return structlog.get_logger(name)


def hash_ip(ip_address: Optional[str], production: bool = True) -> Optional[str]:
    """
    Hash an IP address for privacy.

    In production returns the first 16 hex chars of its SHA-256; otherwise
    the original IP for easier debugging. ``None`` passes through.
    """
    if ip_address is None:
        return None
    if production and ip_address:
        return hashlib.sha256(ip_address.encode()).hexdigest()[:16]
    return ip_address


def mask_email(email: Optional[str]) -> Optional[str]:
    """Mask the local part of an email: ``student@ln.edu.hk`` -> ``s*****t@ln.edu.hk``."""
    if not email:
        return email
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    if len(local) <= 2:
        masked = local[:1] + "*"
    else:
        masked = local[0] + "*" * (len(local) - 2) + local[-1]
    return f"{masked}@{domain}"


def add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add ISO format timestamp to event dict."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def redact_sensitive_fields(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Redact sensitive fields from logs."""
    for key in list(event_dict.keys()):
        lowered = key.lower()
        if key in _SAFE_KEYS:
            continue
        if lowered in REDACTED_FIELDS or any(
            fragment in lowered for fragment in _SENSITIVE_FRAGMENTS
        ):
            event_dict[key] = "***REDACTED***"
    return event_dict


def configure_structlog(settings: LoggingSettings) -> None:
    """
    Configure structlog with processors for the configured format.

    json:    one JSON object per line, for log shipping
    console: pretty console output with colors
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        redact_sensitive_fields,
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            pad_event=15,
            sort_keys=False,
        )

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_stdlib_logging(settings: LoggingSettings) -> None:
    """Route stdlib logging to stdout at the configured level."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def setup_logging(settings: Optional[LoggingSettings] = None) -> None:
    """
    Initialize the logging system.

    Should be called early in application startup (create_app does it).
    """
    settings = settings or LoggingSettings()
    configure_stdlib_logging(settings)
    configure_structlog(settings)

    get_logger(__name__).info(
        "logging_initialized",
        log_level=settings.log_level,
        log_format=settings.log_format,
    )
