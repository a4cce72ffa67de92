"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

PolicySettings is the single policy object for the credential subsystem.
It is built once at start-up and handed to every component explicitly;
nothing reads a module-level dev-mode flag.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

INSTITUTIONAL_EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@(ln\.edu\.hk|ln\.hk)$"


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "credential-service"
    mongo_timeout_ms: int = 5000


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    zepto_api_token: str = ""
    zepto_from_email: str = "noreply@lingubible.com"
    zepto_from_name: str = "LingUBible"
    email_timeout_seconds: float = 5.0


class CaptchaSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    recaptcha_secret: str = ""
    recaptcha_min_score: float = Field(default=0.5, ge=0.0, le=1.0)
    captcha_timeout_seconds: float = 5.0


class PolicySettings(BaseSettings):
    """Credential lifecycle and abuse-control policy.

    Code TTL and attempt cap are deliberately configurable: older deployments
    ran 10 minutes / 3 attempts, the current product runs 15 minutes / 5.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Development mode: any syntactically valid email, CAPTCHA bypass when
    # the token or the secret is missing.
    dev_mode: bool = False
    allowed_email_pattern: str = INSTITUTIONAL_EMAIL_PATTERN

    verification_code_ttl_minutes: int = Field(default=15, ge=1)
    verification_max_attempts: int = Field(default=5, ge=1)
    # How long a verified code may still be used to create an account
    verification_validity_hours: int = Field(default=24, ge=1)

    reset_token_ttl_minutes: int = Field(default=60, ge=60, le=1440)

    rate_limit_window_minutes: int = Field(default=60, ge=1)
    reset_max_per_email: int = Field(default=3, ge=1)
    reset_max_per_ip: int = Field(default=5, ge=1)
    verification_max_per_ip: int = Field(default=10, ge=1)

    request_timeout_seconds: float = Field(default=5.0, gt=0)
    min_password_length: int = Field(default=8, ge=1)


class SweeperSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sweeper_enabled: bool = False
    sweeper_interval_seconds: int = Field(default=300, ge=1)
    sweeper_batch_size: int = Field(default=100, ge=1, le=100)


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_url: str = "https://lingubible.com"
    app_name: str = "LingUBible"

    cors_origins: list[str] = ["*"]

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    email: Optional[EmailSettings] = None
    captcha: Optional[CaptchaSettings] = None
    policy: Optional[PolicySettings] = None
    sweeper: Optional[SweeperSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.captcha is None:
            self.captcha = CaptchaSettings()
        if self.policy is None:
            self.policy = PolicySettings()
        if self.sweeper is None:
            self.sweeper = SweeperSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
