"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppSettings
from errors import register_error_handlers
from infrastructure.captcha.recaptcha import RecaptchaVerifier
from infrastructure.email.templates import EmailComposer
from infrastructure.email.zeptomail import ZeptoMailGateway
from infrastructure.http_client import HttpClient
from infrastructure.identity.mongo_identity_store import MongoIdentityStore
from infrastructure.persistence.mongo import (
    PASSWORD_RESETS_COLLECTION,
    USERS_COLLECTION,
    VERIFICATION_CODES_COLLECTION,
    create_mongo_client,
    ensure_indexes,
)
from repositories.password_reset_repository import PasswordResetRepository
from repositories.verification_code_repository import VerificationCodeRepository
from routes.credential_routes import router as credential_router
from routes.health_routes import router as health_router
from services.cleanup_sweeper import CleanupSweeper
from services.dispatch import DispatchOrchestrator
from services.password_resets import PasswordResetManager
from services.rate_limiter import RateLimiter
from services.verification_codes import VerificationCodeManager
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def build_sweeper(settings: AppSettings, db) -> CleanupSweeper:
    """Sweeper over both credential collections."""
    return CleanupSweeper(
        [
            VerificationCodeRepository(db[VERIFICATION_CODES_COLLECTION]),
            PasswordResetRepository(db[PASSWORD_RESETS_COLLECTION]),
        ],
        batch_size=settings.sweeper.sweeper_batch_size,
    )


def build_orchestrator(
    settings: AppSettings,
    db,
    *,
    captcha_http: HttpClient,
    email_http: HttpClient,
) -> DispatchOrchestrator:
    """Wire repositories, managers and gateways around one database handle."""
    policy = settings.policy
    code_repo = VerificationCodeRepository(db[VERIFICATION_CODES_COLLECTION])
    reset_repo = PasswordResetRepository(db[PASSWORD_RESETS_COLLECTION])
    identity_store = MongoIdentityStore(db[USERS_COLLECTION], policy)

    return DispatchOrchestrator(
        codes=VerificationCodeManager(code_repo, policy),
        resets=PasswordResetManager(reset_repo, identity_store, policy),
        code_limiter=RateLimiter(code_repo),
        reset_limiter=RateLimiter(reset_repo),
        captcha=RecaptchaVerifier(
            settings.captcha.recaptcha_secret,
            captcha_http,
            min_score=settings.captcha.recaptcha_min_score,
            dev_mode=policy.dev_mode,
        ),
        gateway=ZeptoMailGateway(settings.email, email_http),
        composer=EmailComposer(
            policy, app_name=settings.app_name, app_url=settings.app_url
        ),
        identity_store=identity_store,
        policy=policy,
        reset_sweeper=CleanupSweeper(
            [reset_repo], batch_size=settings.sweeper.sweeper_batch_size
        ),
    )


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            environment=settings.env,
        )

    setup_logging(settings.logging)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client = create_mongo_client(settings.db)
        db = mongo_client[settings.db.db_name]
        app.state.mongo_client = mongo_client
        app.state.db = db
        app.state.settings = settings

        await ensure_indexes(db)

        captcha_http = HttpClient(timeout=settings.captcha.captcha_timeout_seconds)
        email_http = HttpClient(timeout=settings.email.email_timeout_seconds)
        app.state.orchestrator = build_orchestrator(
            settings, db, captcha_http=captcha_http, email_http=email_http
        )

        # The sweeper is optional; deployments may run start_sweeper.py instead
        stop_event = asyncio.Event()
        sweeper_task: Optional[asyncio.Task] = None
        if settings.sweeper.sweeper_enabled:
            sweeper = build_sweeper(settings, db)
            sweeper_task = asyncio.create_task(
                sweeper.run_forever(settings.sweeper.sweeper_interval_seconds, stop_event)
            )

        log.info("app_started", env=settings.env, sweeper=sweeper_task is not None)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        stop_event.set()
        if sweeper_task is not None:
            await sweeper_task
        await captcha_http.aclose()
        await email_http.aclose()
        await mongo_client.close()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=None if settings.is_production else settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(credential_router)

    return app
