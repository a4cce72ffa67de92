"""
Dispatch orchestrator — the request-facing entry point for credentials.

Issuance runs: input validation -> rate limit (per IP, plus per email for resets) ->
CAPTCHA -> manager.issue -> compose -> gateway.send, revoking the record if
delivery fails. Every collaborator call is bounded by the request timeout.
Verify/validate/consume requests pass straight through to the managers.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Optional, TypeVar

from bson import ObjectId

from config import PolicySettings
from infrastructure.captcha.protocol import CaptchaVerifier
from infrastructure.email.protocol import EmailGateway
from infrastructure.email.templates import ComposedEmail, EmailComposer
from infrastructure.identity.protocol import IdentityError, IdentityErrorKind, IdentityStore
from services.cleanup_sweeper import CleanupSweeper
from services.outcome import ErrorKind, IssuedCredential, Outcome
from services.password_resets import PasswordResetManager
from services.rate_limiter import IdentityKind, RateLimiter, RateLimitRule
from services.saga import run_issue_saga
from services.ttl_policy import rate_limit_window
from services.verification_codes import VerificationCodeManager
from shared.logging import get_logger, mask_email
from shared.validators import is_valid_email_format, normalize_email, username_problem

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class IssueContext:
    email: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    captcha_token: Optional[str] = None


class DispatchOrchestrator:
    def __init__(
        self,
        *,
        codes: VerificationCodeManager,
        resets: PasswordResetManager,
        code_limiter: RateLimiter,
        reset_limiter: RateLimiter,
        captcha: CaptchaVerifier,
        gateway: EmailGateway,
        composer: EmailComposer,
        identity_store: IdentityStore,
        policy: PolicySettings,
        reset_sweeper: Optional[CleanupSweeper] = None,
    ) -> None:
        self._codes = codes
        self._resets = resets
        self._code_limiter = code_limiter
        self._reset_limiter = reset_limiter
        self._captcha = captcha
        self._gateway = gateway
        self._composer = composer
        self._identities = identity_store
        self._policy = policy
        self._reset_sweeper = reset_sweeper

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(
            awaitable, timeout=self._policy.request_timeout_seconds
        )

    # ── shared steps ─────────────────────────────────────────────────────────

    async def _check_rate_limits(
        self, limiter: RateLimiter, rules: list[RateLimitRule]
    ) -> Outcome[None]:
        try:
            return await self._bounded(
                limiter.check_all(rules, window=rate_limit_window(self._policy))
            )
        except asyncio.TimeoutError:
            # Same as a store failure: fail open
            log.warning("rate_limit_check_degraded", reason="timeout")
            return Outcome.success()

    async def _check_captcha(
        self, token: Optional[str], client_ip: Optional[str]
    ) -> Outcome[None]:
        try:
            result = await self._bounded(self._captcha.verify(token, client_ip))
        except asyncio.TimeoutError:
            log.error("captcha_verify_timeout")
            return Outcome.failure(ErrorKind.UPSTREAM_UNAVAILABLE)
        if result.success:
            return Outcome.success()
        if result.unavailable:
            return Outcome.failure(ErrorKind.UPSTREAM_UNAVAILABLE)
        return Outcome.failure(ErrorKind.CAPTCHA_FAILED, error_codes=result.error_codes)

    async def _deliver(self, to_address: str, email: ComposedEmail) -> bool:
        message_id = await self._bounded(
            self._gateway.send(to_address, email.subject, email.html_body, email.text_body)
        )
        return message_id is not None

    async def _sweep_expired_resets(self) -> None:
        if self._reset_sweeper is None:
            return
        try:
            await self._bounded(
                self._reset_sweeper.sweep_repository(self._resets.repository)
            )
        except asyncio.TimeoutError:
            log.warning("reset_opportunistic_sweep_timeout")

    # ── issuance ─────────────────────────────────────────────────────────────

    async def issue_verification_code(self, request: IssueContext) -> Outcome[None]:
        email = normalize_email(request.email)
        eligible = self._codes.check_eligibility(email)
        if not eligible:
            return eligible

        limited = await self._check_rate_limits(
            self._code_limiter,
            [
                RateLimitRule(
                    IdentityKind.IP,
                    request.ip_address,
                    self._policy.verification_max_per_ip,
                ),
            ],
        )
        if not limited:
            return limited

        captcha = await self._check_captcha(request.captcha_token, request.ip_address)
        if not captcha:
            return captcha

        record_id = ObjectId()

        async def issue() -> Outcome[IssuedCredential]:
            try:
                return await self._bounded(
                    self._codes.issue(
                        email,
                        ip_address=request.ip_address,
                        user_agent=request.user_agent,
                        record_id=record_id,
                    )
                )
            except asyncio.TimeoutError:
                log.error("verification_code_issue_timeout", email=mask_email(email))
                # The insert may have landed before the timeout fired
                await self._codes.revoke(record_id)
                return Outcome.failure(ErrorKind.SERVICE_ERROR)

        async def deliver(credential: IssuedCredential) -> bool:
            return await self._deliver(
                credential.email, self._composer.verification_code(credential)
            )

        result = await run_issue_saga(issue, deliver, self._codes.revoke)
        if not result:
            return Outcome(ok=False, error=result.error, details=result.details)
        return Outcome.success()

    async def issue_reset_token(self, request: IssueContext) -> Outcome[None]:
        email = normalize_email(request.email)
        if not is_valid_email_format(email):
            return Outcome.failure(ErrorKind.VALIDATION_ERROR, field="email")

        limited = await self._check_rate_limits(
            self._reset_limiter,
            [
                RateLimitRule(IdentityKind.EMAIL, email, self._policy.reset_max_per_email),
                RateLimitRule(
                    IdentityKind.IP, request.ip_address, self._policy.reset_max_per_ip
                ),
            ],
        )
        if not limited:
            return limited

        captcha = await self._check_captcha(request.captcha_token, request.ip_address)
        if not captcha:
            return captcha

        await self._sweep_expired_resets()

        record_id = ObjectId()

        async def issue() -> Outcome[Optional[IssuedCredential]]:
            try:
                return await self._bounded(
                    self._resets.issue(
                        email,
                        ip_address=request.ip_address,
                        user_agent=request.user_agent,
                        record_id=record_id,
                    )
                )
            except asyncio.TimeoutError:
                log.error("reset_token_issue_timeout", email=mask_email(email))
                await self._resets.revoke(record_id)
                return Outcome.failure(ErrorKind.SERVICE_ERROR)

        async def deliver(credential: IssuedCredential) -> bool:
            return await self._deliver(
                credential.email, self._composer.password_reset(credential)
            )

        result = await run_issue_saga(issue, deliver, self._resets.revoke)
        if not result:
            return Outcome(ok=False, error=result.error, details=result.details)
        # Unknown emails land here too, with nothing sent
        return Outcome.success()

    # ── pass-through ─────────────────────────────────────────────────────────

    async def validate_verification_code(self, email: str, code: str) -> Outcome[None]:
        try:
            return await self._bounded(self._codes.validate(email, code))
        except asyncio.TimeoutError:
            log.error("verification_code_validate_timeout")
            return Outcome.failure(ErrorKind.SERVICE_ERROR)

    async def validate_reset_token(self, user_id: str, token: str) -> Outcome[None]:
        try:
            return await self._bounded(self._resets.validate(user_id, token))
        except asyncio.TimeoutError:
            log.error("reset_token_validate_timeout", user_id=user_id)
            return Outcome.failure(ErrorKind.SERVICE_ERROR)

    async def consume_reset_token(
        self,
        user_id: str,
        token: str,
        new_secret: str,
        *,
        ip_address: Optional[str] = None,
    ) -> Outcome[None]:
        try:
            return await self._bounded(
                self._resets.consume(user_id, token, new_secret, ip_address=ip_address)
            )
        except asyncio.TimeoutError:
            # A claim that was already written stays used; see reset_token_claimed logs
            log.error("reset_token_consume_timeout", user_id=user_id)
            return Outcome.failure(ErrorKind.SERVICE_ERROR)

    async def check_username(self, username: str) -> Outcome[None]:
        """Is *username* well-formed, unreserved and not held by another account?"""
        problem = username_problem(username)
        if problem is not None:
            return Outcome.failure(ErrorKind.USERNAME_UNAVAILABLE, reason=problem)
        try:
            taken = await self._bounded(
                self._identities.display_name_taken(username.strip())
            )
        except asyncio.TimeoutError:
            log.error("username_check_timeout")
            return Outcome.failure(ErrorKind.SERVICE_ERROR)
        except IdentityError as e:
            log.error("username_check_failed", kind=e.kind.value, error=str(e))
            return Outcome.failure(ErrorKind.SERVICE_ERROR)
        if taken:
            return Outcome.failure(ErrorKind.USERNAME_UNAVAILABLE, reason="taken")
        return Outcome.success()

    async def create_verified_account(
        self,
        email: str,
        secret: str,
        display_name: str,
        *,
        captcha_token: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Outcome[str]:
        """Create a password account for an email whose code was verified."""
        email = normalize_email(email)
        if not is_valid_email_format(email):
            return Outcome.failure(ErrorKind.VALIDATION_ERROR, field="email")
        problem = username_problem(display_name)
        if problem is not None:
            return Outcome.failure(ErrorKind.USERNAME_UNAVAILABLE, reason=problem)
        display_name = display_name.strip()

        captcha = await self._check_captcha(captcha_token, ip_address)
        if not captcha:
            return Outcome(ok=False, error=captcha.error, details=captcha.details)

        try:
            verified = await self._bounded(self._codes.find_verified(email))
            if not verified:
                return Outcome(ok=False, error=verified.error)
            available = await self.check_username(display_name)
            if not available:
                return available
            identity = await self._bounded(
                self._identities.create_account(email, secret, display_name)
            )
        except asyncio.TimeoutError:
            log.error("account_creation_timeout", email=mask_email(email))
            return Outcome.failure(ErrorKind.SERVICE_ERROR)
        except IdentityError as e:
            if e.kind is IdentityErrorKind.CONFLICT:
                if e.details and "display_name" in e.details:
                    # Lost a race for the name between the check and the insert
                    return Outcome.failure(
                        ErrorKind.USERNAME_UNAVAILABLE, reason="taken"
                    )
                return Outcome.failure(ErrorKind.CONFLICT)
            if e.kind is IdentityErrorKind.POLICY_VIOLATION:
                return Outcome.failure(
                    ErrorKind.POLICY_REJECTED, requirements=e.details or []
                )
            log.error("account_creation_failed", kind=e.kind.value, error=str(e))
            return Outcome.failure(ErrorKind.SERVICE_ERROR)

        try:
            await self._bounded(self._identities.mark_email_verified(identity.user_id))
        except (IdentityError, asyncio.TimeoutError) as e:
            # The account exists; a missing flag must not undo it
            log.error(
                "account_mark_verified_failed",
                user_id=identity.user_id,
                error=str(e),
                error_type=type(e).__name__,
            )

        await self._codes.consume_verified(verified.value.id)
        log.info("account_created_from_verified_email", user_id=identity.user_id)
        return Outcome.success(identity.user_id)
