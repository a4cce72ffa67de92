"""
Verification code manager — registration email ownership proofs.

One record per email at a time. The plaintext code is returned to the caller
for delivery and never persisted; the store holds SHA-256(code) and
submissions are compared in constant time.

Every operation returns an Outcome. Store failures become service_error and
are not retried here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import PolicySettings
from repositories.verification_code_repository import VerificationCodeRepository
from schemas.models.verification_code import VerificationCodeDoc
from services.outcome import ErrorKind, IssuedCredential, Outcome
from services.ttl_policy import (
    is_expired,
    minutes_until,
    verification_code_expiry,
    verification_validity_cutoff,
    verified_code_expiry,
)
from shared.crypto import hash_token, token_matches
from shared.datetime_utils import Clock, utcnow
from shared.generators import generate_otp_code
from shared.logging import get_logger, hash_ip, mask_email
from shared.validators import (
    is_allowed_registration_email,
    is_disposable_email,
    is_valid_email_format,
    is_valid_verification_code,
    normalize_email,
)

log = get_logger(__name__)


class VerificationCodeManager:
    def __init__(
        self,
        repo: VerificationCodeRepository,
        policy: PolicySettings,
        clock: Clock = utcnow,
    ) -> None:
        self._repo = repo
        self._policy = policy
        self._clock = clock

    @property
    def repository(self) -> VerificationCodeRepository:
        return self._repo

    async def _discard(self, record_id: Any, reason: str) -> None:
        """Delete a record; losing the race to another deleter is fine."""
        deleted = await self._repo.delete(record_id)
        if not deleted:
            log.info(
                "verification_code_already_deleted",
                record_id=str(record_id),
                reason=reason,
            )

    def check_eligibility(self, email: str) -> Outcome[None]:
        """May *email* register at all? Malformed or non-institutional addresses may not."""
        email = normalize_email(email)
        if not is_valid_email_format(email):
            return Outcome.failure(ErrorKind.VALIDATION_ERROR, field="email")
        if not is_allowed_registration_email(email, self._policy):
            log.info("verification_email_rejected", email=mask_email(email))
            return Outcome.failure(ErrorKind.POLICY_REJECTED)
        if self._policy.dev_mode and is_disposable_email(email):
            log.warning("verification_disposable_email", email=mask_email(email))
        return Outcome.success()

    async def _pending_conflict(
        self, email: str, now: datetime
    ) -> Optional[Outcome[IssuedCredential]]:
        """After a lost insert race: report the live pending record, or clear an expired one."""
        pending = await self._repo.pending_for_email(email)
        if pending is None:
            return None
        if not is_expired(pending.expires_at, now):
            log.info("verification_code_issue_race_lost", email=mask_email(email))
            return Outcome.failure(
                ErrorKind.ALREADY_PENDING,
                remaining_minutes=minutes_until(pending.expires_at, now),
            )
        await self._discard(pending.id, "reissue")
        return None

    async def issue(
        self,
        email: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        record_id: Optional[ObjectId] = None,
    ) -> Outcome[IssuedCredential]:
        """Persist a fresh code for *email*.

        ``record_id`` lets the caller know the id before the insert lands, so
        it can revoke the record if it gives up waiting.
        """
        email = normalize_email(email)
        eligible = self.check_eligibility(email)
        if not eligible:
            return eligible

        now = self._clock()
        code = generate_otp_code()
        doc = VerificationCodeDoc(
            id=record_id or ObjectId(),
            email=email,
            code_hash=hash_token(code),
            created_at=now,
            expires_at=verification_code_expiry(self._policy, now),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        try:
            existing = await self._repo.latest_for_email(email)
            if existing is not None:
                if not is_expired(existing.expires_at, now) and not existing.is_verified:
                    return Outcome.failure(
                        ErrorKind.ALREADY_PENDING,
                        remaining_minutes=minutes_until(existing.expires_at, now),
                    )
                # Expired, or verified and superseded by a fresh code
                await self._discard(existing.id, "reissue")

            try:
                await self._repo.create(doc)
            except DuplicateKeyError:
                # The pending-per-email unique index caught a concurrent issue
                conflict = await self._pending_conflict(email, now)
                if conflict is not None:
                    return conflict
                await self._repo.create(doc)
        except PyMongoError as e:
            log.error(
                "verification_code_issue_failed",
                email=mask_email(email),
                error=str(e),
                error_type=type(e).__name__,
            )
            return Outcome.failure(ErrorKind.SERVICE_ERROR)

        log.info(
            "verification_code_issued",
            email=mask_email(email),
            record_id=str(doc.id),
            ip=hash_ip(ip_address),
            expires_at=doc.expires_at.isoformat(),
        )
        return Outcome.success(
            IssuedCredential(
                record_id=doc.id,
                email=email,
                secret=code,
                expires_at=doc.expires_at,
            )
        )

    async def validate(self, email: str, submitted_code: str) -> Outcome[None]:
        email = normalize_email(email)
        if not submitted_code or not is_valid_verification_code(submitted_code):
            return Outcome.failure(ErrorKind.VALIDATION_ERROR, field="code")

        now = self._clock()
        max_attempts = self._policy.verification_max_attempts
        try:
            record = await self._repo.latest_for_email(email)
            if record is None:
                return Outcome.failure(ErrorKind.NOT_FOUND)

            if is_expired(record.expires_at, now):
                await self._discard(record.id, "expired")
                return Outcome.failure(ErrorKind.EXPIRED)

            if record.is_verified:
                return Outcome.success()

            if record.attempts >= max_attempts:
                await self._discard(record.id, "attempts_exhausted")
                return Outcome.failure(ErrorKind.ATTEMPTS_EXHAUSTED)

            if token_matches(submitted_code, record.code_hash):
                verified_until = verified_code_expiry(self._policy, record.created_at)
                if not await self._repo.mark_verified(record.id, verified_until):
                    return Outcome.failure(ErrorKind.NOT_FOUND)
                log.info("verification_code_verified", email=mask_email(email))
                return Outcome.success()

            attempts = await self._repo.increment_attempts(record.id)
            if attempts is None:
                # Deleted by a concurrent request between read and increment
                return Outcome.failure(ErrorKind.NOT_FOUND)
            if attempts >= max_attempts:
                await self._discard(record.id, "attempts_exhausted")
                log.warning(
                    "verification_code_attempts_exhausted", email=mask_email(email)
                )
                return Outcome.failure(ErrorKind.ATTEMPTS_EXHAUSTED)
        except PyMongoError as e:
            log.error(
                "verification_code_validate_failed",
                email=mask_email(email),
                error=str(e),
                error_type=type(e).__name__,
            )
            return Outcome.failure(ErrorKind.SERVICE_ERROR)

        return Outcome.failure(
            ErrorKind.MISMATCH, remaining_attempts=max_attempts - attempts
        )

    async def revoke(self, record_id: Any) -> bool:
        """Compensating delete. Idempotent; False only on a store failure."""
        try:
            await self._discard(record_id, "revoked")
        except PyMongoError as e:
            log.error(
                "verification_code_revoke_failed",
                record_id=str(record_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return True

    async def find_verified(self, email: str) -> Outcome[VerificationCodeDoc]:
        """Most recent verified record still inside the account-creation window."""
        email = normalize_email(email)
        now = self._clock()
        try:
            record = await self._repo.latest_verified_for_email(email)
        except PyMongoError as e:
            log.error(
                "verification_code_lookup_failed",
                email=mask_email(email),
                error=str(e),
                error_type=type(e).__name__,
            )
            return Outcome.failure(ErrorKind.SERVICE_ERROR)
        if record is None:
            return Outcome.failure(ErrorKind.NOT_FOUND)
        if record.created_at < verification_validity_cutoff(self._policy, now):
            return Outcome.failure(ErrorKind.EXPIRED)
        return Outcome.success(record)

    async def consume_verified(self, record_id: Any) -> bool:
        """Delete a verified record once an account has been created from it."""
        return await self.revoke(record_id)
