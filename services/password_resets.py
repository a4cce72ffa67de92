"""
Password reset token manager.

A reset token authorises exactly one password change. consume() is a
claim-then-update sequence:

1. claim: conditional single-document update ``{used: false} -> {used: true}``;
   of several concurrent consumers only one matches.
2. update the password through the identity store.
3. on failure, release the claim (``used: true -> false``) before returning,
   so the link can be retried.

Unknown emails on issue() succeed silently so the endpoint cannot be used to
enumerate accounts.
"""

from __future__ import annotations

from typing import Any, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from config import PolicySettings
from infrastructure.identity.protocol import IdentityError, IdentityErrorKind, IdentityStore
from repositories.password_reset_repository import PasswordResetRepository
from schemas.models.password_reset import PasswordResetDoc
from services.outcome import ErrorKind, IssuedCredential, Outcome
from services.ttl_policy import is_expired, reset_token_expiry
from shared.crypto import hash_token
from shared.datetime_utils import Clock, utcnow
from shared.generators import generate_secure_token
from shared.logging import get_logger, hash_ip, mask_email
from shared.validators import normalize_email

log = get_logger(__name__)

_IDENTITY_CAUSES = {
    IdentityErrorKind.POLICY_VIOLATION: ErrorKind.POLICY_REJECTED,
    IdentityErrorKind.NOT_FOUND: ErrorKind.NOT_FOUND,
}


class PasswordResetManager:
    def __init__(
        self,
        repo: PasswordResetRepository,
        identity_store: IdentityStore,
        policy: PolicySettings,
        clock: Clock = utcnow,
    ) -> None:
        self._repo = repo
        self._identities = identity_store
        self._policy = policy
        self._clock = clock

    @property
    def repository(self) -> PasswordResetRepository:
        return self._repo

    async def issue(
        self,
        email: str,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        record_id: Optional[ObjectId] = None,
    ) -> Outcome[Optional[IssuedCredential]]:
        email = normalize_email(email)
        try:
            identity = await self._identities.find_by_email(email)
        except IdentityError as e:
            log.error("reset_identity_lookup_failed", error=str(e), kind=e.kind.value)
            return Outcome.failure(ErrorKind.SERVICE_ERROR)

        if identity is None:
            log.info("reset_requested_unknown_email", email=mask_email(email))
            return Outcome.success(None)

        now = self._clock()
        token = generate_secure_token()
        doc = PasswordResetDoc(
            id=record_id or ObjectId(),
            user_id=identity.user_id,
            email=email,
            token_hash=hash_token(token),
            created_at=now,
            expires_at=reset_token_expiry(self._policy, now),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        try:
            await self._repo.create(doc)
        except PyMongoError as e:
            log.error(
                "reset_token_issue_failed",
                user_id=identity.user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return Outcome.failure(ErrorKind.SERVICE_ERROR)

        log.info(
            "reset_token_issued",
            user_id=identity.user_id,
            record_id=str(doc.id),
            ip=hash_ip(ip_address),
            expires_at=doc.expires_at.isoformat(),
        )
        return Outcome.success(
            IssuedCredential(
                record_id=doc.id,
                email=email,
                secret=token,
                expires_at=doc.expires_at,
                user_id=identity.user_id,
                display_name=identity.display_name,
            )
        )

    async def validate(self, user_id: str, token: str) -> Outcome[None]:
        """Read-only check: does this link still work?"""
        if not user_id or not token:
            return Outcome.failure(ErrorKind.NOT_FOUND)
        now = self._clock()
        try:
            record = await self._repo.latest_for_token(user_id, hash_token(token))
            if record is None:
                return Outcome.failure(ErrorKind.NOT_FOUND)
            if record.used:
                return Outcome.failure(ErrorKind.ALREADY_USED)
            if is_expired(record.expires_at, now):
                await self._repo.delete(record.id)
                return Outcome.failure(ErrorKind.EXPIRED)
        except PyMongoError as e:
            log.error(
                "reset_token_validate_failed",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return Outcome.failure(ErrorKind.SERVICE_ERROR)
        return Outcome.success()

    async def consume(
        self,
        user_id: str,
        token: str,
        new_secret: str,
        *,
        ip_address: Optional[str] = None,
    ) -> Outcome[None]:
        if not user_id or not token:
            return Outcome.failure(ErrorKind.INVALID_TOKEN)
        now = self._clock()
        try:
            record = await self._repo.latest_for_token(
                user_id, hash_token(token), unused_only=True
            )
            if record is None:
                return Outcome.failure(ErrorKind.INVALID_TOKEN)
            if is_expired(record.expires_at, now):
                await self._repo.delete(record.id)
                return Outcome.failure(ErrorKind.EXPIRED)
            claimed = await self._repo.claim(record.id, now, ip_address)
        except PyMongoError as e:
            log.error(
                "reset_token_consume_failed",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return Outcome.failure(ErrorKind.SERVICE_ERROR)

        if not claimed:
            log.info("reset_token_claim_lost", user_id=user_id, record_id=str(record.id))
            return Outcome.failure(ErrorKind.INVALID_TOKEN)

        log.info(
            "reset_token_claimed",
            user_id=user_id,
            record_id=str(record.id),
            claimed_at=now.isoformat(),
        )

        try:
            await self._identities.update_credential(user_id, new_secret)
        except IdentityError as e:
            cause = _IDENTITY_CAUSES.get(e.kind, ErrorKind.SERVICE_ERROR)
            log.warning(
                "password_update_failed",
                user_id=user_id,
                kind=e.kind.value,
                error=str(e),
            )
            await self._rollback(record.id, user_id)
            return Outcome.failure(
                ErrorKind.UPDATE_FAILED, cause=cause, requirements=e.details or []
            )
        except Exception as e:
            log.error(
                "password_update_failed",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._rollback(record.id, user_id)
            return Outcome.failure(ErrorKind.UPDATE_FAILED, cause=ErrorKind.SERVICE_ERROR)

        try:
            removed = await self._repo.delete_unused_for_user(user_id, record.id)
        except PyMongoError as e:
            removed = 0
            log.warning(
                "reset_sibling_cleanup_failed",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        log.info(
            "password_reset_completed",
            user_id=user_id,
            record_id=str(record.id),
            invalidated_siblings=removed,
            ip=hash_ip(ip_address),
        )
        return Outcome.success()

    async def _rollback(self, record_id: Any, user_id: str) -> None:
        try:
            released = await self._repo.release(record_id)
        except PyMongoError as e:
            log.error(
                "reset_token_rollback_failed",
                user_id=user_id,
                record_id=str(record_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        if released:
            log.info("reset_token_rolled_back", user_id=user_id, record_id=str(record_id))
        else:
            log.info(
                "reset_token_rollback_no_match", user_id=user_id, record_id=str(record_id)
            )

    async def revoke(self, record_id: Any) -> bool:
        """Compensating delete. Idempotent; False only on a store failure."""
        try:
            deleted = await self._repo.delete(record_id)
        except PyMongoError as e:
            log.error(
                "reset_token_revoke_failed",
                record_id=str(record_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        if not deleted:
            log.info("reset_token_already_deleted", record_id=str(record_id))
        return True
