"""Persistence for registration verification codes (`verification-codes`)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pymongo import DESCENDING, ReturnDocument

from repositories.base import CredentialRepository
from schemas.models.verification_code import VerificationCodeDoc


class VerificationCodeRepository(CredentialRepository):
    async def create(self, doc: VerificationCodeDoc) -> Any:
        result = await self._col.insert_one(doc.to_mongo())
        return result.inserted_id

    async def latest_for_email(self, email: str) -> Optional[VerificationCodeDoc]:
        """Most recently created record for *email*, in any state."""
        doc = await self._col.find_one(
            {"email": email}, sort=[("created_at", DESCENDING)]
        )
        return VerificationCodeDoc.from_mongo(doc)

    async def pending_for_email(self, email: str) -> Optional[VerificationCodeDoc]:
        """The unverified record for *email*; the partial unique index allows one."""
        doc = await self._col.find_one({"email": email, "is_verified": False})
        return VerificationCodeDoc.from_mongo(doc)

    async def latest_verified_for_email(
        self, email: str
    ) -> Optional[VerificationCodeDoc]:
        doc = await self._col.find_one(
            {"email": email, "is_verified": True},
            sort=[("created_at", DESCENDING)],
        )
        return VerificationCodeDoc.from_mongo(doc)

    async def increment_attempts(self, record_id: Any) -> Optional[int]:
        """Atomically bump `attempts`; returns the new count, None if the record is gone."""
        doc = await self._col.find_one_and_update(
            {"_id": record_id},
            {"$inc": {"attempts": 1}},
            projection={"attempts": 1},
            return_document=ReturnDocument.AFTER,
        )
        return doc["attempts"] if doc else None

    async def mark_verified(self, record_id: Any, expires_at: datetime) -> bool:
        """Flag the record verified and extend it to the account-creation window."""
        result = await self._col.update_one(
            {"_id": record_id},
            {"$set": {"is_verified": True, "expires_at": expires_at}},
        )
        return result.matched_count > 0
