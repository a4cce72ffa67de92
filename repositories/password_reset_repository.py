"""Persistence for password reset tokens (`password-resets`).

claim() and release() are the two halves of consume(): each is a single
conditional update on one document, so MongoDB's per-document atomicity
decides which of several concurrent consumers wins.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pymongo import DESCENDING

from repositories.base import CredentialRepository
from schemas.models.password_reset import PasswordResetDoc


class PasswordResetRepository(CredentialRepository):
    async def create(self, doc: PasswordResetDoc) -> Any:
        result = await self._col.insert_one(doc.to_mongo())
        return result.inserted_id

    async def latest_for_token(
        self, user_id: str, token_hash: str, *, unused_only: bool = False
    ) -> Optional[PasswordResetDoc]:
        query: dict = {"user_id": user_id, "token_hash": token_hash}
        if unused_only:
            query["used"] = False
        doc = await self._col.find_one(query, sort=[("created_at", DESCENDING)])
        return PasswordResetDoc.from_mongo(doc)

    async def claim(
        self, record_id: Any, used_at: datetime, used_ip: Optional[str]
    ) -> bool:
        """Flip `used` False -> True. False means another request claimed it first."""
        result = await self._col.update_one(
            {"_id": record_id, "used": False},
            {"$set": {"used": True, "used_at": used_at, "used_ip": used_ip}},
        )
        return result.modified_count == 1

    async def release(self, record_id: Any) -> bool:
        """Undo a claim so the same link can be retried."""
        result = await self._col.update_one(
            {"_id": record_id, "used": True},
            {"$set": {"used": False, "used_at": None, "used_ip": None}},
        )
        return result.modified_count == 1

    async def delete_unused_for_user(self, user_id: str, keep_id: Any) -> int:
        """Invalidate sibling links once one of them has been consumed."""
        result = await self._col.delete_many(
            {"user_id": user_id, "used": False, "_id": {"$ne": keep_id}}
        )
        return result.deleted_count
