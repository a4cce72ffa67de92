"""
Shared persistence operations for credential collections.

Both credential collections double as their own issuance event log: a
rate-limit window is a time-bounded count over `created_at`, and the
sweeper reaps by `expires_at`. Repositories let PyMongoError propagate;
the managers decide what a store failure means.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pymongo import ASCENDING


class CredentialRepository:
    """Operations common to every credential collection."""

    def __init__(self, collection) -> None:
        self._col = collection

    @property
    def name(self) -> str:
        return self._col.name

    async def delete(self, record_id: Any) -> bool:
        """Delete by id. Returns False when nothing matched (already gone)."""
        result = await self._col.delete_one({"_id": record_id})
        return result.deleted_count > 0

    async def count_issued_since(self, field: str, value: str, since: datetime) -> int:
        return await self._col.count_documents(
            {field: value, "created_at": {"$gt": since}}
        )

    async def oldest_issued_since(
        self, field: str, value: str, since: datetime
    ) -> Optional[datetime]:
        doc = await self._col.find_one(
            {field: value, "created_at": {"$gt": since}},
            projection={"created_at": 1},
            sort=[("created_at", ASCENDING)],
        )
        return doc["created_at"] if doc else None

    async def find_expired_ids(self, now: datetime, limit: int) -> list[Any]:
        """Ids of up to *limit* records whose `expires_at` is before *now*."""
        cursor = self._col.find(
            {"expires_at": {"$lt": now}},
            projection={"_id": 1},
            limit=limit,
        )
        return [doc["_id"] async for doc in cursor]
