"""
Test helpers: mongomock-backed async collections and a controllable clock.

mongomock is synchronous; AsyncCollection exposes the subset of the pymongo
async API the repositories use. Every call yields to the event loop once so
concurrent coroutines interleave between store operations, the way they do
against a real server.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
import mongomock
from pymongo.errors import ServerSelectionTimeoutError

from config import PolicySettings

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class AsyncCursor:
    def __init__(self, cursor) -> None:
        self._cursor = cursor

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict:
        await asyncio.sleep(0)
        try:
            return next(self._cursor)
        except StopIteration:
            raise StopAsyncIteration from None


class AsyncCollection:
    def __init__(self, collection) -> None:
        self._col = collection

    @property
    def name(self) -> str:
        return self._col.name

    @property
    def sync(self):
        """The underlying mongomock collection, for direct assertions."""
        return self._col

    async def insert_one(self, document: dict):
        await asyncio.sleep(0)
        return self._col.insert_one(document)

    async def find_one(self, filter: Optional[dict] = None, *args: Any, **kwargs: Any):
        await asyncio.sleep(0)
        return self._col.find_one(filter, *args, **kwargs)

    def find(self, *args: Any, **kwargs: Any) -> AsyncCursor:
        return AsyncCursor(self._col.find(*args, **kwargs))

    async def find_one_and_update(self, filter: dict, update: dict, **kwargs: Any):
        await asyncio.sleep(0)
        return self._col.find_one_and_update(filter, update, **kwargs)

    async def update_one(self, filter: dict, update: dict, **kwargs: Any):
        await asyncio.sleep(0)
        return self._col.update_one(filter, update, **kwargs)

    async def delete_one(self, filter: dict):
        await asyncio.sleep(0)
        return self._col.delete_one(filter)

    async def delete_many(self, filter: dict):
        await asyncio.sleep(0)
        return self._col.delete_many(filter)

    async def count_documents(self, filter: dict, **kwargs: Any) -> int:
        await asyncio.sleep(0)
        return self._col.count_documents(filter, **kwargs)

    async def create_index(self, keys, **kwargs: Any) -> str:
        return self._col.create_index(keys, **kwargs)


class BrokenCollection(AsyncCollection):
    """Collection whose listed operations raise a store error."""

    def __init__(self, collection, failing: set[str]) -> None:
        super().__init__(collection)
        self._failing = failing

    def __getattribute__(self, item: str):
        failing = object.__getattribute__(self, "_failing")
        if item in failing:
            async def _fail(*args: Any, **kwargs: Any):
                raise ServerSelectionTimeoutError("store unavailable")

            if item == "find":
                def _fail_sync(*args: Any, **kwargs: Any):
                    raise ServerSelectionTimeoutError("store unavailable")

                return _fail_sync
            return _fail
        return object.__getattribute__(self, item)


class AsyncDatabase:
    def __init__(self, db) -> None:
        self._db = db

    def __getitem__(self, name: str) -> AsyncCollection:
        return AsyncCollection(self._db[name])

    def broken(self, name: str, *failing: str) -> BrokenCollection:
        return BrokenCollection(self._db[name], set(failing))


def make_db() -> AsyncDatabase:
    client = mongomock.MongoClient(tz_aware=True)
    return AsyncDatabase(client["credential-service-test"])


def make_policy(**overrides: Any) -> PolicySettings:
    return PolicySettings(**overrides)


def password_matches(plain: str, hashed: str) -> bool:
    try:
        return PasswordHasher().verify(hashed, plain)
    except (VerificationError, InvalidHashError):
        return False
