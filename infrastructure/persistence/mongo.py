"""MongoDB client factory, collection names and index bootstrap."""

from __future__ import annotations

from pymongo import ASCENDING, DESCENDING, AsyncMongoClient
from pymongo.errors import PyMongoError

from config import DatabaseSettings
from shared.logging import get_logger

log = get_logger(__name__)

VERIFICATION_CODES_COLLECTION = "verification-codes"
PASSWORD_RESETS_COLLECTION = "password-resets"
USERS_COLLECTION = "users"


def create_mongo_client(settings: DatabaseSettings) -> AsyncMongoClient:
    """Create the async client. tz_aware so datetimes come back as aware UTC."""
    return AsyncMongoClient(
        settings.mongodb_uri,
        tz_aware=True,
        timeoutMS=settings.mongo_timeout_ms,
    )


async def ensure_indexes(db) -> None:
    """Create the indexes the credential queries rely on.

    Every lookup, rate-limit count and sweep is a bounded, indexed query.
    Failures are logged and do not prevent start-up.
    """
    try:
        codes = db[VERIFICATION_CODES_COLLECTION]
        await codes.create_index([("email", ASCENDING), ("created_at", DESCENDING)])
        await codes.create_index([("ip_address", ASCENDING), ("created_at", DESCENDING)])
        await codes.create_index([("expires_at", ASCENDING)])
        # At most one unverified code per email, even under concurrent issue
        await codes.create_index(
            [("email", ASCENDING)],
            name="email_pending_unique",
            unique=True,
            partialFilterExpression={"is_verified": False},
        )

        resets = db[PASSWORD_RESETS_COLLECTION]
        await resets.create_index(
            [
                ("user_id", ASCENDING),
                ("token_hash", ASCENDING),
                ("created_at", DESCENDING),
            ]
        )
        await resets.create_index([("email", ASCENDING), ("created_at", DESCENDING)])
        await resets.create_index(
            [("ip_address", ASCENDING), ("created_at", DESCENDING)]
        )
        await resets.create_index([("expires_at", ASCENDING)])

        users = db[USERS_COLLECTION]
        await users.create_index([("email", ASCENDING)], unique=True)
        # Accounts created before names were required have none
        await users.create_index(
            [("display_name", ASCENDING)],
            name="display_name_unique",
            unique=True,
            partialFilterExpression={"display_name": {"$type": "string"}},
        )
        log.info("mongo_indexes_ensured")
    except PyMongoError as e:
        log.error("mongo_index_creation_failed", error=str(e), error_type=type(e).__name__)
