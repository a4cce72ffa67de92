"""MongoDB implementation of IdentityStore over the `users` collection.

Passwords are checked against the strength policy and stored as argon2
hashes. Store failures surface as IdentityError(UNAVAILABLE) so callers can
classify them without importing pymongo.
"""

from __future__ import annotations

from typing import Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import PolicySettings
from infrastructure.identity.protocol import Identity, IdentityError, IdentityErrorKind
from schemas.models.user import UserDoc
from shared.crypto import hash_password
from shared.datetime_utils import Clock, utcnow
from shared.logging import get_logger
from shared.validators import normalize_email, validate_password

log = get_logger(__name__)


def _to_identity(doc: UserDoc) -> Identity:
    return Identity(
        user_id=str(doc.id),
        email=doc.email,
        display_name=doc.display_name,
        email_verified=doc.email_verified,
    )


class MongoIdentityStore:
    def __init__(self, collection, policy: PolicySettings, clock: Clock = utcnow) -> None:
        self._col = collection
        self._policy = policy
        self._clock = clock

    def _check_password(self, secret: str) -> None:
        ok, missing = validate_password(secret, self._policy.min_password_length)
        if not ok:
            raise IdentityError(
                IdentityErrorKind.POLICY_VIOLATION,
                "Password does not meet requirements",
                details=missing,
            )

    @staticmethod
    def _object_id(user_id: str) -> ObjectId:
        if not ObjectId.is_valid(user_id):
            raise IdentityError(IdentityErrorKind.NOT_FOUND, "Unknown user")
        return ObjectId(user_id)

    async def find_by_email(self, email: str) -> Optional[Identity]:
        try:
            doc = await self._col.find_one({"email": normalize_email(email)})
        except PyMongoError as e:
            raise IdentityError(IdentityErrorKind.UNAVAILABLE, str(e)) from e
        user = UserDoc.from_mongo(doc)
        return _to_identity(user) if user else None

    async def update_credential(self, user_id: str, new_secret: str) -> None:
        self._check_password(new_secret)
        oid = self._object_id(user_id)
        now = self._clock()
        try:
            result = await self._col.update_one(
                {"_id": oid},
                {
                    "$set": {
                        "password_hash": hash_password(new_secret),
                        "password_changed_at": now,
                        "updated_at": now,
                    }
                },
            )
        except PyMongoError as e:
            raise IdentityError(IdentityErrorKind.UNAVAILABLE, str(e)) from e
        if result.matched_count == 0:
            raise IdentityError(IdentityErrorKind.NOT_FOUND, "Unknown user")
        log.info("user_password_updated", user_id=user_id)

    async def mark_email_verified(self, user_id: str) -> None:
        oid = self._object_id(user_id)
        try:
            result = await self._col.update_one(
                {"_id": oid},
                {"$set": {"email_verified": True, "updated_at": self._clock()}},
            )
        except PyMongoError as e:
            raise IdentityError(IdentityErrorKind.UNAVAILABLE, str(e)) from e
        if result.matched_count == 0:
            raise IdentityError(IdentityErrorKind.NOT_FOUND, "Unknown user")

    async def create_account(
        self, email: str, secret: str, display_name: Optional[str]
    ) -> Identity:
        self._check_password(secret)
        now = self._clock()
        user = UserDoc(
            email=normalize_email(email),
            password_hash=hash_password(secret),
            display_name=display_name,
            created_at=now,
            updated_at=now,
        )
        try:
            result = await self._col.insert_one(user.to_mongo())
        except DuplicateKeyError as e:
            if "display_name" in str(e):
                raise IdentityError(
                    IdentityErrorKind.CONFLICT,
                    "This display name is already taken",
                    details=["display_name"],
                ) from e
            raise IdentityError(
                IdentityErrorKind.CONFLICT,
                "An account with this email already exists",
                details=["email"],
            ) from e
        except PyMongoError as e:
            raise IdentityError(IdentityErrorKind.UNAVAILABLE, str(e)) from e
        user.id = result.inserted_id
        log.info("user_account_created", user_id=str(result.inserted_id))
        return _to_identity(user)

    async def display_name_taken(self, display_name: str) -> bool:
        try:
            doc = await self._col.find_one(
                {"display_name": display_name}, projection={"_id": 1}
            )
        except PyMongoError as e:
            raise IdentityError(IdentityErrorKind.UNAVAILABLE, str(e)) from e
        return doc is not None
