"""
Credential store over the "users" collection.

Every mutation here is a single-document update so concurrent requests for
the same user never lose writes.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import USERS, create_document, utcnow
from errors import ValidationFailed

# Never sent over the wire
PRIVATE_FIELDS = {"passwordHash": 0, "resetTokenHash": 0, "resetTokenExpiresAt": 0}

EMAIL_TAKEN = "User with that email already exists"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


class UserRepository:
    def __init__(self, db: Database):
        self._db = db
        self._users = db[USERS]

    # -------------------- Reads --------------------
    def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self._users.find_one({"email": normalize_email(email)})

    def find_by_id(self, user_id: Any, include_private: bool = False) -> Optional[Dict[str, Any]]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        projection = None if include_private else PRIVATE_FIELDS
        return self._users.find_one({"_id": oid}, projection)

    def find_by_reset_hash(self, token_hash: str) -> Optional[Dict[str, Any]]:
        return self._users.find_one({"resetTokenHash": token_hash})

    def list_users(self, role: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {"role": role} if role else {}
        return list(self._users.find(query, PRIVATE_FIELDS).sort("createdAt", 1))

    # -------------------- Writes --------------------
    def create(self, first_name: str, last_name: str, email: str, password_hash: str, role: str) -> Dict[str, Any]:
        doc = {
            "firstName": first_name,
            "lastName": last_name,
            "email": normalize_email(email),
            "passwordHash": password_hash,
            "role": role,
            "resetTokenHash": None,
            "resetTokenExpiresAt": None,
        }
        try:
            doc["_id"] = create_document(self._db, USERS, doc)
        except DuplicateKeyError:
            raise ValidationFailed(EMAIL_TAKEN)
        return doc

    def update_fields(self, user_id: Any, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply a partial update; returns the public document or None if missing"""
        oid = to_object_id(user_id)
        if oid is None:
            return None
        changes = dict(fields)
        if "email" in changes:
            changes["email"] = normalize_email(changes["email"])
        changes["updatedAt"] = utcnow()
        try:
            return self._users.find_one_and_update(
                {"_id": oid},
                {"$set": changes},
                projection=PRIVATE_FIELDS,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise ValidationFailed(EMAIL_TAKEN)

    def replace_password_if_unchanged(self, user_id: Any, expected_hash: str, new_hash: str) -> bool:
        """Swap the password hash only if it still equals expected_hash"""
        result = self._users.update_one(
            {"_id": to_object_id(user_id), "passwordHash": expected_hash},
            {"$set": {"passwordHash": new_hash, "updatedAt": utcnow()}},
        )
        return result.modified_count == 1

    def set_reset_token(self, user_id: Any, token_hash: str, expires_at: datetime) -> None:
        self._users.update_one(
            {"_id": to_object_id(user_id)},
            {"$set": {"resetTokenHash": token_hash, "resetTokenExpiresAt": expires_at, "updatedAt": utcnow()}},
        )

    def clear_reset_token(self, token_hash: str) -> None:
        self._users.update_one(
            {"resetTokenHash": token_hash},
            {"$set": {"resetTokenHash": None, "resetTokenExpiresAt": None, "updatedAt": utcnow()}},
        )

    def consume_reset_token(self, token_hash: str, now: datetime, new_hash: str) -> Optional[Dict[str, Any]]:
        """
        Compare-and-clear: set the new password and drop the reset fields in
        one update, matched on the token hash and an unexpired window. Only
        one caller can ever win for a given token.
        """
        return self._users.find_one_and_update(
            {"resetTokenHash": token_hash, "resetTokenExpiresAt": {"$gt": now}},
            {"$set": {
                "passwordHash": new_hash,
                "resetTokenHash": None,
                "resetTokenExpiresAt": None,
                "updatedAt": now,
            }},
            projection=PRIVATE_FIELDS,
            return_document=ReturnDocument.AFTER,
        )

    def delete(self, user_id: Any) -> bool:
        oid = to_object_id(user_id)
        if oid is None:
            return False
        return self._users.delete_one({"_id": oid}).deleted_count == 1
