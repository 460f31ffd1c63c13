"""
MongoDB access helpers.

The client is created lazily by pymongo, so building it does not open a
connection until the first operation.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import Settings

logger = logging.getLogger(__name__)

USERS = "users"


def utcnow() -> datetime:
    """Naive UTC timestamp, the form pymongo returns from the server"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_database(settings: Settings) -> Database:
    url = settings.database_url or "mongodb://localhost:27017"
    client = MongoClient(url)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    users = db[USERS]
    users.create_index([("email", ASCENDING)], unique=True, name="email_unique")
    users.create_index([("resetTokenHash", ASCENDING)], name="reset_token_hash")
    logger.info("Indexes ensured on %s", USERS)


def create_document(db: Database, collection_name: str, data: Dict[str, Any]) -> Any:
    """Insert a document stamped with createdAt/updatedAt, returning its id"""
    now = utcnow()
    doc = dict(data)
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = db[collection_name].insert_one(doc)
    return result.inserted_id
