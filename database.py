"""
MongoDB access helpers.

`db` is resolved once at import time; helpers look it up on every call so it
can be swapped (tests point it at an in-memory database).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

import settings
from errors import NotFound, Unavailable

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    _client = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=5000)
    db = _client[settings.DATABASE_NAME]


def utcnow() -> datetime:
    """Current UTC time without tzinfo, the form PyMongo reads dates back in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def collection(name: str):
    if db is None:
        raise Unavailable("Database not configured")
    return db[name]


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = collection(collection_name).insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
    cursor = collection(collection_name).find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def next_sequence(name: str) -> int:
    """Atomically allocate the next number of a named counter."""
    counter = collection("counter").find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


def to_object_id(value: Any, what: str = "Resource") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(str(value)):
        raise NotFound(f"{what} not found")
    return ObjectId(str(value))


def ensure_indexes():
    collection("user").create_index([("email", ASCENDING)], unique=True)
    collection("admin").create_index([("email", ASCENDING)], unique=True)
    collection("admin").create_index([("username", ASCENDING)], unique=True)
    collection("product").create_index([("sku", ASCENDING)], unique=True)
    collection("order").create_index([("order_number", ASCENDING)], unique=True)
    # expired OTPs are evicted by the server
    collection("otp").create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
    logger.info("Database indexes ensured")


def _serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]]):
    if not doc:
        return doc
    doc = dict(doc)
    doc.pop("password_hash", None)
    if "_id" in doc:
        doc["id"] = doc.pop("_id")
    return _serialize_value(doc)
