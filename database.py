"""
MongoDB access helpers.

The database handle is created once by ``connect`` and passed down to the
stores; nothing in this module holds a live connection.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import Settings

logger = logging.getLogger(__name__)


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.database_url)
    logger.info("Using MongoDB database %r", settings.database_name)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    """Unique keys backing the upsert-by-key collections and the admin login."""
    db["visitor"].create_index([("ipAddress", ASCENDING)], unique=True)
    db["enquiry"].create_index([("name", ASCENDING), ("email", ASCENDING)], unique=True)
    db["user"].create_index([("username", ASCENDING)], unique=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: str) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def object_ids(values: Iterable[str]) -> List[ObjectId]:
    """Convert identifiers for an ``$in`` query, dropping ones that cannot exist."""
    return [oid for oid in (to_object_id(v) for v in values) if oid is not None]


def serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(doc)
    out["id"] = str(out.pop("_id"))
    return out


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a single document and return its identifier as a string."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    skip: int = 0,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {}).sort("_id", ASCENDING)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
