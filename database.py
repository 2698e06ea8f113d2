"""
MongoDB connection and generic document helpers.

The connection is configured from DATABASE_URL / DATABASE_NAME. When either is
missing ``db`` is None and callers must supply their own database handle.
"""
import os
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, Union

from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def to_bson(value: Any) -> Any:
    """Prepare a value for storage: datetimes become naive UTC, enums their value."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, dict):
        return {k: to_bson(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_bson(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


def from_bson(value: Any) -> Any:
    """Inverse of to_bson for datetimes: naive values read back as UTC-aware."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, dict):
        return {k: from_bson(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_bson(v) for v in value]
    return value


def _resolve(database: Optional[Database]) -> Database:
    target = database if database is not None else db
    if target is None:
        raise RuntimeError("Database not configured; set DATABASE_URL and DATABASE_NAME")
    return target


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]],
                    database: Optional[Database] = None) -> str:
    """Insert a document keyed by its ``id`` (or a generated ObjectId) and return the key."""
    if isinstance(data, BaseModel):
        doc = data.model_dump(mode="python")
    else:
        doc = dict(data)
    if doc.get("id"):
        doc["_id"] = doc.pop("id")
    result = _resolve(database)[collection_name].insert_one(to_bson(doc))
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, sort: Optional[List] = None,
                  database: Optional[Database] = None) -> List[Dict[str, Any]]:
    cursor = _resolve(database)[collection_name].find(to_bson(filter_dict or {}))
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    docs = []
    for doc in cursor:
        doc = from_bson(doc)
        doc["id"] = str(doc.pop("_id"))
        docs.append(doc)
    return docs
