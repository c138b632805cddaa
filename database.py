"""
MongoDB connection for the shop backend.

`db` is None when DATABASE_URL is not set; callers check for that and
answer 500 instead of failing at import time.
"""

import os
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "comercio")

db: Optional[Database] = None

if DATABASE_URL:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]


def create_document(collection_name: str, data: Union[BaseModel, dict], database: Optional[Database] = None) -> str:
    """Insert a document with timestamps and return its id as a hex string."""
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not available")
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, database: Optional[Database] = None) -> list:
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not available")
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
