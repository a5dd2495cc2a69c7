"""
MongoDB access for the portfolio API.

`db` is None when DATABASE_URL is not configured; routes reach the database
through the `get_db` dependency so tests can swap in another client.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient

from config import DATABASE_NAME, DATABASE_URL
from errors import PortfolioError

logger = logging.getLogger("portfolio_api.database")

db = None
if DATABASE_URL:
    try:
        client = MongoClient(DATABASE_URL)
        db = client[DATABASE_NAME]
    except Exception as e:
        logger.warning("Could not connect to MongoDB: %s", e)
        db = None


def get_db():
    if db is None:
        raise PortfolioError("Database not available")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def oid(value: Any) -> Optional[ObjectId]:
    """Parse an id from a path or cookie. Invalid ids come back as None."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def to_public(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc = {**doc}
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    else:
        data = dict(data)
    now = now_utc()
    data["created_at"] = now
    data["updated_at"] = now
    result = database[collection_name].insert_one(data)
    return str(result.inserted_id)


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def update_document(database, collection_name: str, filter_dict: dict, changes: dict) -> int:
    """$set `changes` on the single document matching `filter_dict`; returns matched count."""
    changes = {**changes, "updated_at": now_utc()}
    res = database[collection_name].update_one(filter_dict, {"$set": changes})
    return res.matched_count


# ----------------------------------
# JSON-encoded list fields
# ----------------------------------

def parse_json_list(raw: Any) -> list:
    """
    Decode a list persisted as JSON text (highlights, paragraphs, component keys).
    Anything that is not a JSON array degrades to an empty list.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, list):
        return list(raw)
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Unparseable JSON list field: %r", raw)
        return []
    return value if isinstance(value, list) else []


def dump_json_list(items: Optional[list]) -> str:
    return json.dumps(list(items or []), ensure_ascii=False)
