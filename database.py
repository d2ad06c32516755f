"""
Database helpers

MongoDB access shared by the API and the order layer. The connection is
opened at import when DATABASE_URL and DATABASE_NAME are configured;
otherwise ``db`` stays ``None`` and callers report the database as
unavailable.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

_client = None
db: Optional[Database] = None


def ensure_indexes(database: Database) -> None:
    """Create the indexes the order layer relies on for correctness."""
    # Category names are the uniqueness guard for the lazily created virtual category
    database["category"].create_index([("name", ASCENDING)], unique=True)
    database["order"].create_index([("order_number", ASCENDING)])
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["orderitem"].create_index([("order_id", ASCENDING)])
    database["customorder"].create_index([("order_id", ASCENDING)])


if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]
    # Without the unique category index the virtual category race is unguarded
    ensure_indexes(db)
    logger.info("Connected to database %s", DATABASE_NAME)


def product_filter(product_id: str) -> Dict[str, Any]:
    """Catalog products use ObjectIds, virtual products use their sentinel string as ``_id``."""
    if ObjectId.is_valid(product_id):
        return {"_id": ObjectId(product_id)}
    return {"_id": product_id}


def object_id(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if ObjectId.is_valid(value) else None


def create_document(collection_name: str, data: Union[BaseModel, dict], database: Optional[Database] = None) -> str:
    database = database if database is not None else db
    if database is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now

    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  database: Optional[Database] = None) -> List[dict]:
    database = database if database is not None else db
    if database is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Make a document JSON friendly: ``_id`` becomes ``id``, ObjectIds and datetimes become strings."""
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    for k, v in list(doc.items()):
        doc[k] = _serialize_value(v)
    return doc


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value
