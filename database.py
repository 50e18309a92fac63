"""
MongoDB access

A single client/database handle for the process plus the small helpers the
route modules share for inserting and reading documents.
"""

import os
from datetime import datetime, timezone
from typing import Any, Dict, Union

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

load_dotenv()

logger = structlog.get_logger(__name__)

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]


def utcnow() -> datetime:
    # naive UTC, the same shape pymongo hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)

    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now

    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def touch(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Return a $set payload with updated_at refreshed."""
    return {**updates, "updated_at": utcnow()}


def ensure_indexes():
    if db is None:
        logger.warning("indexes_skipped", reason="database not configured")
        return

    db["user"].create_index("email", unique=True)
    db["user"].create_index("role")

    db["product"].create_index("sku", unique=True, sparse=True)
    db["product"].create_index("seo_slug", unique=True, sparse=True)
    db["product"].create_index([("category", ASCENDING), ("is_active", ASCENDING)])

    db["order"].create_index("order_number", unique=True, sparse=True)
    db["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    db["order"].create_index("status")
    db["order"].create_index("payment.status")
    db["order"].create_index([("created_at", DESCENDING)])

    db["category"].create_index("name", unique=True)
    db["content"].create_index("type", unique=True)
    db["lookbookpost"].create_index("slug", unique=True, sparse=True)

    db["payupaymentattempt"].create_index("txnid", unique=True)
    # attempts are removed by MongoDB once expires_at passes
    db["payupaymentattempt"].create_index("expires_at", expireAfterSeconds=0)

    logger.info("indexes_ensured", database=db.name)
