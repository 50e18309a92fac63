import math
import re
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import HTTPException


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(str(id_str))
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid id")


def is_object_id(value: Any) -> bool:
    return ObjectId.is_valid(str(value or ""))


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    if doc.get("_id"):
        doc["id"] = str(doc.pop("_id"))
    # Convert ObjectId and non-JSON types
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
    return doc


def ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def escape_regex(value: str) -> str:
    return re.escape(str(value))


def contains(value: str) -> Dict[str, str]:
    """Case-insensitive substring match for user input."""
    return {"$regex": escape_regex(value), "$options": "i"}


def pagination(page: int, limit: int, total: int, pages_key: str = "pages") -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        pages_key: max(1, math.ceil(total / limit)) if limit else 1,
    }


def parse_day(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """Parse YYYY-MM-DD into the first (or last) instant of that UTC day."""
    if not value:
        return None
    try:
        day = datetime.strptime(value.strip(), "%Y-%m-%d")
    except ValueError:
        return None
    if end_of_day:
        return day.replace(hour=23, minute=59, second=59, microsecond=999000)
    return day
