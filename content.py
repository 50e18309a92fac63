from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from auth import require_admin
from database import create_document, db, touch
from helpers import ok
from schemas import CONTENT_TYPES, Content

router = APIRouter(prefix="/api/content", tags=["content"])


def get_by_type(content_type: str) -> Optional[Dict[str, Any]]:
    return db["content"].find_one({"type": content_type})


def update_content(content_type: str, data: Dict[str, Any], updated_by: Optional[str] = None) -> Dict[str, Any]:
    """Shallow-merge data over the stored block, creating it on first write."""
    existing = get_by_type(content_type)
    if not existing:
        create_document("content", Content(type=content_type, data=data, updated_by=updated_by))
        return get_by_type(content_type)

    updates: Dict[str, Any] = {"data": {**(existing.get("data") or {}), **data}}
    if updated_by:
        updates["updated_by"] = updated_by
    db["content"].update_one({"_id": existing["_id"]}, {"$set": touch(updates)})
    return get_by_type(content_type)


def formatted(content: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(content.get("data") or {})
    if content.get("type") == "social_media" and isinstance(data.get("social_media"), list):
        data["social_media"] = [
            {
                "platform": s.get("platform"),
                "url": s.get("url"),
                "icon": s.get("icon") or (s.get("platform") or "").lower(),
                "enabled": s.get("enabled") is not False,
            }
            for s in data["social_media"]
        ]
    return {"type": content.get("type"), "data": data}


@router.get("")
def list_content():
    return ok({"contents": [formatted(c) for c in db["content"].find()]})


@router.get("/{content_type}")
def read_content(content_type: str):
    content = get_by_type(content_type)
    if not content:
        raise HTTPException(status_code=404, detail="Content not found")
    return ok(formatted(content))


@router.put("/{content_type}")
def write_content(content_type: str, data: Dict[str, Any] = Body(...), user=Depends(require_admin)):
    if content_type not in CONTENT_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown content type: {content_type}")
    content = update_content(content_type, data, str(user["_id"]))
    return ok(formatted(content), "Content updated successfully")
