from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, HTTPException

from auth import require_admin
from database import create_document, db, touch
from helpers import ok, serialize_doc
from schemas import Category, CategoryCreate, SubcategoryCreate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/categories", tags=["categories"])


def _clean(value: Any) -> str:
    return str(value or "").strip()


def _unique(values) -> List[str]:
    return list(dict.fromkeys(v for v in (_clean(x) for x in values) if v))


def ensure_category(name: str) -> Dict[str, Any]:
    clean = _clean(name)
    if not clean:
        raise ValueError("Category name is required")
    doc = db["category"].find_one({"name": clean})
    if not doc:
        create_document("category", Category(name=clean))
        doc = db["category"].find_one({"name": clean})
    return doc


def add_subcategory(name: str, subcategory: str) -> Dict[str, Any]:
    cat = ensure_category(name)
    sub = _clean(subcategory)
    if not sub or sub in (cat.get("subcategories") or []):
        return cat
    db["category"].update_one({"_id": cat["_id"]}, {"$push": {"subcategories": sub}, "$set": touch({})})
    return db["category"].find_one({"_id": cat["_id"]})


def merged_categories() -> List[Dict[str, Any]]:
    """Stored categories augmented with whatever products actually use."""
    by_name: Dict[str, Dict[str, Any]] = {}
    for c in db["category"].find({"is_active": True}):
        c = serialize_doc(c)
        c["name"] = _clean(c.get("name"))
        c["subcategories"] = _unique(c.get("subcategories") or [])
        by_name[c["name"]] = c

    for raw in db["product"].distinct("category"):
        name = _clean(raw)
        if not name:
            continue
        derived = _unique(db["product"].distinct("subcategory", {"category": raw, "subcategory": {"$nin": [None, ""]}}))
        if name in by_name:
            by_name[name]["subcategories"] = _unique(by_name[name]["subcategories"] + derived)
        else:
            by_name[name] = {"name": name, "subcategories": derived, "is_active": True}

    return sorted(by_name.values(), key=lambda c: c["name"].lower())


@router.get("")
def list_categories():
    return ok({"categories": merged_categories()})


@router.post("")
def create_category(payload: CategoryCreate, user=Depends(require_admin)):
    name = _clean(payload.name)
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    if db["category"].find_one({"name": name}):
        raise HTTPException(status_code=409, detail="Category already exists")
    category = ensure_category(name)
    logger.info("category_created", name=name)
    return ok({"category": serialize_doc(category)})


@router.post("/{name}/subcategories")
def create_subcategory(name: str, payload: SubcategoryCreate, user=Depends(require_admin)):
    if not _clean(payload.subcategory):
        raise HTTPException(status_code=400, detail="Subcategory is required")
    if not _clean(name):
        raise HTTPException(status_code=400, detail="Name is required")
    category = add_subcategory(name, payload.subcategory)
    return ok({"category": serialize_doc(category)})
