from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.errors import DuplicateKeyError

from auth import is_admin, optional_user, require_admin, require_staff
from categories import add_subcategory, ensure_category
from database import create_document, db, touch
from helpers import contains, is_object_id, oid, ok, pagination, serialize_doc
from schemas import InventoryUpdate, Product, ProductUpdate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

SORTS = {
    "price_asc": [("price", 1)],
    "price_desc": [("price", -1)],
    "popular": [("sales_count", -1)],
    "newest": [("created_at", -1)],
}

# unique sparse indexes: an explicit null would still collide
SPARSE_UNIQUE_FIELDS = ("sku", "seo_slug")

# optional on the product document; every other update field ignores null
NULLABLE_FIELDS = ("original_price", "subcategory", "brand", "color_images", "size_chart_image")


def compute_total_stock(product: Dict[str, Any]) -> Optional[int]:
    """Stock implied by the inventory grid, or by variant stock when the grid is empty."""
    inventory = product.get("inventory") or []
    if inventory:
        return sum(int(entry.get("quantity") or 0) for entry in inventory)
    variants = product.get("variants") or []
    if any(isinstance(v.get("stock"), (int, float)) for v in variants if isinstance(v, dict)):
        return sum(int(v.get("stock") or 0) for v in variants if isinstance(v, dict))
    return None


def discount_price(product: Dict[str, Any]) -> float:
    price = float(product.get("price") or 0)
    discount = float(product.get("discount") or 0)
    if discount > 0:
        return price * (1 - discount / 100)
    return price


def active_filter() -> Dict[str, Any]:
    # legacy documents without is_active count as active
    return {"is_active": {"$ne": False}}


def _sku_taken(sku: Optional[str], exclude_id=None) -> bool:
    if not sku:
        return False
    query: Dict[str, Any] = {"sku": sku}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    return db["product"].find_one(query) is not None


def _register_category(category: Optional[str], subcategory: Optional[str]):
    if not category:
        return
    try:
        if subcategory:
            add_subcategory(category, subcategory)
        else:
            ensure_category(category)
    except ValueError:
        pass


def _with_price(product: Dict[str, Any]) -> Dict[str, Any]:
    doc = serialize_doc(product)
    doc["discount_price"] = round(discount_price(doc), 2)
    return doc


@router.get("")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=500),
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort: str = Query("newest", pattern="^(price_asc|price_desc|newest|popular)$"),
    include_inactive: bool = False,
    user=Depends(optional_user),
):
    filter_q: Dict[str, Any] = {}
    if not (include_inactive and is_admin(user)):
        filter_q.update(active_filter())
    if category:
        filter_q["category"] = category
    if search:
        needle = contains(search)
        filter_q["$or"] = [
            {"name": needle},
            {"sku": needle},
            {"category": needle},
            {"subcategory": needle},
            {"brand": needle},
            {"tags": needle},
        ]
    price_filter = {}
    if min_price is not None:
        price_filter["$gte"] = float(min_price)
    if max_price is not None:
        price_filter["$lte"] = float(max_price)
    if price_filter:
        filter_q["price"] = price_filter

    total = db["product"].count_documents(filter_q)
    cursor = db["product"].find(filter_q).sort(SORTS[sort]).skip((page - 1) * limit).limit(limit)
    products = [_with_price(p) for p in cursor]
    return ok({"products": products, "pagination": pagination(page, limit, total)})


@router.get("/featured")
def featured_products():
    cursor = db["product"].find({"is_featured": True, **active_filter()}).sort("created_at", -1).limit(8)
    return ok({"products": [_with_price(p) for p in cursor]})


@router.get("/by-ids")
def products_by_ids(ids: str = Query(...), include_inactive: bool = False, user=Depends(optional_user)):
    wanted = [s.strip() for s in ids.split(",") if s.strip()]
    object_ids = [oid(i) for i in wanted if is_object_id(i)]
    if not object_ids:
        return ok({"products": []})

    filter_q: Dict[str, Any] = {"_id": {"$in": object_ids}}
    if not (include_inactive and is_admin(user)):
        filter_q.update(active_filter())
    by_id = {str(p["_id"]): p for p in db["product"].find(filter_q)}
    # keep the caller's order
    products = [_with_price(by_id[i]) for i in wanted if i in by_id]
    return ok({"products": products})


@router.get("/{product_id}")
def get_product(product_id: str, user=Depends(optional_user)):
    prod = db["product"].find_one({"_id": oid(product_id)})
    if not prod or (prod.get("is_active") is False and not is_admin(user)):
        raise HTTPException(status_code=404, detail="Product not found")

    if prod.get("is_active") is not False:
        db["product"].update_one({"_id": prod["_id"]}, {"$inc": {"view_count": 1}})
        prod["view_count"] = int(prod.get("view_count") or 0) + 1
    return ok({"product": _with_price(prod)})


@router.post("", status_code=201)
def create_product(payload: Product, user=Depends(require_admin)):
    if _sku_taken(payload.sku):
        raise HTTPException(status_code=409, detail="SKU already exists")

    doc = payload.model_dump()
    for key in SPARSE_UNIQUE_FIELDS:
        if not doc.get(key):
            doc.pop(key, None)
    stock = compute_total_stock(doc)
    if stock is not None:
        doc["total_stock"] = stock

    try:
        product_id = create_document("product", doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="SKU already exists")
    _register_category(doc.get("category"), doc.get("subcategory"))

    logger.info("product_created", product_id=product_id, sku=doc.get("sku"))
    saved = db["product"].find_one({"_id": oid(product_id)})
    return ok({"product": _with_price(saved)}, "Product created successfully")


@router.put("/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, user=Depends(require_admin)):
    prod = db["product"].find_one({"_id": oid(product_id)})
    if not prod:
        raise HTTPException(status_code=404, detail="Product not found")

    updates = payload.model_dump(exclude_unset=True)
    unset = {key: "" for key in SPARSE_UNIQUE_FIELDS if key in updates and not updates[key]}
    for key in unset:
        updates.pop(key)
    updates = {key: value for key, value in updates.items() if value is not None or key in NULLABLE_FIELDS}
    if updates.get("sku") and _sku_taken(updates["sku"], exclude_id=prod["_id"]):
        raise HTTPException(status_code=409, detail="SKU already exists")

    stock = compute_total_stock({**prod, **updates})
    if stock is not None:
        updates["total_stock"] = stock

    operation: Dict[str, Any] = {"$set": touch(updates)}
    if unset:
        operation["$unset"] = unset
    try:
        db["product"].update_one({"_id": prod["_id"]}, operation)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="SKU already exists")
    if "category" in updates or "subcategory" in updates:
        merged = {**prod, **updates}
        _register_category(merged.get("category"), merged.get("subcategory"))

    saved = db["product"].find_one({"_id": prod["_id"]})
    return ok({"product": _with_price(saved)}, "Product updated successfully")


@router.put("/{product_id}/inventory")
def update_inventory(product_id: str, payload: InventoryUpdate, user=Depends(require_staff)):
    prod = db["product"].find_one({"_id": oid(product_id)})
    if not prod:
        raise HTTPException(status_code=404, detail="Product not found")

    inventory = [entry.model_dump() for entry in payload.inventory]
    stock = compute_total_stock({**prod, "inventory": inventory})
    updates: Dict[str, Any] = {"inventory": inventory, "total_stock": stock or 0}
    db["product"].update_one({"_id": prod["_id"]}, {"$set": touch(updates)})
    logger.info("inventory_updated", product_id=product_id, total_stock=updates["total_stock"], by=str(user["_id"]))

    saved = db["product"].find_one({"_id": prod["_id"]})
    return ok({"product": _with_price(saved)}, "Inventory updated successfully")


@router.delete("/{product_id}")
def delete_product(product_id: str, user=Depends(require_admin)):
    prod = db["product"].find_one({"_id": oid(product_id)})
    if not prod:
        raise HTTPException(status_code=404, detail="Product not found")
    db["product"].update_one({"_id": prod["_id"]}, {"$set": touch({"is_active": False})})
    logger.info("product_deactivated", product_id=product_id)
    return ok(message="Product deleted successfully")
