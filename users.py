from typing import Any, Dict, Iterable, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from auth import hash_password, public_user, require_admin, sanitize_profile
from database import create_document, db, touch
from helpers import contains, oid, ok, pagination
from schemas import AdminUserCreate, AdminUserUpdate, User

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

SORT_FIELDS = ("name", "email", "created_at", "last_login")


def order_stats(user_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Per-user order count, lifetime spend and latest order time."""
    ids = [str(i) for i in user_ids]
    if not ids:
        return {}
    pipeline = [
        {"$match": {"user_id": {"$in": ids}}},
        {"$group": {
            "_id": "$user_id",
            "orders_count": {"$sum": 1},
            "total_spent": {"$sum": "$total"},
            "last_order": {"$max": "$created_at"},
        }},
    ]
    return {
        row["_id"]: {
            "orders_count": row.get("orders_count") or 0,
            "total_spent": round(row.get("total_spent") or 0, 2),
            "last_order_at": row.get("last_order"),
        }
        for row in db["order"].aggregate(pipeline)
    }


def serialize_user(user: Dict[str, Any], stats: Optional[Dict[str, Dict[str, Any]]] = None) -> Dict[str, Any]:
    doc = public_user(user)
    block = (stats or {}).get(doc["id"], {})
    active = user.get("is_active") is not False
    doc.update({
        "status": "active" if active else "inactive",
        "is_active": active,
        "profile": user.get("profile") or {},
        "orders_count": block.get("orders_count", 0),
        "total_spent": block.get("total_spent", 0),
        "last_order_at": block.get("last_order_at"),
    })
    return doc


def _with_stats(user: Dict[str, Any]) -> Dict[str, Any]:
    return serialize_user(user, order_stats([user["_id"]]))


@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    role: Optional[str] = None,
    search: str = "",
    sort: str = "created_at",
    order: str = Query("desc", pattern="^(asc|desc)$"),
    admin=Depends(require_admin),
):
    filt: Dict[str, Any] = {}
    if status == "active":
        filt["is_active"] = {"$ne": False}
    elif status == "inactive":
        filt["is_active"] = False
    if role:
        filt["role"] = role
    if search.strip():
        needle = contains(search.strip())
        filt["$or"] = [{"name": needle}, {"email": needle}]

    sort_field = sort if sort in SORT_FIELDS else "created_at"
    direction = 1 if order == "asc" else -1

    total = db["user"].count_documents(filt)
    users = list(db["user"].find(filt).sort(sort_field, direction).skip((page - 1) * limit).limit(limit))
    stats = order_stats(u["_id"] for u in users)
    return ok({
        "users": [serialize_user(u, stats) for u in users],
        "pagination": pagination(page, limit, total, pages_key="total_pages"),
    })


@router.get("/{user_id}")
def get_user(user_id: str, admin=Depends(require_admin)):
    user = db["user"].find_one({"_id": oid(user_id)})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return ok({"user": _with_stats(user)})


@router.post("", status_code=201)
def create_user(payload: AdminUserCreate, admin=Depends(require_admin)):
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User with this email already exists")

    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        is_active=payload.status != "inactive",
        profile=sanitize_profile(payload.profile),
    )
    user_id = create_document("user", user)
    logger.info("user_created", user_id=user_id, role=payload.role, by=str(admin["_id"]))
    saved = db["user"].find_one({"_id": oid(user_id)})
    return ok({"user": serialize_user(saved)}, "User created successfully")


@router.put("/{user_id}")
def update_user(user_id: str, payload: AdminUserUpdate, admin=Depends(require_admin)):
    user = db["user"].find_one({"_id": oid(user_id)})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    updates: Dict[str, Any] = {}
    if payload.email and payload.email.lower() != user.get("email"):
        email = payload.email.lower()
        existing = db["user"].find_one({"email": email})
        if existing and existing["_id"] != user["_id"]:
            raise HTTPException(status_code=400, detail="Email is already in use")
        updates["email"] = email
    if payload.name:
        updates["name"] = payload.name.strip()
    if payload.role:
        updates["role"] = payload.role
    if payload.status:
        updates["is_active"] = payload.status == "active"
    if payload.profile is not None:
        updates["profile"] = {**(user.get("profile") or {}), **sanitize_profile(payload.profile)}
    if payload.password:
        updates["password_hash"] = hash_password(payload.password)

    if updates:
        db["user"].update_one({"_id": user["_id"]}, {"$set": touch(updates)})
    saved = db["user"].find_one({"_id": user["_id"]})
    return ok({"user": _with_stats(saved)}, "User updated successfully")


@router.delete("/{user_id}")
def delete_user(user_id: str, admin=Depends(require_admin)):
    if str(admin["_id"]) == user_id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    user = db["user"].find_one({"_id": oid(user_id)})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.get("role") == "super_admin":
        raise HTTPException(status_code=403, detail="Super admin accounts cannot be deleted")

    db["user"].delete_one({"_id": user["_id"]})
    logger.info("user_deleted", user_id=user_id, by=str(admin["_id"]))
    return ok(message="User deleted successfully")
