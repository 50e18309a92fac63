from datetime import timedelta
from typing import Any, Dict

from fastapi import APIRouter, Depends

from auth import require_admin
from database import db, utcnow
from helpers import ok

router = APIRouter(prefix="/api/admin", tags=["admin"])

RECENT_ORDERS = 8


def paid_revenue(since=None) -> float:
    match: Dict[str, Any] = {"payment.status": "paid"}
    if since is not None:
        match["created_at"] = {"$gte": since}
    rows = list(db["order"].aggregate([
        {"$match": match},
        {"$group": {"_id": None, "total": {"$sum": "$total"}}},
    ]))
    return round(rows[0]["total"], 2) if rows else 0


def orders_by_status() -> Dict[str, int]:
    rows = db["order"].aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}])
    return {str(row["_id"]): row["count"] for row in rows}


def recent_order(order: Dict[str, Any]) -> Dict[str, Any]:
    address = order.get("shipping_address") or {}
    return {
        "id": str(order["_id"]),
        "order_number": order.get("order_number"),
        "total": order.get("total"),
        "status": order.get("status"),
        "payment_status": (order.get("payment") or {}).get("status"),
        "created_at": order.get("created_at"),
        "customer": {
            "name": f"{address.get('first_name', '')} {address.get('last_name', '')}".strip(),
            "email": address.get("email", ""),
        },
    }


@router.get("/stats")
def stats(user=Depends(require_admin)):
    products_total = db["product"].count_documents({})
    products_active = db["product"].count_documents({"is_active": {"$ne": False}})
    recent = db["order"].find({}).sort("created_at", -1).limit(RECENT_ORDERS)

    return ok({
        "products": {
            "total": products_total,
            "active": products_active,
            "inactive": max(0, products_total - products_active),
        },
        "users": {"total": db["user"].count_documents({"is_active": {"$ne": False}})},
        "orders": {"total": db["order"].count_documents({}), "by_status": orders_by_status()},
        "revenue": {
            "paid_all_time": paid_revenue(),
            "paid_last_30_days": paid_revenue(utcnow() - timedelta(days=30)),
        },
        "recent_orders": [recent_order(o) for o in recent],
    })
