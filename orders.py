import random
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Form, HTTPException, Query
from fastapi.responses import RedirectResponse

import config
import payu
from auth import get_current_user, is_admin, require_admin
from database import create_document, db, touch, utcnow
from helpers import contains, is_object_id, oid, ok, pagination, parse_day, serialize_doc
from mailer import get_defaults, send_many
from schemas import (
    CartLine,
    Order,
    OrderCreate,
    OrderItem,
    Payupaymentattempt,
    PayUHashRequest,
    PayUInitiate,
    StatusUpdate,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

# prices are VAT-inclusive at 5%
VAT_FRACTION = 5 / 105

SORTS = {
    "newest": [("created_at", -1)],
    "oldest": [("created_at", 1)],
    "total_asc": [("total", 1)],
    "total_desc": [("total", -1)],
}


# ---------------- Snapshots & totals ----------------

def _first_image(media: Any) -> str:
    for m in media or []:
        if isinstance(m, dict) and m.get("url") and m.get("type", "image") in (None, "image"):
            return m["url"]
    return ""


def snapshot_image(product: Dict[str, Any], color: str) -> str:
    """Selected color's first image, else any color's, else the product's first image."""
    color_images = product.get("color_images") or {}
    image = _first_image(color_images.get(color)) if color else ""
    if not image:
        for media in color_images.values():
            image = _first_image(media)
            if image:
                break
    if not image:
        images = product.get("images") or []
        if images and isinstance(images[0], dict):
            image = images[0].get("url") or ""
        elif images and isinstance(images[0], str):
            image = images[0]
    return image or product.get("image") or ""


def snapshot_line(product: Dict[str, Any], line: CartLine) -> OrderItem:
    price = float(product.get("price") or 0)
    color = line.color or line.variant_label or ""
    return OrderItem(
        product_id=str(product["_id"]),
        name=product.get("name", ""),
        sku=product.get("sku") or "",
        image=snapshot_image(product, color),
        price=price,
        quantity=line.quantity,
        size=line.size or "",
        color=color,
        subtotal=round(price * line.quantity, 2),
    )


def build_snapshots(lines: List[CartLine]) -> Dict[str, Any]:
    items = []
    subtotal = 0.0
    for line in lines:
        product = db["product"].find_one({"_id": oid(line.product)}) if is_object_id(line.product) else None
        if not product:
            raise HTTPException(status_code=400, detail=f"Product not found: {line.product}")
        if product.get("is_active") is False:
            raise HTTPException(status_code=400, detail=f"Product is inactive: {product.get('name')}")
        item = snapshot_line(product, line)
        subtotal += item.subtotal
        items.append(item)

    return {
        "items": items,
        "subtotal": round(subtotal, 2),
        "tax": round(subtotal * VAT_FRACTION, 2),
        "shipping": 0.0,
        "total": round(subtotal, 2),
    }


def _candidate_number() -> str:
    clock = str(int(time.time() * 1000))[-6:]
    return f"ORD{clock}{random.randint(0, 999):03d}"


def generate_order_number() -> str:
    """An order number no order or pending PayU attempt uses yet."""
    for _ in range(5):
        candidate = _candidate_number()
        taken = db["order"].find_one({"order_number": candidate}, {"_id": 1}) or \
            db["payupaymentattempt"].find_one({"txnid": candidate}, {"_id": 1})
        if not taken:
            return candidate
    return f"ORD{int(time.time() * 1000)}{random.randint(0, 99999)}"


def history_entry(status: str, note: str = "", updated_by: Optional[str] = None) -> Dict[str, Any]:
    return {"status": status, "timestamp": utcnow(), "note": note, "updated_by": updated_by}


# ---------------- Emails ----------------

def _items_text(order: Dict[str, Any]) -> str:
    return "\n".join(f"- {i['name']} x{i['quantity']} ({i['price']})" for i in order.get("items", []))


def _customer_name(order: Dict[str, Any]) -> str:
    address = order.get("shipping_address") or {}
    return f"{address.get('first_name', '')} {address.get('last_name', '')}".strip()


def order_emails(order: Dict[str, Any], customer_subject: str, customer_intro: str,
                 owner_subject: str, owner_intro: str) -> List[Dict[str, str]]:
    defaults = get_defaults()
    number = order.get("order_number")
    customer_email = (order.get("shipping_address") or {}).get("email")
    items = _items_text(order)
    messages = []
    if customer_email:
        messages.append({
            "to": customer_email,
            "subject": f"{customer_subject}: {number}",
            "text": f"{customer_intro}\n\nOrder: {number}\nTotal: {order['total']}\n\nItems:\n{items}\n\n"
                    f"Track your order: {defaults['frontend_url']}/orders\n\n{defaults['store_name']}",
        })
    if defaults["owner_email"]:
        messages.append({
            "to": defaults["owner_email"],
            "subject": f"{owner_subject}: {number}",
            "text": f"{owner_intro}\n\nOrder: {number}\nCustomer: {_customer_name(order)}\n"
                    f"Email: {customer_email or '(missing)'}\nTotal: {order['total']}\n\nItems:\n{items}",
        })
    return messages


# ---------------- Customer endpoints ----------------

@router.post("", status_code=201)
def create_order(payload: OrderCreate, background: BackgroundTasks, user=Depends(get_current_user)):
    if payload.payment.method == "payu":
        raise HTTPException(
            status_code=400,
            detail="PayU orders are created only after successful payment. Use /api/orders/payu/initiate.",
        )

    totals = build_snapshots(payload.items)
    user_id = str(user["_id"])
    order = Order(
        order_number=generate_order_number(),
        user_id=user_id,
        payment={"method": payload.payment.method, "status": "pending"},
        shipping_address=payload.shipping_address,
        billing_address=payload.billing_address or payload.shipping_address,
        notes=payload.notes,
        status="pending",
        status_history=[history_entry("pending", "Order created", user_id)],
        **totals,
    )
    order_id = create_document("order", order)
    saved = db["order"].find_one({"_id": oid(order_id)})
    logger.info("order_created", order_id=order_id, order_number=saved["order_number"], total=saved["total"])

    background.add_task(send_many, order_emails(
        saved,
        "Order received", "Thanks for your order!",
        "New order", "A new order was placed.",
    ))
    return ok({"order": serialize_doc(saved)}, "Order created")


@router.get("/my")
def my_orders(user=Depends(get_current_user)):
    cursor = db["order"].find({"user_id": str(user["_id"])}).sort("created_at", -1).limit(20)
    return ok({"orders": [serialize_doc(o) for o in cursor]})


@router.get("/number/{order_number}")
def order_by_number(order_number: str):
    order = db["order"].find_one({"order_number": order_number})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return ok({"order": serialize_doc(order)})


# ---------------- PayU ----------------

@router.get("/payu/config")
def payu_config():
    return ok(payu.public_config())


@router.post("/payu/initiate")
def payu_initiate(payload: PayUInitiate, user=Depends(get_current_user)):
    payu.assert_configured()
    totals = build_snapshots(payload.items)

    txnid = generate_order_number()
    amount = f"{totals['total']:.2f}"
    firstname = payload.shipping_address.first_name
    email = payload.shipping_address.email

    attempt = Payupaymentattempt(
        txnid=txnid,
        user_id=str(user["_id"]),
        shipping_address=payload.shipping_address,
        billing_address=payload.billing_address or payload.shipping_address,
        expires_at=utcnow() + timedelta(hours=config.PAYU_ATTEMPT_TTL_HOURS),
        **totals,
    )
    create_document("payupaymentattempt", attempt)
    logger.info("payu_attempt_staged", txnid=txnid, amount=amount)

    return ok({
        "txnid": txnid,
        "amount": amount,
        "productinfo": payu.PRODUCT_INFO,
        "firstname": firstname,
        "email": email,
        "key": config.PAYU_MERCHANT_KEY,
        "hash": payu.request_hash(txnid, amount, payu.PRODUCT_INFO, firstname, email),
        "payment_url": config.PAYU_PAYMENT_URL,
    })


@router.post("/payment/hash")
def payment_hash(payload: PayUHashRequest, user=Depends(get_current_user)):
    payu.assert_configured()
    fields = payload.model_dump()
    if not all(fields.values()):
        raise HTTPException(status_code=400, detail="Missing required parameters")
    return ok({
        "hash": payu.request_hash(**fields),
        "key": config.PAYU_MERCHANT_KEY,
        "payment_url": config.PAYU_PAYMENT_URL,
    })


def _failed_redirect(txnid: Optional[str] = None) -> RedirectResponse:
    suffix = f"?txnid={txnid}" if txnid is not None else ""
    return RedirectResponse(f"{config.FRONTEND_URL}/payment-failed{suffix}", status_code=303)


def _confirmed_redirect(txnid: str) -> RedirectResponse:
    return RedirectResponse(f"{config.FRONTEND_URL}/order-confirmation/{txnid}?success=true", status_code=303)


def _mark_paid(order: Dict[str, Any], transaction_id: Optional[str]) -> Dict[str, Any]:
    payment = {**(order.get("payment") or {}), "method": "payu", "status": "paid",
               "transaction_id": transaction_id, "paid_at": utcnow()}
    db["order"].update_one({"_id": order["_id"]}, {"$set": touch({"payment": payment})})
    return db["order"].find_one({"_id": order["_id"]})


@router.post("/payment/success")
def payment_success(
    background: BackgroundTasks,
    txnid: str = Form(""),
    status: str = Form(""),
    amount: str = Form(""),
    productinfo: str = Form(""),
    firstname: str = Form(""),
    email: str = Form(""),
    mihpayid: Optional[str] = Form(None),
    hash: str = Form(""),
):
    if not config.PAYU_MERCHANT_KEY or not config.PAYU_MERCHANT_SALT:
        logger.error("payu_callback_unconfigured", txnid=txnid)
        return _failed_redirect(txnid)

    fields = {"txnid": txnid, "status": status, "amount": amount, "productinfo": productinfo,
              "firstname": firstname, "email": email, "hash": hash}
    if not payu.verify_response(fields) or status != "success":
        logger.warning("payu_callback_rejected", txnid=txnid, status=status)
        db["payupaymentattempt"].delete_one({"txnid": txnid})
        return _failed_redirect(txnid)

    # a repeated callback only re-marks the existing order as paid
    existing = db["order"].find_one({"order_number": txnid})
    if existing:
        order = _mark_paid(existing, mihpayid)
        background.add_task(send_many, order_emails(
            order,
            "Payment received", "Your payment was successful.",
            "PayU payment received", "Payment received for this order.",
        ))
        return _confirmed_redirect(txnid)

    attempt = db["payupaymentattempt"].find_one({"txnid": txnid})
    if not attempt:
        logger.warning("payu_attempt_missing", txnid=txnid)
        return _failed_redirect(txnid)

    order = Order(
        order_number=txnid,
        user_id=attempt["user_id"],
        items=attempt["items"],
        subtotal=attempt["subtotal"],
        tax=attempt["tax"],
        shipping=attempt["shipping"],
        total=attempt["total"],
        payment={"method": "payu", "status": "paid", "transaction_id": mihpayid, "paid_at": utcnow()},
        shipping_address=attempt["shipping_address"],
        billing_address=attempt["billing_address"],
        status="pending",
        status_history=[history_entry("pending", "Payment successful (PayU)")],
    )
    order_id = create_document("order", order)
    db["payupaymentattempt"].delete_one({"_id": attempt["_id"]})
    saved = db["order"].find_one({"_id": oid(order_id)})
    logger.info("payu_order_created", order_id=order_id, txnid=txnid, mihpayid=mihpayid)

    background.add_task(send_many, order_emails(
        saved,
        "Order confirmed", "Thanks for your order! Payment was successful.",
        "New paid order (PayU)", "A PayU order was paid.",
    ))
    return _confirmed_redirect(txnid)


@router.post("/payment/failure")
def payment_failure(txnid: str = Form("")):
    order = db["order"].find_one({"order_number": txnid}) if txnid else None
    if order:
        payment = {**(order.get("payment") or {}), "method": "payu", "status": "failed"}
        db["order"].update_one(
            {"_id": order["_id"]},
            {
                "$set": touch({"payment": payment, "status": "cancelled"}),
                "$push": {"status_history": history_entry("cancelled", "Payment failed/cancelled (PayU)")},
            },
        )
    # no ghost pending attempts
    db["payupaymentattempt"].delete_one({"txnid": txnid})
    logger.info("payu_payment_failed", txnid=txnid, had_order=bool(order))
    return _failed_redirect(txnid)


# ---------------- Order lookup & admin ----------------

@router.get("/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user)):
    order = db["order"].find_one({"_id": oid(order_id)})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.get("user_id") != str(user["_id"]) and not is_admin(user):
        raise HTTPException(status_code=403, detail="Forbidden")
    return ok({"order": serialize_doc(order)})


@router.get("")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(200, ge=1, le=500),
    status: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    min_total: Optional[float] = Query(None, ge=0),
    max_total: Optional[float] = Query(None, ge=0),
    sort: str = Query("newest", pattern="^(newest|oldest|total_asc|total_desc)$"),
    user=Depends(require_admin),
):
    filt: Dict[str, Any] = {}
    if status and status != "all":
        filt["status"] = status

    total_range = {}
    if min_total is not None:
        total_range["$gte"] = min_total
    if max_total is not None:
        total_range["$lte"] = max_total
    if total_range:
        filt["total"] = total_range

    created = {}
    start = parse_day(date_from)
    end = parse_day(date_to, end_of_day=True)
    if start:
        created["$gte"] = start
    if end:
        created["$lte"] = end
    if created:
        filt["created_at"] = created

    needle = (search or "").strip()
    if needle:
        rx = contains(needle)
        either: List[Dict[str, Any]] = [
            {"order_number": rx},
            {"shipping_address.first_name": rx},
            {"shipping_address.last_name": rx},
            {"shipping_address.email": rx},
            {"shipping_address.phone": rx},
            {"items.name": rx},
        ]
        if is_object_id(needle):
            either.append({"_id": oid(needle)})
        filt["$or"] = either

    total = db["order"].count_documents(filt)
    cursor = db["order"].find(filt).sort(SORTS[sort]).skip((page - 1) * limit).limit(limit)
    return ok({"orders": [serialize_doc(o) for o in cursor], "pagination": pagination(page, limit, total)})


@router.put("/{order_id}/status")
def update_status(order_id: str, payload: StatusUpdate, user=Depends(require_admin)):
    order = db["order"].find_one({"_id": oid(order_id)})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    now = utcnow()
    status = payload.status
    payment = dict(order.get("payment") or {"method": "cod", "status": "pending"})
    if status == "delivered":
        payment["status"] = "paid"
        payment["paid_at"] = payment.get("paid_at") or now
    elif status == "refunded":
        payment["status"] = "refunded"

    tracking = dict(order.get("tracking") or {})
    for key in ("carrier", "tracking_number", "tracking_url"):
        value = getattr(payload, key)
        if value is not None:
            tracking[key] = value
    if status == "shipped" and not tracking.get("shipped_at"):
        tracking["shipped_at"] = now
    elif status == "delivered" and not tracking.get("delivered_at"):
        tracking["delivered_at"] = now

    updates = {"status": status, "payment": payment, "tracking": tracking}
    if payload.admin_notes is not None:
        updates["admin_notes"] = payload.admin_notes
    entry = history_entry(status, payload.note or f"Status changed to {status}", str(user["_id"]))
    db["order"].update_one({"_id": order["_id"]}, {"$set": touch(updates), "$push": {"status_history": entry}})
    logger.info("order_status_updated", order_id=order_id, status=status, by=str(user["_id"]))

    saved = db["order"].find_one({"_id": order["_id"]})
    return ok({"order": serialize_doc(saved)}, "Order status updated")
