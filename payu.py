"""
PayU hosted-checkout hashing

Request hash:  sha512(key|txnid|amount|productinfo|firstname|email|||||||||||salt)
Response hash: sha512(salt|status|||||||||||email|firstname|productinfo|amount|txnid|key)
"""

import hashlib
import hmac
from typing import Dict, Optional

from fastapi import HTTPException

import config

PRODUCT_INFO = "Order Payment"


def is_configured() -> bool:
    return bool(config.PAYU_MERCHANT_KEY and config.PAYU_MERCHANT_SALT and config.PAYU_PAYMENT_URL)


def public_config() -> Dict[str, object]:
    return {
        "configured": is_configured(),
        "is_live": bool(config.PAYU_IS_LIVE),
        "payment_url": config.PAYU_PAYMENT_URL or None,
    }


def assert_configured():
    if not config.PAYU_MERCHANT_KEY or not config.PAYU_MERCHANT_SALT:
        raise HTTPException(
            status_code=500,
            detail="PayU is not configured. Set PAYU_MERCHANT_KEY and PAYU_MERCHANT_SALT (and optionally PAYU_ENV=live/test).",
        )
    if not config.PAYU_PAYMENT_URL:
        raise HTTPException(status_code=500, detail="PayU payment URL is missing. Set PAYU_PAYMENT_URL or PAYU_ENV.")


def _sha512(value: str) -> str:
    return hashlib.sha512(value.encode("utf-8")).hexdigest()


def request_hash(txnid: str, amount: str, productinfo: str, firstname: str, email: str) -> str:
    fields = [config.PAYU_MERCHANT_KEY, txnid, amount, productinfo, firstname, email]
    return _sha512("|".join(fields) + "|" * 11 + config.PAYU_MERCHANT_SALT)


def response_hash(status: str, txnid: str, amount: str, productinfo: str, firstname: str, email: str) -> str:
    head = f"{config.PAYU_MERCHANT_SALT}|{status}" + "|" * 11
    tail = "|".join([email, firstname, productinfo, amount, txnid, config.PAYU_MERCHANT_KEY])
    return _sha512(head + tail)


def verify_response(fields: Dict[str, Optional[str]]) -> bool:
    expected = response_hash(
        fields.get("status") or "",
        fields.get("txnid") or "",
        fields.get("amount") or "",
        fields.get("productinfo") or "",
        fields.get("firstname") or "",
        fields.get("email") or "",
    )
    return hmac.compare_digest(expected, fields.get("hash") or "")
