"""
Signature and integrity checks for provider callbacks.

Every comparison goes through hmac.compare_digest; a mismatch returns False
and the caller treats it as a failed payment.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from typing import Any, Dict, Iterable, Optional

ESEWA_REQUEST_FIELDS = ("total_amount", "transaction_uuid", "product_code")
ESEWA_CALLBACK_FIELDS = (
    "transaction_code",
    "status",
    "total_amount",
    "transaction_uuid",
    "product_code",
    "signed_field_names",
)


def hmac_sha256_hex(secret: str, message: str | bytes) -> str:
    if isinstance(message, str):
        message = message.encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def hmac_sha256_base64(secret: str, message: str | bytes) -> str:
    if isinstance(message, str):
        message = message.encode()
    digest = hmac.new(secret.encode(), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def signatures_match(expected: str, supplied: Optional[str]) -> bool:
    if not supplied:
        return False
    return hmac.compare_digest(expected.encode(), supplied.encode())


# ---------------------------------------------------------
# Razorpay
# ---------------------------------------------------------

def razorpay_payment_signature(key_secret: str, order_id: str, payment_id: str) -> str:
    """Signature the Razorpay checkout SDK returns for a completed payment."""
    return hmac_sha256_hex(key_secret, f"{order_id}|{payment_id}")


def verify_razorpay_payment(key_secret: str, order_id: str, payment_id: str, signature: Optional[str]) -> bool:
    return signatures_match(razorpay_payment_signature(key_secret, order_id, payment_id), signature)


def verify_razorpay_webhook(body: bytes, signature: Optional[str], webhook_secret: str) -> bool:
    return signatures_match(hmac_sha256_hex(webhook_secret, body), signature)


# ---------------------------------------------------------
# eSewa
# ---------------------------------------------------------

def esewa_signed_message(fields: Dict[str, Any], names: Iterable[str]) -> str:
    """Build eSewa's "name=value,name=value" message in the given field order."""
    return ",".join(f"{name}={fields.get(name, '')}" for name in names)


def esewa_signature(secret_key: str, fields: Dict[str, Any], names: Iterable[str] = ESEWA_REQUEST_FIELDS) -> str:
    return hmac_sha256_base64(secret_key, esewa_signed_message(fields, names))


def decode_esewa_callback(data: str) -> Dict[str, Any]:
    """
    Decode the base64 JSON eSewa appends to the success redirect.

    Raises:
        ValueError: If the payload is not base64 encoded JSON
    """
    try:
        decoded = json.loads(base64.b64decode(data, validate=True).decode())
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Invalid eSewa callback payload: {e}") from e
    if not isinstance(decoded, dict):
        raise ValueError("Invalid eSewa callback payload: not an object")
    return decoded


def verify_esewa_callback(secret_key: str, decoded: Dict[str, Any]) -> bool:
    """
    Recompute the callback signature over eSewa's fixed response fields.

    The callback must list exactly those fields. A request form signature
    covers only the amount, uuid and product code, so it cannot vouch for
    a status.
    """
    names = tuple(n.strip() for n in str(decoded.get("signed_field_names", "")).split(","))
    if names != ESEWA_CALLBACK_FIELDS:
        return False
    expected = esewa_signature(secret_key, decoded, ESEWA_CALLBACK_FIELDS)
    return signatures_match(expected, decoded.get("signature"))
