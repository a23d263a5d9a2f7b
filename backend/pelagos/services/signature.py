"""
Gateway signature verification.

Both entry points authenticate the gateway with HMAC-SHA256 and a shared
secret, differing only in the signed message:

- webhook: the exact raw request body, signature in `x-razorpay-signature`
- client checkout: "<order_id>|<payment_id>", signature in the request body

The check runs before any database access. Comparison is constant-time.
"""

import hashlib
import hmac
from typing import Optional, Union

CHECKOUT_DELIMITER = "|"


def compute_signature(message: Union[bytes, str], secret: str) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(message: Union[bytes, str], signature: Optional[str], secret: Optional[str]) -> bool:
    if not secret or not signature:
        return False
    expected = compute_signature(message, secret)
    provided = signature.strip().lower().encode("utf-8")
    return hmac.compare_digest(expected.encode("ascii"), provided)


def checkout_message(order_id: str, payment_id: str) -> str:
    return f"{order_id}{CHECKOUT_DELIMITER}{payment_id}"


def verify_webhook_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    return verify_signature(raw_body, signature, secret)


def verify_checkout_signature(
    order_id: str,
    payment_id: str,
    signature: Optional[str],
    secret: Optional[str],
) -> bool:
    return verify_signature(checkout_message(order_id, payment_id), signature, secret)
