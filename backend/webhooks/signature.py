# webhooks/signature.py
# ============================================================================
# CASHFREE WEBHOOK SIGNATURE
# ============================================================================
# signature = base64(HMAC-SHA256(secret, timestamp + raw_body))
# ============================================================================

import base64
import hashlib
import hmac
from typing import Union

Body = Union[str, bytes]


def _as_bytes(value: Body) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sign(secret: bytes, timestamp: str, raw_body: Body) -> str:
    """Compute the signature Cashfree sends in x-webhook-signature."""
    message = _as_bytes(timestamp) + _as_bytes(raw_body)
    digest = hmac.new(secret, message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify(signature: str, timestamp: str, raw_body: Body, secret: bytes) -> bool:
    """
    Check a webhook signature in constant time.

    Never raises; any mismatch, or an empty secret, returns False.
    """
    if not secret or not signature or not timestamp:
        return False
    try:
        expected = sign(secret, timestamp, raw_body).encode("ascii")
        provided = signature.encode("ascii")
    except (UnicodeEncodeError, TypeError):
        return False
    return hmac.compare_digest(expected, provided)
