from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Optional

SIGNATURE_PREFIX = "sha256="


def json_to_bytes(data: Any) -> bytes:
    """Serialize to canonical JSON bytes for signing/verification."""
    return json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_hmac_sha256(secret: str, message: bytes, signature: Optional[str]) -> bool:
    """Constant-time check of a hex HMAC-SHA256, with or without ``sha256=``."""
    if not signature:
        return False
    if signature.startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX) :]
    expected = hmac_sha256_hex(secret, message)
    return hmac.compare_digest(
        expected.encode("ascii"), signature.strip().lower().encode("utf-8")
    )


def sign_webhook_payload(secret: str, timestamp: str, body: bytes) -> str:
    """Signature header value for an outbound webhook: ``sha256=<hex>``."""
    signed = timestamp.encode("utf-8") + b"." + body
    return SIGNATURE_PREFIX + hmac_sha256_hex(secret, signed)


def verify_webhook_signature(
    secret: str, timestamp: str, body: bytes, signature: Optional[str]
) -> bool:
    """Subscriber-side check of an ``X-Webhook-Signature`` header.

    Args:
        secret: The webhook's shared secret
        timestamp: Value of the ``X-Webhook-Timestamp`` header
        body: Raw request body exactly as received
        signature: Value of the ``X-Webhook-Signature`` header
    """
    signed = timestamp.encode("utf-8") + b"." + body
    return verify_hmac_sha256(secret, signed, signature)
