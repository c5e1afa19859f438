"""Tests for HMAC helpers used by callbacks and webhooks."""

from __future__ import annotations

from cloakpay.crypto.signatures import (
    hmac_sha256_hex,
    json_to_bytes,
    sign_webhook_payload,
    verify_hmac_sha256,
    verify_webhook_signature,
)


def test_canonical_json_is_key_sorted_and_compact() -> None:
    assert json_to_bytes({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'


def test_verify_accepts_plain_and_prefixed_hex() -> None:
    digest = hmac_sha256_hex("secret", b"body")

    assert verify_hmac_sha256("secret", b"body", digest)
    assert verify_hmac_sha256("secret", b"body", "sha256=" + digest)
    assert verify_hmac_sha256("secret", b"body", digest.upper())


def test_verify_rejects_wrong_or_missing_signatures() -> None:
    digest = hmac_sha256_hex("secret", b"body")

    assert not verify_hmac_sha256("other", b"body", digest)
    assert not verify_hmac_sha256("secret", b"body!", digest)
    assert not verify_hmac_sha256("secret", b"body", None)
    assert not verify_hmac_sha256("secret", b"body", "")
    assert not verify_hmac_sha256("secret", b"body", "sha256=café")


def test_webhook_signature_covers_timestamp_and_body() -> None:
    signature = sign_webhook_payload("whsec_test", "1700000000000", b'{"a":1}')

    assert signature.startswith("sha256=")
    assert verify_webhook_signature("whsec_test", "1700000000000", b'{"a":1}', signature)
    assert not verify_webhook_signature(
        "whsec_test", "1700000000001", b'{"a":1}', signature
    )
