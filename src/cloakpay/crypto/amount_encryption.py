"""Confidential amount encryption.

Amounts are encoded as unsigned 64-bit little-endian integers of micro-units
(``round(amount * 1_000_000)``) and sealed with ChaCha20-Poly1305 under a key
derived per payer identity via HKDF-SHA256 from a single master key.

Ciphertext layout (base64 on the wire)::

    nonce (12 bytes) || encrypted amount (8 bytes) || tag (16 bytes)

The commitment is ``SHA256(amount_bytes || nonce)`` in hex; it lets a holder of
the plaintext prove the amount without the key.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..domain.errors import ConfigurationError, DecryptionError
from .signatures import json_to_bytes

MICRO_UNITS = 1_000_000
MAX_MICRO_UNITS = 2**64 - 1
NONCE_SIZE = 12
AMOUNT_SIZE = 8
TAG_SIZE = 16
CIPHERTEXT_SIZE = NONCE_SIZE + AMOUNT_SIZE + TAG_SIZE

KEY_DERIVATION_SALT = hashlib.sha256(b"cloakpay-v2").digest()

AmountLike = Union[Decimal, int, float, str]


@dataclass(frozen=True)
class EncryptedAmount:
    ciphertext: str  # base64
    commitment: str  # hex
    nonce: str  # hex


def to_micro_units(amount: AmountLike) -> int:
    """Convert a decimal amount to integer micro-units (round half up)."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    if value < 0:
        raise ValueError("Amount must not be negative")
    micro = int((value * MICRO_UNITS).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if micro > MAX_MICRO_UNITS:
        raise ValueError("Amount exceeds the maximum representable value")
    return micro


def from_micro_units(micro: int) -> Decimal:
    return Decimal(micro) / MICRO_UNITS


def encode_amount(amount: AmountLike) -> bytes:
    return to_micro_units(amount).to_bytes(AMOUNT_SIZE, "little")


class AmountEncryptionEngine:
    """Encrypts, decrypts and commits to payment amounts."""

    def __init__(self, master_key_hex: str):
        if not master_key_hex or len(master_key_hex) != 64:
            raise ConfigurationError(
                "ENCRYPTION_MASTER_KEY must be 64 hex characters (32 bytes)"
            )
        try:
            self._master_key = bytes.fromhex(master_key_hex)
        except ValueError as exc:
            raise ConfigurationError(
                "ENCRYPTION_MASTER_KEY must be 64 hex characters (32 bytes)"
            ) from exc

    def derive_key(self, payer_identity: str) -> bytes:
        """Derive the 32-byte key for ``payer_identity`` (deterministic)."""
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=KEY_DERIVATION_SALT,
            info=b"user:" + payer_identity.encode("utf-8"),
        )
        return hkdf.derive(self._master_key)

    def encrypt_amount(
        self,
        amount: AmountLike,
        payer_identity: str,
        associated_data: Optional[Mapping[str, Any]] = None,
    ) -> EncryptedAmount:
        amount_bytes = encode_amount(amount)
        nonce = os.urandom(NONCE_SIZE)
        cipher = ChaCha20Poly1305(self.derive_key(payer_identity))
        sealed = cipher.encrypt(nonce, amount_bytes, _aad(associated_data))
        return EncryptedAmount(
            ciphertext=base64.b64encode(nonce + sealed).decode("ascii"),
            commitment=hashlib.sha256(amount_bytes + nonce).hexdigest(),
            nonce=nonce.hex(),
        )

    def decrypt_amount(
        self,
        ciphertext: str,
        payer_identity: str,
        associated_data: Optional[Mapping[str, Any]] = None,
    ) -> Decimal:
        """Recover the amount; any tampering or mismatch raises DecryptionError."""
        try:
            raw = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecryptionError("Ciphertext is not valid base64") from exc
        if len(raw) != CIPHERTEXT_SIZE:
            raise DecryptionError(
                f"Ciphertext must be {CIPHERTEXT_SIZE} bytes, got {len(raw)}"
            )
        nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        cipher = ChaCha20Poly1305(self.derive_key(payer_identity))
        try:
            amount_bytes = cipher.decrypt(nonce, sealed, _aad(associated_data))
        except InvalidTag as exc:
            raise DecryptionError("Ciphertext failed authentication") from exc
        return from_micro_units(int.from_bytes(amount_bytes, "little"))

    @staticmethod
    def create_commitment(amount: AmountLike, nonce_hex: str) -> str:
        return hashlib.sha256(encode_amount(amount) + bytes.fromhex(nonce_hex)).hexdigest()

    @classmethod
    def verify_commitment(cls, amount: AmountLike, nonce_hex: str, commitment: str) -> bool:
        try:
            expected = cls.create_commitment(amount, nonce_hex)
        except ValueError:
            return False
        return hmac.compare_digest(
            expected.encode("ascii"), commitment.lower().encode("utf-8")
        )


def _aad(associated_data: Optional[Mapping[str, Any]]) -> Optional[bytes]:
    if not associated_data:
        return None
    return json_to_bytes(dict(associated_data))
