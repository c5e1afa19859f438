"""Tests for confidential amount encryption and commitments."""

from __future__ import annotations

import base64
import hashlib
from decimal import Decimal

import pytest

from cloakpay.crypto.amount_encryption import (
    CIPHERTEXT_SIZE,
    AmountEncryptionEngine,
    to_micro_units,
)
from cloakpay.domain.errors import ConfigurationError, DecryptionError
from tests.fixtures import MASTER_KEY

AAD = {"kind": "payment_intent", "id": "abc", "merchant_id": "m1"}


class TestMicroUnits:
    def test_rounds_half_up(self) -> None:
        assert to_micro_units("1.0000005") == 1_000_001
        assert to_micro_units(Decimal("125.50")) == 125_500_000

    def test_zero_is_allowed(self) -> None:
        assert to_micro_units(0) == 0

    @pytest.mark.parametrize("amount", ["-1", "NaN", "Infinity", "abc"])
    def test_rejects_invalid_amounts(self, amount: str) -> None:
        with pytest.raises(ValueError):
            to_micro_units(amount)

    def test_rejects_overflow(self) -> None:
        with pytest.raises(ValueError):
            to_micro_units(Decimal(2**64))


class TestAmountEncryptionEngine:
    def test_round_trip(self, engine: AmountEncryptionEngine) -> None:
        encrypted = engine.encrypt_amount(Decimal("125.50"), "wallet-a", AAD)

        amount = engine.decrypt_amount(encrypted.ciphertext, "wallet-a", AAD)

        assert amount == Decimal("125.5")

    def test_ciphertext_layout(self, engine: AmountEncryptionEngine) -> None:
        encrypted = engine.encrypt_amount("10", "wallet-a")

        raw = base64.b64decode(encrypted.ciphertext)
        assert len(raw) == CIPHERTEXT_SIZE == 36
        assert raw[:12].hex() == encrypted.nonce

    def test_commitment_matches_amount_and_nonce(
        self, engine: AmountEncryptionEngine
    ) -> None:
        encrypted = engine.encrypt_amount("2.5", "wallet-a")

        amount_bytes = (2_500_000).to_bytes(8, "little")
        expected = hashlib.sha256(amount_bytes + bytes.fromhex(encrypted.nonce))
        assert encrypted.commitment == expected.hexdigest()
        assert AmountEncryptionEngine.verify_commitment(
            "2.5", encrypted.nonce, encrypted.commitment
        )
        assert not AmountEncryptionEngine.verify_commitment(
            "2.6", encrypted.nonce, encrypted.commitment
        )

    def test_fresh_nonce_per_encryption(self, engine: AmountEncryptionEngine) -> None:
        first = engine.encrypt_amount("1", "wallet-a")
        second = engine.encrypt_amount("1", "wallet-a")

        assert first.nonce != second.nonce
        assert first.ciphertext != second.ciphertext

    def test_nonces_do_not_repeat(self, engine: AmountEncryptionEngine) -> None:
        nonces = {engine.encrypt_amount("1", "wallet-a").nonce for _ in range(10_000)}

        assert len(nonces) == 10_000

    @pytest.mark.parametrize(
        "amount", ["0", "0.01", "1000000.99", "18446744073709.551615"]
    )
    def test_ciphertext_length_does_not_depend_on_amount(
        self, engine: AmountEncryptionEngine, amount: str
    ) -> None:
        small = engine.encrypt_amount("0.01", "wallet-a", AAD)
        other = engine.encrypt_amount(amount, "wallet-a", AAD)

        assert len(other.ciphertext) == len(small.ciphertext)
        assert len(base64.b64decode(other.ciphertext)) == CIPHERTEXT_SIZE

    def test_key_derivation_is_deterministic_per_identity(
        self, engine: AmountEncryptionEngine
    ) -> None:
        other = AmountEncryptionEngine(MASTER_KEY)

        assert engine.derive_key("wallet-a") == other.derive_key("wallet-a")
        assert engine.derive_key("wallet-a") != engine.derive_key("wallet-b")

    def test_wrong_identity_fails(self, engine: AmountEncryptionEngine) -> None:
        encrypted = engine.encrypt_amount("1", "wallet-a", AAD)

        with pytest.raises(DecryptionError):
            engine.decrypt_amount(encrypted.ciphertext, "wallet-b", AAD)

    def test_wrong_associated_data_fails(self, engine: AmountEncryptionEngine) -> None:
        encrypted = engine.encrypt_amount("1", "wallet-a", AAD)

        with pytest.raises(DecryptionError):
            engine.decrypt_amount(
                encrypted.ciphertext, "wallet-a", {**AAD, "merchant_id": "m2"}
            )

    def test_tampered_ciphertext_fails(self, engine: AmountEncryptionEngine) -> None:
        encrypted = engine.encrypt_amount("1", "wallet-a")
        raw = bytearray(base64.b64decode(encrypted.ciphertext))
        raw[15] ^= 0x01

        with pytest.raises(DecryptionError):
            engine.decrypt_amount(base64.b64encode(bytes(raw)).decode(), "wallet-a")

    @pytest.mark.parametrize("ciphertext", ["not base64!", base64.b64encode(b"x" * 20).decode()])
    def test_malformed_ciphertext_fails(
        self, engine: AmountEncryptionEngine, ciphertext: str
    ) -> None:
        with pytest.raises(DecryptionError):
            engine.decrypt_amount(ciphertext, "wallet-a")

    @pytest.mark.parametrize("key", ["", "ab" * 16, "zz" * 32])
    def test_bad_master_key_is_a_configuration_error(self, key: str) -> None:
        with pytest.raises(ConfigurationError):
            AmountEncryptionEngine(key)

    def test_negative_amount_is_rejected(self, engine: AmountEncryptionEngine) -> None:
        with pytest.raises(ValueError):
            engine.encrypt_amount("-5", "wallet-a")
