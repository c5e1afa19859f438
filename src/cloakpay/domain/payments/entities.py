"""Payment domain entities: PaymentIntent, PayrollBatch and PayrollPayment."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_serializer

from ..errors import InvalidStateError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _epoch_ms() -> int:
    return int(_utcnow().timestamp() * 1000)


class Currency(str, Enum):
    SOL = "SOL"
    USDC = "USDC"


class PaymentIntentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    CONFIRMED = "CONFIRMED"
    FINALIZED = "FINALIZED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PayrollStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_INTENT_STATUSES = frozenset(
    {
        PaymentIntentStatus.FINALIZED,
        PaymentIntentStatus.FAILED,
        PaymentIntentStatus.CANCELLED,
    }
)
TERMINAL_PAYROLL_STATUSES = frozenset(
    {PayrollStatus.COMPLETED, PayrollStatus.FAILED, PayrollStatus.CANCELLED}
)


def intent_associated_data(
    intent_id: UUID, merchant_id: str, recipient: str, currency: Currency
) -> dict[str, str]:
    return {
        "kind": "payment_intent",
        "id": str(intent_id),
        "merchant_id": merchant_id,
        "recipient": recipient,
        "currency": Currency(currency).value,
    }


def payroll_payment_associated_data(
    payment_id: UUID, batch_id: UUID, employee_id: str, employee_wallet: str
) -> dict[str, str]:
    return {
        "kind": "payroll_payment",
        "id": str(payment_id),
        "batch_id": str(batch_id),
        "employee_id": employee_id,
        "employee_wallet": employee_wallet,
    }


class PaymentIntent(BaseModel):
    """A single confidential payment from a merchant to a recipient.

    The ciphertext, commitment and nonce are bound at creation and can never be
    reassigned. The plaintext amount is kept in ``metadata["amount"]`` for the
    MPC job parameters; settlement always re-derives it from the ciphertext.
    """

    id: UUID = Field(default_factory=uuid4)
    merchant_id: str = Field(..., min_length=1, max_length=128)
    recipient: str = Field(..., min_length=32, max_length=64)
    currency: Currency = Currency.USDC
    payer_identity: str = Field(..., min_length=1, max_length=128)
    ciphertext: str = Field(..., frozen=True)
    commitment: str = Field(..., frozen=True)
    nonce: str = Field(..., frozen=True)
    status: PaymentIntentStatus = PaymentIntentStatus.PENDING
    computation_id: Optional[str] = None
    tx_signature: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return value.isoformat()

    @field_serializer("updated_at")
    def serialize_updated_at(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_INTENT_STATUSES

    def associated_data(self) -> dict[str, str]:
        """Context bound into the amount ciphertext."""
        return intent_associated_data(
            self.id, self.merchant_id, self.recipient, self.currency
        )

    def mark_processing(self, computation_id: Optional[str] = None) -> None:
        if self.status != PaymentIntentStatus.PENDING:
            raise InvalidStateError(
                f"Payment intent {self.id} is {self.status.value}, expected PENDING"
            )
        if computation_id is not None:
            if self.computation_id is not None:
                raise InvalidStateError(
                    f"Payment intent {self.id} already bound to a computation"
                )
            self.computation_id = computation_id
        self.status = PaymentIntentStatus.PROCESSING
        self.updated_at = _utcnow()

    def finalize(
        self, tx_signature: Optional[str], settled_at_ms: Optional[int] = None
    ) -> None:
        """Mark settled; ``settled_at_ms`` is the reporter's epoch-ms timestamp."""
        self._require_processing()
        self.status = PaymentIntentStatus.FINALIZED
        self.tx_signature = tx_signature
        self.metadata["settlement_timestamp"] = (
            settled_at_ms if settled_at_ms is not None else _epoch_ms()
        )
        self.updated_at = _utcnow()

    def fail(self, error_message: str, settled_at_ms: Optional[int] = None) -> None:
        self._require_processing()
        self.status = PaymentIntentStatus.FAILED
        self.metadata["error_message"] = error_message
        self.metadata["settlement_timestamp"] = (
            settled_at_ms if settled_at_ms is not None else _epoch_ms()
        )
        self.updated_at = _utcnow()

    def cancel(self) -> None:
        if self.status != PaymentIntentStatus.PENDING:
            raise InvalidStateError(
                f"Only PENDING payment intents can be cancelled (current: {self.status.value})"
            )
        self.status = PaymentIntentStatus.CANCELLED
        self.updated_at = _utcnow()

    def update_description(self, description: Optional[str]) -> None:
        if self.is_terminal:
            raise InvalidStateError(f"Payment intent {self.id} is {self.status.value}")
        self.description = description
        self.updated_at = _utcnow()

    def _require_processing(self) -> None:
        if self.status != PaymentIntentStatus.PROCESSING:
            raise InvalidStateError(
                f"Payment intent {self.id} is {self.status.value}, expected PROCESSING"
            )


class PayrollPayment(BaseModel):
    """One employee's share of a payroll batch, encrypted under their wallet."""

    id: UUID = Field(default_factory=uuid4)
    batch_id: UUID
    employee_id: str = Field(..., min_length=1, max_length=128)
    employee_wallet: str = Field(..., min_length=32, max_length=64)
    ciphertext: str = Field(..., frozen=True)
    commitment: str = Field(..., frozen=True)
    nonce: str = Field(..., frozen=True)
    status: PayrollStatus = PayrollStatus.PENDING
    tx_signature: Optional[str] = None
    error: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer("batch_id")
    def serialize_batch_id(self, value: UUID) -> str:
        return str(value)

    def associated_data(self) -> dict[str, str]:
        return payroll_payment_associated_data(
            self.id, self.batch_id, self.employee_id, self.employee_wallet
        )

    def record_result(
        self,
        succeeded: bool,
        tx_signature: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        if succeeded:
            self.status = PayrollStatus.COMPLETED
            self.tx_signature = tx_signature
            self.error = None
        else:
            self.status = PayrollStatus.FAILED
            self.error = error or "Payment failed"


class PayrollBatch(BaseModel):
    """A company's batch of confidential employee payments.

    The batch owns its payments; both are persisted as one document so a batch
    transition and its per-payment outcomes are written together.
    """

    id: UUID = Field(default_factory=uuid4)
    company_id: str = Field(..., min_length=1, max_length=128)
    status: PayrollStatus = PayrollStatus.PENDING
    currency: Currency = Currency.USDC
    employee_count: int = 0
    total_amount: str = "0"  # display only
    computation_id: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)
    payments: list[PayrollPayment] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return value.isoformat()

    @field_serializer("updated_at", "completed_at")
    def serialize_optional_dt(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYROLL_STATUSES

    def payment_for_employee(self, employee_id: str) -> Optional[PayrollPayment]:
        for payment in self.payments:
            if payment.employee_id == employee_id:
                return payment
        return None

    def mark_processing(self, computation_id: Optional[str] = None) -> None:
        if self.status != PayrollStatus.PENDING:
            raise InvalidStateError(
                f"Payroll batch {self.id} is {self.status.value}, expected PENDING"
            )
        if computation_id is not None:
            if self.computation_id is not None:
                raise InvalidStateError(
                    f"Payroll batch {self.id} already bound to a computation"
                )
            self.computation_id = computation_id
        self.status = PayrollStatus.PROCESSING
        for payment in self.payments:
            payment.status = PayrollStatus.PROCESSING
        self.updated_at = _utcnow()

    def complete(self, settled_at_ms: Optional[int] = None) -> None:
        self._require_processing()
        self.status = PayrollStatus.COMPLETED
        self.metadata["settlement_timestamp"] = (
            settled_at_ms if settled_at_ms is not None else _epoch_ms()
        )
        self.completed_at = _utcnow()
        self.updated_at = self.completed_at

    def fail(self, error_message: str, settled_at_ms: Optional[int] = None) -> None:
        self._require_processing()
        self.status = PayrollStatus.FAILED
        self.metadata["error_message"] = error_message
        self.metadata["settlement_timestamp"] = (
            settled_at_ms if settled_at_ms is not None else _epoch_ms()
        )
        self.completed_at = _utcnow()
        self.updated_at = self.completed_at

    def cancel(self) -> None:
        if self.status != PayrollStatus.PENDING:
            raise InvalidStateError(
                f"Only PENDING payroll batches can be cancelled (current: {self.status.value})"
            )
        self.status = PayrollStatus.CANCELLED
        for payment in self.payments:
            payment.status = PayrollStatus.CANCELLED
        self.updated_at = _utcnow()

    def _require_processing(self) -> None:
        if self.status != PayrollStatus.PROCESSING:
            raise InvalidStateError(
                f"Payroll batch {self.id} is {self.status.value}, expected PROCESSING"
            )
