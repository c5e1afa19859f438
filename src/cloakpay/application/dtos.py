"""Data Transfer Objects for the payment application layer."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ..domain.payments.entities import (
    Currency,
    PaymentIntent,
    PaymentIntentStatus,
    PayrollBatch,
    PayrollStatus,
)
from ..domain.shared.serializers import CommonSerializersMixin
from ..domain.webhooks.entities import (
    DeliveryStatus,
    EventType,
    Webhook,
    WebhookDelivery,
)

MAX_PAYROLL_PAYMENTS = 200


class CreatePaymentIntentDTO(BaseModel):
    """DTO for creating a payment intent."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "amount": "125.50",
                "recipient": "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin",
                "payer_wallet": "7EcDhSYGxXyscszYEp35KHN8vvw3svAuLKTzXwCFLtV",
                "currency": "USDC",
            }
        }
    )

    amount: Decimal = Field(..., gt=0, max_digits=20, decimal_places=6)
    recipient: str = Field(..., min_length=32, max_length=64)
    payer_wallet: str = Field(..., min_length=1, max_length=128)
    currency: Currency = Currency.USDC
    description: Optional[str] = Field(None, max_length=500)
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdatePaymentIntentDTO(BaseModel):
    description: Optional[str] = Field(None, max_length=500)


class PaymentIntentResponseDTO(CommonSerializersMixin, BaseModel):
    """Payment intent as returned by the API; the amount stays encrypted."""

    id: UUID
    merchant_id: str
    recipient: str
    currency: Currency
    ciphertext: str
    commitment: str
    status: PaymentIntentStatus
    computation_id: Optional[str]
    tx_signature: Optional[str]
    description: Optional[str]
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime]

    @field_serializer("updated_at")
    def serialize_updated_at(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @classmethod
    def from_entity(cls, intent: PaymentIntent) -> "PaymentIntentResponseDTO":
        return cls(
            id=intent.id,
            merchant_id=intent.merchant_id,
            recipient=intent.recipient,
            currency=intent.currency,
            ciphertext=intent.ciphertext,
            commitment=intent.commitment,
            status=intent.status,
            computation_id=intent.computation_id,
            tx_signature=intent.tx_signature,
            description=intent.description,
            error_message=intent.metadata.get("error_message"),
            created_at=intent.created_at,
            updated_at=intent.updated_at,
        )


class PayrollPaymentInputDTO(BaseModel):
    employee_id: str = Field(..., min_length=1, max_length=128)
    employee_wallet: str = Field(..., min_length=32, max_length=64)
    amount: Decimal = Field(..., gt=0, max_digits=20, decimal_places=6)


class CreatePayrollBatchDTO(BaseModel):
    """DTO for creating a payroll batch."""

    payments: list[PayrollPaymentInputDTO] = Field(
        ..., min_length=1, max_length=MAX_PAYROLL_PAYMENTS
    )
    currency: Currency = Currency.USDC
    description: Optional[str] = Field(None, max_length=500)


class PayrollPaymentResponseDTO(BaseModel):
    id: UUID
    employee_id: str
    employee_wallet: str
    commitment: str
    status: PayrollStatus
    tx_signature: Optional[str]
    error: Optional[str]

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)


class PayrollBatchResponseDTO(CommonSerializersMixin, BaseModel):
    id: UUID
    company_id: str
    status: PayrollStatus
    currency: Currency
    employee_count: int
    total_amount: str
    computation_id: Optional[str]
    description: Optional[str]
    requires_reconciliation: bool = False
    error_message: Optional[str] = None
    payments: list[PayrollPaymentResponseDTO]
    created_at: datetime
    completed_at: Optional[datetime]

    @field_serializer("completed_at")
    def serialize_completed_at(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @classmethod
    def from_entity(cls, batch: PayrollBatch) -> "PayrollBatchResponseDTO":
        return cls(
            id=batch.id,
            company_id=batch.company_id,
            status=batch.status,
            currency=batch.currency,
            employee_count=batch.employee_count,
            total_amount=batch.total_amount,
            computation_id=batch.computation_id,
            description=batch.description,
            requires_reconciliation=bool(
                batch.metadata.get("requires_reconciliation", False)
            ),
            error_message=batch.metadata.get("error_message"),
            payments=[
                PayrollPaymentResponseDTO(
                    id=p.id,
                    employee_id=p.employee_id,
                    employee_wallet=p.employee_wallet,
                    commitment=p.commitment,
                    status=p.status,
                    tx_signature=p.tx_signature,
                    error=p.error,
                )
                for p in batch.payments
            ],
            created_at=batch.created_at,
            completed_at=batch.completed_at,
        )


class PaymentOutcomeDTO(BaseModel):
    """Per-recipient settlement outcome."""

    recipient: str
    status: Literal["success", "failed"]
    signature: Optional[str] = None
    error: Optional[str] = None
    reference: Optional[str] = None


class SettlementResultDTO(BaseModel):
    success: bool
    payments: list[PaymentOutcomeDTO]

    @property
    def succeeded(self) -> int:
        return sum(1 for p in self.payments if p.status == "success")

    @property
    def failed(self) -> int:
        return len(self.payments) - self.succeeded


class PayerBalanceDTO(BaseModel):
    address: str
    sol: Decimal
    usdc: Decimal


class CreateWebhookDTO(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048, pattern=r"^https?://")
    events: list[EventType] = Field(..., min_length=1)


class WebhookResponseDTO(CommonSerializersMixin, BaseModel):
    id: UUID
    owner_id: str
    url: str
    events: list[EventType]
    enabled: bool
    created_at: datetime
    secret: Optional[str] = None  # only returned on creation

    @classmethod
    def from_entity(
        cls, webhook: Webhook, include_secret: bool = False
    ) -> "WebhookResponseDTO":
        return cls(
            id=webhook.id,
            owner_id=webhook.owner_id,
            url=webhook.url,
            events=webhook.events,
            enabled=webhook.enabled,
            created_at=webhook.created_at,
            secret=webhook.secret if include_secret else None,
        )


class WebhookDeliveryResponseDTO(CommonSerializersMixin, BaseModel):
    id: UUID
    webhook_id: UUID
    event_type: EventType
    status: DeliveryStatus
    attempts: int
    response_code: Optional[int]
    last_error: Optional[str]
    next_attempt_at: Optional[datetime]
    created_at: datetime

    @field_serializer("webhook_id")
    def serialize_webhook_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer("next_attempt_at")
    def serialize_next_attempt_at(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @classmethod
    def from_entity(cls, delivery: WebhookDelivery) -> "WebhookDeliveryResponseDTO":
        return cls(
            id=delivery.id,
            webhook_id=delivery.webhook_id,
            event_type=delivery.event_type,
            status=delivery.status,
            attempts=delivery.attempts,
            response_code=delivery.response_code,
            last_error=delivery.last_error,
            next_attempt_at=delivery.next_attempt_at,
            created_at=delivery.created_at,
        )


class DeliveryStatsDTO(BaseModel):
    total: int
    delivered: int
    failed: int
    pending: int
