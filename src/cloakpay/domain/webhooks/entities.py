"""Webhook domain entities: Webhook subscriptions and their deliveries."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_serializer


class EventType(str, Enum):
    PAYMENT_CONFIRMED = "payment.confirmed"
    PAYMENT_FAILED = "payment.failed"
    PAYROLL_COMPLETED = "payroll.completed"
    PAYROLL_FAILED = "payroll.failed"


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class Webhook(BaseModel):
    """A subscriber endpoint registered by a merchant or company."""

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1, max_length=128)
    url: str = Field(..., min_length=1, max_length=2048)
    events: list[EventType] = Field(default_factory=list)
    secret: str = Field(..., min_length=16)
    enabled: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return value.isoformat()

    def subscribes_to(self, event_type: str) -> bool:
        return self.enabled and any(e.value == event_type for e in self.events)


class WebhookDelivery(BaseModel):
    """Delivery of one event to one webhook, mutated in place across attempts."""

    id: UUID = Field(default_factory=uuid4)
    webhook_id: UUID
    event_type: EventType
    payload: dict[str, Any]
    attempts: int = 0
    status: DeliveryStatus = DeliveryStatus.PENDING
    response_code: Optional[int] = None
    responded_at: Optional[datetime] = None
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("id", "webhook_id")
    def serialize_uuid(self, value: UUID) -> str:
        return str(value)

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return value.isoformat()

    @field_serializer("responded_at", "next_attempt_at")
    def serialize_optional_dt(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    def mark_delivered(self, attempt: int, response_code: int) -> None:
        self.attempts = attempt
        self.status = DeliveryStatus.DELIVERED
        self.response_code = response_code
        self.responded_at = datetime.now(timezone.utc)
        self.next_attempt_at = None
        self.last_error = None

    def record_failure(
        self,
        attempt: int,
        response_code: Optional[int],
        error: str,
        next_attempt_at: Optional[datetime],
    ) -> None:
        """Record a failed attempt; without a next attempt the delivery is FAILED."""
        self.attempts = attempt
        self.response_code = response_code
        self.responded_at = datetime.now(timezone.utc)
        self.last_error = error
        self.next_attempt_at = next_attempt_at
        if next_attempt_at is None:
            self.status = DeliveryStatus.FAILED

    def reset_for_retry(self) -> None:
        self.status = DeliveryStatus.PENDING
        self.attempts = 0
        self.next_attempt_at = datetime.now(timezone.utc)
        self.last_error = None
