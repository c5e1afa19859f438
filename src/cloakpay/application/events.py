"""Event payloads broadcast to webhook subscribers.

Payloads never carry plaintext amounts.
"""

from __future__ import annotations

from typing import Any

from ..domain.payments.entities import (
    PaymentIntent,
    PaymentIntentStatus,
    PayrollBatch,
    PayrollStatus,
)
from ..domain.webhooks.entities import EventType


def payment_intent_event(intent: PaymentIntent) -> tuple[EventType, dict[str, Any]]:
    event_type = (
        EventType.PAYMENT_CONFIRMED
        if intent.status == PaymentIntentStatus.FINALIZED
        else EventType.PAYMENT_FAILED
    )
    return event_type, {
        "payment_intent_id": str(intent.id),
        "status": intent.status.value.lower(),
        "recipient": intent.recipient,
        "currency": intent.currency.value,
        "computation_id": intent.computation_id,
        "tx_signature": intent.tx_signature,
        "error_message": intent.metadata.get("error_message"),
        "timestamp": intent.metadata.get("settlement_timestamp"),
    }


def payroll_batch_event(batch: PayrollBatch) -> tuple[EventType, dict[str, Any]]:
    event_type = (
        EventType.PAYROLL_COMPLETED
        if batch.status == PayrollStatus.COMPLETED
        else EventType.PAYROLL_FAILED
    )
    succeeded = sum(1 for p in batch.payments if p.status == PayrollStatus.COMPLETED)
    return event_type, {
        "batch_id": str(batch.id),
        "status": batch.status.value.lower(),
        "employee_count": batch.employee_count,
        "successful_payments": succeeded,
        "failed_payments": len(batch.payments) - succeeded,
        "computation_id": batch.computation_id,
        "requires_reconciliation": bool(
            batch.metadata.get("requires_reconciliation", False)
        ),
        "timestamp": batch.metadata.get("settlement_timestamp"),
    }
