"""MPC callback receiver.

The cluster may deliver a callback more than once, late, or concurrently with
a retry. Each callback is authenticated over the raw body first; processing of
one computation id is then serialized by a short lease, and every entity write
is conditional on the entity still being PROCESSING. A replay against a
terminal entity is acknowledged without side effects.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from prometheus_client import Counter

from ..crypto.signatures import verify_hmac_sha256
from ..domain.errors import CallbackAuthenticationError
from ..domain.payments.entities import (
    PaymentIntentStatus,
    PayrollStatus,
)
from ..domain.payments.repositories import (
    PaymentIntentRepository,
    PayrollBatchRepository,
)
from ..infrastructure.expiring_store import ExpiringStore
from .events import payment_intent_event, payroll_batch_event
from .mpc_dtos import PAYMENT_SETTLEMENT, MpcCallbackDTO
from .webhooks import WebhookNotifier

logger = logging.getLogger(__name__)

CALLBACKS_RECEIVED = Counter(
    "cloakpay_mpc_callbacks_total",
    "MPC callbacks received by outcome",
    ["outcome"],
)

OUTCOME_APPLIED = "applied"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_NOT_FOUND = "not_found"
OUTCOME_IN_PROGRESS = "in_progress"


class CallbackReceiver:
    def __init__(
        self,
        callback_secret: str,
        payment_intents: PaymentIntentRepository,
        payroll_batches: PayrollBatchRepository,
        notifier: WebhookNotifier,
        leases: ExpiringStore,
        lease_ttl_seconds: float = 30.0,
    ) -> None:
        self._secret = callback_secret
        self.payment_intents = payment_intents
        self.payroll_batches = payroll_batches
        self.notifier = notifier
        self.leases = leases
        self.lease_ttl_seconds = lease_ttl_seconds

    def verify_signature(self, raw_body: bytes, signature: Optional[str]) -> None:
        if not signature:
            CALLBACKS_RECEIVED.labels("unauthenticated").inc()
            raise CallbackAuthenticationError("Missing callback signature")
        if not verify_hmac_sha256(self._secret, raw_body, signature):
            CALLBACKS_RECEIVED.labels("unauthenticated").inc()
            raise CallbackAuthenticationError("Invalid callback signature")

    async def handle(self, raw_body: bytes, signature: Optional[str]) -> str:
        """Authenticate, parse and apply a callback; returns the outcome name.

        Raises:
            CallbackAuthenticationError: signature missing or wrong
            pydantic.ValidationError: authenticated body is malformed
        """
        self.verify_signature(raw_body, signature)
        callback = MpcCallbackDTO.model_validate_json(raw_body)

        lease_key = f"callback-lease:{callback.computation_id}"
        token = secrets.token_hex(8)
        if not await self.leases.put_if_absent(
            lease_key, token, self.lease_ttl_seconds
        ):
            logger.info(
                "Callback for %s already being processed", callback.computation_id
            )
            CALLBACKS_RECEIVED.labels(OUTCOME_IN_PROGRESS).inc()
            return OUTCOME_IN_PROGRESS
        try:
            if callback.computation_type == PAYMENT_SETTLEMENT:
                outcome = await self._apply_payment(callback)
            else:
                outcome = await self._apply_payroll(callback)
        finally:
            await self.leases.release(lease_key, token)

        CALLBACKS_RECEIVED.labels(outcome).inc()
        return outcome

    async def _apply_payment(self, callback: MpcCallbackDTO) -> str:
        intent = await self.payment_intents.get_by_computation_id(
            callback.computation_id
        )
        if intent is None:
            logger.warning(
                "No payment intent for computation %s", callback.computation_id
            )
            return OUTCOME_NOT_FOUND
        if intent.status != PaymentIntentStatus.PROCESSING:
            logger.info(
                "Ignoring callback for intent %s in status %s",
                intent.id,
                intent.status.value,
            )
            return OUTCOME_DUPLICATE

        result = callback.result
        if callback.status == "completed":
            signature = result.tx_signatures[0] if result and result.tx_signatures else None
            intent.finalize(signature, callback.timestamp)
        else:
            error = (result.error_message if result else None) or "MPC computation failed"
            intent.fail(error, callback.timestamp)

        if not await self.payment_intents.save_transition(
            intent, PaymentIntentStatus.PROCESSING
        ):
            return OUTCOME_DUPLICATE

        logger.info("Payment intent %s is %s", intent.id, intent.status.value)
        event_type, data = payment_intent_event(intent)
        await self.notifier.broadcast(intent.merchant_id, event_type, data)
        return OUTCOME_APPLIED

    async def _apply_payroll(self, callback: MpcCallbackDTO) -> str:
        batch = await self.payroll_batches.get_by_computation_id(
            callback.computation_id
        )
        if batch is None:
            logger.warning(
                "No payroll batch for computation %s", callback.computation_id
            )
            return OUTCOME_NOT_FOUND
        if batch.status != PayrollStatus.PROCESSING:
            logger.info(
                "Ignoring callback for batch %s in status %s",
                batch.id,
                batch.status.value,
            )
            return OUTCOME_DUPLICATE

        result = callback.result
        succeeded = callback.status == "completed"
        error = (result.error_message if result else None) or (
            None if succeeded else "MPC computation failed"
        )
        reported = set()
        if result and result.payment_results:
            for item in result.payment_results:
                payment = batch.payment_for_employee(item.employee_id)
                if payment is None:
                    logger.warning(
                        "Batch %s has no payment for employee %s",
                        batch.id,
                        item.employee_id,
                    )
                    continue
                payment.record_result(
                    item.status == "completed", item.tx_signature, item.error
                )
                reported.add(payment.id)
        signature = result.tx_signatures[0] if result and result.tx_signatures else None
        for payment in batch.payments:
            if payment.id not in reported:
                payment.record_result(succeeded, signature, error)

        if succeeded and any(p.status == PayrollStatus.FAILED for p in batch.payments):
            batch.metadata["requires_reconciliation"] = True
        if succeeded:
            batch.complete(callback.timestamp)
        else:
            batch.fail(error or "MPC computation failed", callback.timestamp)

        if not await self.payroll_batches.save_transition(
            batch, PayrollStatus.PROCESSING
        ):
            return OUTCOME_DUPLICATE

        logger.info("Payroll batch %s is %s", batch.id, batch.status.value)
        event_type, data = payroll_batch_event(batch)
        await self.notifier.broadcast(batch.company_id, event_type, data)
        return OUTCOME_APPLIED
