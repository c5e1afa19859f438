"""Sweep for entities stuck in PROCESSING.

Dispatch to the MPC cluster is fire-and-forget, so a lost request leaves an
entity PROCESSING forever. Past ``timeout_seconds`` the sweep asks the cluster
about the computation: unknown or failed computations fail the entity and
notify subscribers. Running computations, and any the cluster cannot answer
for right now, are left for the callback or a later sweep.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..domain.errors import ComputationLookupError
from ..domain.payments.entities import (
    PaymentIntent,
    PaymentIntentStatus,
    PayrollBatch,
    PayrollStatus,
)
from ..domain.payments.repositories import (
    PaymentIntentRepository,
    PayrollBatchRepository,
)
from ..domain.shared.computation_dispatcher_protocol import (
    ComputationDispatcherProtocol,
)
from .events import payment_intent_event, payroll_batch_event
from .webhooks import WebhookNotifier

logger = logging.getLogger(__name__)


class ReconciliationService:
    def __init__(
        self,
        payment_intents: PaymentIntentRepository,
        payroll_batches: PayrollBatchRepository,
        dispatcher: ComputationDispatcherProtocol,
        notifier: WebhookNotifier,
        timeout_seconds: float = 900,
    ):
        self.payment_intents = payment_intents
        self.payroll_batches = payroll_batches
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.timeout_seconds = timeout_seconds
        self._task: Optional[asyncio.Task[None]] = None

    def _is_stale(self, updated_at: Optional[datetime], created_at: datetime) -> bool:
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.timeout_seconds)
        return (updated_at or created_at) <= cutoff

    async def _failure_reason(self, computation_id: str) -> Optional[str]:
        try:
            status = await self.dispatcher.lookup_computation(computation_id)
        except ComputationLookupError as e:
            # Unreachable is not unknown; the callback may still arrive
            logger.warning("Skipping %s this sweep: %s", computation_id, e)
            return None
        if status is None:
            return "Computation not found on MPC cluster"
        if status.status == "failed":
            return status.error or "MPC computation failed"
        return None

    async def sweep(self) -> int:
        """Fail stale PROCESSING entities; returns how many were failed."""
        failed = 0
        for intent in await self.payment_intents.get_by_status(
            PaymentIntentStatus.PROCESSING, 0, 1000
        ):
            if await self._reconcile_intent(intent):
                failed += 1
        for batch in await self.payroll_batches.get_by_status(
            PayrollStatus.PROCESSING, 0, 1000
        ):
            if await self._reconcile_batch(batch):
                failed += 1
        if failed:
            logger.warning("Reconciliation failed %d stale entities", failed)
        return failed

    async def _reconcile_intent(self, intent: PaymentIntent) -> bool:
        # Direct settlements carry no computation id and are owned by the executor
        if not intent.computation_id:
            return False
        if not self._is_stale(intent.updated_at, intent.created_at):
            return False
        reason = await self._failure_reason(intent.computation_id)
        if reason is None:
            return False
        intent.fail(reason)
        if not await self.payment_intents.save_transition(
            intent, PaymentIntentStatus.PROCESSING
        ):
            return False
        event_type, data = payment_intent_event(intent)
        await self.notifier.broadcast(intent.merchant_id, event_type, data)
        return True

    async def _reconcile_batch(self, batch: PayrollBatch) -> bool:
        if not batch.computation_id:
            return False
        if not self._is_stale(batch.updated_at, batch.created_at):
            return False
        reason = await self._failure_reason(batch.computation_id)
        if reason is None:
            return False
        for payment in batch.payments:
            payment.record_result(False, error=reason)
        batch.fail(reason)
        if not await self.payroll_batches.save_transition(
            batch, PayrollStatus.PROCESSING
        ):
            return False
        event_type, data = payroll_batch_event(batch)
        await self.notifier.broadcast(batch.company_id, event_type, data)
        return True

    def start(self, interval_seconds: float) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_forever(interval_seconds))

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Reconciliation sweep failed")
