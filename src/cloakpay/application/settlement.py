"""Settlement executor: on-chain transfers from the funding keypair.

Batches are split into chunks of ``max_payments_per_tx`` transfers, one
transaction per chunk, submitted strictly in order. A failed chunk fails every
payment in it and the run continues with the next chunk. Single transfers are
retried with linear backoff (``retry_delay * attempt``).

Amounts are always recovered by decrypting the stored ciphertext and checking
it against the commitment; the plaintext copy in metadata is never trusted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Sequence
from uuid import UUID

from prometheus_client import Counter

from ..crypto.amount_encryption import AmountEncryptionEngine
from ..domain.errors import (
    ChainTransactionError,
    DecryptionError,
    EntityNotFoundError,
    InvalidStateError,
)
from ..domain.payments.entities import (
    Currency,
    PaymentIntent,
    PaymentIntentStatus,
    PayrollBatch,
    PayrollPayment,
    PayrollStatus,
)
from ..domain.payments.repositories import (
    PaymentIntentRepository,
    PayrollBatchRepository,
)
from ..domain.shared.chain_client_protocol import ChainClientProtocol
from ..infrastructure.solana.transactions import (
    LAMPORTS_PER_SOL,
    Transfer,
    TransferTransactionBuilder,
)
from .dtos import PayerBalanceDTO, PaymentOutcomeDTO, SettlementResultDTO
from .events import payment_intent_event, payroll_batch_event
from .webhooks import WebhookNotifier

logger = logging.getLogger(__name__)

SETTLEMENT_CHUNKS = Counter(
    "cloakpay_settlement_chunks_total",
    "Settlement transactions by outcome",
    ["outcome"],
)


@dataclass(frozen=True)
class SettlementPayment:
    recipient: str
    amount: Decimal
    reference: Optional[str] = None


def _short(address: str) -> str:
    return f"{address[:4]}..{address[-4:]}"


class SettlementExecutor:
    def __init__(
        self,
        chain: ChainClientProtocol,
        builder: TransferTransactionBuilder,
        engine: AmountEncryptionEngine,
        payment_intents: PaymentIntentRepository,
        payroll_batches: PayrollBatchRepository,
        notifier: Optional[WebhookNotifier] = None,
        max_payments_per_tx: int = 10,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        chunk_delay: float = 0.5,
        concurrency: int = 2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_payments_per_tx < 1:
            raise ValueError("max_payments_per_tx must be at least 1")
        self.chain = chain
        self.builder = builder
        self.engine = engine
        self.payment_intents = payment_intents
        self.payroll_batches = payroll_batches
        self.notifier = notifier
        self.max_payments_per_tx = max_payments_per_tx
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.chunk_delay = chunk_delay
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(concurrency)

    # Direct execution

    async def execute_direct(
        self, payments: Sequence[SettlementPayment], currency: Currency
    ) -> SettlementResultDTO:
        async with self._semaphore:
            return await self._execute_chunks(payments, currency)

    async def _execute_chunks(
        self, payments: Sequence[SettlementPayment], currency: Currency
    ) -> SettlementResultDTO:
        size = self.max_payments_per_tx
        chunks = [list(payments[i : i + size]) for i in range(0, len(payments), size)]
        outcomes: list[PaymentOutcomeDTO] = []

        for index, chunk in enumerate(chunks):
            try:
                signature = await self._send(chunk, currency)
            except (ChainTransactionError, ValueError) as e:
                SETTLEMENT_CHUNKS.labels("failed").inc()
                logger.error(
                    "Chunk %d/%d (%d payments) failed: %s",
                    index + 1,
                    len(chunks),
                    len(chunk),
                    e,
                )
                outcomes.extend(
                    PaymentOutcomeDTO(
                        recipient=p.recipient,
                        status="failed",
                        error=str(e),
                        reference=p.reference,
                    )
                    for p in chunk
                )
            else:
                SETTLEMENT_CHUNKS.labels("confirmed").inc()
                logger.info(
                    "Chunk %d/%d confirmed: %s", index + 1, len(chunks), signature
                )
                outcomes.extend(
                    PaymentOutcomeDTO(
                        recipient=p.recipient,
                        status="success",
                        signature=signature,
                        reference=p.reference,
                    )
                    for p in chunk
                )
            if index < len(chunks) - 1 and self.chunk_delay > 0:
                await self._sleep(self.chunk_delay)

        result = SettlementResultDTO(
            success=all(o.status == "success" for o in outcomes), payments=outcomes
        )
        logger.info(
            "Settlement run finished: %d succeeded, %d failed",
            result.succeeded,
            result.failed,
        )
        return result

    async def _send(
        self, payments: Sequence[SettlementPayment], currency: Currency
    ) -> str:
        recent = await self.chain.get_latest_blockhash()
        transaction = self.builder.build(
            [Transfer(p.recipient, p.amount) for p in payments],
            currency,
            recent.blockhash,
        )
        return await self.chain.send_and_confirm(
            bytes(transaction), recent.last_valid_block_height
        )

    # Single transfers

    async def process_sol_payment(
        self, recipient: str, lamports: int
    ) -> PaymentOutcomeDTO:
        amount = Decimal(lamports) / LAMPORTS_PER_SOL
        async with self._semaphore:
            return await self._process_single(
                SettlementPayment(recipient, amount), Currency.SOL
            )

    async def process_usdc_payment(
        self, recipient: str, amount: Decimal
    ) -> PaymentOutcomeDTO:
        async with self._semaphore:
            return await self._process_single(
                SettlementPayment(recipient, Decimal(amount)), Currency.USDC
            )

    async def _process_single(
        self, payment: SettlementPayment, currency: Currency
    ) -> PaymentOutcomeDTO:
        last_error = "Transfer failed"
        for attempt in range(1, self.max_retries + 1):
            try:
                signature = await self._send([payment], currency)
            except (ChainTransactionError, ValueError) as e:
                last_error = str(e)
                logger.warning(
                    "Transfer to %s failed (attempt %d/%d): %s",
                    _short(payment.recipient),
                    attempt,
                    self.max_retries,
                    e,
                )
                if attempt < self.max_retries:
                    await self._sleep(self.retry_delay * attempt)
                continue
            SETTLEMENT_CHUNKS.labels("confirmed").inc()
            return PaymentOutcomeDTO(
                recipient=payment.recipient,
                status="success",
                signature=signature,
                reference=payment.reference,
            )
        SETTLEMENT_CHUNKS.labels("failed").inc()
        return PaymentOutcomeDTO(
            recipient=payment.recipient,
            status="failed",
            error=last_error,
            reference=payment.reference,
        )

    # Entity settlement

    def _intent_amount(self, intent: PaymentIntent) -> Decimal:
        amount = self.engine.decrypt_amount(
            intent.ciphertext, intent.payer_identity, intent.associated_data()
        )
        if not self.engine.verify_commitment(amount, intent.nonce, intent.commitment):
            raise DecryptionError("Amount does not match commitment")
        return amount

    def _payroll_amount(self, payment: PayrollPayment) -> Decimal:
        amount = self.engine.decrypt_amount(
            payment.ciphertext, payment.employee_wallet, payment.associated_data()
        )
        if not self.engine.verify_commitment(
            amount, payment.nonce, payment.commitment
        ):
            raise DecryptionError("Amount does not match commitment")
        return amount

    async def settle_payment_intent(self, intent_id: UUID) -> SettlementResultDTO:
        """Transfer a PROCESSING intent's amount and finalize it."""
        intent = await self.payment_intents.get_by_id(intent_id)
        if intent is None:
            raise EntityNotFoundError(f"Payment intent {intent_id} not found")
        if intent.status != PaymentIntentStatus.PROCESSING:
            raise InvalidStateError(
                f"Payment intent {intent_id} is {intent.status.value}, expected PROCESSING"
            )

        try:
            amount = self._intent_amount(intent)
        except DecryptionError as e:
            logger.error("Refusing to settle intent %s: %s", intent.id, e)
            outcome = PaymentOutcomeDTO(
                recipient=intent.recipient, status="failed", error=str(e)
            )
        else:
            async with self._semaphore:
                outcome = await self._process_single(
                    SettlementPayment(intent.recipient, amount, str(intent.id)),
                    intent.currency,
                )

        if outcome.status == "success":
            intent.finalize(outcome.signature)
        else:
            intent.fail(outcome.error or "Transfer failed")
        if await self.payment_intents.save_transition(
            intent, PaymentIntentStatus.PROCESSING
        ):
            await self._notify_intent(intent)
        else:
            logger.warning(
                "Intent %s changed while settling; on-chain result %s kept in logs only",
                intent.id,
                outcome.signature,
            )
        return SettlementResultDTO(
            success=outcome.status == "success", payments=[outcome]
        )

    async def settle_payroll_batch(self, batch_id: UUID) -> SettlementResultDTO:
        """Pay every employee in a PROCESSING batch and record per-payment results."""
        batch = await self.payroll_batches.get_by_id(batch_id)
        if batch is None:
            raise EntityNotFoundError(f"Payroll batch {batch_id} not found")
        if batch.status != PayrollStatus.PROCESSING:
            raise InvalidStateError(
                f"Payroll batch {batch_id} is {batch.status.value}, expected PROCESSING"
            )

        to_settle: list[SettlementPayment] = []
        rejected: list[PaymentOutcomeDTO] = []
        for payment in batch.payments:
            try:
                amount = self._payroll_amount(payment)
            except DecryptionError as e:
                logger.error("Refusing to settle payroll payment %s: %s", payment.id, e)
                rejected.append(
                    PaymentOutcomeDTO(
                        recipient=payment.employee_wallet,
                        status="failed",
                        error=str(e),
                        reference=str(payment.id),
                    )
                )
                continue
            to_settle.append(
                SettlementPayment(payment.employee_wallet, amount, str(payment.id))
            )

        if to_settle:
            async with self._semaphore:
                run = await self._execute_chunks(to_settle, batch.currency)
        else:
            run = SettlementResultDTO(success=True, payments=[])
        outcomes = run.payments + rejected

        by_reference = {o.reference: o for o in outcomes}
        for payment in batch.payments:
            outcome = by_reference.get(str(payment.id))
            if outcome is None:
                payment.record_result(False, error="No settlement outcome")
                continue
            payment.record_result(
                outcome.status == "success", outcome.signature, outcome.error
            )

        result = SettlementResultDTO(
            success=all(o.status == "success" for o in outcomes), payments=outcomes
        )
        self._apply_payroll_outcome(batch, result)
        if await self.payroll_batches.save_transition(batch, PayrollStatus.PROCESSING):
            await self._notify_batch(batch)
        else:
            logger.error(
                "Batch %s changed while settling; %d transfers need reconciliation",
                batch.id,
                result.succeeded,
            )
        return result

    @staticmethod
    def _apply_payroll_outcome(batch: PayrollBatch, result: SettlementResultDTO) -> None:
        batch.metadata["settlement_result"] = {
            "success": result.success,
            "successful": result.succeeded,
            "failed": result.failed,
        }
        if result.success:
            batch.complete()
            return
        if result.succeeded:
            batch.metadata["requires_reconciliation"] = True
        batch.fail(f"{result.failed} of {len(result.payments)} payments failed")

    async def _notify_intent(self, intent: PaymentIntent) -> None:
        if self.notifier is None:
            return
        event_type, data = payment_intent_event(intent)
        await self.notifier.broadcast(intent.merchant_id, event_type, data)

    async def _notify_batch(self, batch: PayrollBatch) -> None:
        if self.notifier is None:
            return
        event_type, data = payroll_batch_event(batch)
        await self.notifier.broadcast(batch.company_id, event_type, data)

    async def get_payer_balance(self) -> PayerBalanceDTO:
        lamports = await self.chain.get_balance(self.builder.payer_address)
        usdc = await self.chain.get_token_balance(
            str(self.builder.payer_token_account())
        )
        return PayerBalanceDTO(
            address=self.builder.payer_address,
            sol=Decimal(lamports) / LAMPORTS_PER_SOL,
            usdc=usdc,
        )
