"""Payment intent use cases."""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID, uuid4

from ..crypto.amount_encryption import AmountEncryptionEngine
from ..domain.errors import EntityNotFoundError, InvalidStateError
from ..domain.payments.entities import (
    PaymentIntent,
    PaymentIntentStatus,
    intent_associated_data,
)
from ..domain.payments.repositories import PaymentIntentRepository
from ..domain.shared.computation_dispatcher_protocol import (
    ComputationDispatcherProtocol,
)
from .dtos import CreatePaymentIntentDTO, UpdatePaymentIntentDTO
from .mpc_dtos import PAYMENT_SETTLEMENT, PaymentSettlementJob

logger = logging.getLogger(__name__)


class PaymentIntentService:
    """Creates, confirms and cancels confidential payment intents."""

    def __init__(
        self,
        repository: PaymentIntentRepository,
        engine: AmountEncryptionEngine,
        dispatcher: ComputationDispatcherProtocol,
    ):
        self.repository = repository
        self.engine = engine
        self.dispatcher = dispatcher

    async def create(
        self, merchant_id: str, dto: CreatePaymentIntentDTO
    ) -> PaymentIntent:
        intent_id = uuid4()
        encrypted = self.engine.encrypt_amount(
            dto.amount,
            dto.payer_wallet,
            intent_associated_data(intent_id, merchant_id, dto.recipient, dto.currency),
        )
        metadata = dict(dto.metadata)
        metadata["amount"] = str(dto.amount)
        intent = PaymentIntent(
            id=intent_id,
            merchant_id=merchant_id,
            recipient=dto.recipient,
            currency=dto.currency,
            payer_identity=dto.payer_wallet,
            ciphertext=encrypted.ciphertext,
            commitment=encrypted.commitment,
            nonce=encrypted.nonce,
            description=dto.description,
            metadata=metadata,
        )
        return await self.repository.create(intent)

    async def get(self, merchant_id: str, intent_id: UUID) -> PaymentIntent:
        intent = await self.repository.get_by_id(intent_id)
        if intent is None or intent.merchant_id != merchant_id:
            raise EntityNotFoundError(f"Payment intent {intent_id} not found")
        return intent

    async def list(
        self,
        merchant_id: str,
        status: Optional[PaymentIntentStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[PaymentIntent]:
        return await self.repository.get_by_merchant(merchant_id, status, skip, limit)

    async def update(
        self, merchant_id: str, intent_id: UUID, dto: UpdatePaymentIntentDTO
    ) -> PaymentIntent:
        intent = await self.get(merchant_id, intent_id)
        intent.update_description(dto.description)
        return await self.repository.update(intent)

    async def confirm(self, merchant_id: str, intent_id: UUID) -> PaymentIntent:
        """Move the intent to PROCESSING and hand it to the MPC cluster.

        The computation id is persisted before dispatch; dispatch itself runs
        in the background so the request never waits on the cluster.
        """
        intent = await self.get(merchant_id, intent_id)
        computation_id = self.dispatcher.new_computation_id(PAYMENT_SETTLEMENT)
        intent.mark_processing(computation_id)
        if not await self.repository.save_transition(
            intent, PaymentIntentStatus.PENDING
        ):
            raise InvalidStateError(f"Payment intent {intent_id} changed concurrently")

        job = PaymentSettlementJob(
            payment_intent_id=str(intent.id),
            merchant_id=intent.merchant_id,
            recipient=intent.recipient,
            currency=intent.currency.value,
            encrypted_amount=intent.ciphertext,
            amount_commitment=intent.commitment,
            amount=str(intent.metadata.get("amount", "")),
        )
        self.dispatcher.submit(job, computation_id)
        logger.info("Intent %s dispatched as %s", intent.id, computation_id)
        return intent

    async def begin_direct_settlement(
        self, merchant_id: str, intent_id: UUID
    ) -> PaymentIntent:
        """Move the intent to PROCESSING for settlement without the MPC cluster."""
        intent = await self.get(merchant_id, intent_id)
        intent.mark_processing()
        if not await self.repository.save_transition(
            intent, PaymentIntentStatus.PENDING
        ):
            raise InvalidStateError(f"Payment intent {intent_id} changed concurrently")
        return intent

    async def cancel(self, merchant_id: str, intent_id: UUID) -> PaymentIntent:
        intent = await self.get(merchant_id, intent_id)
        intent.cancel()
        if not await self.repository.save_transition(
            intent, PaymentIntentStatus.PENDING
        ):
            raise InvalidStateError(f"Payment intent {intent_id} changed concurrently")
        return intent
