"""Payment intent repository implementation over a storage abstraction."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from ...domain.errors import EntityNotFoundError, InvalidStateError
from ...domain.payments.entities import PaymentIntent, PaymentIntentStatus
from ...domain.payments.repositories import PaymentIntentRepository
from ..storage import KeyValueStore
from .computation_index import (
    claim_computation_id,
    computation_key,
    resolve_computation_id,
)


class PaymentIntentRepositoryImpl(PaymentIntentRepository):
    """Payment intent repository using a KeyValueStore."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        await self.store.set(f"payment_intent:{intent.id}", intent.model_dump_json())

        created_ts = intent.created_at.timestamp()
        await self.store.zadd(
            f"payment_intents:by_merchant:{intent.merchant_id}",
            {str(intent.id): created_ts},
        )
        await self.store.zadd(
            f"payment_intents:by_status:{intent.status.value}",
            {str(intent.id): created_ts},
        )
        return intent

    async def get_by_id(self, intent_id: UUID) -> Optional[PaymentIntent]:
        data = await self.store.get(f"payment_intent:{intent_id}")
        if not data:
            return None
        return PaymentIntent.model_validate_json(data)

    async def get_by_computation_id(
        self, computation_id: str
    ) -> Optional[PaymentIntent]:
        intent_id = await resolve_computation_id(
            self.store, computation_id, "payment_intent"
        )
        if intent_id is None:
            return None
        return await self.get_by_id(UUID(intent_id))

    async def _load(self, index_key: str, skip: int, limit: int) -> List[PaymentIntent]:
        """Load a page of intents from an index; ``limit=0`` loads everything."""
        end = skip + limit - 1 if limit > 0 else -1
        ids: list[str] = await self.store.zrevrange(index_key, skip, end)
        intents: List[PaymentIntent] = []
        for iid in ids:
            data = await self.store.get(f"payment_intent:{iid}")
            if data:
                intents.append(PaymentIntent.model_validate_json(data))
        return intents

    async def get_by_merchant(
        self,
        merchant_id: str,
        status: Optional[PaymentIntentStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[PaymentIntent]:
        key = f"payment_intents:by_merchant:{merchant_id}"
        if status is None:
            return await self._load(key, skip, limit)
        # Status filtering happens after the owner index; owners hold few intents.
        matching = [i for i in await self._load(key, 0, 0) if i.status == status]
        return matching[skip : skip + limit]

    async def get_by_status(
        self, status: PaymentIntentStatus, skip: int = 0, limit: int = 100
    ) -> List[PaymentIntent]:
        return await self._load(f"payment_intents:by_status:{status.value}", skip, limit)

    async def save_transition(
        self, intent: PaymentIntent, expected_status: PaymentIntentStatus
    ) -> bool:
        claimed = False
        if intent.computation_id:
            claimed = await claim_computation_id(
                self.store, intent.computation_id, f"payment_intent:{intent.id}"
            )

        result = await self.store.compare_and_set(
            f"payment_intent:{intent.id}",
            "status",
            expected_status.value,
            intent.model_dump_json(),
        )
        if result != 1:
            if claimed and intent.computation_id:
                await self.store.delete(computation_key(intent.computation_id))
            return False

        if expected_status != intent.status:
            await self.store.zrem(
                f"payment_intents:by_status:{expected_status.value}", str(intent.id)
            )
            await self.store.zadd(
                f"payment_intents:by_status:{intent.status.value}",
                {str(intent.id): intent.created_at.timestamp()},
            )
        return True

    async def update(self, intent: PaymentIntent) -> PaymentIntent:
        result = await self.store.compare_and_set(
            f"payment_intent:{intent.id}",
            "status",
            intent.status.value,
            intent.model_dump_json(),
        )
        if result == 2:
            raise EntityNotFoundError(f"Payment intent {intent.id} not found")
        if result == 0:
            raise InvalidStateError(f"Payment intent {intent.id} changed status")
        return intent
