"""Payroll batch repository implementation over a storage abstraction."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from ...domain.payments.entities import PayrollBatch, PayrollStatus
from ...domain.payments.repositories import PayrollBatchRepository
from ..storage import KeyValueStore
from .computation_index import (
    claim_computation_id,
    computation_key,
    resolve_computation_id,
)


class PayrollBatchRepositoryImpl(PayrollBatchRepository):
    """Stores each batch, payments included, as one JSON document."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def create(self, batch: PayrollBatch) -> PayrollBatch:
        await self.store.set(f"payroll_batch:{batch.id}", batch.model_dump_json())

        created_ts = batch.created_at.timestamp()
        await self.store.zadd(
            f"payroll_batches:by_company:{batch.company_id}",
            {str(batch.id): created_ts},
        )
        await self.store.zadd(
            f"payroll_batches:by_status:{batch.status.value}",
            {str(batch.id): created_ts},
        )
        return batch

    async def get_by_id(self, batch_id: UUID) -> Optional[PayrollBatch]:
        data = await self.store.get(f"payroll_batch:{batch_id}")
        if not data:
            return None
        return PayrollBatch.model_validate_json(data)

    async def get_by_computation_id(
        self, computation_id: str
    ) -> Optional[PayrollBatch]:
        batch_id = await resolve_computation_id(
            self.store, computation_id, "payroll_batch"
        )
        if batch_id is None:
            return None
        return await self.get_by_id(UUID(batch_id))

    async def get_by_company(
        self,
        company_id: str,
        status: Optional[PayrollStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[PayrollBatch]:
        key = f"payroll_batches:by_company:{company_id}"
        if status is None:
            ids: list[str] = await self.store.zrevrange(key, skip, skip + limit - 1)
            return await self._load_many(ids)
        ids = await self.store.zrevrange(key, 0, -1)
        batches = [b for b in await self._load_many(ids) if b.status == status]
        return batches[skip : skip + limit]

    async def get_by_status(
        self, status: PayrollStatus, skip: int = 0, limit: int = 100
    ) -> List[PayrollBatch]:
        ids: list[str] = await self.store.zrevrange(
            f"payroll_batches:by_status:{status.value}", skip, skip + limit - 1
        )
        return await self._load_many(ids)

    async def _load_many(self, ids: list[str]) -> List[PayrollBatch]:
        batches: List[PayrollBatch] = []
        for bid in ids:
            data = await self.store.get(f"payroll_batch:{bid}")
            if data:
                batches.append(PayrollBatch.model_validate_json(data))
        return batches

    async def save_transition(
        self, batch: PayrollBatch, expected_status: PayrollStatus
    ) -> bool:
        claimed = False
        if batch.computation_id:
            claimed = await claim_computation_id(
                self.store, batch.computation_id, f"payroll_batch:{batch.id}"
            )

        result = await self.store.compare_and_set(
            f"payroll_batch:{batch.id}",
            "status",
            expected_status.value,
            batch.model_dump_json(),
        )
        if result != 1:
            if claimed and batch.computation_id:
                await self.store.delete(computation_key(batch.computation_id))
            return False

        if expected_status != batch.status:
            await self.store.zrem(
                f"payroll_batches:by_status:{expected_status.value}", str(batch.id)
            )
            await self.store.zadd(
                f"payroll_batches:by_status:{batch.status.value}",
                {str(batch.id): batch.created_at.timestamp()},
            )
        return True
