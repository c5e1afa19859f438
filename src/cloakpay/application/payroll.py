"""Payroll batch use cases."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID, uuid4

from ..crypto.amount_encryption import AmountEncryptionEngine
from ..domain.errors import EntityNotFoundError, InvalidStateError
from ..domain.payments.entities import (
    PayrollBatch,
    PayrollPayment,
    PayrollStatus,
    payroll_payment_associated_data,
)
from ..domain.payments.repositories import PayrollBatchRepository
from ..domain.shared.computation_dispatcher_protocol import (
    ComputationDispatcherProtocol,
)
from .dtos import CreatePayrollBatchDTO
from .mpc_dtos import PAYROLL_SETTLEMENT, PayrollJobPayment, PayrollSettlementJob

logger = logging.getLogger(__name__)


class PayrollService:
    """Creates payroll batches and moves them into settlement."""

    def __init__(
        self,
        repository: PayrollBatchRepository,
        engine: AmountEncryptionEngine,
        dispatcher: ComputationDispatcherProtocol,
    ):
        self.repository = repository
        self.engine = engine
        self.dispatcher = dispatcher

    async def create(self, company_id: str, dto: CreatePayrollBatchDTO) -> PayrollBatch:
        employee_ids = [p.employee_id for p in dto.payments]
        if len(set(employee_ids)) != len(employee_ids):
            raise ValueError("Each employee may appear only once per batch")

        batch_id = uuid4()
        payments: list[PayrollPayment] = []
        total = Decimal(0)
        for item in dto.payments:
            payment_id = uuid4()
            encrypted = self.engine.encrypt_amount(
                item.amount,
                item.employee_wallet,
                payroll_payment_associated_data(
                    payment_id, batch_id, item.employee_id, item.employee_wallet
                ),
            )
            payments.append(
                PayrollPayment(
                    id=payment_id,
                    batch_id=batch_id,
                    employee_id=item.employee_id,
                    employee_wallet=item.employee_wallet,
                    ciphertext=encrypted.ciphertext,
                    commitment=encrypted.commitment,
                    nonce=encrypted.nonce,
                    metadata={"amount": str(item.amount)},
                )
            )
            total += item.amount

        batch = PayrollBatch(
            id=batch_id,
            company_id=company_id,
            currency=dto.currency,
            employee_count=len(payments),
            total_amount=str(total),
            description=dto.description,
            payments=payments,
        )
        return await self.repository.create(batch)

    async def get(self, company_id: str, batch_id: UUID) -> PayrollBatch:
        batch = await self.repository.get_by_id(batch_id)
        if batch is None or batch.company_id != company_id:
            raise EntityNotFoundError(f"Payroll batch {batch_id} not found")
        return batch

    async def list(
        self,
        company_id: str,
        status: Optional[PayrollStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[PayrollBatch]:
        return await self.repository.get_by_company(company_id, status, skip, limit)

    async def execute(self, company_id: str, batch_id: UUID) -> PayrollBatch:
        """Queue the batch on the MPC cluster; results arrive by callback."""
        batch = await self.get(company_id, batch_id)
        computation_id = self.dispatcher.new_computation_id(PAYROLL_SETTLEMENT)
        batch.mark_processing(computation_id)
        if not await self.repository.save_transition(batch, PayrollStatus.PENDING):
            raise InvalidStateError(f"Payroll batch {batch_id} changed concurrently")

        job = PayrollSettlementJob(
            batch_id=str(batch.id),
            company_id=batch.company_id,
            currency=batch.currency.value,
            payments=[
                PayrollJobPayment(
                    employee_id=p.employee_id,
                    employee_wallet=p.employee_wallet,
                    encrypted_amount=p.ciphertext,
                    amount_commitment=p.commitment,
                    amount=str(p.metadata.get("amount", "")),
                )
                for p in batch.payments
            ],
        )
        self.dispatcher.submit(job, computation_id)
        logger.info("Batch %s dispatched as %s", batch.id, computation_id)
        return batch

    async def begin_direct_settlement(
        self, company_id: str, batch_id: UUID
    ) -> PayrollBatch:
        batch = await self.get(company_id, batch_id)
        batch.mark_processing()
        if not await self.repository.save_transition(batch, PayrollStatus.PENDING):
            raise InvalidStateError(f"Payroll batch {batch_id} changed concurrently")
        return batch

    async def cancel(self, company_id: str, batch_id: UUID) -> PayrollBatch:
        batch = await self.get(company_id, batch_id)
        batch.cancel()
        if not await self.repository.save_transition(batch, PayrollStatus.PENDING):
            raise InvalidStateError(f"Payroll batch {batch_id} changed concurrently")
        return batch
