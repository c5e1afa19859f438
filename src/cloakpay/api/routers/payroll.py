"""Payroll batch API routes."""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from ...application.dtos import (
    CreatePayrollBatchDTO,
    PayerBalanceDTO,
    PayrollBatchResponseDTO,
)
from ...application.payroll import PayrollService
from ...application.settlement import SettlementExecutor
from ...domain.errors import (
    ChainTransactionError,
    EntityNotFoundError,
    InvalidStateError,
)
from ...domain.payments.entities import PayrollStatus
from ..dependencies import get_owner_id, get_payroll_service, get_settlement_executor
from ..errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payroll", tags=["payroll"])


@router.post(
    "/batches",
    response_model=PayrollBatchResponseDTO,
    status_code=status.HTTP_201_CREATED,
)
async def create_payroll_batch(
    payload: CreatePayrollBatchDTO,
    owner_id: str = Depends(get_owner_id),
    service: PayrollService = Depends(get_payroll_service),
) -> PayrollBatchResponseDTO:
    """Create a PENDING batch with one encrypted amount per employee."""
    try:
        batch = await service.create(owner_id, payload)
    except ValueError as e:
        raise to_http_exception(e)
    return PayrollBatchResponseDTO.from_entity(batch)


@router.get("/batches", response_model=List[PayrollBatchResponseDTO])
async def list_payroll_batches(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    status_filter: Optional[PayrollStatus] = Query(None, alias="status"),
    owner_id: str = Depends(get_owner_id),
    service: PayrollService = Depends(get_payroll_service),
) -> List[PayrollBatchResponseDTO]:
    batches = await service.list(owner_id, status_filter, skip, limit)
    return [PayrollBatchResponseDTO.from_entity(b) for b in batches]


@router.get("/batches/{batch_id}", response_model=PayrollBatchResponseDTO)
async def get_payroll_batch(
    batch_id: UUID,
    owner_id: str = Depends(get_owner_id),
    service: PayrollService = Depends(get_payroll_service),
) -> PayrollBatchResponseDTO:
    try:
        batch = await service.get(owner_id, batch_id)
    except EntityNotFoundError as e:
        raise to_http_exception(e)
    return PayrollBatchResponseDTO.from_entity(batch)


@router.post(
    "/batches/{batch_id}/execute",
    response_model=PayrollBatchResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
)
async def execute_payroll_batch(
    batch_id: UUID,
    owner_id: str = Depends(get_owner_id),
    service: PayrollService = Depends(get_payroll_service),
) -> PayrollBatchResponseDTO:
    try:
        batch = await service.execute(owner_id, batch_id)
    except (EntityNotFoundError, InvalidStateError) as e:
        raise to_http_exception(e)
    return PayrollBatchResponseDTO.from_entity(batch)


@router.post("/batches/{batch_id}/cancel", response_model=PayrollBatchResponseDTO)
async def cancel_payroll_batch(
    batch_id: UUID,
    owner_id: str = Depends(get_owner_id),
    service: PayrollService = Depends(get_payroll_service),
) -> PayrollBatchResponseDTO:
    try:
        batch = await service.cancel(owner_id, batch_id)
    except (EntityNotFoundError, InvalidStateError) as e:
        raise to_http_exception(e)
    return PayrollBatchResponseDTO.from_entity(batch)


async def _settle_batch(executor: SettlementExecutor, batch_id: UUID) -> None:
    try:
        await executor.settle_payroll_batch(batch_id)
    except Exception:
        logger.exception("Direct settlement of batch %s crashed", batch_id)


@router.post(
    "/batches/{batch_id}/settle",
    response_model=PayrollBatchResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
)
async def settle_payroll_batch(
    batch_id: UUID,
    background_tasks: BackgroundTasks,
    owner_id: str = Depends(get_owner_id),
    service: PayrollService = Depends(get_payroll_service),
    executor: SettlementExecutor = Depends(get_settlement_executor),
) -> PayrollBatchResponseDTO:
    """Pay the batch straight from the funding wallet."""
    try:
        batch = await service.begin_direct_settlement(owner_id, batch_id)
    except (EntityNotFoundError, InvalidStateError) as e:
        raise to_http_exception(e)
    background_tasks.add_task(_settle_batch, executor, batch.id)
    return PayrollBatchResponseDTO.from_entity(batch)


@router.get("/balance", response_model=PayerBalanceDTO)
async def get_payer_balance(
    executor: SettlementExecutor = Depends(get_settlement_executor),
) -> PayerBalanceDTO:
    try:
        return await executor.get_payer_balance()
    except ChainTransactionError as e:
        logger.exception("Balance lookup failed")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
