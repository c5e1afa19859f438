"""Payment intent API routes."""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from ...application.dtos import (
    CreatePaymentIntentDTO,
    PaymentIntentResponseDTO,
    UpdatePaymentIntentDTO,
)
from ...application.payment_intents import PaymentIntentService
from ...application.settlement import SettlementExecutor
from ...domain.errors import EntityNotFoundError, InvalidStateError
from ...domain.payments.entities import PaymentIntentStatus
from ..dependencies import (
    get_owner_id,
    get_payment_intent_service,
    get_settlement_executor,
)
from ..errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment_intents", tags=["payment_intents"])


@router.post(
    "/",
    response_model=PaymentIntentResponseDTO,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_intent(
    payload: CreatePaymentIntentDTO,
    owner_id: str = Depends(get_owner_id),
    service: PaymentIntentService = Depends(get_payment_intent_service),
) -> PaymentIntentResponseDTO:
    """Encrypt the amount and create a PENDING payment intent."""
    try:
        intent = await service.create(owner_id, payload)
    except ValueError as e:
        raise to_http_exception(e)
    return PaymentIntentResponseDTO.from_entity(intent)


@router.get("/", response_model=List[PaymentIntentResponseDTO])
async def list_payment_intents(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    status_filter: Optional[PaymentIntentStatus] = Query(None, alias="status"),
    owner_id: str = Depends(get_owner_id),
    service: PaymentIntentService = Depends(get_payment_intent_service),
) -> List[PaymentIntentResponseDTO]:
    intents = await service.list(owner_id, status_filter, skip, limit)
    return [PaymentIntentResponseDTO.from_entity(i) for i in intents]


@router.get("/{intent_id}", response_model=PaymentIntentResponseDTO)
async def get_payment_intent(
    intent_id: UUID,
    owner_id: str = Depends(get_owner_id),
    service: PaymentIntentService = Depends(get_payment_intent_service),
) -> PaymentIntentResponseDTO:
    try:
        intent = await service.get(owner_id, intent_id)
    except EntityNotFoundError as e:
        raise to_http_exception(e)
    return PaymentIntentResponseDTO.from_entity(intent)


@router.patch("/{intent_id}", response_model=PaymentIntentResponseDTO)
async def update_payment_intent(
    intent_id: UUID,
    payload: UpdatePaymentIntentDTO,
    owner_id: str = Depends(get_owner_id),
    service: PaymentIntentService = Depends(get_payment_intent_service),
) -> PaymentIntentResponseDTO:
    try:
        intent = await service.update(owner_id, intent_id, payload)
    except (EntityNotFoundError, InvalidStateError) as e:
        raise to_http_exception(e)
    return PaymentIntentResponseDTO.from_entity(intent)


@router.post(
    "/{intent_id}/confirm",
    response_model=PaymentIntentResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
)
async def confirm_payment_intent(
    intent_id: UUID,
    owner_id: str = Depends(get_owner_id),
    service: PaymentIntentService = Depends(get_payment_intent_service),
) -> PaymentIntentResponseDTO:
    """Queue MPC settlement; the outcome arrives by webhook."""
    try:
        intent = await service.confirm(owner_id, intent_id)
    except (EntityNotFoundError, InvalidStateError) as e:
        raise to_http_exception(e)
    return PaymentIntentResponseDTO.from_entity(intent)


@router.post("/{intent_id}/cancel", response_model=PaymentIntentResponseDTO)
async def cancel_payment_intent(
    intent_id: UUID,
    owner_id: str = Depends(get_owner_id),
    service: PaymentIntentService = Depends(get_payment_intent_service),
) -> PaymentIntentResponseDTO:
    try:
        intent = await service.cancel(owner_id, intent_id)
    except (EntityNotFoundError, InvalidStateError) as e:
        raise to_http_exception(e)
    return PaymentIntentResponseDTO.from_entity(intent)


async def _settle_intent(executor: SettlementExecutor, intent_id: UUID) -> None:
    try:
        await executor.settle_payment_intent(intent_id)
    except Exception:
        logger.exception("Direct settlement of intent %s crashed", intent_id)


@router.post(
    "/{intent_id}/settle",
    response_model=PaymentIntentResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
)
async def settle_payment_intent(
    intent_id: UUID,
    background_tasks: BackgroundTasks,
    owner_id: str = Depends(get_owner_id),
    service: PaymentIntentService = Depends(get_payment_intent_service),
    executor: SettlementExecutor = Depends(get_settlement_executor),
) -> PaymentIntentResponseDTO:
    """Settle on chain directly, bypassing the MPC cluster."""
    try:
        intent = await service.begin_direct_settlement(owner_id, intent_id)
    except (EntityNotFoundError, InvalidStateError) as e:
        raise to_http_exception(e)
    background_tasks.add_task(_settle_intent, executor, intent.id)
    return PaymentIntentResponseDTO.from_entity(intent)
