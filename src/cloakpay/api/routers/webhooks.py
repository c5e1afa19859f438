"""Webhook subscription API routes."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from ...application.dtos import (
    CreateWebhookDTO,
    DeliveryStatsDTO,
    WebhookDeliveryResponseDTO,
    WebhookResponseDTO,
)
from ...application.webhook_subscriptions import WebhookService
from ...application.webhooks import WebhookNotifier
from ...domain.errors import EntityNotFoundError
from ..dependencies import get_owner_id, get_webhook_notifier, get_webhook_service
from ..errors import to_http_exception

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class UpdateWebhookDTO(BaseModel):
    enabled: bool


@router.post(
    "/", response_model=WebhookResponseDTO, status_code=status.HTTP_201_CREATED
)
async def create_webhook(
    payload: CreateWebhookDTO,
    owner_id: str = Depends(get_owner_id),
    service: WebhookService = Depends(get_webhook_service),
) -> WebhookResponseDTO:
    """Register an endpoint; the signing secret is only shown here."""
    webhook = await service.create_webhook(owner_id, payload)
    return WebhookResponseDTO.from_entity(webhook, include_secret=True)


@router.get("/", response_model=List[WebhookResponseDTO])
async def list_webhooks(
    owner_id: str = Depends(get_owner_id),
    service: WebhookService = Depends(get_webhook_service),
) -> List[WebhookResponseDTO]:
    webhooks = await service.list_webhooks(owner_id)
    return [WebhookResponseDTO.from_entity(w) for w in webhooks]


@router.get("/stats", response_model=DeliveryStatsDTO)
async def get_delivery_stats(
    owner_id: str = Depends(get_owner_id),
    notifier: WebhookNotifier = Depends(get_webhook_notifier),
) -> DeliveryStatsDTO:
    return DeliveryStatsDTO(**await notifier.get_delivery_stats(owner_id))


@router.patch("/{webhook_id}", response_model=WebhookResponseDTO)
async def update_webhook(
    webhook_id: UUID,
    payload: UpdateWebhookDTO,
    owner_id: str = Depends(get_owner_id),
    service: WebhookService = Depends(get_webhook_service),
) -> WebhookResponseDTO:
    try:
        webhook = await service.set_enabled(owner_id, webhook_id, payload.enabled)
    except EntityNotFoundError as e:
        raise to_http_exception(e)
    return WebhookResponseDTO.from_entity(webhook)


@router.get(
    "/{webhook_id}/deliveries", response_model=List[WebhookDeliveryResponseDTO]
)
async def list_deliveries(
    webhook_id: UUID,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    owner_id: str = Depends(get_owner_id),
    service: WebhookService = Depends(get_webhook_service),
) -> List[WebhookDeliveryResponseDTO]:
    try:
        deliveries = await service.list_deliveries(owner_id, webhook_id, skip, limit)
    except EntityNotFoundError as e:
        raise to_http_exception(e)
    return [WebhookDeliveryResponseDTO.from_entity(d) for d in deliveries]


@router.post(
    "/deliveries/{delivery_id}/retry",
    response_model=WebhookDeliveryResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
)
async def retry_delivery(
    delivery_id: UUID,
    owner_id: str = Depends(get_owner_id),
    service: WebhookService = Depends(get_webhook_service),
    notifier: WebhookNotifier = Depends(get_webhook_notifier),
) -> WebhookDeliveryResponseDTO:
    """Restart a delivery with a fresh attempt budget."""
    try:
        await service.get_delivery(owner_id, delivery_id)
    except EntityNotFoundError as e:
        raise to_http_exception(e)
    await notifier.retry_delivery(delivery_id)
    delivery = await service.get_delivery(owner_id, delivery_id)
    return WebhookDeliveryResponseDTO.from_entity(delivery)
