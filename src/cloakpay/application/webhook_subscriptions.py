"""Webhook subscription use cases."""

from __future__ import annotations

import secrets
from typing import List
from uuid import UUID

from ..domain.errors import EntityNotFoundError
from ..domain.webhooks.entities import Webhook, WebhookDelivery
from ..domain.webhooks.repositories import (
    WebhookDeliveryRepository,
    WebhookRepository,
)
from .dtos import CreateWebhookDTO


def generate_webhook_secret() -> str:
    return f"whsec_{secrets.token_hex(24)}"


class WebhookService:
    def __init__(
        self,
        webhook_repository: WebhookRepository,
        delivery_repository: WebhookDeliveryRepository,
    ):
        self.webhook_repository = webhook_repository
        self.delivery_repository = delivery_repository

    async def create_webhook(self, owner_id: str, dto: CreateWebhookDTO) -> Webhook:
        webhook = Webhook(
            owner_id=owner_id,
            url=dto.url,
            events=list(dict.fromkeys(dto.events)),
            secret=generate_webhook_secret(),
        )
        return await self.webhook_repository.create(webhook)

    async def list_webhooks(self, owner_id: str) -> List[Webhook]:
        return await self.webhook_repository.get_by_owner(owner_id)

    async def get_webhook(self, owner_id: str, webhook_id: UUID) -> Webhook:
        webhook = await self.webhook_repository.get_by_id(webhook_id)
        if webhook is None or webhook.owner_id != owner_id:
            raise EntityNotFoundError(f"Webhook {webhook_id} not found")
        return webhook

    async def set_enabled(
        self, owner_id: str, webhook_id: UUID, enabled: bool
    ) -> Webhook:
        webhook = await self.get_webhook(owner_id, webhook_id)
        webhook.enabled = enabled
        return await self.webhook_repository.update(webhook)

    async def list_deliveries(
        self, owner_id: str, webhook_id: UUID, skip: int = 0, limit: int = 100
    ) -> List[WebhookDelivery]:
        webhook = await self.get_webhook(owner_id, webhook_id)
        return await self.delivery_repository.get_by_webhook(webhook.id, skip, limit)

    async def get_delivery(self, owner_id: str, delivery_id: UUID) -> WebhookDelivery:
        delivery = await self.delivery_repository.get_by_id(delivery_id)
        if delivery is None:
            raise EntityNotFoundError(f"Delivery {delivery_id} not found")
        await self.get_webhook(owner_id, delivery.webhook_id)
        return delivery
