"""Webhook and delivery repository implementations over a storage abstraction."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from ...domain.webhooks.entities import DeliveryStatus, Webhook, WebhookDelivery
from ...domain.webhooks.repositories import (
    WebhookDeliveryRepository,
    WebhookRepository,
)
from ..storage import KeyValueStore


class WebhookRepositoryImpl(WebhookRepository):
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def create(self, webhook: Webhook) -> Webhook:
        await self.store.set(f"webhook:{webhook.id}", webhook.model_dump_json())
        await self.store.zadd(
            f"webhooks:by_owner:{webhook.owner_id}",
            {str(webhook.id): webhook.created_at.timestamp()},
        )
        return webhook

    async def get_by_id(self, webhook_id: UUID) -> Optional[Webhook]:
        data = await self.store.get(f"webhook:{webhook_id}")
        if not data:
            return None
        return Webhook.model_validate_json(data)

    async def get_by_owner(self, owner_id: str) -> List[Webhook]:
        ids: list[str] = await self.store.zrevrange(
            f"webhooks:by_owner:{owner_id}", 0, -1
        )
        webhooks: List[Webhook] = []
        for wid in ids:
            data = await self.store.get(f"webhook:{wid}")
            if data:
                webhooks.append(Webhook.model_validate_json(data))
        return webhooks

    async def update(self, webhook: Webhook) -> Webhook:
        await self.store.set(f"webhook:{webhook.id}", webhook.model_dump_json())
        return webhook


class WebhookDeliveryRepositoryImpl(WebhookDeliveryRepository):
    """Deliveries are never deleted; status indexes follow each update."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def create(self, delivery: WebhookDelivery) -> WebhookDelivery:
        await self.store.set(
            f"webhook_delivery:{delivery.id}", delivery.model_dump_json()
        )
        created_ts = delivery.created_at.timestamp()
        await self.store.zadd(
            f"webhook_deliveries:by_webhook:{delivery.webhook_id}",
            {str(delivery.id): created_ts},
        )
        await self.store.zadd(
            f"webhook_deliveries:by_status:{delivery.status.value}",
            {str(delivery.id): created_ts},
        )
        return delivery

    async def get_by_id(self, delivery_id: UUID) -> Optional[WebhookDelivery]:
        data = await self.store.get(f"webhook_delivery:{delivery_id}")
        if not data:
            return None
        return WebhookDelivery.model_validate_json(data)

    async def _load_many(self, ids: list[str]) -> List[WebhookDelivery]:
        deliveries: List[WebhookDelivery] = []
        for did in ids:
            data = await self.store.get(f"webhook_delivery:{did}")
            if data:
                deliveries.append(WebhookDelivery.model_validate_json(data))
        return deliveries

    async def get_by_webhook(
        self, webhook_id: UUID, skip: int = 0, limit: int = 100
    ) -> List[WebhookDelivery]:
        ids: list[str] = await self.store.zrevrange(
            f"webhook_deliveries:by_webhook:{webhook_id}", skip, skip + limit - 1
        )
        return await self._load_many(ids)

    async def get_by_status(
        self, status: DeliveryStatus, skip: int = 0, limit: int = 1000
    ) -> List[WebhookDelivery]:
        ids: list[str] = await self.store.zrevrange(
            f"webhook_deliveries:by_status:{status.value}", skip, skip + limit - 1
        )
        return await self._load_many(ids)

    async def update(self, delivery: WebhookDelivery) -> WebhookDelivery:
        key = f"webhook_delivery:{delivery.id}"
        existing_raw = await self.store.get(key)
        old_status: Optional[DeliveryStatus] = None
        if existing_raw:
            old_status = WebhookDelivery.model_validate_json(existing_raw).status

        await self.store.set(key, delivery.model_dump_json())

        if old_status and old_status != delivery.status:
            await self.store.zrem(
                f"webhook_deliveries:by_status:{old_status.value}", str(delivery.id)
            )
            await self.store.zadd(
                f"webhook_deliveries:by_status:{delivery.status.value}",
                {str(delivery.id): delivery.created_at.timestamp()},
            )
        return delivery
