"""Webhook repository interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from .entities import DeliveryStatus, Webhook, WebhookDelivery


class WebhookRepository(ABC):
    @abstractmethod
    async def create(self, webhook: Webhook) -> Webhook:
        pass

    @abstractmethod
    async def get_by_id(self, webhook_id: UUID) -> Optional[Webhook]:
        pass

    @abstractmethod
    async def get_by_owner(self, owner_id: str) -> List[Webhook]:
        pass

    @abstractmethod
    async def update(self, webhook: Webhook) -> Webhook:
        pass


class WebhookDeliveryRepository(ABC):
    @abstractmethod
    async def create(self, delivery: WebhookDelivery) -> WebhookDelivery:
        pass

    @abstractmethod
    async def get_by_id(self, delivery_id: UUID) -> Optional[WebhookDelivery]:
        pass

    @abstractmethod
    async def get_by_webhook(
        self, webhook_id: UUID, skip: int = 0, limit: int = 100
    ) -> List[WebhookDelivery]:
        pass

    @abstractmethod
    async def get_by_status(
        self, status: DeliveryStatus, skip: int = 0, limit: int = 1000
    ) -> List[WebhookDelivery]:
        pass

    @abstractmethod
    async def update(self, delivery: WebhookDelivery) -> WebhookDelivery:
        pass
