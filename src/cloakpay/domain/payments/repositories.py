"""Payment repository interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from .entities import (
    PaymentIntent,
    PaymentIntentStatus,
    PayrollBatch,
    PayrollStatus,
)


class PaymentIntentRepository(ABC):
    """Abstract repository for payment intents."""

    @abstractmethod
    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        pass

    @abstractmethod
    async def get_by_id(self, intent_id: UUID) -> Optional[PaymentIntent]:
        pass

    @abstractmethod
    async def get_by_computation_id(
        self, computation_id: str
    ) -> Optional[PaymentIntent]:
        pass

    @abstractmethod
    async def get_by_merchant(
        self,
        merchant_id: str,
        status: Optional[PaymentIntentStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[PaymentIntent]:
        pass

    @abstractmethod
    async def get_by_status(
        self, status: PaymentIntentStatus, skip: int = 0, limit: int = 100
    ) -> List[PaymentIntent]:
        pass

    @abstractmethod
    async def save_transition(
        self, intent: PaymentIntent, expected_status: PaymentIntentStatus
    ) -> bool:
        """Persist ``intent`` only if the stored status is still ``expected_status``.

        Returns False when another writer moved the intent first. Binding a
        computation id that already belongs to another entity raises
        InvalidStateError.
        """

    @abstractmethod
    async def update(self, intent: PaymentIntent) -> PaymentIntent:
        """Persist fields that do not change status (e.g. description)."""


class PayrollBatchRepository(ABC):
    """Abstract repository for payroll batches and their payments."""

    @abstractmethod
    async def create(self, batch: PayrollBatch) -> PayrollBatch:
        pass

    @abstractmethod
    async def get_by_id(self, batch_id: UUID) -> Optional[PayrollBatch]:
        pass

    @abstractmethod
    async def get_by_computation_id(
        self, computation_id: str
    ) -> Optional[PayrollBatch]:
        pass

    @abstractmethod
    async def get_by_company(
        self,
        company_id: str,
        status: Optional[PayrollStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[PayrollBatch]:
        pass

    @abstractmethod
    async def get_by_status(
        self, status: PayrollStatus, skip: int = 0, limit: int = 100
    ) -> List[PayrollBatch]:
        pass

    @abstractmethod
    async def save_transition(
        self, batch: PayrollBatch, expected_status: PayrollStatus
    ) -> bool:
        pass
