"""Shared pytest fixtures for settlement pipeline tests."""

from __future__ import annotations

import os
from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from solders.keypair import Keypair

from cloakpay.application.webhooks import WebhookNotifier
from cloakpay.crypto.amount_encryption import AmountEncryptionEngine
from cloakpay.infrastructure.database import DatabaseClient
from cloakpay.infrastructure.http.http_client import AsyncHttpClient
from cloakpay.infrastructure.payments.payment_intent_repository_impl import (
    PaymentIntentRepositoryImpl,
)
from cloakpay.infrastructure.payments.payroll_batch_repository_impl import (
    PayrollBatchRepositoryImpl,
)
from cloakpay.infrastructure.scheduling import RetryScheduler
from cloakpay.infrastructure.solana.keypair import USDC_MINTS
from cloakpay.infrastructure.solana.transactions import TransferTransactionBuilder
from cloakpay.infrastructure.storage import RedisKeyValueStore
from cloakpay.infrastructure.webhooks.webhook_repository_impl import (
    WebhookDeliveryRepositoryImpl,
    WebhookRepositoryImpl,
)
from tests.fixtures import (
    MASTER_KEY,
    FakeChainClient,
    FakeDispatcher,
    InMemoryKeyValueStore,
    RecordingReceiver,
)


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def engine() -> AmountEncryptionEngine:
    return AmountEncryptionEngine(MASTER_KEY)


@pytest.fixture
def payer() -> Keypair:
    return Keypair()


@pytest.fixture
def builder(payer: Keypair) -> TransferTransactionBuilder:
    return TransferTransactionBuilder(payer, USDC_MINTS["devnet"])


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def payment_intent_repository(
    store: InMemoryKeyValueStore,
) -> PaymentIntentRepositoryImpl:
    return PaymentIntentRepositoryImpl(store)


@pytest.fixture
def payroll_batch_repository(store: InMemoryKeyValueStore) -> PayrollBatchRepositoryImpl:
    return PayrollBatchRepositoryImpl(store)


@pytest.fixture
def webhook_repository(store: InMemoryKeyValueStore) -> WebhookRepositoryImpl:
    return WebhookRepositoryImpl(store)


@pytest.fixture
def delivery_repository(store: InMemoryKeyValueStore) -> WebhookDeliveryRepositoryImpl:
    return WebhookDeliveryRepositoryImpl(store)


@pytest.fixture
def receiver() -> RecordingReceiver:
    return RecordingReceiver()


@pytest.fixture
def notifier_factory(
    webhook_repository: WebhookRepositoryImpl,
    delivery_repository: WebhookDeliveryRepositoryImpl,
) -> Callable[..., WebhookNotifier]:
    def factory(handler: Callable[[httpx.Request], httpx.Response], **kwargs):
        http = AsyncHttpClient(transport=httpx.MockTransport(handler))
        kwargs.setdefault("retry_delays", (0, 0, 0, 0, 0))
        return WebhookNotifier(
            webhook_repository,
            delivery_repository,
            http,
            scheduler=RetryScheduler(),
            **kwargs,
        )

    return factory


@pytest_asyncio.fixture
async def notifier(
    notifier_factory: Callable[..., WebhookNotifier], receiver: RecordingReceiver
) -> AsyncGenerator[WebhookNotifier, None]:
    notifier = notifier_factory(receiver)
    yield notifier
    await notifier.aclose()


class TestDatabaseSettings:
    """Test settings for Redis connection."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url


@pytest_asyncio.fixture
async def redis_db_client() -> AsyncGenerator[DatabaseClient, None]:
    """Create a Redis database client for testing.

    Uses database 15 by default, or TEST_REDIS_URL if set. Tests depending on
    it are skipped when Redis is unavailable.
    """
    test_redis_url = os.getenv("TEST_REDIS_URL", "redis://localhost:6379/15")
    client = DatabaseClient(TestDatabaseSettings(database_url=test_redis_url))
    client.initialize_database()

    try:
        await client.ping()
    except Exception as e:
        await client.close()
        pytest.skip(f"Redis not available: {e}")

    yield client

    async with client.get_connection() as conn:
        await conn.flushdb()
    await client.close()


@pytest_asyncio.fixture
async def redis_store(redis_db_client: DatabaseClient) -> RedisKeyValueStore:
    """Create a Redis-backed key-value store for testing."""
    return RedisKeyValueStore(redis_db_client)
