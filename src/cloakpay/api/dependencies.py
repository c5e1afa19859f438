"""Dependency container and FastAPI dependencies.

Everything with process lifetime (stores, HTTP clients, the retry scheduler)
is built once into a Container at startup and handed to routes via Depends.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends, Header, Request

from ..application.callbacks import CallbackReceiver
from ..application.payment_intents import PaymentIntentService
from ..application.payroll import PayrollService
from ..application.reconciliation import ReconciliationService
from ..application.settlement import SettlementExecutor
from ..application.webhook_subscriptions import WebhookService
from ..application.webhooks import DEFAULT_RETRY_DELAYS, WebhookNotifier
from ..crypto.amount_encryption import AmountEncryptionEngine
from ..domain.shared.chain_client_protocol import ChainClientProtocol
from ..env import Settings
from ..infrastructure.database import DatabaseClient
from ..infrastructure.expiring_store import ExpiringStore, KeyValueExpiringStore
from ..infrastructure.http.http_client import AsyncHttpClient
from ..infrastructure.mpc.computation_client import ComputationClient
from ..infrastructure.payments.payment_intent_repository_impl import (
    PaymentIntentRepositoryImpl,
)
from ..infrastructure.payments.payroll_batch_repository_impl import (
    PayrollBatchRepositoryImpl,
)
from ..infrastructure.scheduling import RetryScheduler
from ..infrastructure.solana.chain_client import SolanaChainClient
from ..infrastructure.solana.transactions import TransferTransactionBuilder
from ..infrastructure.storage import KeyValueStore, RedisKeyValueStore
from ..infrastructure.webhooks.webhook_repository_impl import (
    WebhookDeliveryRepositoryImpl,
    WebhookRepositoryImpl,
)


@dataclass
class Container:
    app_name: str
    app_version: str
    store: KeyValueStore
    engine: AmountEncryptionEngine
    dispatcher: ComputationClient
    chain: ChainClientProtocol
    notifier: WebhookNotifier
    executor: SettlementExecutor
    callbacks: CallbackReceiver
    reconciliation: ReconciliationService
    payment_intent_service: PaymentIntentService
    payroll_service: PayrollService
    webhook_service: WebhookService
    reconciliation_interval_seconds: float = 0
    db_client: Optional[DatabaseClient] = None

    async def startup(self) -> None:
        await self.notifier.recover_pending()
        if self.reconciliation_interval_seconds > 0:
            self.reconciliation.start(self.reconciliation_interval_seconds)

    async def shutdown(self) -> None:
        await self.reconciliation.stop()
        await self.dispatcher.aclose()
        await self.notifier.aclose()
        await self.chain.close()
        if self.db_client is not None:
            await self.db_client.close()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Container":
        db_client = DatabaseClient(settings)
        db_client.initialize_database()
        store = RedisKeyValueStore(db_client)
        container = build_container(
            store=store,
            engine=AmountEncryptionEngine(settings.encryption_master_key),
            dispatcher=ComputationClient(
                settings.mpc_cluster_url,
                program_id=settings.mpc_program_id,
                callback_url=settings.callback_url,
                callback_secret=settings.mpc_callback_secret,
                timeout=settings.mpc_request_timeout_seconds,
            ),
            chain=SolanaChainClient(settings.solana_rpc_url),
            builder=TransferTransactionBuilder(
                settings.funding_keypair,
                settings.usdc_mint,
                priority_fee_micro_lamports=settings.solana_priority_fee,
            ),
            callback_secret=settings.mpc_callback_secret,
            webhook_timeout=settings.webhook_timeout_seconds,
            max_payments_per_tx=settings.settlement_max_per_tx,
            settlement_concurrency=settings.settlement_concurrency,
            computation_timeout_seconds=settings.computation_timeout_seconds,
            app_name=settings.app_name,
            app_version=settings.app_version,
        )
        container.db_client = db_client
        container.reconciliation_interval_seconds = (
            settings.reconciliation_interval_seconds
        )
        return container


def build_container(
    *,
    store: KeyValueStore,
    engine: AmountEncryptionEngine,
    dispatcher: ComputationClient,
    chain: ChainClientProtocol,
    builder: TransferTransactionBuilder,
    callback_secret: str,
    leases: Optional[ExpiringStore] = None,
    webhook_transport: Optional[httpx.AsyncBaseTransport] = None,
    webhook_timeout: float = 30.0,
    webhook_retry_delays: tuple[float, ...] = DEFAULT_RETRY_DELAYS,
    max_payments_per_tx: int = 10,
    settlement_concurrency: int = 2,
    settlement_retry_delay: float = 2.0,
    chunk_delay: float = 0.5,
    computation_timeout_seconds: float = 900,
    app_name: str = "CloakPay",
    app_version: str = "1.0.0",
) -> Container:
    """Wire repositories and services over the given infrastructure."""
    payment_intents = PaymentIntentRepositoryImpl(store)
    payroll_batches = PayrollBatchRepositoryImpl(store)
    webhooks = WebhookRepositoryImpl(store)
    deliveries = WebhookDeliveryRepositoryImpl(store)

    notifier = WebhookNotifier(
        webhooks,
        deliveries,
        AsyncHttpClient(timeout=webhook_timeout, transport=webhook_transport),
        scheduler=RetryScheduler(),
        retry_delays=webhook_retry_delays,
        timeout=webhook_timeout,
    )
    executor = SettlementExecutor(
        chain,
        builder,
        engine,
        payment_intents,
        payroll_batches,
        notifier=notifier,
        max_payments_per_tx=max_payments_per_tx,
        retry_delay=settlement_retry_delay,
        chunk_delay=chunk_delay,
        concurrency=settlement_concurrency,
    )
    callbacks = CallbackReceiver(
        callback_secret,
        payment_intents,
        payroll_batches,
        notifier,
        leases or KeyValueExpiringStore(store),
    )
    reconciliation = ReconciliationService(
        payment_intents,
        payroll_batches,
        dispatcher,
        notifier,
        timeout_seconds=computation_timeout_seconds,
    )
    return Container(
        app_name=app_name,
        app_version=app_version,
        store=store,
        engine=engine,
        dispatcher=dispatcher,
        chain=chain,
        notifier=notifier,
        executor=executor,
        callbacks=callbacks,
        reconciliation=reconciliation,
        payment_intent_service=PaymentIntentService(payment_intents, engine, dispatcher),
        payroll_service=PayrollService(payroll_batches, engine, dispatcher),
        webhook_service=WebhookService(webhooks, deliveries),
    )


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_owner_id(x_owner_id: str = Header(..., alias="X-Owner-ID", min_length=1)) -> str:
    """Owner (merchant or company) on whose behalf the request is made."""
    return x_owner_id


def get_payment_intent_service(
    container: Container = Depends(get_container),
) -> PaymentIntentService:
    return container.payment_intent_service


def get_payroll_service(
    container: Container = Depends(get_container),
) -> PayrollService:
    return container.payroll_service


def get_settlement_executor(
    container: Container = Depends(get_container),
) -> SettlementExecutor:
    return container.executor


def get_webhook_service(
    container: Container = Depends(get_container),
) -> WebhookService:
    return container.webhook_service


def get_webhook_notifier(
    container: Container = Depends(get_container),
) -> WebhookNotifier:
    return container.notifier


def get_callback_receiver(
    container: Container = Depends(get_container),
) -> CallbackReceiver:
    return container.callbacks
