"""Webhook notifier: signed, retried, at-least-once event delivery.

Each (webhook, event) pair gets one WebhookDelivery record that is mutated in
place across attempts. Attempt ``n`` (1-based) runs ``retry_delays[n - 1]``
seconds after attempt ``n - 1`` failed; after ``len(retry_delays)`` attempts
the delivery is FAILED and only a manual retry revives it.

Receivers must be idempotent on the envelope ``id``: a crash between a 2xx
response and persisting DELIVERED leads to a second delivery.
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence, Union
from uuid import UUID

import httpx
from prometheus_client import Counter, Histogram

from ..crypto.signatures import json_to_bytes, sign_webhook_payload
from ..domain.webhooks.entities import (
    DeliveryStatus,
    EventType,
    WebhookDelivery,
)
from ..domain.webhooks.repositories import (
    WebhookDeliveryRepository,
    WebhookRepository,
)
from ..infrastructure.http.http_client import AsyncHttpClient
from ..infrastructure.scheduling import RetryScheduler

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAYS: tuple[float, ...] = (0, 5, 30, 120, 600)
DEFAULT_USER_AGENT = "CloakPay-Webhook/1.0"

WEBHOOK_ATTEMPTS = Counter(
    "cloakpay_webhook_attempts_total",
    "Webhook delivery attempts",
    ["outcome"],
)
WEBHOOK_ATTEMPT_SECONDS = Histogram(
    "cloakpay_webhook_attempt_seconds",
    "Webhook delivery attempt latency",
)


def new_event_id() -> str:
    return f"evt_{secrets.token_hex(16)}"


class WebhookNotifier:
    """Fans events out to subscribed webhooks and drives their retries."""

    def __init__(
        self,
        webhook_repository: WebhookRepository,
        delivery_repository: WebhookDeliveryRepository,
        http_client: AsyncHttpClient,
        scheduler: Optional[RetryScheduler] = None,
        retry_delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not retry_delays:
            raise ValueError("retry_delays must not be empty")
        self.webhook_repository = webhook_repository
        self.delivery_repository = delivery_repository
        self._http = http_client
        self.scheduler = scheduler or RetryScheduler()
        self.retry_delays = tuple(retry_delays)
        self._timeout = timeout
        self._user_agent = user_agent
        self._clock = clock
        self._in_flight: set[UUID] = set()

    @property
    def max_attempts(self) -> int:
        return len(self.retry_delays)

    async def broadcast(
        self,
        owner_id: str,
        event_type: Union[EventType, str],
        data: dict[str, Any],
    ) -> list[WebhookDelivery]:
        """Create one delivery per subscribed webhook and start delivering each."""
        event_type = EventType(event_type)
        webhooks = [
            w
            for w in await self.webhook_repository.get_by_owner(owner_id)
            if w.subscribes_to(event_type.value)
        ]
        if not webhooks:
            logger.debug("No webhooks for %s subscribed to %s", owner_id, event_type.value)
            return []

        envelope = {
            "id": new_event_id(),
            "type": event_type.value,
            "created": int(self._clock() * 1000),
            "data": data,
        }
        deliveries: list[WebhookDelivery] = []
        for webhook in webhooks:
            delivery = WebhookDelivery(
                webhook_id=webhook.id,
                event_type=event_type,
                payload=envelope,
                next_attempt_at=datetime.now(timezone.utc),
            )
            await self.delivery_repository.create(delivery)
            self._schedule(delivery.id, 1, self.retry_delays[0])
            deliveries.append(delivery)
        logger.info(
            "Queued %s event %s to %d webhook(s)",
            event_type.value,
            envelope["id"],
            len(deliveries),
        )
        return deliveries

    def _schedule(self, delivery_id: UUID, attempt: int, delay: float) -> None:
        self.scheduler.schedule(
            str(delivery_id), delay, lambda: self.deliver(delivery_id, attempt)
        )

    async def deliver(
        self, delivery_id: UUID, attempt: int = 1
    ) -> Optional[WebhookDelivery]:
        """Run one delivery attempt; schedules the next one on failure."""
        if delivery_id in self._in_flight:
            logger.debug("Delivery %s already in flight", delivery_id)
            return None
        self._in_flight.add(delivery_id)
        try:
            return await self._attempt(delivery_id, attempt)
        finally:
            self._in_flight.discard(delivery_id)

    async def _attempt(
        self, delivery_id: UUID, attempt: int
    ) -> Optional[WebhookDelivery]:
        delivery = await self.delivery_repository.get_by_id(delivery_id)
        if delivery is None:
            logger.warning("Delivery %s not found", delivery_id)
            return None
        if delivery.status != DeliveryStatus.PENDING:
            return delivery

        webhook = await self.webhook_repository.get_by_id(delivery.webhook_id)
        if webhook is None or not webhook.enabled:
            delivery.record_failure(attempt, None, "Webhook disabled or removed", None)
            await self.delivery_repository.update(delivery)
            return delivery

        body = json_to_bytes(delivery.payload)
        timestamp = str(int(self._clock() * 1000))
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            "X-Webhook-ID": str(delivery.payload.get("id", delivery.id)),
            "X-Webhook-Timestamp": timestamp,
            "X-Webhook-Signature": sign_webhook_payload(webhook.secret, timestamp, body),
        }

        response_code: Optional[int] = None
        error: Optional[str] = None
        started = time.perf_counter()
        try:
            resp = await self._http.post_bytes(
                webhook.url, body, headers, timeout=self._timeout
            )
            response_code = resp.status_code
        except httpx.HTTPStatusError as e:
            response_code = e.response.status_code
            error = f"HTTP {response_code}"
        except httpx.TimeoutException:
            error = "Request timeout"
        except httpx.HTTPError as e:
            error = str(e) or e.__class__.__name__
        finally:
            WEBHOOK_ATTEMPT_SECONDS.observe(time.perf_counter() - started)

        if error is None and response_code is not None:
            delivery.mark_delivered(attempt, response_code)
            await self.delivery_repository.update(delivery)
            WEBHOOK_ATTEMPTS.labels("delivered").inc()
            logger.info("Delivered %s on attempt %d", delivery.id, attempt)
            return delivery

        if attempt >= self.max_attempts:
            delivery.record_failure(attempt, response_code, error or "Failed", None)
            await self.delivery_repository.update(delivery)
            WEBHOOK_ATTEMPTS.labels("exhausted").inc()
            logger.warning(
                "Delivery %s failed after %d attempts: %s", delivery.id, attempt, error
            )
            return delivery

        delay = self.retry_delays[attempt]
        next_at = datetime.now(timezone.utc) + timedelta(seconds=delay)
        delivery.record_failure(attempt, response_code, error or "Failed", next_at)
        await self.delivery_repository.update(delivery)
        WEBHOOK_ATTEMPTS.labels("retrying").inc()
        logger.info(
            "Delivery %s attempt %d failed (%s); retrying in %ss",
            delivery.id,
            attempt,
            error,
            delay,
        )
        self._schedule(delivery.id, attempt + 1, delay)
        return delivery

    async def retry_delivery(self, delivery_id: UUID) -> bool:
        """Manually restart a delivery with a fresh attempt budget."""
        delivery = await self.delivery_repository.get_by_id(delivery_id)
        if delivery is None:
            return False
        delivery.reset_for_retry()
        await self.delivery_repository.update(delivery)
        self._schedule(delivery.id, 1, 0)
        return True

    async def recover_pending(self) -> int:
        """Re-schedule PENDING deliveries, e.g. after a restart."""
        pending = await self.delivery_repository.get_by_status(DeliveryStatus.PENDING)
        now = datetime.now(timezone.utc)
        recovered = 0
        for delivery in pending:
            if self.scheduler.is_scheduled(str(delivery.id)):
                continue
            if delivery.id in self._in_flight:
                continue
            delay = 0.0
            if delivery.next_attempt_at is not None:
                delay = max(0.0, (delivery.next_attempt_at - now).total_seconds())
            self._schedule(delivery.id, delivery.attempts + 1, delay)
            recovered += 1
        if recovered:
            logger.info("Recovered %d pending webhook deliveries", recovered)
        return recovered

    async def get_delivery_stats(self, owner_id: str) -> dict[str, int]:
        stats = {"total": 0, "delivered": 0, "failed": 0, "pending": 0}
        for webhook in await self.webhook_repository.get_by_owner(owner_id):
            for delivery in await self.delivery_repository.get_by_webhook(
                webhook.id, 0, 10_000
            ):
                stats["total"] += 1
                stats[delivery.status.value.lower()] += 1
        return stats

    async def aclose(self) -> None:
        await self.scheduler.shutdown()
        await self._http.aclose()
