"""Client for the remote MPC cluster.

Queueing never fails from the caller's point of view: transport errors and
non-2xx answers are logged and the computation still reports ``queued``. A
lost dispatch surfaces later through the reconciliation sweep.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Optional, Type, Union
from types import TracebackType

import httpx
from prometheus_client import Counter
from pydantic import ValidationError

from ...application.mpc_dtos import (
    PAYMENT_SETTLEMENT,
    PAYROLL_SETTLEMENT,
    ComputationResult,
    PaymentSettlementJob,
    PayrollSettlementJob,
)
from ...domain.errors import ComputationLookupError
from ..http.http_client import AsyncHttpClient

logger = logging.getLogger(__name__)

MPC_DISPATCH_TOTAL = Counter(
    "cloakpay_mpc_dispatch_total",
    "Settlement jobs sent to the MPC cluster",
    ["computation_type", "outcome"],
)

_ID_PREFIXES = {PAYMENT_SETTLEMENT: "pay", PAYROLL_SETTLEMENT: "payroll"}

SettlementJob = Union[PaymentSettlementJob, PayrollSettlementJob]


class ComputationClient:
    """Dispatches settlement jobs and polls computation status."""

    def __init__(
        self,
        cluster_url: str,
        program_id: str,
        callback_url: str,
        callback_secret: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = AsyncHttpClient(cluster_url, timeout=timeout, transport=transport)
        self._program_id = program_id
        self._callback_url = callback_url
        self._callback_secret = callback_secret
        self._background: set[asyncio.Task[ComputationResult]] = set()

    def new_computation_id(self, computation_type: str) -> str:
        prefix = _ID_PREFIXES.get(computation_type)
        if prefix is None:
            raise ValueError(f"Unknown computation type: {computation_type}")
        return f"{prefix}_{secrets.token_hex(16)}"

    async def queue_settlement(
        self, job: SettlementJob, computation_id: Optional[str] = None
    ) -> ComputationResult:
        computation_type = job.computation_type
        computation_id = computation_id or self.new_computation_id(computation_type)
        body = {
            "computation_id": computation_id,
            "computation_type": computation_type,
            "params": job.params(),
        }
        headers = {
            "X-Program-ID": self._program_id,
            "X-Callback-URL": self._callback_url,
            "X-Callback-Secret": self._callback_secret,
        }
        try:
            await self._http.post("/api/v1/computations", json=body, headers=headers)
            MPC_DISPATCH_TOTAL.labels(computation_type, "accepted").inc()
            logger.info("Queued %s computation %s", computation_type, computation_id)
        except httpx.HTTPStatusError as e:
            MPC_DISPATCH_TOTAL.labels(computation_type, "rejected").inc()
            logger.error(
                "MPC cluster rejected computation %s: HTTP %s",
                computation_id,
                e.response.status_code,
            )
        except httpx.HTTPError as e:
            MPC_DISPATCH_TOTAL.labels(computation_type, "unreachable").inc()
            logger.error(
                "MPC cluster unreachable for computation %s: %s", computation_id, e
            )
        return ComputationResult(computation_id=computation_id, status="queued")

    async def queue_payment_settlement(
        self, job: PaymentSettlementJob, computation_id: Optional[str] = None
    ) -> ComputationResult:
        return await self.queue_settlement(job, computation_id)

    async def queue_payroll_settlement(
        self, job: PayrollSettlementJob, computation_id: Optional[str] = None
    ) -> ComputationResult:
        return await self.queue_settlement(job, computation_id)

    def submit(self, job: SettlementJob, computation_id: str) -> None:
        task = asyncio.create_task(self.queue_settlement(job, computation_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def join(self) -> None:
        """Wait for every background dispatch started with ``submit``."""
        while self._background:
            await asyncio.gather(*list(self._background))

    async def lookup_computation(
        self, computation_id: str
    ) -> Optional[ComputationResult]:
        """Status of a computation; None only when the cluster answers 404.

        Raises:
            ComputationLookupError: cluster unreachable, non-404 error or
                unparseable answer
        """
        try:
            resp = await self._http.get(f"/api/v1/computations/{computation_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise ComputationLookupError(
                f"Status lookup for {computation_id} failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ComputationLookupError(
                f"Status lookup for {computation_id} failed: {e}"
            ) from e
        try:
            return ComputationResult.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise ComputationLookupError(
                f"Malformed status for {computation_id}"
            ) from e

    async def get_computation_status(
        self, computation_id: str
    ) -> Optional[ComputationResult]:
        try:
            return await self.lookup_computation(computation_id)
        except ComputationLookupError as e:
            logger.error("%s", e)
            return None

    async def aclose(self) -> None:
        await self.join()
        await self._http.aclose()

    async def __aenter__(self) -> "ComputationClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()
