"""Protocol interface for MPC computation dispatchers."""

from __future__ import annotations

from typing import Optional, Protocol, TYPE_CHECKING, Union

if TYPE_CHECKING:
    from ...application.mpc_dtos import (
        ComputationResult,
        PaymentSettlementJob,
        PayrollSettlementJob,
    )


class ComputationDispatcherProtocol(Protocol):
    """Protocol for handing settlement jobs to the remote MPC cluster.

    Queueing is fire-and-forget: the remote outcome always arrives through the
    callback endpoint, never as the return value of these methods.
    """

    def new_computation_id(self, computation_type: str) -> str:
        """Generate a unique id so callers can persist it before dispatch."""
        ...

    async def queue_settlement(
        self,
        job: Union["PaymentSettlementJob", "PayrollSettlementJob"],
        computation_id: Optional[str] = None,
    ) -> "ComputationResult":
        """Submit a job and return a ``queued`` result, even on transport failure."""
        ...

    def submit(
        self,
        job: Union["PaymentSettlementJob", "PayrollSettlementJob"],
        computation_id: str,
    ) -> None:
        """Dispatch ``job`` in a background task without awaiting the cluster."""
        ...

    async def lookup_computation(
        self, computation_id: str
    ) -> Optional["ComputationResult"]:
        """Current status, or None when the cluster does not know the id.

        Raises ComputationLookupError when the cluster cannot answer.
        """
        ...

    async def get_computation_status(
        self, computation_id: str
    ) -> Optional["ComputationResult"]:
        """Current status, or None when unknown (404) or unreachable."""
        ...
