"""Protocol interface for blockchain client implementations.

The settlement executor builds and signs transactions itself; a chain client
only fetches blockhashes, submits serialized transactions and reads balances.
This keeps the executor testable with an in-process fake.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol


@dataclass(frozen=True)
class LatestBlockhash:
    """A recent blockhash and the last block height at which it is valid."""

    blockhash: str
    last_valid_block_height: int


class ChainClientProtocol(Protocol):
    """Protocol defining the chain operations used during settlement."""

    async def get_latest_blockhash(self) -> LatestBlockhash:
        """Fetch a fresh blockhash at the client's commitment level."""
        ...

    async def send_and_confirm(
        self, raw_transaction: bytes, last_valid_block_height: int
    ) -> str:
        """Submit a signed transaction and wait for confirmation.

        Returns:
            The transaction signature (base58)

        Raises:
            ChainTransactionError: if the transaction is rejected, fails on
                chain, or its blockhash expires before confirmation
        """
        ...

    async def get_balance(self, owner: str) -> int:
        """Native balance of ``owner`` in lamports."""
        ...

    async def get_token_balance(self, token_account: str) -> Decimal:
        """UI balance of an SPL token account (0 when the account does not exist)."""
        ...

    async def close(self) -> None:
        ...
