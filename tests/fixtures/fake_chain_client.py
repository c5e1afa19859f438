"""In-process chain client that records submitted transactions."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from cloakpay.domain.errors import ChainTransactionError
from cloakpay.domain.shared.chain_client_protocol import LatestBlockhash


class FakeChainClient:
    """Implements ChainClientProtocol without a network.

    ``fail_on`` holds 1-based submission numbers that are rejected.
    """

    def __init__(self, fail_on: Optional[set[int]] = None) -> None:
        self.fail_on = set(fail_on or ())
        self.sent: list[VersionedTransaction] = []
        self.submissions = 0
        self.balance_lamports = 0
        self.token_balance = Decimal(0)
        self.closed = False

    async def get_latest_blockhash(self) -> LatestBlockhash:
        return LatestBlockhash(str(Hash.new_unique()), 1_000)

    async def send_and_confirm(
        self, raw_transaction: bytes, last_valid_block_height: int
    ) -> str:
        self.submissions += 1
        if self.submissions in self.fail_on:
            raise ChainTransactionError(
                f"Transaction {self.submissions} rejected by simulation"
            )
        transaction = VersionedTransaction.from_bytes(raw_transaction)
        self.sent.append(transaction)
        return str(transaction.signatures[0])

    def instruction_counts(self) -> list[int]:
        return [len(tx.message.instructions) for tx in self.sent]

    async def get_balance(self, owner: str) -> int:
        return self.balance_lamports

    async def get_token_balance(self, token_account: str) -> Decimal:
        return self.token_balance

    async def close(self) -> None:
        self.closed = True


def new_address() -> str:
    """A fresh valid Solana address."""
    return str(Keypair().pubkey())
