"""Solana RPC access for settlement."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional, Type
from types import TracebackType

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.core import (
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)
from solana.rpc.models import TxOpts
from solders.pubkey import Pubkey

from ...domain.errors import ChainTransactionError
from ...domain.shared.chain_client_protocol import LatestBlockhash

logger = logging.getLogger(__name__)

_RPC_ERRORS = (
    SolanaRpcException,
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)


class SolanaChainClient:
    """ChainClientProtocol implementation over solana-py's AsyncClient."""

    def __init__(
        self,
        rpc_url: str,
        commitment: Commitment = Confirmed,
        timeout: float = 30.0,
    ) -> None:
        self._commitment = commitment
        self._client = AsyncClient(rpc_url, commitment=commitment, timeout=timeout)

    async def get_latest_blockhash(self) -> LatestBlockhash:
        try:
            resp = await self._client.get_latest_blockhash(self._commitment)
        except _RPC_ERRORS as e:
            raise ChainTransactionError(f"Could not fetch blockhash: {e}") from e
        return LatestBlockhash(
            blockhash=str(resp.value.blockhash),
            last_valid_block_height=resp.value.last_valid_block_height,
        )

    async def send_and_confirm(
        self, raw_transaction: bytes, last_valid_block_height: int
    ) -> str:
        try:
            sent = await self._client.send_raw_transaction(
                raw_transaction,
                opts=TxOpts(skip_preflight=False, preflight_commitment=self._commitment),
            )
            signature = sent.value
            confirmation = await self._client.confirm_transaction(
                signature,
                self._commitment,
                last_valid_block_height=last_valid_block_height,
            )
        except _RPC_ERRORS as e:
            raise ChainTransactionError(str(e)) from e

        statuses = confirmation.value
        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise ChainTransactionError(f"Transaction {signature} failed: {status.err}")
        logger.info("Confirmed transaction %s", signature)
        return str(signature)

    async def get_balance(self, owner: str) -> int:
        try:
            resp = await self._client.get_balance(Pubkey.from_string(owner))
        except _RPC_ERRORS as e:
            raise ChainTransactionError(f"Could not fetch balance: {e}") from e
        return resp.value

    async def get_token_balance(self, token_account: str) -> Decimal:
        try:
            resp = await self._client.get_token_account_balance(
                Pubkey.from_string(token_account)
            )
        except RPCException:
            # Account not created yet
            return Decimal(0)
        except SolanaRpcException as e:
            raise ChainTransactionError(f"Could not fetch token balance: {e}") from e
        return Decimal(resp.value.ui_amount_string)

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> "SolanaChainClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.close()
