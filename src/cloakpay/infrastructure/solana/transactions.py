"""Transfer transaction construction for the funding keypair.

Every transaction starts with a compute-unit price (priority fee) and a
compute-unit limit sized to the number of transfers, followed by one transfer
instruction per recipient.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Sequence

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.models import TransferParams as TokenTransferParams
from spl.token.instructions import get_associated_token_address
from spl.token.instructions import transfer as token_transfer

from ...domain.payments.entities import Currency

LAMPORTS_PER_SOL = 1_000_000_000
USDC_DECIMALS = 6
COMPUTE_UNITS_BASE = 200_000
COMPUTE_UNITS_PER_TRANSFER = 50_000


@dataclass(frozen=True)
class Transfer:
    recipient: str
    amount: Decimal  # in whole currency units


def to_lamports(amount: Decimal) -> int:
    return int((Decimal(amount) * LAMPORTS_PER_SOL).to_integral_value(ROUND_DOWN))


def to_token_base_units(amount: Decimal, decimals: int = USDC_DECIMALS) -> int:
    return int((Decimal(amount) * 10**decimals).to_integral_value(ROUND_DOWN))


def compute_unit_limit(transfer_count: int) -> int:
    return COMPUTE_UNITS_BASE + COMPUTE_UNITS_PER_TRANSFER * transfer_count


class TransferTransactionBuilder:
    """Builds signed transfer transactions paid for by one funding keypair."""

    def __init__(
        self,
        payer: Keypair,
        usdc_mint: str,
        priority_fee_micro_lamports: int = 1000,
    ) -> None:
        self.payer = payer
        self.usdc_mint = Pubkey.from_string(usdc_mint)
        self.priority_fee = priority_fee_micro_lamports

    @property
    def payer_address(self) -> str:
        return str(self.payer.pubkey())

    def payer_token_account(self) -> Pubkey:
        return get_associated_token_address(self.payer.pubkey(), self.usdc_mint)

    def instructions(
        self, transfers: Sequence[Transfer], currency: Currency
    ) -> list[Instruction]:
        instructions = [
            set_compute_unit_price(self.priority_fee),
            set_compute_unit_limit(compute_unit_limit(len(transfers))),
        ]
        payer = self.payer.pubkey()
        if currency == Currency.SOL:
            for item in transfers:
                instructions.append(
                    transfer(
                        TransferParams(
                            from_pubkey=payer,
                            to_pubkey=Pubkey.from_string(item.recipient),
                            lamports=to_lamports(item.amount),
                        )
                    )
                )
            return instructions

        source = self.payer_token_account()
        for item in transfers:
            destination = get_associated_token_address(
                Pubkey.from_string(item.recipient), self.usdc_mint
            )
            instructions.append(
                token_transfer(
                    TokenTransferParams(
                        program_id=TOKEN_PROGRAM_ID,
                        source=source,
                        dest=destination,
                        owner=payer,
                        amount=to_token_base_units(item.amount),
                    )
                )
            )
        return instructions

    def build(
        self, transfers: Sequence[Transfer], currency: Currency, blockhash: str
    ) -> VersionedTransaction:
        message = MessageV0.try_compile(
            self.payer.pubkey(),
            self.instructions(transfers, currency),
            [],
            Hash.from_string(blockhash),
        )
        return VersionedTransaction(message, [self.payer])
