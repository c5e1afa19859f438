from __future__ import annotations

import json
from pathlib import Path

from solders.keypair import Keypair

USDC_MINTS = {
    "mainnet-beta": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    "devnet": "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU",
}


def load_keypair(value: str) -> Keypair:
    """Load a keypair from a JSON byte array, a base58 secret key, or a file path.

    The file form follows the ``solana-keygen`` layout (a JSON array of 64 ints).
    """
    value = value.strip()
    if not value:
        raise ValueError("Keypair cannot be empty")
    if value.startswith("["):
        return Keypair.from_bytes(bytes(json.loads(value)))
    path = Path(value).expanduser()
    if path.is_file():
        return load_keypair(path.read_text())
    return Keypair.from_base58_string(value)


def usdc_mint_for_network(network: str) -> str:
    try:
        return USDC_MINTS[network]
    except KeyError:
        raise ValueError(
            f"Unknown Solana network {network!r}; set USDC_MINT explicitly"
        ) from None
