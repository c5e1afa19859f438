"""Computation id -> entity reference index shared by intents and payroll batches."""

from __future__ import annotations

from typing import Optional

from ...domain.errors import InvalidStateError
from ..storage import KeyValueStore


def computation_key(computation_id: str) -> str:
    return f"computation:{computation_id}"


async def claim_computation_id(
    store: KeyValueStore, computation_id: str, entity_ref: str
) -> bool:
    """Bind ``computation_id`` to ``entity_ref`` permanently.

    Returns True when this call created the binding, False when it already
    pointed at ``entity_ref``. Raises InvalidStateError if another entity owns it.
    """
    key = computation_key(computation_id)
    if await store.set_nx(key, entity_ref):
        return True
    existing = await store.get(key)
    if existing != entity_ref:
        raise InvalidStateError(
            f"Computation {computation_id} is already bound to another entity"
        )
    return False


async def resolve_computation_id(
    store: KeyValueStore, computation_id: str, prefix: str
) -> Optional[str]:
    """Entity id bound to ``computation_id`` if it is of kind ``prefix``."""
    ref = await store.get(computation_key(computation_id))
    if not ref or not ref.startswith(prefix + ":"):
        return None
    return ref[len(prefix) + 1 :]
