"""Time-bounded key-value storage.

Used for short-lived values such as per-computation callback leases. Values
expire after a TTL; ``take_if_valid`` consumes a value at most once.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from .storage import KeyValueStore


class ExpiringStore(ABC):
    @abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: float) -> None:
        pass

    @abstractmethod
    async def put_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        """Store ``value`` unless a live value exists; True when stored."""

    @abstractmethod
    async def take_if_valid(self, key: str) -> Optional[str]:
        """Remove and return the value if it has not expired, else None."""

    @abstractmethod
    async def release(self, key: str, value: str) -> bool:
        """Remove the entry only if it still holds ``value``; True when removed."""


class InMemoryExpiringStore(ExpiringStore):
    """Process-local store; expired entries are dropped lazily and by ``sweep``."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: float) -> None:
        async with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    async def put_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        async with self._lock:
            if self._live(key) is not None:
                return False
            self._entries[key] = (value, self._clock() + ttl_seconds)
            return True

    async def take_if_valid(self, key: str) -> Optional[str]:
        async with self._lock:
            value = self._live(key)
            self._entries.pop(key, None)
            return value

    async def release(self, key: str, value: str) -> bool:
        async with self._lock:
            if self._live(key) != value:
                return False
            del self._entries[key]
            return True

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class KeyValueExpiringStore(ExpiringStore):
    """Expiring store over a KeyValueStore (Redis TTLs do the expiry)."""

    def __init__(self, store: KeyValueStore, prefix: str = "expiring:"):
        self.store = store
        self.prefix = prefix

    async def put(self, key: str, value: str, ttl_seconds: float) -> None:
        await self.store.set_ex(self.prefix + key, value, ttl_seconds)

    async def put_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        return await self.store.set_nx_ex(self.prefix + key, value, ttl_seconds)

    async def take_if_valid(self, key: str) -> Optional[str]:
        return await self.store.getdel(self.prefix + key)

    async def release(self, key: str, value: str) -> bool:
        return await self.store.delete_if_equals(self.prefix + key, value)
