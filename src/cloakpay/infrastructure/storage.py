"""Storage abstractions and Redis implementation for repositories."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping, Optional

from .database import DatabaseClient
from .scripts import STORE_SCRIPTS


class KeyValueStore(ABC):
    """Abstract key-value store with the operations used by repositories."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def set_ex(self, key: str, value: str, ttl_seconds: float) -> None:
        """Set ``key`` to expire after ``ttl_seconds``."""

    @abstractmethod
    async def set_nx(self, key: str, value: str) -> bool:
        """Set ``key`` only if absent; True when written."""

    @abstractmethod
    async def set_nx_ex(self, key: str, value: str, ttl_seconds: float) -> bool:
        """Set an expiring ``key`` only if absent; True when written."""

    @abstractmethod
    async def getdel(self, key: str) -> Optional[str]:
        """Atomically read and delete ``key``."""

    @abstractmethod
    async def delete(self, key: str) -> int:
        pass

    @abstractmethod
    async def delete_if_equals(self, key: str, value: str) -> bool:
        """Delete ``key`` only while it still holds ``value``."""

    @abstractmethod
    async def compare_and_set(
        self, key: str, field: str, expected: str, value: str
    ) -> int:
        """Overwrite the JSON document at ``key`` if its ``field`` equals ``expected``.

        Returns 1 when saved, 0 when the stored field differs, 2 when the key is missing.
        """

    @abstractmethod
    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        pass

    @abstractmethod
    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        pass

    @abstractmethod
    async def zrem(self, key: str, member: str) -> int:
        pass


def _to_ms(ttl_seconds: float) -> int:
    return max(1, int(ttl_seconds * 1000))


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed implementation of KeyValueStore."""

    def __init__(self, db_client: DatabaseClient):
        self._db_client = db_client

    async def get(self, key: str) -> Optional[str]:
        async with self._db_client.get_connection() as conn:
            return await conn.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._db_client.get_connection() as conn:
            await conn.set(key, value)

    async def set_ex(self, key: str, value: str, ttl_seconds: float) -> None:
        async with self._db_client.get_connection() as conn:
            await conn.set(key, value, px=_to_ms(ttl_seconds))

    async def set_nx(self, key: str, value: str) -> bool:
        async with self._db_client.get_connection() as conn:
            return bool(await conn.set(key, value, nx=True))

    async def set_nx_ex(self, key: str, value: str, ttl_seconds: float) -> bool:
        async with self._db_client.get_connection() as conn:
            return bool(await conn.set(key, value, nx=True, px=_to_ms(ttl_seconds)))

    async def getdel(self, key: str) -> Optional[str]:
        async with self._db_client.get_connection() as conn:
            return await conn.getdel(key)

    async def delete(self, key: str) -> int:
        async with self._db_client.get_connection() as conn:
            return await conn.delete(key)

    async def delete_if_equals(self, key: str, value: str) -> bool:
        async with self._db_client.get_connection() as conn:
            result = await conn.eval(STORE_SCRIPTS["delete_if_equals"], 1, key, value)
            return bool(int(result))

    async def compare_and_set(
        self, key: str, field: str, expected: str, value: str
    ) -> int:
        async with self._db_client.get_connection() as conn:
            result = await conn.eval(
                STORE_SCRIPTS["compare_and_set"], 1, key, field, expected, value
            )
            return int(result)

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        async with self._db_client.get_connection() as conn:
            return await conn.zadd(key, mapping)

    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        async with self._db_client.get_connection() as conn:
            return await conn.zrevrange(key, start, end)

    async def zrem(self, key: str, member: str) -> int:
        async with self._db_client.get_connection() as conn:
            return await conn.zrem(key, member)
