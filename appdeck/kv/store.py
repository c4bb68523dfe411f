"""
Key-value backing stores for the App KV capability.

Every entry is namespaced by (App, acting user, prefix, id). Stores
only persist bytes; JSON validation and the "absent reads as {}"
rule live in AppKVService.

Design:
    - KVStore protocol defines the interface
    - InMemoryKVStore (tests, development), RedisKVStore (production)
    - No in-process locking: concurrent writes are last-write-wins,
      as ordered by the backing store

Storage Format (Redis):
    - Key: f"{namespace}:{app}:{user}:{prefix}:{id}", each component
      percent-encoded so separators and glob characters never leak
    - Value: the raw JSON bytes
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, Literal, Protocol
from urllib.parse import quote, unquote

from appdeck.apps.errors import NotFoundError

logger = logging.getLogger(__name__)


# =============================================================================
# Store Protocol
# =============================================================================


class KVStore(Protocol):
    """Protocol for KV backends."""

    async def set(self, app_id: str, user_id: str, prefix: str, id: str, data: bytes) -> bool:
        """
        Store data under the key.

        Returns:
            True if the stored value changed
        """
        ...

    async def get(self, app_id: str, user_id: str, prefix: str, id: str) -> bytes:
        """
        Read the value stored under the key.

        Raises:
            NotFoundError: If nothing is stored under the key
        """
        ...

    async def delete(self, app_id: str, user_id: str, prefix: str, id: str) -> None:
        """Remove the key. Removing an absent key is not an error."""
        ...

    def iter_ids(self, app_id: str, user_id: str, prefix: str) -> AsyncIterator[str]:
        """Yield the ids stored under a prefix, in no particular order."""
        ...


# =============================================================================
# In-Memory Implementation
# =============================================================================


class InMemoryKVStore:
    """
    In-memory KV storage for testing and development.

    Not suitable for production (data lost on restart).
    """

    def __init__(self) -> None:
        self._data: dict[tuple[str, str, str, str], bytes] = {}

    async def set(self, app_id: str, user_id: str, prefix: str, id: str, data: bytes) -> bool:
        key = (app_id, user_id, prefix, id)
        changed = self._data.get(key) != data
        self._data[key] = bytes(data)
        return changed

    async def get(self, app_id: str, user_id: str, prefix: str, id: str) -> bytes:
        try:
            return self._data[(app_id, user_id, prefix, id)]
        except KeyError:
            raise NotFoundError("key not found", detail=f"{prefix}/{id}") from None

    async def delete(self, app_id: str, user_id: str, prefix: str, id: str) -> None:
        self._data.pop((app_id, user_id, prefix, id), None)

    async def iter_ids(self, app_id: str, user_id: str, prefix: str) -> AsyncIterator[str]:
        for a, u, p, id in list(self._data):
            if (a, u, p) == (app_id, user_id, prefix):
                yield id

    def __len__(self) -> int:
        return len(self._data)


# =============================================================================
# Redis Implementation
# =============================================================================


class RedisKVStore:
    """
    Redis-backed persistent KV storage.

    Example:
        store = RedisKVStore(redis_url="redis://localhost:6379")
        await store.set("my-app", "user-1", "settings", "theme", b'{"dark": true}')
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        namespace: str = "appdeck:kv",
    ) -> None:
        """
        Initialize Redis KV store.

        Args:
            redis_url: Redis connection URL
            namespace: Prefix for all keys
        """
        self._redis_url = redis_url
        self._namespace = namespace
        self._client: Any = None  # redis.asyncio.Redis

    async def _get_client(self) -> Any:
        """Get or create Redis client."""
        if self._client is None:
            import redis.asyncio as aioredis

            self._client = aioredis.from_url(self._redis_url, decode_responses=False)
        return self._client

    def _scope(self, app_id: str, user_id: str, prefix: str) -> str:
        parts = (quote(part, safe="") for part in (app_id, user_id, prefix))
        return ":".join((self._namespace, *parts))

    def _key(self, app_id: str, user_id: str, prefix: str, id: str) -> str:
        return f"{self._scope(app_id, user_id, prefix)}:{quote(id, safe='')}"

    async def set(self, app_id: str, user_id: str, prefix: str, id: str, data: bytes) -> bool:
        client = await self._get_client()
        previous = await client.set(self._key(app_id, user_id, prefix, id), data, get=True)
        logger.debug(f"[kv:redis] Set {prefix}/{id} for app {app_id}")
        return previous != data

    async def get(self, app_id: str, user_id: str, prefix: str, id: str) -> bytes:
        client = await self._get_client()
        data = await client.get(self._key(app_id, user_id, prefix, id))
        if data is None:
            raise NotFoundError("key not found", detail=f"{prefix}/{id}")
        return data

    async def delete(self, app_id: str, user_id: str, prefix: str, id: str) -> None:
        client = await self._get_client()
        await client.delete(self._key(app_id, user_id, prefix, id))
        logger.debug(f"[kv:redis] Deleted {prefix}/{id} for app {app_id}")

    async def iter_ids(self, app_id: str, user_id: str, prefix: str) -> AsyncIterator[str]:
        client = await self._get_client()
        scope = self._scope(app_id, user_id, prefix)
        async for key in client.scan_iter(match=f"{scope}:*"):
            if isinstance(key, bytes):
                key = key.decode()
            yield unquote(key[len(scope) + 1 :])

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def create_store(
    backend: Literal["inmemory", "redis"] = "inmemory",
    **kwargs: Any,
) -> KVStore:
    """
    Create a KV store.

    Args:
        backend: "inmemory" or "redis"
        **kwargs: Passed to the store constructor

    Example:
        store = create_store("redis", redis_url="redis://localhost:6379")
    """
    if backend == "inmemory":
        return InMemoryKVStore()
    elif backend == "redis":
        return RedisKVStore(**kwargs)
    else:
        raise ValueError(f"Unknown backend: {backend}")
