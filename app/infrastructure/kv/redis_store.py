"""
Redis-backed key-value store.
Batches are applied through a MULTI/EXEC pipeline; per-key locks use
redis locks so several engine processes can share one redis.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis

from app.infrastructure.kv.base import BaseKeyValueStore, WriteBatch

logger = logging.getLogger(__name__)


class RedisKeyValueStore(BaseKeyValueStore):
    def __init__(
        self,
        url: Optional[str] = None,
        prefix: str = "plan:",
        lock_timeout_seconds: float = 10.0,
        client=None,
    ):
        if client is None:
            if not url:
                raise ValueError("RedisKeyValueStore requires a url or a client")
            client = redis.Redis.from_url(url)
        self._client = client
        self._prefix = prefix
        self._lock_timeout = lock_timeout_seconds

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Optional[bytes]:
        raw = await self._client.get(self._key(key))
        if raw is None:
            return None
        return raw if isinstance(raw, bytes) else raw.encode("utf-8")

    async def apply_batch(self, batch: WriteBatch) -> None:
        async with self._client.pipeline(transaction=True) as pipe:
            for key, value in batch:
                if value is None:
                    pipe.delete(self._key(key))
                else:
                    pipe.set(self._key(key), value)
            await pipe.execute()
        logger.debug("Committed %d kv writes", len(batch))

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        lock = self._client.lock(
            self._key(f"lock:{key}"),
            timeout=self._lock_timeout,
            blocking_timeout=self._lock_timeout,
        )
        async with lock:
            yield

    async def close(self) -> None:
        await self._client.aclose()
