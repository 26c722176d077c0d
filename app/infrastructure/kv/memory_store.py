"""
In-memory key-value store.
Process-local; used for tests and single-process deployments.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from app.infrastructure.kv.base import BaseKeyValueStore, KeyedLocks, WriteBatch


class MemoryKeyValueStore(BaseKeyValueStore):
    def __init__(self):
        self._data: Dict[str, bytes] = {}
        self._locks = KeyedLocks()

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def apply_batch(self, batch: WriteBatch) -> None:
        # No await between writes: the batch lands in one step of the loop
        for key, value in batch:
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        async with self._locks.hold(key):
            yield
