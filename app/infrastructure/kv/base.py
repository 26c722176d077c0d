"""
Key-value store contract.

All per-user stores (session, plan, ledger, positions, alerts) sit on this
single primitive. Per-key locking and buffered transactions are part of
the contract so callers never assume them.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

# (key, value) pairs; a None value deletes the key
WriteBatch = List[Tuple[str, Optional[bytes]]]


def make_key(store_type: str, user_id: str) -> str:
    """Namespaced key "<store-type>:<user_id>" """
    return f"{store_type}:{user_id}"


class KeyValueReader(Protocol):
    async def get(self, key: str) -> Optional[bytes]:
        ...


class KeyValueWriter(KeyValueReader, Protocol):
    async def set(self, key: str, value: bytes) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class KeyValueStore(KeyValueWriter, Protocol):
    """Protocol for key-value persistence - ASYNC"""

    def lock(self, key: str) -> AsyncContextManager[None]:
        """Mutual exclusion for one key"""
        ...

    def transaction(self) -> AsyncContextManager["BufferedTransaction"]:
        """Buffered writes, applied atomically on successful exit"""
        ...

    async def close(self) -> None:
        ...


class BufferedTransaction:
    """
    Write buffer over a store.

    Reads see buffered writes first. Nothing reaches the store until
    commit, which hands the whole batch to the backend in one call.
    """

    def __init__(self, store: "BaseKeyValueStore"):
        self._store = store
        self._writes: Dict[str, Optional[bytes]] = {}
        self._committed = False

    async def get(self, key: str) -> Optional[bytes]:
        if key in self._writes:
            return self._writes[key]
        return await self._store.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._ensure_open()
        self._writes[key] = value

    async def delete(self, key: str) -> None:
        self._ensure_open()
        self._writes[key] = None

    @property
    def pending_writes(self) -> int:
        return len(self._writes)

    async def commit(self) -> None:
        self._ensure_open()
        self._committed = True
        if self._writes:
            await self._store.apply_batch(list(self._writes.items()))

    def _ensure_open(self) -> None:
        if self._committed:
            raise RuntimeError("Transaction already committed")


class KeyedLocks:
    """
    Per-key asyncio locks for one process.

    A key's lock exists only while some task holds or waits on it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
            self._users[key] = 0
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class BaseKeyValueStore:
    """Shared transaction handling; backends implement get/apply_batch/lock."""

    async def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    async def apply_batch(self, batch: WriteBatch) -> None:
        """Apply all writes atomically"""
        raise NotImplementedError

    def lock(self, key: str) -> AsyncContextManager[None]:
        raise NotImplementedError

    async def set(self, key: str, value: bytes) -> None:
        await self.apply_batch([(key, value)])

    async def delete(self, key: str) -> None:
        await self.apply_batch([(key, None)])

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[BufferedTransaction]:
        tx = BufferedTransaction(self)
        try:
            yield tx
        except BaseException:
            logger.debug("Transaction discarded (%d buffered writes)", tx.pending_writes)
            raise
        await tx.commit()

    async def close(self) -> None:
        return None
