"""
SQLAlchemy-backed key-value store.
Each committed batch runs in a single database transaction.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from app.infrastructure.db.database import build_session_factory, close_db, init_db
from app.infrastructure.db.models import KVEntryModel
from app.infrastructure.kv.base import BaseKeyValueStore, KeyedLocks, WriteBatch
from app.utils.time import utc_now_naive

logger = logging.getLogger(__name__)


class SqlKeyValueStore(BaseKeyValueStore):
    """
    Key-value store over the kv_entry table.

    Locks are process-local; run one engine process per database when
    relying on them for per-user serialization.
    """

    def __init__(self, engine: AsyncEngine, session_factory: Optional[async_sessionmaker] = None):
        self._engine = engine
        self._session_factory = session_factory or build_session_factory(engine)
        self._locks = KeyedLocks()

    async def create_tables(self) -> None:
        await init_db(self._engine)

    async def get(self, key: str) -> Optional[bytes]:
        async with self._session_factory() as session:
            row = await session.get(KVEntryModel, key)
            return None if row is None else bytes(row.value)

    async def apply_batch(self, batch: WriteBatch) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                for key, value in batch:
                    if value is None:
                        await session.execute(delete(KVEntryModel).where(KVEntryModel.key == key))
                    else:
                        await session.merge(
                            KVEntryModel(key=key, value=value, updated_at=utc_now_naive())
                        )
        logger.debug("Committed %d kv writes", len(batch))

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        async with self._locks.hold(key):
            yield

    async def close(self) -> None:
        await close_db(self._engine)
