"""
Key-value store factory (settings-driven).
"""

from __future__ import annotations

import logging

from app.config import Settings
from app.infrastructure.db.database import build_engine
from app.infrastructure.kv.base import BaseKeyValueStore
from app.infrastructure.kv.memory_store import MemoryKeyValueStore
from app.infrastructure.kv.redis_store import RedisKeyValueStore
from app.infrastructure.kv.sql_store import SqlKeyValueStore

logger = logging.getLogger(__name__)


async def build_store(settings: Settings) -> BaseKeyValueStore:
    backend = (settings.STORE_BACKEND or "memory").lower()

    if backend == "sql":
        store = SqlKeyValueStore(build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO))
        if settings.AUTO_CREATE_TABLES:
            await store.create_tables()
        logger.info("Using SQL kv store at %s", settings.DATABASE_URL)
        return store

    if backend == "redis":
        logger.info("Using redis kv store at %s", settings.REDIS_URL)
        return RedisKeyValueStore(
            url=settings.REDIS_URL,
            prefix=settings.REDIS_PREFIX,
            lock_timeout_seconds=settings.REDIS_LOCK_TIMEOUT_SECONDS,
        )

    if backend != "memory":
        raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")

    logger.info("Using in-memory kv store")
    return MemoryKeyValueStore()
