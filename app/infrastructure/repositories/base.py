"""
Base for key-value backed repositories.
"""

from __future__ import annotations

import copy
from typing import Optional, Type, TypeVar

from pydantic import BaseModel

from app.infrastructure.kv.base import KeyValueWriter, make_key

M = TypeVar("M", bound=BaseModel)


class KVRepository:
    """Stores one JSON record per user under "<store_type>:<user_id>"."""

    store_type: str = ""

    def __init__(self, kv: KeyValueWriter):
        self._kv = kv

    def bind(self, kv: KeyValueWriter):
        """Same repository over another writer (e.g. an open transaction)"""
        bound = copy.copy(self)
        bound._kv = kv
        return bound

    def key(self, user_id: str) -> str:
        return make_key(self.store_type, user_id)

    async def _load(self, user_id: str, model: Type[M]) -> Optional[M]:
        raw = await self._kv.get(self.key(user_id))
        if raw is None:
            return None
        return model.model_validate_json(raw)

    async def _store(self, user_id: str, record: BaseModel) -> None:
        await self._kv.set(self.key(user_id), record.model_dump_json().encode("utf-8"))
