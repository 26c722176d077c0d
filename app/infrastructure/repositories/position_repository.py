"""
Position Repository
Append-only record of executed allocations per user.
"""

from typing import List

from pydantic import TypeAdapter

from app.domain.models import Position
from app.infrastructure.repositories.base import KVRepository

_POSITIONS = TypeAdapter(List[Position])


class PositionRepository(KVRepository):
    store_type = "positions"

    async def list(self, user_id: str) -> List[Position]:
        raw = await self._kv.get(self.key(user_id))
        if raw is None:
            return []
        return _POSITIONS.validate_json(raw)

    async def append(self, user_id: str, positions: List[Position]) -> List[Position]:
        existing = await self.list(user_id)
        combined = existing + list(positions)
        await self._kv.set(self.key(user_id), _POSITIONS.dump_json(combined))
        return combined
