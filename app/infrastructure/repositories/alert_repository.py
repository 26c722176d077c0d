"""
Alert Repository
APY threshold alerts per user.
"""

from typing import List

from pydantic import TypeAdapter

from app.domain.models import AlertRule
from app.infrastructure.repositories.base import KVRepository

_ALERTS = TypeAdapter(List[AlertRule])


class AlertRepository(KVRepository):
    store_type = "alerts"

    async def list(self, user_id: str, active_only: bool = True) -> List[AlertRule]:
        raw = await self._kv.get(self.key(user_id))
        if raw is None:
            return []
        alerts = _ALERTS.validate_json(raw)
        if active_only:
            return [a for a in alerts if a.active]
        return alerts

    async def add(self, alert: AlertRule) -> None:
        alerts = await self.list(alert.user_id, active_only=False)
        alerts.append(alert)
        await self._kv.set(self.key(alert.user_id), _ALERTS.dump_json(alerts))
