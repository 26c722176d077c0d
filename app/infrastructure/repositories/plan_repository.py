"""
Proposed Plan Repository
Holds the latest proposed plan per user. Saving a new plan replaces the
previous one; applied/canceled plans stay readable until replaced so a
replayed confirmation can be recognized.
"""

import logging
from typing import Optional

from app.domain.models import DeploymentPlan
from app.infrastructure.repositories.base import KVRepository

logger = logging.getLogger(__name__)


class PlanRepository(KVRepository):
    store_type = "plan"

    async def get(self, user_id: str) -> Optional[DeploymentPlan]:
        return await self._load(user_id, DeploymentPlan)

    async def get_by_id(self, user_id: str, plan_id: str) -> Optional[DeploymentPlan]:
        plan = await self.get(user_id)
        if plan is None or plan.id != plan_id:
            return None
        return plan

    async def save(self, plan: DeploymentPlan) -> None:
        await self._store(plan.user_id, plan)
        logger.debug("Stored plan %s for %s (%s)", plan.id, plan.user_id, plan.status.value)
