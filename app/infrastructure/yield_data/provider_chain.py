"""
Provider chain - try primary, then fallbacks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from app.domain.models import Candidate, RankBy
from app.infrastructure.yield_data.types import CandidateProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NamedProvider:
    name: str
    provider: CandidateProvider


class ChainedCandidateProvider:
    def __init__(self, providers: List[NamedProvider]):
        if not providers:
            raise ValueError("ChainedCandidateProvider needs at least one provider")
        self.providers = providers
        self.last_source: Optional[str] = None

    async def get_candidates(
        self,
        chain: Optional[str],
        asset: Optional[str],
        rank_by: RankBy,
        limit: Optional[int] = None,
    ) -> List[Candidate]:
        for named in self.providers:
            try:
                data = await named.provider.get_candidates(chain, asset, rank_by, limit)
            except Exception as exc:
                logger.warning("Candidate provider %s failed: %s", named.name, exc)
                data = []
            if data:
                self.last_source = named.name
                return data
            logger.debug("Candidate provider %s returned nothing for %s/%s", named.name, chain, asset)
        self.last_source = None
        return []
