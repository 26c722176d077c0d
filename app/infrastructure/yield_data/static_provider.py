"""
Static candidate provider backed by the protocols.yml catalog.
"""

from __future__ import annotations

from typing import List, Optional

from app.domain.models import Candidate, RankBy
from app.domain.services.config_engine import ProtocolCatalog
from app.infrastructure.yield_data.types import rank_candidates


class StaticCandidateProvider:
    def __init__(self, catalog: ProtocolCatalog):
        self.catalog = catalog

    async def get_candidates(
        self,
        chain: Optional[str],
        asset: Optional[str],
        rank_by: RankBy,
        limit: Optional[int] = None,
    ) -> List[Candidate]:
        return rank_candidates(self.catalog.candidates(), chain, asset, rank_by, limit)
