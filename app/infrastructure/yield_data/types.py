"""
Candidate provider protocol for type hints.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol

from app.domain.models import Candidate, RankBy


class CandidateProvider(Protocol):
    async def get_candidates(
        self,
        chain: Optional[str],
        asset: Optional[str],
        rank_by: RankBy,
        limit: Optional[int] = None,
    ) -> List[Candidate]:
        ...


def rank_candidates(
    candidates: Iterable[Candidate],
    chain: Optional[str],
    asset: Optional[str],
    rank_by: RankBy,
    limit: Optional[int] = None,
) -> List[Candidate]:
    """Filter by chain/asset, sort by rank key desc then protocol name"""
    rows = [
        c for c in candidates
        if (not chain or not c.chain or c.chain == chain)
        and (not asset or not c.asset or c.asset == asset)
    ]
    rows.sort(key=lambda c: (-(c.apy if rank_by == RankBy.APY else c.tvl), c.protocol))
    if limit is not None:
        rows = rows[:limit]
    return rows
