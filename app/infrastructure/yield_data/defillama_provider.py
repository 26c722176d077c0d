"""
DeFiLlama yields provider.

Fetches https://yields.llama.fi/pools and maps pools onto catalog
protocols by project hint. The normalized list is cached for a TTL;
any failure yields an empty list so the chain can fall back.
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import httpx

from app.domain.models import Candidate, RankBy, RiskBand
from app.domain.services.config_engine import ProtocolCatalog
from app.infrastructure.yield_data.types import rank_candidates

logger = logging.getLogger(__name__)

DEFAULT_POOLS_URL = "https://yields.llama.fi/pools"


def risk_bucket(apy: Decimal, tvl: Decimal) -> RiskBand:
    """Deep, modest-yield pools are low risk; thin or high-yield pools are high"""
    if tvl > Decimal("500000000") and apy <= Decimal("8"):
        return RiskBand.LOW
    if tvl > Decimal("100000000") and apy <= Decimal("15"):
        return RiskBand.MEDIUM
    return RiskBand.HIGH


def _decimal(value) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return result if result.is_finite() else Decimal("0")


class DefiLlamaCandidateProvider:
    def __init__(
        self,
        catalog: ProtocolCatalog,
        pools_url: str = DEFAULT_POOLS_URL,
        timeout_seconds: float = 5.0,
        cache_ttl_seconds: int = 300,
    ):
        self.catalog = catalog
        self.pools_url = pools_url
        self.timeout_seconds = timeout_seconds
        self.cache_ttl_seconds = cache_ttl_seconds
        self._cache: Optional[tuple[float, List[Candidate]]] = None

    def _cache_get(self) -> Optional[List[Candidate]]:
        if not self._cache:
            return None
        ts, value = self._cache
        if time.time() - ts > self.cache_ttl_seconds:
            return None
        return value

    def _cache_set(self, value: List[Candidate]) -> None:
        self._cache = (time.time(), value)

    async def _request_json(self, url: str, params: Optional[dict] = None) -> Optional[dict]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(url, params=params, headers={"Accept": "application/json"})
                if response.status_code != 200:
                    logger.debug("DeFiLlama %s: %s", response.status_code, response.text[:200])
                    return None
                return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug("DeFiLlama request failed: %s", exc)
            return None

    def normalize(self, pools: List[dict]) -> List[Candidate]:
        """One candidate per catalog (protocol, asset): the deepest matching pool"""
        by_chain: Dict[str, List[dict]] = {}
        for pool in pools:
            chain = pool.get("chain")
            project = pool.get("project")
            if isinstance(chain, str) and isinstance(project, str):
                by_chain.setdefault(chain.lower(), []).append(pool)

        candidates: List[Candidate] = []
        for entry in self.catalog.entries:
            matching = [
                p for p in by_chain.get(entry.chain, [])
                if entry.project_hint in p["project"].lower()
            ]
            for asset in entry.assets:
                pools_for_asset = [
                    p for p in matching
                    if asset in str(p.get("symbol", "")).upper().split("-")
                ]
                # Single-asset protocols (liquid staking) list pools under the LST symbol
                if not pools_for_asset and len(entry.assets) == 1:
                    pools_for_asset = matching
                if not pools_for_asset:
                    continue
                top = max(pools_for_asset, key=lambda p: _decimal(p.get("tvlUsd")))
                apy = _decimal(top.get("apy") if top.get("apy") is not None else top.get("apyBase"))
                tvl = _decimal(top.get("tvlUsd"))
                candidates.append(
                    Candidate(
                        protocol=entry.protocol,
                        chain=entry.chain,
                        asset=asset,
                        apy=apy.quantize(Decimal("0.01")),
                        tvl=tvl.quantize(Decimal("1")),
                        risk_label=risk_bucket(apy, tvl).value,
                    )
                )
        return candidates

    async def fetch_all(self) -> List[Candidate]:
        cached = self._cache_get()
        if cached is not None:
            return cached

        payload = await self._request_json(self.pools_url)
        if not payload or not isinstance(payload.get("data"), list):
            return []

        candidates = self.normalize(payload["data"])
        if candidates:
            self._cache_set(candidates)
        logger.info("DeFiLlama returned %d catalog candidates", len(candidates))
        return candidates

    async def get_candidates(
        self,
        chain: Optional[str],
        asset: Optional[str],
        rank_by: RankBy,
        limit: Optional[int] = None,
    ) -> List[Candidate]:
        return rank_candidates(await self.fetch_all(), chain, asset, rank_by, limit)
