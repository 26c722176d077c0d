import pytest
from decimal import Decimal

from app.config import Settings
from app.domain.models import RankBy, RiskBand
from app.infrastructure.yield_data.defillama_provider import DefiLlamaCandidateProvider, risk_bucket
from app.infrastructure.yield_data.provider_chain import ChainedCandidateProvider, NamedProvider
from app.infrastructure.yield_data.provider_factory import _build_provider, get_candidate_provider
from app.infrastructure.yield_data.static_provider import StaticCandidateProvider

POOLS = [
    {"chain": "Solana", "project": "kamino-lend", "symbol": "USDC", "apy": 10.123, "tvlUsd": 50000000},
    {"chain": "Solana", "project": "kamino-lend", "symbol": "USDC", "apy": 55.0, "tvlUsd": 1000},
    {"chain": "Solana", "project": "jito-liquid-staking", "symbol": "JITOSOL", "apy": 7.0, "tvlUsd": 2000000000},
    {"chain": "Ethereum", "project": "kamino-lend", "symbol": "USDC", "apy": 4.0, "tvlUsd": 9000000000},
    {"chain": "Solana", "project": None, "symbol": "USDC"},
]


@pytest.mark.asyncio
async def test_static_provider_ranks_by_tvl_with_limit(config_engine):
    provider = StaticCandidateProvider(config_engine.protocol_catalog)

    rows = await provider.get_candidates("solana", "USDC", RankBy.TVL, limit=3)

    assert [c.protocol for c in rows] == ["Raydium", "Orca", "Kamino"]


@pytest.mark.asyncio
async def test_static_provider_filters_chain_and_asset(config_engine):
    provider = StaticCandidateProvider(config_engine.protocol_catalog)

    rows = await provider.get_candidates("injective", "INJ", RankBy.APY)

    assert [c.protocol for c in rows] == ["Dojoswap LSD"]
    assert await provider.get_candidates("solana", "INJ", RankBy.APY) == []


def test_risk_bucket_thresholds():
    assert risk_bucket(Decimal("7"), Decimal("600000000")) == RiskBand.LOW
    assert risk_bucket(Decimal("9"), Decimal("600000000")) == RiskBand.MEDIUM
    assert risk_bucket(Decimal("9"), Decimal("50000000")) == RiskBand.HIGH


def test_defillama_normalize_picks_deepest_pool(config_engine):
    provider = DefiLlamaCandidateProvider(config_engine.protocol_catalog)

    rows = {(c.protocol, c.asset): c for c in provider.normalize(POOLS)}

    kamino = rows[("Kamino", "USDC")]
    assert kamino.apy == Decimal("10.12")
    assert kamino.tvl == Decimal("50000000")
    assert kamino.risk_label == "high"

    jito = rows[("Jito (Liquid Staking)", "SOL")]
    assert jito.apy == Decimal("7.00")
    assert jito.risk_label == "low"

    assert ("Kamino", "SOL") not in rows
    assert all(c.chain == "solana" for c in rows.values())


@pytest.mark.asyncio
async def test_defillama_caches_successful_fetch(config_engine, monkeypatch):
    provider = DefiLlamaCandidateProvider(config_engine.protocol_catalog, cache_ttl_seconds=300)
    calls = {"count": 0}

    async def fake_request_json(url, params=None):
        calls["count"] += 1
        return {"status": "success", "data": POOLS}

    monkeypatch.setattr(provider, "_request_json", fake_request_json)

    first = await provider.get_candidates("solana", "USDC", RankBy.APY)
    second = await provider.get_candidates("solana", "USDC", RankBy.APY)

    assert [c.protocol for c in first] == ["Kamino"]
    assert first == second
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_defillama_non_200_returns_empty(config_engine, monkeypatch):
    provider = DefiLlamaCandidateProvider(config_engine.protocol_catalog)

    class FakeResponse:
        status_code = 503
        text = "unavailable"

        def json(self):
            return {}

    class FakeClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def get(self, url, params=None, headers=None):
            return FakeResponse()

    import app.infrastructure.yield_data.defillama_provider as defillama_module
    monkeypatch.setattr(defillama_module.httpx, "AsyncClient", FakeClient)

    assert await provider.fetch_all() == []


@pytest.mark.asyncio
async def test_chain_falls_back_when_primary_is_empty_or_fails(config_engine):
    class EmptyProvider:
        async def get_candidates(self, chain, asset, rank_by, limit=None):
            return []

    class BrokenProvider:
        async def get_candidates(self, chain, asset, rank_by, limit=None):
            raise RuntimeError("upstream down")

    chain = ChainedCandidateProvider([
        NamedProvider("broken", BrokenProvider()),
        NamedProvider("empty", EmptyProvider()),
        NamedProvider("static", StaticCandidateProvider(config_engine.protocol_catalog)),
    ])

    rows = await chain.get_candidates("solana", "SOL", RankBy.TVL)

    assert [c.protocol for c in rows] == ["Jito (Liquid Staking)", "Kamino", "Jupiter Lend", "Sanctum Infinity"]
    assert chain.last_source == "static"


def test_chain_requires_providers():
    with pytest.raises(ValueError):
        ChainedCandidateProvider([])


def test_factory_builds_primary_then_fallbacks(config_engine):
    settings = Settings(CANDIDATE_PROVIDER="defillama", CANDIDATE_FALLBACK_PROVIDERS="static, defillama")

    provider = get_candidate_provider(settings, config_engine)

    assert [p.name for p in provider.providers] == ["defillama", "static"]
    assert isinstance(provider.providers[0].provider, DefiLlamaCandidateProvider)


def test_factory_rejects_unknown_provider(config_engine):
    with pytest.raises(ValueError):
        _build_provider("coingecko", Settings(), config_engine)
