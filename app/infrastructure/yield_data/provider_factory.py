"""
Candidate provider factory (settings-driven).
"""

from __future__ import annotations

import logging
from typing import List

from app.config import Settings
from app.domain.services.config_engine import ConfigEngine
from app.infrastructure.yield_data.defillama_provider import DefiLlamaCandidateProvider
from app.infrastructure.yield_data.provider_chain import ChainedCandidateProvider, NamedProvider
from app.infrastructure.yield_data.static_provider import StaticCandidateProvider
from app.infrastructure.yield_data.types import CandidateProvider

logger = logging.getLogger(__name__)


def _build_provider(name: str, settings: Settings, config_engine: ConfigEngine) -> CandidateProvider:
    name = (name or "").lower()
    catalog = config_engine.protocol_catalog
    if name == "defillama":
        return DefiLlamaCandidateProvider(
            catalog=catalog,
            pools_url=settings.DEFILLAMA_POOLS_URL,
            timeout_seconds=settings.CANDIDATE_TIMEOUT_SECONDS,
            cache_ttl_seconds=settings.CANDIDATE_CACHE_TTL_SECONDS,
        )
    if name == "static":
        return StaticCandidateProvider(catalog)
    raise ValueError(f"Unknown candidate provider: {name}")


def get_candidate_provider(settings: Settings, config_engine: ConfigEngine) -> ChainedCandidateProvider:
    primary = (settings.CANDIDATE_PROVIDER or "static").lower()

    providers: List[NamedProvider] = [
        NamedProvider(primary, _build_provider(primary, settings, config_engine))
    ]
    for fallback in settings.fallback_providers:
        if fallback != primary and all(p.name != fallback for p in providers):
            providers.append(NamedProvider(fallback, _build_provider(fallback, settings, config_engine)))

    logger.info("Candidate providers: %s", [p.name for p in providers])
    return ChainedCandidateProvider(providers)
