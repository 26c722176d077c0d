import shutil
import pytest
from decimal import Decimal
from pathlib import Path

from app.domain.models import Intent, RankBy
from app.domain.services.config_engine import ConfigEngine

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


def test_loads_catalog_and_planning(config_engine):
    catalog = config_engine.protocol_catalog

    assert "solana" in catalog.chains and "injective" in catalog.chains
    assert {"USDC", "SOL", "INJ"} <= set(catalog.assets)
    assert config_engine.weight_schedule(3) == (Decimal("40"), Decimal("35"), Decimal("25"))
    assert config_engine.weight_schedule(7) is None
    assert config_engine.seed_balances == {"USDC": Decimal("10000000"), "SOL": Decimal("2000")}
    assert config_engine.plan_rules(Intent.DEPLOY).max_allocations == 3
    assert config_engine.plan_rules(Intent.REBALANCE).rank_by == RankBy.TVL
    assert config_engine.yield_sources_limit == 5


def test_catalog_flattens_multi_asset_protocols(config_engine):
    kamino = [c for c in config_engine.protocol_catalog.candidates(chain="solana") if c.protocol == "Kamino"]

    assert sorted(c.asset for c in kamino) == ["SOL", "USDC"]


def test_missing_config_dir_fails_fast(tmp_path):
    engine = ConfigEngine(tmp_path / "nope")

    with pytest.raises(FileNotFoundError):
        engine.load_all()


def test_weight_schedule_must_sum_to_100(tmp_path):
    shutil.copy(CONFIG_DIR / "protocols.yml", tmp_path / "protocols.yml")
    (tmp_path / "planning.yml").write_text(
        "intents:\n"
        "  deploy: {rank_by: apy, max_allocations: 3, weighting: schedule, auto_rebalance: false}\n"
        "  rebalance: {rank_by: tvl, max_allocations: 5, weighting: equal, auto_rebalance: true}\n"
        "weight_schedules:\n"
        "  2: [50, 40]\n"
        "seed_balances: {USDC: 100}\n"
        "yield_sources: {limit: 3}\n"
    )

    with pytest.raises(ValueError, match="sum to 100"):
        ConfigEngine(tmp_path).load_all()


def test_unknown_weighting_is_rejected(tmp_path):
    shutil.copy(CONFIG_DIR / "protocols.yml", tmp_path / "protocols.yml")
    (tmp_path / "planning.yml").write_text(
        "intents:\n"
        "  deploy: {rank_by: apy, max_allocations: 3, weighting: random, auto_rebalance: false}\n"
        "weight_schedules: {}\n"
        "seed_balances: {}\n"
        "yield_sources: {limit: 3}\n"
    )

    with pytest.raises(ValueError, match="unknown weighting"):
        ConfigEngine(tmp_path).load_all()
