"""
Unit Tests for PlanBuilder
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from app.domain.errors import InvalidAmount, NoCandidates
from app.domain.models import (
    Candidate,
    DeploySlots,
    Intent,
    PlanStatus,
    RankBy,
    RebalanceSlots,
    RiskBand,
)
from app.domain.services.plan_builder import PlanBuilder

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def deploy(amount="250000", asset="USDC", chain="solana", risk=RiskBand.MEDIUM) -> DeploySlots:
    return DeploySlots(amount=Decimal(amount), asset=asset, chain=chain, risk=risk)


@pytest.fixture
def catalog_candidates(config_engine):
    return config_engine.protocol_catalog.candidates()


@pytest.fixture
def fixed_builder(config_engine):
    return PlanBuilder(config_engine, id_factory=lambda: "plan_fixed", clock=lambda: NOW)


def test_deploy_example_splits_250k_across_top_three_by_apy(fixed_builder, catalog_candidates):
    plan = fixed_builder.build("u1", deploy(), catalog_candidates)

    assert [a.protocol for a in plan.allocations] == ["Kamino", "Meteora vaults", "Raydium"]
    assert [a.amount_usd for a in plan.allocations] == [
        Decimal("100000"), Decimal("87500"), Decimal("62500"),
    ]
    assert [a.weight_pct for a in plan.allocations] == [
        Decimal("40.00"), Decimal("35.00"), Decimal("25.00"),
    ]
    assert plan.total_allocated == plan.capital_usd == Decimal("250000")
    assert plan.status == PlanStatus.PENDING
    assert plan.intent == Intent.DEPLOY
    assert plan.auto_rebalance is False
    assert plan.created_at == NOW
    assert plan.weighted_apy == Decimal("8.88")


def test_build_is_deterministic(fixed_builder, catalog_candidates):
    first = fixed_builder.build("u1", deploy(), catalog_candidates)
    second = fixed_builder.build("u1", deploy(), list(reversed(catalog_candidates)))

    assert first == second


@pytest.mark.parametrize("amount", ["1", "2.5", "10", "999999", "1234567.89", "333333"])
def test_sum_matches_capital_exactly(fixed_builder, catalog_candidates, amount):
    plan = fixed_builder.build("u1", deploy(amount=amount), catalog_candidates)

    assert sum(a.amount_usd for a in plan.allocations) == Decimal(amount)
    assert all(a.amount_usd > 0 for a in plan.allocations)


def test_low_risk_keeps_only_low_labels(fixed_builder, catalog_candidates):
    plan = fixed_builder.build("u1", deploy(risk=RiskBand.LOW), catalog_candidates)

    assert [a.protocol for a in plan.allocations] == ["Jupiter Lend", "Save (marginfi Save)"]
    assert [a.amount_usd for a in plan.allocations] == [Decimal("150000"), Decimal("100000")]
    assert {a.risk_label for a in plan.allocations} == {"low"}


def test_high_risk_accepts_every_label(fixed_builder, catalog_candidates):
    plan = fixed_builder.build("u1", deploy(chain="injective", risk=RiskBand.HIGH), catalog_candidates)

    assert plan.allocations[0].protocol == "Mito Finance"
    assert plan.allocations[0].risk_label == "high"


def test_missing_candidate_fields_default_to_slot_values(fixed_builder):
    candidates = [Candidate(protocol="Bare", apy=Decimal("5"), tvl=Decimal("1000"))]

    plan = fixed_builder.build("u1", deploy(amount="1000"), candidates)

    allocation = plan.allocations[0]
    assert allocation.chain == "solana"
    assert allocation.asset == "USDC"
    assert allocation.risk_label == "medium"
    assert allocation.amount_usd == Decimal("1000")


def test_ties_are_broken_by_protocol_name(fixed_builder):
    candidates = [
        Candidate(protocol="Beta", apy=Decimal("5"), tvl=Decimal("1"), chain="solana", asset="USDC", risk_label="low"),
        Candidate(protocol="Alpha", apy=Decimal("5"), tvl=Decimal("1"), chain="solana", asset="USDC", risk_label="low"),
    ]

    plan = fixed_builder.build("u1", deploy(amount="100"), candidates)

    assert [a.protocol for a in plan.allocations] == ["Alpha", "Beta"]
    assert [a.amount_usd for a in plan.allocations] == [Decimal("60"), Decimal("40")]


def test_no_surviving_candidate_raises(fixed_builder, catalog_candidates):
    with pytest.raises(NoCandidates) as exc_info:
        fixed_builder.build("u1", deploy(asset="INJ"), catalog_candidates)

    assert exc_info.value.kind == "NoCandidates"


def test_rebalance_uses_top_count_by_tvl_with_equal_split(fixed_builder, catalog_candidates):
    slots = RebalanceSlots(
        amount=Decimal("1000000"),
        asset="USDC",
        chain="solana",
        percentage=Decimal("50"),
        count=3,
    )

    plan = fixed_builder.build("u1", slots, catalog_candidates)

    assert plan.intent == Intent.REBALANCE
    assert plan.capital_usd == Decimal("500000")
    assert plan.auto_rebalance is True
    assert [a.protocol for a in plan.allocations] == ["Raydium", "Orca", "Kamino"]
    assert [a.amount_usd for a in plan.allocations] == [
        Decimal("166667"), Decimal("166667"), Decimal("166666"),
    ]


def test_rebalance_count_is_capped(fixed_builder, catalog_candidates):
    slots = RebalanceSlots(
        amount=Decimal("1000000"),
        asset="USDC",
        chain="solana",
        percentage=Decimal("100"),
        count=10,
    )

    plan = fixed_builder.build("u1", slots, catalog_candidates)

    assert len(plan.allocations) == 5
    assert plan.total_allocated == Decimal("1000000")


def test_zero_capital_is_invalid(fixed_builder, catalog_candidates):
    slots = RebalanceSlots(
        amount=Decimal("1000000"),
        asset="USDC",
        chain="solana",
        percentage=Decimal("0"),
        count=3,
    )

    with pytest.raises(InvalidAmount):
        fixed_builder.build("u1", slots, catalog_candidates)


def test_split_never_goes_negative():
    amounts = PlanBuilder.split(Decimal("2.5"), [Decimal("20")] * 5)

    assert sum(amounts) == Decimal("2.5")
    assert all(a >= 0 for a in amounts)


def test_select_ranks_by_requested_key(catalog_candidates):
    by_tvl = PlanBuilder.select(catalog_candidates, "solana", "SOL", RiskBand.HIGH, RankBy.TVL, 2)

    assert [c.protocol for c in by_tvl] == ["Jito (Liquid Staking)", "Kamino"]
