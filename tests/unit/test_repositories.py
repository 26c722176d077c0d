import pytest
from datetime import datetime, timezone
from decimal import Decimal

from app.domain.models import AlertRule, Intent, Position, RiskBand, SessionStage
from app.domain.services.session_machine import SessionStateMachine
from app.domain.services.slot_schema import to_intent_slots

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def position(pid: str, amount: str) -> Position:
    return Position(
        id=pid,
        plan_id="plan_1",
        protocol="Kamino",
        chain="solana",
        asset="USDC",
        amount_usd=Decimal(amount),
        base_apy=Decimal("9.2"),
        risk_label="medium",
        entry_time=NOW,
    )


@pytest.mark.asyncio
async def test_ledger_is_seeded_once(repos):
    account = await repos.ledger.ensure_seeded("u1")
    assert account.balance("USDC") == Decimal("10000000")
    assert account.balance("SOL") == Decimal("2000")

    result = await repos.ledger.debit("u1", "USDC", Decimal("1000"))
    assert result.ok

    again = await repos.ledger.ensure_seeded("u1")
    assert again.balance("USDC") == Decimal("9999000")


@pytest.mark.asyncio
async def test_ledger_debit_rejects_insufficient_and_invalid(repos):
    await repos.ledger.credit("u1", "usdc", Decimal("100"))

    short = await repos.ledger.debit("u1", "USDC", Decimal("101"))
    assert short.ok is False
    assert "insufficient" in short.reason

    invalid = await repos.ledger.debit("u1", "USDC", Decimal("0"))
    assert invalid.ok is False

    assert await repos.ledger.balance("u1", "USDC") == Decimal("100")


@pytest.mark.asyncio
async def test_ledger_credit_must_be_positive(repos):
    with pytest.raises(ValueError):
        await repos.ledger.credit("u1", "USDC", Decimal("-1"))


@pytest.mark.asyncio
async def test_ledger_reset_restores_seed(repos):
    await repos.ledger.ensure_seeded("u1")
    await repos.ledger.debit("u1", "SOL", Decimal("2000"))

    account = await repos.ledger.reset("u1")

    assert account.balance("SOL") == Decimal("2000")
    assert await repos.ledger.balance("u1", "SOL") == Decimal("2000")


@pytest.mark.asyncio
async def test_positions_are_append_only(repos):
    await repos.positions.append("u1", [position("p1", "10")])
    await repos.positions.append("u1", [position("p2", "20"), position("p3", "30")])

    stored = await repos.positions.list("u1")

    assert [p.id for p in stored] == ["p1", "p2", "p3"]
    assert stored[2].amount_usd == Decimal("30")
    assert await repos.positions.list("someone-else") == []


@pytest.mark.asyncio
async def test_session_round_trip_keeps_typed_slots(repos):
    sm = SessionStateMachine()
    session = sm.begin_intent(await repos.sessions.get("u1"), Intent.DEPLOY)
    session = sm.merge_slots(session, {"amount": Decimal("250000"), "risk": RiskBand.LOW})

    await repos.sessions.save(session)
    loaded = await repos.sessions.get("u1")

    assert loaded.stage == SessionStage.COLLECTING
    assert loaded.slots.amount == Decimal("250000")
    assert loaded.slots.risk == RiskBand.LOW


@pytest.mark.asyncio
async def test_plan_repository_keeps_latest_plan(repos, builder, config_engine, deploy_session):
    typed = to_intent_slots(Intent.DEPLOY, deploy_session.slots)
    candidates = config_engine.protocol_catalog.candidates()
    first = builder.build("u1", typed, candidates)
    second = builder.build("u1", typed, candidates)

    await repos.plans.save(first)
    await repos.plans.save(second)

    assert (await repos.plans.get("u1")).id == second.id
    assert await repos.plans.get_by_id("u1", first.id) is None
    loaded = await repos.plans.get_by_id("u1", second.id)
    assert loaded.allocations == second.allocations
    assert loaded.capital_usd == Decimal("250000")


@pytest.mark.asyncio
async def test_alerts_are_listed_per_user(repos):
    await repos.alerts.add(AlertRule(
        id="a1", user_id="u1", asset="USDC", threshold_pct=Decimal("7"),
    ))
    await repos.alerts.add(AlertRule(
        id="a2", user_id="u1", asset="SOL", threshold_pct=Decimal("5"), active=False,
    ))

    assert [a.id for a in await repos.alerts.list("u1")] == ["a1"]
    assert len(await repos.alerts.list("u1", active_only=False)) == 2


@pytest.mark.asyncio
async def test_bound_repository_writes_through_transaction(store, repos):
    async with store.transaction() as tx:
        await repos.ledger.bind(tx).credit("u1", "USDC", Decimal("5"))
        assert await repos.ledger.balance("u1", "USDC") == Decimal("0")

    assert await repos.ledger.balance("u1", "USDC") == Decimal("5")
