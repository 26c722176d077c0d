import pytest
from decimal import Decimal

from app.config import Settings
from app.domain.models import SessionStage
from app.events.plan_events import PLAN_APPLIED, PLAN_PROPOSED
from app.infrastructure.kv.factory import build_store
from app.infrastructure.kv.memory_store import MemoryKeyValueStore
from app.infrastructure.kv.sql_store import SqlKeyValueStore
from app.main import PlanEngineRuntime


def sql_settings(tmp_path) -> Settings:
    return Settings(
        STORE_BACKEND="sql",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}",
        CANDIDATE_PROVIDER="static",
        CANDIDATE_FALLBACK_PROVIDERS="",
    )


@pytest.mark.asyncio
async def test_runtime_over_sql_store_persists_between_restarts(tmp_path):
    seen = []

    async def record(event):
        seen.append(event.event_type)

    runtime = PlanEngineRuntime(sql_settings(tmp_path), subscribers=[record])
    await runtime.start()
    assert isinstance(runtime.store, SqlKeyValueStore)

    proposal = await runtime.handle("u1", "Deploy 250k USDC on Solana, medium risk")
    assert proposal.stage == SessionStage.AWAITING_CONFIRMATION

    executed = await runtime.handle("u1", "confirm")
    assert executed.ok
    await runtime.events.join()
    assert seen == [PLAN_PROPOSED, PLAN_APPLIED]
    await runtime.stop()
    assert runtime.is_started is False

    restarted = PlanEngineRuntime(sql_settings(tmp_path), subscribers=[])
    await restarted.start()
    try:
        positions = await restarted.handle("u1", "show my positions")
        assert sum(p.amount_usd for p in positions.positions) == Decimal("250000")

        replay = await restarted.controller.confirm_plan("u1", proposal.plan.id)
        assert replay.error == "PlanNotPending"
    finally:
        await restarted.stop()


@pytest.mark.asyncio
async def test_handle_requires_start():
    runtime = PlanEngineRuntime(Settings(STORE_BACKEND="memory"))

    with pytest.raises(RuntimeError):
        await runtime.handle("u1", "show my positions")


@pytest.mark.asyncio
async def test_store_factory_backends():
    assert isinstance(await build_store(Settings(STORE_BACKEND="memory")), MemoryKeyValueStore)

    with pytest.raises(ValueError):
        await build_store(Settings(STORE_BACKEND="cassandra"))
