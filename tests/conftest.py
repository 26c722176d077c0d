from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest

from app.domain.models import Intent, RiskBand, Session
from app.domain.services.config_engine import ConfigEngine
from app.domain.services.dialogue_controller import DialogueController
from app.domain.services.plan_builder import PlanBuilder
from app.domain.services.plan_executor import PlanExecutor
from app.domain.services.session_machine import SessionStateMachine
from app.infrastructure.db.database import build_engine
from app.infrastructure.kv.memory_store import MemoryKeyValueStore
from app.infrastructure.kv.sql_store import SqlKeyValueStore
from app.infrastructure.nlu.regex_classifier import RegexIntentClassifier
from app.infrastructure.nlu.regex_extractor import RegexSlotExtractor
from app.infrastructure.repositories.alert_repository import AlertRepository
from app.infrastructure.repositories.ledger_repository import LedgerRepository
from app.infrastructure.repositories.plan_repository import PlanRepository
from app.infrastructure.repositories.position_repository import PositionRepository
from app.infrastructure.repositories.session_repository import SessionRepository
from app.infrastructure.yield_data.static_provider import StaticCandidateProvider

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

DEPLOY_SLOTS = {
    "amount": Decimal("250000"),
    "asset": "USDC",
    "chain": "solana",
    "risk": RiskBand.MEDIUM,
}


class SequentialIds:
    def __init__(self, prefix: str = "plan"):
        self.prefix = prefix
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"{self.prefix}_{self.count:04d}"


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish(self, event) -> bool:
        self.events.append(event)
        return True

    def types(self):
        return [e.event_type for e in self.events]


@pytest.fixture(scope="session")
def config_engine() -> ConfigEngine:
    engine = ConfigEngine(CONFIG_DIR)
    engine.load_all()
    return engine


@pytest.fixture()
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture()
async def sql_store(tmp_path):
    db_path = tmp_path / "kv.db"
    store = SqlKeyValueStore(build_engine(f"sqlite+aiosqlite:///{db_path}"))
    await store.create_tables()
    yield store
    await store.close()


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def repos(store, config_engine):
    return SimpleNamespace(
        sessions=SessionRepository(store),
        plans=PlanRepository(store),
        ledger=LedgerRepository(store, seed_balances=config_engine.seed_balances),
        positions=PositionRepository(store),
        alerts=AlertRepository(store),
    )


@pytest.fixture()
def machine() -> SessionStateMachine:
    return SessionStateMachine()


@pytest.fixture()
def builder(config_engine) -> PlanBuilder:
    return PlanBuilder(config_engine, id_factory=SequentialIds(), clock=lambda: FIXED_NOW)


@pytest.fixture()
def candidate_provider(config_engine) -> StaticCandidateProvider:
    return StaticCandidateProvider(config_engine.protocol_catalog)


@pytest.fixture()
def executor(store, repos, builder, candidate_provider, machine, publisher) -> PlanExecutor:
    return PlanExecutor(
        store=store,
        session_repo=repos.sessions,
        plan_repo=repos.plans,
        ledger_repo=repos.ledger,
        position_repo=repos.positions,
        builder=builder,
        candidate_provider=candidate_provider,
        machine=machine,
        publisher=publisher,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture()
def controller(store, repos, executor, candidate_provider, config_engine, machine) -> DialogueController:
    return DialogueController(
        store=store,
        session_repo=repos.sessions,
        ledger_repo=repos.ledger,
        position_repo=repos.positions,
        alert_repo=repos.alerts,
        executor=executor,
        classifier=RegexIntentClassifier(),
        extractor=RegexSlotExtractor(),
        candidate_provider=candidate_provider,
        config_engine=config_engine,
        machine=machine,
    )


@pytest.fixture()
def deploy_session(machine) -> Session:
    """Collecting session with complete deploy slots"""
    session = machine.begin_intent(Session(user_id="u1"), Intent.DEPLOY)
    return machine.merge_slots(session, DEPLOY_SLOTS)
