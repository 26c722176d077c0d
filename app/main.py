"""
Plan engine runtime: settings, config, store, repositories, providers,
collaborators, engines, controller and the event worker.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from app.config import Settings, settings as default_settings
from app.core.logging import setup_logging
from app.domain.schemas.reply import Reply
from app.domain.services.config_engine import DEFAULT_CONFIG_DIR, ConfigEngine
from app.domain.services.dialogue_controller import DialogueController, IntentClassifier, SlotExtractor
from app.domain.services.plan_builder import PlanBuilder
from app.domain.services.plan_executor import PlanExecutor
from app.domain.services.session_machine import SessionStateMachine
from app.events.plan_events import EventHandler, PlanEventQueue, PlanEventWorker, log_event
from app.infrastructure.kv.base import BaseKeyValueStore
from app.infrastructure.kv.factory import build_store
from app.infrastructure.nlu.regex_classifier import RegexIntentClassifier
from app.infrastructure.nlu.regex_extractor import DEFAULT_ASSETS, DEFAULT_CHAINS, RegexSlotExtractor
from app.infrastructure.repositories.alert_repository import AlertRepository
from app.infrastructure.repositories.ledger_repository import LedgerRepository
from app.infrastructure.repositories.plan_repository import PlanRepository
from app.infrastructure.repositories.position_repository import PositionRepository
from app.infrastructure.repositories.session_repository import SessionRepository
from app.infrastructure.yield_data.provider_factory import get_candidate_provider
from app.infrastructure.yield_data.types import CandidateProvider

logger = logging.getLogger(__name__)


class PlanEngineRuntime:
    def __init__(
        self,
        settings: Settings = default_settings,
        store: Optional[BaseKeyValueStore] = None,
        candidate_provider: Optional[CandidateProvider] = None,
        classifier: Optional[IntentClassifier] = None,
        extractor: Optional[SlotExtractor] = None,
        subscribers: Optional[List[EventHandler]] = None,
    ):
        self.settings = settings
        self._store = store
        self._candidate_provider = candidate_provider
        self._classifier = classifier
        self._extractor = extractor
        self._subscribers = list(subscribers) if subscribers is not None else [log_event]

        self.config_engine: Optional[ConfigEngine] = None
        self.events: Optional[PlanEventQueue] = None
        self.controller: Optional[DialogueController] = None
        self._worker: Optional[PlanEventWorker] = None
        self._started = False

    @property
    def store(self) -> Optional[BaseKeyValueStore]:
        return self._store

    @property
    def is_started(self) -> bool:
        return self._started

    def _config_dir(self) -> Path:
        if self.settings.CONFIG_DIR:
            return Path(self.settings.CONFIG_DIR)
        return DEFAULT_CONFIG_DIR

    async def start(self) -> None:
        if self._started:
            return

        config_engine = ConfigEngine(self._config_dir())
        config_engine.load_all()
        self.config_engine = config_engine
        logger.info("Configuration loaded from %s", config_engine.config_dir)

        if self._store is None:
            self._store = await build_store(self.settings)
        store = self._store

        provider = self._candidate_provider or get_candidate_provider(self.settings, config_engine)
        catalog = config_engine.protocol_catalog
        classifier = self._classifier or RegexIntentClassifier()
        extractor = self._extractor or RegexSlotExtractor(
            assets=set(DEFAULT_ASSETS) | set(catalog.assets),
            chains=set(DEFAULT_CHAINS) | set(catalog.chains),
        )

        self.events = PlanEventQueue(maxsize=self.settings.EVENT_QUEUE_MAXSIZE)
        self._worker = PlanEventWorker(self.events, self._subscribers)
        self._worker.start()

        session_repo = SessionRepository(store)
        ledger_repo = LedgerRepository(store, seed_balances=config_engine.seed_balances)
        position_repo = PositionRepository(store)
        machine = SessionStateMachine()

        executor = PlanExecutor(
            store=store,
            session_repo=session_repo,
            plan_repo=PlanRepository(store),
            ledger_repo=ledger_repo,
            position_repo=position_repo,
            builder=PlanBuilder(config_engine),
            candidate_provider=provider,
            machine=machine,
            publisher=self.events,
        )
        self.controller = DialogueController(
            store=store,
            session_repo=session_repo,
            ledger_repo=ledger_repo,
            position_repo=position_repo,
            alert_repo=AlertRepository(store),
            executor=executor,
            classifier=classifier,
            extractor=extractor,
            candidate_provider=provider,
            config_engine=config_engine,
            machine=machine,
            seed_balances=self.settings.SEED_BALANCES_ENABLED,
        )

        self._started = True
        logger.info("Plan engine started (store=%s)", type(store).__name__)

    async def stop(self) -> None:
        if not self._started:
            return
        if self._worker:
            await self._worker.stop()
        if self._store is not None:
            await self._store.close()
        self._started = False
        logger.info("Plan engine stopped")

    async def handle(self, user_id: str, text: str) -> Reply:
        if self.controller is None:
            raise RuntimeError("PlanEngineRuntime.start() has not been called")
        return await self.controller.handle(user_id, text)


async def create_runtime(settings: Settings = default_settings) -> PlanEngineRuntime:
    """Configure logging and start a runtime from settings"""
    setup_logging(settings.LOG_LEVEL)
    runtime = PlanEngineRuntime(settings)
    await runtime.start()
    return runtime
