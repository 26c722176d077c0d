"""
DIALOGUE CONTROLLER
Top-level entry point: raw text → reply plus state changes

RESPONSIBILITIES:
- Serialize every call for a user under the store's per-user lock
- Route by session stage: slot filling, or confirm/cancel/adjust/new intent
- Run informational intents (yield sources, alerts, positions, reset)
- Convert every failure into a reply

RULES:
❌ No cross-call state outside the injected stores
❌ Session is never saved after a failed call
✅ The only boundary that turns exceptions into replies
"""

import logging
import re
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, Tuple

from app.domain.errors import InvalidAmount, NoPendingPlan, PlanError
from app.domain.models import (
    AlertRule,
    Intent,
    RankBy,
    Session,
    SessionStage,
)
from app.domain.models.slots import AlertSlots, YieldSourcesSlots, validate_slot_values
from app.domain.schemas.reply import Reply
from app.domain.services import formatters
from app.domain.services.config_engine import ConfigEngine
from app.domain.services.plan_executor import CandidateProvider, PlanExecutor
from app.domain.services.session_machine import SessionStateMachine
from app.domain.services.slot_schema import is_plan_intent, next_question, to_intent_slots

logger = logging.getLogger(__name__)


class IntentClassifier(Protocol):
    """Names the intent of a message, or None"""

    def classify(self, text: str) -> Optional[Intent]:
        ...


class SlotExtractor(Protocol):
    """Best-effort slot values; absence means not found"""

    def extract(self, text: str, intent: Optional[Intent]) -> Mapping[str, Any]:
        ...


CONFIRM_PHRASES = frozenset({
    "confirm", "yes", "y", "yep", "yeah", "ok", "okay", "go", "go ahead", "do it",
    "execute", "proceed", "apply", "approve", "sounds good", "deploy it", "looks good",
})
CANCEL_PHRASES = frozenset({
    "cancel", "no", "n", "nope", "stop", "abort", "discard", "nevermind", "never mind",
    "forget it", "don't", "dont",
})
ADJUST_KEYWORDS = re.compile(
    r"\b(make it|change|adjust|update|instead|increase|decrease|reduce|lower|raise|bump|use)\b"
)

GENERIC_ERROR_TEXT = "Something went wrong while handling your request. Please try again."


class PendingAction(str, Enum):
    """Reading of a message while a plan awaits confirmation"""
    CONFIRM = "confirm"
    CANCEL = "cancel"
    ADJUST = "adjust"
    NEW_INTENT = "new_intent"
    UNRESOLVED = "unresolved"


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip().lower()).strip(" .!?")


def is_confirm(text: str) -> bool:
    s = _normalize(text)
    return s in CONFIRM_PHRASES or s.startswith("confirm") or s.startswith("yes")


def is_cancel(text: str) -> bool:
    s = _normalize(text)
    return s in CANCEL_PHRASES or s.startswith("cancel")


class DialogueController:
    """
    Dialogue Controller
    handle(user_id, text) -> Reply
    """

    def __init__(
        self,
        store,
        session_repo,
        ledger_repo,
        position_repo,
        alert_repo,
        executor: PlanExecutor,
        classifier: IntentClassifier,
        extractor: SlotExtractor,
        candidate_provider: CandidateProvider,
        config_engine: ConfigEngine,
        machine: Optional[SessionStateMachine] = None,
        seed_balances: bool = True,
    ):
        self.store = store
        self.session_repo = session_repo
        self.ledger_repo = ledger_repo
        self.position_repo = position_repo
        self.alert_repo = alert_repo
        self.executor = executor
        self.classifier = classifier
        self.extractor = extractor
        self.candidate_provider = candidate_provider
        self.config_engine = config_engine
        self.machine = machine or SessionStateMachine()
        self.seed_balances = seed_balances

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle(self, user_id: str, text: str) -> Reply:
        """Route one free-text message"""
        return await self._serialized(user_id, lambda session: self._route(session, text))

    async def confirm_plan(self, user_id: str, plan_id: str) -> Reply:
        """Confirm a specific plan id (button-style)"""
        return await self._serialized(user_id, lambda session: self._confirm(session, plan_id))

    async def cancel_plan(self, user_id: str, plan_id: str) -> Reply:
        """Cancel a specific plan id (button-style)"""
        return await self._serialized(user_id, lambda session: self._cancel(session, plan_id))

    async def _serialized(self, user_id: str, action: Callable[[Session], Awaitable[Reply]]) -> Reply:
        reply: Optional[Reply] = None
        try:
            async with self.store.lock(f"session:{user_id}"):
                reply = await self._run(user_id, action)
        except Exception:
            # Lock acquire or release failed; a finished reply still stands
            if reply is not None:
                logger.exception("Lock release failed for %s after the request completed", user_id)
                return reply
            logger.exception("Could not lock session for %s", user_id)
            return Reply(text=GENERIC_ERROR_TEXT, stage=await self._stage_of(user_id), error="InternalError")
        return reply

    async def _run(self, user_id: str, action: Callable[[Session], Awaitable[Reply]]) -> Reply:
        session: Optional[Session] = None
        try:
            if self.seed_balances:
                await self.ledger_repo.ensure_seeded(user_id)
            session = await self.session_repo.get(user_id)
            return await action(session)
        except PlanError as exc:
            logger.info("Request from %s rejected: %s (%s)", user_id, exc.kind, exc.message)
            stage = session.stage if session else SessionStage.IDLE
            return Reply(text=exc.message, stage=stage, error=exc.kind)
        except Exception:
            logger.exception("Unhandled error for user %s", user_id)
            stage = session.stage if session else SessionStage.IDLE
            return Reply(text=GENERIC_ERROR_TEXT, stage=stage, error="InternalError")

    async def _stage_of(self, user_id: str) -> SessionStage:
        try:
            return (await self.session_repo.get(user_id)).stage
        except Exception:
            logger.exception("Could not read session stage for %s", user_id)
            return SessionStage.IDLE

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def _route(self, session: Session, text: str) -> Reply:
        if session.stage == SessionStage.AWAITING_CONFIRMATION:
            return await self._route_pending(session, text)

        intent = self.classifier.classify(text)
        if intent is None:
            if is_confirm(text) or is_cancel(text):
                raise NoPendingPlan()
            if session.active_intent is None:
                return Reply(text=formatters.HELP_TEXT, stage=session.stage)
            intent = session.active_intent
        elif intent != session.active_intent:
            session = self.machine.begin_intent(session, intent)

        return await self._collect(session, intent, text)

    def classify_pending(self, session: Session, text: str) -> Tuple[PendingAction, Optional[Intent], Dict[str, Any]]:
        """
        Read a message sent while a plan awaits confirmation.

        Priority: confirm, cancel, adjust, new intent, unresolved.
        A "yes ..." reply that carries a new amount is an adjustment.
        """
        raw = self.extractor.extract(text, session.active_intent)
        adjustable = ("amount", "percentage") if session.active_intent == Intent.REBALANCE else ("amount",)
        changes = {name: raw[name] for name in adjustable if raw.get(name) is not None}

        if _normalize(text) in CONFIRM_PHRASES or (is_confirm(text) and not changes):
            return PendingAction.CONFIRM, None, {}
        if is_cancel(text):
            return PendingAction.CANCEL, None, {}

        intent = self.classifier.classify(text)

        if changes and (ADJUST_KEYWORDS.search(_normalize(text)) or intent is None):
            return PendingAction.ADJUST, None, changes
        if intent is not None:
            return PendingAction.NEW_INTENT, intent, {}
        return PendingAction.UNRESOLVED, None, {}

    async def _route_pending(self, session: Session, text: str) -> Reply:
        action, intent, changes = self.classify_pending(session, text)
        logger.debug("Pending plan %s: read %r as %s", session.pending_plan_id, text, action.value)

        if action == PendingAction.CONFIRM:
            return await self._confirm(session, None)
        if action == PendingAction.CANCEL:
            return await self._cancel(session, None)
        if action == PendingAction.ADJUST:
            return await self._adjust(session, changes)
        if action == PendingAction.NEW_INTENT:
            session = self.machine.begin_intent(session, intent)
            return await self._collect(session, intent, text)

        return Reply(
            text=(
                f"Plan {session.pending_plan_id} is waiting for your answer. "
                "Reply 'confirm', 'cancel', or give a new amount."
            ),
            stage=session.stage,
        )

    # ------------------------------------------------------------------
    # Slot filling
    # ------------------------------------------------------------------

    async def _collect(self, session: Session, intent: Intent, text: str) -> Reply:
        raw = self.extractor.extract(text, intent)
        values, rejected = validate_slot_values(raw)
        session = self.machine.merge_slots(session, values)

        question = next_question(intent, session.slots)
        if question:
            session = await self.session_repo.save(session)
            prefix = ""
            if rejected:
                prefix = f"I couldn't use the {', '.join(sorted(rejected))} you gave. "
            return Reply(text=prefix + question, stage=session.stage, follow_up=question)

        if is_plan_intent(intent):
            session, plan = await self.executor.propose(session)
            return Reply(text=formatters.format_plan(plan), stage=session.stage, plan=plan)

        return await self._run_informational(session, intent)

    # ------------------------------------------------------------------
    # Plan actions
    # ------------------------------------------------------------------

    async def _confirm(self, session: Session, plan_id: Optional[str]) -> Reply:
        result = await self.executor.apply(session, plan_id)
        return Reply(
            text=formatters.format_applied(result.plan, result.positions),
            stage=result.session.stage,
            plan=result.plan,
            positions=result.positions,
        )

    async def _cancel(self, session: Session, plan_id: Optional[str]) -> Reply:
        idle, plan = await self.executor.cancel(session, plan_id)
        return Reply(text=formatters.format_canceled(plan), stage=idle.stage, plan=plan)

    async def _adjust(self, session: Session, changes: Mapping[str, Any]) -> Reply:
        values, rejected = validate_slot_values(changes)
        if rejected:
            raise InvalidAmount(next(iter(rejected.values())))
        session, plan = await self.executor.adjust(session, values)
        return Reply(text=formatters.format_plan(plan), stage=session.stage, plan=plan)

    # ------------------------------------------------------------------
    # Informational intents
    # ------------------------------------------------------------------

    async def _run_informational(self, session: Session, intent: Intent) -> Reply:
        user_id = session.user_id
        typed = to_intent_slots(intent, session.slots)
        idle = self.machine.reset(session)

        if intent == Intent.SHOW_POSITIONS:
            positions = await self.position_repo.list(user_id)
            idle = await self.session_repo.save(idle)
            return Reply(text=formatters.format_positions(positions), stage=idle.stage, positions=positions)

        if intent == Intent.SHOW_YIELD_SOURCES:
            candidates = await self._yield_sources(typed)
            idle = await self.session_repo.save(idle)
            return Reply(
                text=formatters.format_yield_sources(typed.asset, candidates),
                stage=idle.stage,
                candidates=candidates,
            )

        if intent == Intent.SET_ALERT:
            alert = self._alert_from(user_id, typed)
            async with self.store.transaction() as tx:
                await self.alert_repo.bind(tx).add(alert)
                idle = await self.session_repo.bind(tx).save(idle)
            logger.info("Alert %s set for %s", alert.id, user_id)
            return Reply(text=formatters.format_alert(alert), stage=idle.stage, alert=alert)

        if intent == Intent.RESET_BALANCES:
            async with self.store.transaction() as tx:
                account = await self.ledger_repo.bind(tx).reset(user_id)
                idle = await self.session_repo.bind(tx).save(idle)
            return Reply(text=formatters.format_balances(account), stage=idle.stage)

        raise ValueError(f"Unhandled intent: {intent.value}")

    async def _yield_sources(self, slots: YieldSourcesSlots):
        return await self.candidate_provider.get_candidates(
            chain=slots.chain,
            asset=slots.asset,
            rank_by=RankBy.TVL,
            limit=self.config_engine.yield_sources_limit,
        )

    @staticmethod
    def _alert_from(user_id: str, slots: AlertSlots) -> AlertRule:
        return AlertRule(
            id=f"alert_{uuid.uuid4().hex[:12]}",
            user_id=user_id,
            asset=slots.asset,
            chain=slots.chain,
            threshold_pct=slots.percentage,
            direction=slots.direction,
        )
