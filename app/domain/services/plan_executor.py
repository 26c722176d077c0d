"""
PLAN EXECUTOR
Propose, apply, cancel and adjust plans against the per-user stores

RESPONSIBILITIES:
- Re-read and verify the stored plan before every state change
- Debit the ledger and create positions exactly once per plan
- Keep session, plan, ledger and positions consistent

RULES:
❌ No partial application: every write of an operation lands in one
   store transaction, or none does
❌ No mutation before verification succeeds
✅ Caller holds the per-user lock for the whole call
✅ Errors leave the Session exactly as it was
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncContextManager, Callable, List, Mapping, Optional, Protocol, Tuple

from app.domain.errors import (
    DebitFailed,
    InsufficientFunds,
    InvalidAmount,
    NoPendingPlan,
    PlanIdMismatch,
    PlanNotFound,
    PlanNotPending,
)
from app.domain.models import (
    Candidate,
    DeploymentPlan,
    LedgerAccount,
    PlanStatus,
    Position,
    RankBy,
    Session,
)
from app.domain.services.plan_builder import PlanBuilder
from app.domain.services.session_machine import SessionStateMachine
from app.domain.services.slot_schema import to_intent_slots
from app.events.plan_events import PlanEvent, plan_applied, plan_canceled, plan_proposed
from app.utils.time import utc_now

logger = logging.getLogger(__name__)


class TransactionalStore(Protocol):
    """Protocol for the store the repositories bind to - ASYNC"""

    def transaction(self) -> AsyncContextManager[Any]:
        ...


class SessionRepository(Protocol):
    def bind(self, kv) -> "SessionRepository":
        ...

    async def save(self, session: Session) -> Session:
        ...


class PlanRepository(Protocol):
    def bind(self, kv) -> "PlanRepository":
        ...

    async def get(self, user_id: str) -> Optional[DeploymentPlan]:
        ...

    async def save(self, plan: DeploymentPlan) -> None:
        ...


class DebitOutcome(Protocol):
    ok: bool
    reason: Optional[str]


class LedgerRepository(Protocol):
    def bind(self, kv) -> "LedgerRepository":
        ...

    async def balance(self, user_id: str, asset: str) -> Decimal:
        ...

    async def debit(self, user_id: str, asset: str, amount: Decimal) -> DebitOutcome:
        ...

    async def credit(self, user_id: str, asset: str, amount: Decimal) -> LedgerAccount:
        ...


class PositionRepository(Protocol):
    def bind(self, kv) -> "PositionRepository":
        ...

    async def append(self, user_id: str, positions: List[Position]) -> List[Position]:
        ...


class CandidateProvider(Protocol):
    async def get_candidates(
        self,
        chain: str,
        asset: str,
        rank_by: RankBy,
        limit: Optional[int] = None,
    ) -> List[Candidate]:
        ...


class EventPublisher(Protocol):
    def publish(self, event: PlanEvent) -> bool:
        ...


@dataclass(frozen=True)
class ApplyResult:
    session: Session
    plan: DeploymentPlan
    positions: List[Position]

    @property
    def total_usd(self) -> Decimal:
        return sum((p.amount_usd for p in self.positions), Decimal("0"))


class PlanExecutor:
    """
    Plan Executor
    The only component that moves a plan out of PENDING
    """

    def __init__(
        self,
        store: TransactionalStore,
        session_repo: SessionRepository,
        plan_repo: PlanRepository,
        ledger_repo: LedgerRepository,
        position_repo: PositionRepository,
        builder: PlanBuilder,
        candidate_provider: CandidateProvider,
        machine: Optional[SessionStateMachine] = None,
        publisher: Optional[EventPublisher] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.session_repo = session_repo
        self.plan_repo = plan_repo
        self.ledger_repo = ledger_repo
        self.position_repo = position_repo
        self.builder = builder
        self.candidate_provider = candidate_provider
        self.machine = machine or SessionStateMachine()
        self.publisher = publisher
        self._clock = clock

    # ------------------------------------------------------------------
    # Propose / adjust
    # ------------------------------------------------------------------

    async def propose(self, session: Session) -> Tuple[Session, DeploymentPlan]:
        """
        Build a plan from the session's complete slots and await confirmation.

        The new plan replaces any previous proposal of the user.
        """
        plan = await self._build(session.user_id, session.active_intent, session.slots)
        proposed = self.machine.propose(session, plan.id)

        async with self.store.transaction() as tx:
            await self.plan_repo.bind(tx).save(plan)
            proposed = await self.session_repo.bind(tx).save(proposed)

        logger.info("Proposed plan %s to %s (%s)", plan.id, session.user_id, plan.capital_usd)
        self._emit(plan_proposed(plan))
        return proposed, plan

    async def adjust(self, session: Session, values: Mapping[str, Any]) -> Tuple[Session, DeploymentPlan]:
        """
        Change amount-derived slots of the pending plan and rebuild it.

        The rebuilt plan gets a new id and replaces the old one, which is
        never applied.
        """
        old_plan = await self._load_pending(session)
        if not any(values.get(name) is not None for name in ("amount", "percentage")):
            raise InvalidAmount(None)

        slots = session.slots.merge(values)
        plan = await self._build(session.user_id, session.active_intent, slots)
        adjusted = self.machine.adjust(session, values, plan.id)

        async with self.store.transaction() as tx:
            await self.plan_repo.bind(tx).save(plan)
            adjusted = await self.session_repo.bind(tx).save(adjusted)

        logger.info("Adjusted plan %s → %s for %s", old_plan.id, plan.id, session.user_id)
        self._emit(plan_proposed(plan))
        return adjusted, plan

    async def _build(self, user_id: str, intent, slots) -> DeploymentPlan:
        typed = to_intent_slots(intent, slots)
        rules = self.builder.rules_for(typed)
        candidates = await self.candidate_provider.get_candidates(
            chain=typed.chain,
            asset=typed.asset,
            rank_by=rules.rank_by,
        )
        return self.builder.build(user_id, typed, candidates)

    # ------------------------------------------------------------------
    # Apply / cancel
    # ------------------------------------------------------------------

    async def apply(self, session: Session, plan_id: Optional[str] = None) -> ApplyResult:
        """
        Apply the pending plan.

        Order: verify → debit → create positions → mark applied → reset
        session, all inside one store transaction.

        Raises:
            NoPendingPlan, PlanNotFound, PlanIdMismatch, PlanNotPending,
            InvalidAmount, InsufficientFunds, DebitFailed
        """
        plan = await self._load_pending(session, plan_id)
        user_id = session.user_id

        capital = plan.capital_usd
        if not capital.is_finite() or capital <= 0:
            raise InvalidAmount(capital)

        available = await self.ledger_repo.balance(user_id, plan.asset)
        if available < capital:
            raise InsufficientFunds(plan.asset, available, capital)

        entry_time = self._clock()
        positions = [
            Position(
                id=f"{plan.id}-{index}",
                plan_id=plan.id,
                protocol=allocation.protocol,
                chain=allocation.chain,
                asset=allocation.asset,
                amount_usd=allocation.amount_usd,
                base_apy=allocation.apy,
                risk_label=allocation.risk_label,
                entry_time=entry_time,
            )
            for index, allocation in enumerate(plan.allocations, start=1)
        ]
        applied = plan.model_copy(update={"status": PlanStatus.APPLIED})

        async with self.store.transaction() as tx:
            debit = await self.ledger_repo.bind(tx).debit(user_id, plan.asset, capital)
            if not debit.ok:
                raise DebitFailed(debit.reason or "rejected")
            await self.position_repo.bind(tx).append(user_id, positions)
            await self.plan_repo.bind(tx).save(applied)
            idle = await self.session_repo.bind(tx).save(self.machine.reset(session))

        result = ApplyResult(session=idle, plan=applied, positions=positions)
        logger.info(
            "Applied plan %s for %s: %d positions, %s %s",
            plan.id, user_id, len(positions), result.total_usd, plan.asset,
        )
        self._emit(plan_applied(user_id, plan.id, len(positions), result.total_usd))
        return result

    async def cancel(self, session: Session, plan_id: Optional[str] = None) -> Tuple[Session, DeploymentPlan]:
        """Mark the pending plan CANCELED and reset the session; no ledger effect"""
        plan = await self._load_pending(session, plan_id)
        canceled = plan.model_copy(update={"status": PlanStatus.CANCELED})

        async with self.store.transaction() as tx:
            await self.plan_repo.bind(tx).save(canceled)
            idle = await self.session_repo.bind(tx).save(self.machine.reset(session))

        logger.info("Canceled plan %s for %s", plan.id, session.user_id)
        self._emit(plan_canceled(session.user_id, plan.id))
        return idle, canceled

    async def _load_pending(self, session: Session, plan_id: Optional[str] = None) -> DeploymentPlan:
        """
        Re-read the stored plan and verify it may change state.

        A requested id that names an already finished plan is reported as
        PlanNotPending even after the session moved on, so replayed
        confirmations are recognized.
        """
        target_id = plan_id or session.pending_plan_id
        if target_id is None:
            raise NoPendingPlan()

        plan = await self.plan_repo.get(session.user_id)
        if plan is None:
            raise PlanNotFound(target_id)
        if plan.id != target_id:
            raise PlanIdMismatch(expected=session.pending_plan_id or plan.id, actual=target_id)
        if not plan.is_pending:
            raise PlanNotPending(plan.id, plan.status.value)

        pending_id = self.machine.require_pending(session)
        if pending_id != plan.id:
            raise PlanIdMismatch(expected=pending_id, actual=plan.id)
        return plan

    def _emit(self, event: PlanEvent) -> None:
        if self.publisher is not None:
            self.publisher.publish(event)
