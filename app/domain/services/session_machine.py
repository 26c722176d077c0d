"""
SESSION STATE MACHINE
Legal transitions of the per-user conversation state

STATES:
- IDLE: no active request
- COLLECTING: intent known, slots incomplete
- AWAITING_CONFIRMATION: plan proposed, pending_plan_id set

RULES:
❌ No persistence (callers save the returned Session)
✅ Every transition returns a new validated Session
✅ pending_plan_id set iff AWAITING_CONFIRMATION
"""

import logging
from typing import Any, Mapping

from app.domain.errors import NoPendingPlan
from app.domain.models import Intent, Session, SessionStage, SlotSet

logger = logging.getLogger(__name__)


def _evolve(session: Session, **changes: Any) -> Session:
    data = session.model_dump()
    data.update(changes)
    return Session.model_validate(data)


class SessionStateMachine:
    """Pure transitions; the dialogue controller and executor drive them"""

    def begin_intent(self, session: Session, intent: Intent) -> Session:
        """Start a new intent: fresh slots, no pending plan"""
        if session.stage == SessionStage.AWAITING_CONFIRMATION:
            logger.info(
                "User %s left plan %s pending to start %s",
                session.user_id, session.pending_plan_id, intent.value,
            )
        return _evolve(
            session,
            stage=SessionStage.COLLECTING,
            active_intent=intent,
            slots=SlotSet(),
            pending_plan_id=None,
        )

    def merge_slots(self, session: Session, values: Mapping[str, Any]) -> Session:
        """Overlay validated slot values; only legal with an active intent"""
        if session.active_intent is None:
            raise ValueError("Cannot merge slots without an active intent")
        if session.stage == SessionStage.AWAITING_CONFIRMATION:
            raise ValueError("Cannot collect slots while a plan awaits confirmation")
        return _evolve(
            session,
            stage=SessionStage.COLLECTING,
            slots=session.slots.merge(values),
        )

    def propose(self, session: Session, plan_id: str) -> Session:
        """Slots complete and plan stored → AWAITING_CONFIRMATION"""
        if session.active_intent is None:
            raise ValueError("Cannot propose a plan without an active intent")
        return _evolve(
            session,
            stage=SessionStage.AWAITING_CONFIRMATION,
            pending_plan_id=plan_id,
        )

    def adjust(self, session: Session, values: Mapping[str, Any], plan_id: str) -> Session:
        """Swap amount-derived slots and point at the rebuilt plan"""
        self.require_pending(session)
        return _evolve(
            session,
            slots=session.slots.merge(values),
            pending_plan_id=plan_id,
        )

    def reset(self, session: Session) -> Session:
        """Back to IDLE after apply, cancel or an informational intent"""
        return _evolve(
            session,
            stage=SessionStage.IDLE,
            active_intent=None,
            slots=SlotSet(),
            pending_plan_id=None,
        )

    @staticmethod
    def require_pending(session: Session) -> str:
        """pending_plan_id, or NoPendingPlan when not awaiting confirmation"""
        if session.stage != SessionStage.AWAITING_CONFIRMATION or session.pending_plan_id is None:
            raise NoPendingPlan()
        return session.pending_plan_id
