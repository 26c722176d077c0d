"""
SLOT SCHEMA
Per-intent required-slot table and completeness gating

RESPONSIBILITIES:
- Declare the ordered required slots of every intent
- Compute missing slots in priority order
- Phrase one follow-up question for the highest-priority gap
- Convert a complete SlotSet into its typed per-intent variant

RULES:
❌ No extraction logic (delegated to the slot extractor)
✅ Required order is the questioning priority
"""

from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from app.domain.errors import SlotValidationError
from app.domain.models import Intent, SlotSet
from app.domain.models.slots import INTENT_SLOTS_ADAPTER, IntentSlots

REQUIRED_SLOTS: Dict[Intent, Tuple[str, ...]] = {
    Intent.DEPLOY: ("amount", "asset", "chain", "risk"),
    Intent.REBALANCE: ("amount", "asset", "chain", "percentage", "count"),
    Intent.SHOW_YIELD_SOURCES: ("asset",),
    Intent.SET_ALERT: ("asset", "percentage"),
    Intent.SHOW_POSITIONS: (),
    Intent.RESET_BALANCES: (),
}

PLAN_INTENTS = frozenset({Intent.DEPLOY, Intent.REBALANCE})

QUESTIONS: Dict[str, str] = {
    "amount": "How much capital would you like to deploy?",
    "asset": "Which asset should I use (e.g. USDC or SOL)?",
    "chain": "Which chain: Solana or Injective?",
    "risk": "What risk level do you prefer: low, medium or high?",
    "percentage": "What percentage should I use?",
    "count": "Across how many protocols?",
}

# Intent-specific wording
QUESTION_OVERRIDES: Dict[Tuple[Intent, str], str] = {
    (Intent.REBALANCE, "amount"): "What is the total portfolio amount to rebalance?",
    (Intent.REBALANCE, "percentage"): "What percentage of it should be rebalanced?",
    (Intent.REBALANCE, "count"): "Across how many top protocols by TVL (e.g. top 3)?",
    (Intent.SHOW_YIELD_SOURCES, "asset"): "Which asset do you want yield sources for?",
    (Intent.SET_ALERT, "asset"): "Which asset should the alert watch?",
    (Intent.SET_ALERT, "percentage"): "At what APY threshold (in %) should I alert you?",
}


def required_slots(intent: Intent) -> Tuple[str, ...]:
    return REQUIRED_SLOTS[intent]


def missing_slots(intent: Intent, slots: SlotSet) -> List[str]:
    """Required slots not yet filled, in priority order"""
    filled = slots.filled()
    return [name for name in required_slots(intent) if name not in filled]


def is_complete(intent: Intent, slots: SlotSet) -> bool:
    return not missing_slots(intent, slots)


def is_plan_intent(intent: Optional[Intent]) -> bool:
    return intent in PLAN_INTENTS


def follow_up_question(intent: Intent, slot: str) -> str:
    return QUESTION_OVERRIDES.get((intent, slot), QUESTIONS[slot])


def next_question(intent: Intent, slots: SlotSet) -> Optional[str]:
    """Question for the highest-priority missing slot, None when complete"""
    missing = missing_slots(intent, slots)
    if not missing:
        return None
    return follow_up_question(intent, missing[0])


def to_intent_slots(intent: Intent, slots: SlotSet) -> IntentSlots:
    """
    Convert a complete SlotSet into its typed variant.

    Raises:
        SlotValidationError: if required slots are missing or mistyped
    """
    missing = missing_slots(intent, slots)
    if missing:
        raise SlotValidationError(
            f"Cannot build {intent.value}: missing {', '.join(missing)}"
        )
    payload = slots.model_dump(exclude_none=True)
    payload["intent"] = intent
    try:
        return INTENT_SLOTS_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise SlotValidationError(f"Invalid slots for {intent.value}: {exc.error_count()} errors") from exc
