"""
Domain Models - Slots
Typed slot values collected across turns, and the per-intent tagged union
a complete slot set converts into.
"""

import logging
from decimal import Decimal
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from app.domain.models.enums import AlertDirection, Intent, RiskBand

logger = logging.getLogger(__name__)

SLOT_NAMES = ("amount", "asset", "chain", "risk", "percentage", "count", "direction")


class SlotSet(BaseModel):
    """
    Partial slot values for the active intent.

    Every field is optional; absence means "not collected yet".
    """
    model_config = ConfigDict(frozen=True)

    amount: Optional[Decimal] = Field(default=None, gt=0, allow_inf_nan=False)
    asset: Optional[str] = Field(default=None, pattern=r"^[A-Z][A-Z0-9]{1,9}$")
    chain: Optional[str] = Field(default=None, pattern=r"^[a-z][a-z0-9\-]{1,31}$")
    risk: Optional[RiskBand] = None
    percentage: Optional[Decimal] = Field(default=None, ge=0, le=100, allow_inf_nan=False)
    count: Optional[int] = Field(default=None, ge=1)
    direction: Optional[AlertDirection] = None

    @field_validator("asset", mode="before")
    @classmethod
    def _normalize_asset(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("chain", "risk", "direction", mode="before")
    @classmethod
    def _normalize_lower(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    def filled(self) -> set:
        """Names of slots that currently hold a value"""
        return {name for name in SLOT_NAMES if getattr(self, name) is not None}

    def merge(self, updates: Mapping[str, Any]) -> "SlotSet":
        """
        Overlay validated values onto this set.

        Only present values overwrite; absence never clears a filled slot.
        """
        present = {k: v for k, v in updates.items() if k in SLOT_NAMES and v is not None}
        if not present:
            return self
        return self.model_copy(update=present)


def validate_slot_values(raw: Mapping[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Re-validate values returned by a slot extractor.

    Returns:
        (valid, rejected) where valid holds typed values ready to merge
    """
    valid: Dict[str, Any] = {}
    rejected: Dict[str, Any] = {}

    for name, value in raw.items():
        if value is None:
            continue
        if name not in SLOT_NAMES:
            logger.debug("Ignoring unknown slot %s", name)
            continue
        try:
            checked = SlotSet.model_validate({name: value})
        except ValidationError:
            logger.warning("Rejected slot value %s=%r", name, value)
            rejected[name] = value
            continue
        valid[name] = getattr(checked, name)

    return valid, rejected


# ----------------------------------------------------------------------
# Per-intent variants
# ----------------------------------------------------------------------

class _IntentSlots(BaseModel):
    model_config = ConfigDict(frozen=True)


class DeploySlots(_IntentSlots):
    intent: Literal[Intent.DEPLOY] = Intent.DEPLOY
    amount: Decimal
    asset: str
    chain: str
    risk: RiskBand


class RebalanceSlots(_IntentSlots):
    intent: Literal[Intent.REBALANCE] = Intent.REBALANCE
    amount: Decimal
    asset: str
    chain: str
    percentage: Decimal
    count: int
    risk: RiskBand = RiskBand.HIGH

    @property
    def capital(self) -> Decimal:
        return self.amount * self.percentage / Decimal("100")


class YieldSourcesSlots(_IntentSlots):
    intent: Literal[Intent.SHOW_YIELD_SOURCES] = Intent.SHOW_YIELD_SOURCES
    asset: str
    chain: Optional[str] = None


class AlertSlots(_IntentSlots):
    intent: Literal[Intent.SET_ALERT] = Intent.SET_ALERT
    asset: str
    percentage: Decimal
    chain: Optional[str] = None
    direction: AlertDirection = AlertDirection.BELOW


class ShowPositionsSlots(_IntentSlots):
    intent: Literal[Intent.SHOW_POSITIONS] = Intent.SHOW_POSITIONS


class ResetBalancesSlots(_IntentSlots):
    intent: Literal[Intent.RESET_BALANCES] = Intent.RESET_BALANCES


IntentSlots = Annotated[
    Union[
        DeploySlots,
        RebalanceSlots,
        YieldSourcesSlots,
        AlertSlots,
        ShowPositionsSlots,
        ResetBalancesSlots,
    ],
    Field(discriminator="intent"),
]

INTENT_SLOTS_ADAPTER: TypeAdapter = TypeAdapter(IntentSlots)
