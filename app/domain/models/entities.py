"""
Domain Models - Entities
Persisted records for the plan lifecycle. Serialized to JSON bytes by the
repositories; no infrastructure dependencies here.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.domain.models.enums import (
    AlertDirection,
    Intent,
    PlanStatus,
    SessionStage,
)
from app.domain.models.slots import SlotSet
from app.utils.time import utc_now

# Rounding tolerance per allocation after integer rounding
ALLOCATION_EPSILON = Decimal("1")


class Session(BaseModel):
    """
    Per-user conversation state.

    Invariant: pending_plan_id is set if and only if
    stage == AWAITING_CONFIRMATION.
    """
    user_id: str
    stage: SessionStage = SessionStage.IDLE
    active_intent: Optional[Intent] = None
    slots: SlotSet = Field(default_factory=SlotSet)
    pending_plan_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_pending_invariant(self) -> "Session":
        awaiting = self.stage == SessionStage.AWAITING_CONFIRMATION
        if awaiting != (self.pending_plan_id is not None):
            raise ValueError(
                f"pending_plan_id must be set iff stage is awaiting_confirmation "
                f"(stage={self.stage.value}, pending_plan_id={self.pending_plan_id})"
            )
        return self


class Allocation(BaseModel):
    """One line item of a plan"""
    model_config = ConfigDict(frozen=True)

    protocol: str
    chain: str
    asset: str
    apy: Decimal
    tvl: Decimal
    risk_label: str
    weight_pct: Decimal
    amount_usd: Decimal


class DeploymentPlan(BaseModel):
    """Costed proposal of allocations awaiting confirmation"""
    id: str
    user_id: str
    created_at: datetime = Field(default_factory=utc_now)
    status: PlanStatus = PlanStatus.PENDING
    intent: Intent = Intent.DEPLOY
    capital_usd: Decimal
    asset: str
    chain: str
    risk: str
    auto_rebalance: bool = False
    allocations: List[Allocation]

    @model_validator(mode="after")
    def _check_sum_invariant(self) -> "DeploymentPlan":
        if self.capital_usd <= 0:
            raise ValueError("capital_usd must be positive")
        if not self.allocations:
            raise ValueError("plan must contain at least one allocation")
        total = sum((a.amount_usd for a in self.allocations), Decimal("0"))
        if abs(total - self.capital_usd) > ALLOCATION_EPSILON * len(self.allocations):
            raise ValueError(
                f"allocations sum {total} does not match capital {self.capital_usd}"
            )
        return self

    @property
    def is_pending(self) -> bool:
        return self.status == PlanStatus.PENDING

    @property
    def total_allocated(self) -> Decimal:
        return sum((a.amount_usd for a in self.allocations), Decimal("0"))

    @property
    def weighted_apy(self) -> Decimal:
        """APY weighted by allocated amount"""
        weighted = sum((a.apy * a.amount_usd for a in self.allocations), Decimal("0"))
        return (weighted / self.capital_usd).quantize(Decimal("0.01"))


class Position(BaseModel):
    """Immutable record of a realized allocation"""
    model_config = ConfigDict(frozen=True)

    id: str
    plan_id: str
    protocol: str
    chain: str
    asset: str
    amount_usd: Decimal
    base_apy: Decimal
    risk_label: str
    entry_time: datetime


class LedgerAccount(BaseModel):
    """Per-user custodial balances. Mutated only through debit/credit."""
    user_id: str
    balances: Dict[str, Decimal] = Field(default_factory=dict)
    seeded: bool = False
    updated_at: datetime = Field(default_factory=utc_now)

    def balance(self, asset: str) -> Decimal:
        return self.balances.get(asset.upper(), Decimal("0"))


class AlertRule(BaseModel):
    """APY threshold alert stored for a user"""
    id: str
    user_id: str
    asset: str
    chain: Optional[str] = None
    threshold_pct: Decimal
    direction: AlertDirection = AlertDirection.BELOW
    active: bool = True
    created_at: datetime = Field(default_factory=utc_now)


class Candidate(BaseModel):
    """Ranked protocol candidate supplied to the plan builder"""
    model_config = ConfigDict(frozen=True)

    protocol: str
    apy: Decimal
    tvl: Decimal
    chain: Optional[str] = None
    asset: Optional[str] = None
    risk_label: Optional[str] = None
