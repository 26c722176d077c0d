"""
PLAN BUILDER
Convert a complete slot set + ranked candidates → DeploymentPlan

RESPONSIBILITIES:
- Filter candidates by chain, asset and risk appetite
- Rank deterministically (rank key desc, protocol name asc)
- Weight the top N by schedule or equal split
- Round to whole units; last allocation absorbs the remainder

RULES:
❌ No ledger access
❌ No randomness (id and clock are injected)
✅ sum(amount_usd) == capital_usd exactly
✅ Deterministic output
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Union

from app.domain.errors import InvalidAmount, NoCandidates
from app.domain.models import (
    Allocation,
    Candidate,
    DeploySlots,
    DeploymentPlan,
    RankBy,
    RebalanceSlots,
    RiskBand,
)
from app.domain.services.config_engine import ConfigEngine, PlanRules
from app.utils.money import round_whole
from app.utils.time import utc_now

logger = logging.getLogger(__name__)

PlanSlots = Union[DeploySlots, RebalanceSlots]

# Candidate labels accepted for each requested risk appetite
RISK_ACCEPTS = {
    RiskBand.LOW: frozenset({"low"}),
    RiskBand.MEDIUM: frozenset({"low", "medium"}),
    RiskBand.HIGH: frozenset({"low", "medium", "high"}),
}

HUNDRED = Decimal("100")


def new_plan_id() -> str:
    return f"plan_{uuid.uuid4().hex[:12]}"


class PlanBuilder:
    """
    Plan Builder
    Builds the single pending plan proposed to a user
    """

    def __init__(
        self,
        config_engine: ConfigEngine,
        id_factory: Callable[[], str] = new_plan_id,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config_engine = config_engine
        self._id_factory = id_factory
        self._clock = clock

    def rules_for(self, slots: PlanSlots) -> PlanRules:
        return self.config_engine.plan_rules(slots.intent)

    def allocation_limit(self, slots: PlanSlots) -> int:
        """How many candidates the plan may use"""
        rules = self.rules_for(slots)
        if isinstance(slots, RebalanceSlots):
            return min(slots.count, rules.max_allocations)
        return rules.max_allocations

    def build(self, user_id: str, slots: PlanSlots, candidates: Iterable[Candidate]) -> DeploymentPlan:
        """
        Build a pending plan

        Args:
            user_id: Owner of the plan
            slots: Complete typed slots of a plan-producing intent
            candidates: Candidate protocols, any order

        Returns:
            DeploymentPlan with status PENDING

        Raises:
            InvalidAmount: capital not positive
            NoCandidates: nothing survives filtering
        """
        rules = self.rules_for(slots)
        capital = self._capital(slots)

        selected = self.select(
            candidates,
            chain=slots.chain,
            asset=slots.asset,
            risk=slots.risk,
            rank_by=rules.rank_by,
            limit=self.allocation_limit(slots),
        )
        if not selected:
            raise NoCandidates(slots.asset, slots.chain, slots.risk.value)

        weights = self.weights(len(selected), rules.weighting)
        amounts = self.split(capital, weights)

        allocations = [
            Allocation(
                protocol=candidate.protocol,
                chain=candidate.chain or slots.chain,
                asset=candidate.asset or slots.asset,
                apy=candidate.apy,
                tvl=candidate.tvl,
                risk_label=candidate.risk_label or slots.risk.value,
                weight_pct=weight.quantize(Decimal("0.01")),
                amount_usd=amount,
            )
            for candidate, weight, amount in zip(selected, weights, amounts)
            if amount > 0
        ]

        plan = DeploymentPlan(
            id=self._id_factory(),
            user_id=user_id,
            created_at=self._clock(),
            intent=slots.intent,
            capital_usd=capital,
            asset=slots.asset,
            chain=slots.chain,
            risk=slots.risk.value,
            auto_rebalance=rules.auto_rebalance,
            allocations=allocations,
        )
        logger.info(
            "Built plan %s for %s: %s %s on %s across %d protocols",
            plan.id, user_id, capital, slots.asset, slots.chain, len(allocations),
        )
        return plan

    @staticmethod
    def _capital(slots: PlanSlots) -> Decimal:
        capital = slots.capital if isinstance(slots, RebalanceSlots) else slots.amount
        if not capital.is_finite() or capital <= 0:
            raise InvalidAmount(capital)
        return capital

    @staticmethod
    def select(
        candidates: Iterable[Candidate],
        chain: str,
        asset: str,
        risk: RiskBand,
        rank_by: RankBy,
        limit: int,
    ) -> List[Candidate]:
        """Filter by chain/asset/risk, rank, keep the top `limit`"""
        accepted = RISK_ACCEPTS[risk]
        eligible = []
        for candidate in candidates:
            if candidate.chain and candidate.chain != chain:
                continue
            if candidate.asset and candidate.asset != asset:
                continue
            label = candidate.risk_label or risk.value
            if label not in accepted:
                continue
            eligible.append(candidate)

        def rank_key(c: Candidate):
            value = c.apy if rank_by == RankBy.APY else c.tvl
            return (-value, c.protocol)

        eligible.sort(key=rank_key)
        return eligible[:limit]

    def weights(self, count: int, weighting: str) -> List[Decimal]:
        """Weights in percent, summing to 100"""
        if weighting == "schedule":
            schedule: Optional[tuple] = self.config_engine.weight_schedule(count)
            if schedule is not None:
                return list(schedule)
        return [HUNDRED / Decimal(count)] * count

    @staticmethod
    def split(capital: Decimal, weights: List[Decimal]) -> List[Decimal]:
        """
        Whole-unit amounts per weight; the last absorbs the remainder.

        Earlier amounts are capped by what remains so none goes negative.
        """
        amounts = []
        remaining = capital
        for weight in weights[:-1]:
            amount = min(round_whole(capital * weight / HUNDRED), remaining)
            amounts.append(amount)
            remaining -= amount
        amounts.append(remaining)
        return amounts
