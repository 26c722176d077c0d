"""
Domain Models Package
Export all domain entities
"""

from .enums import (
    AlertDirection,
    Intent,
    PlanStatus,
    RankBy,
    RiskBand,
    SessionStage,
)
from .entities import (
    AlertRule,
    Allocation,
    Candidate,
    DeploymentPlan,
    LedgerAccount,
    Position,
    Session,
)
from .slots import (
    AlertSlots,
    DeploySlots,
    IntentSlots,
    RebalanceSlots,
    ResetBalancesSlots,
    ShowPositionsSlots,
    SlotSet,
    YieldSourcesSlots,
)

__all__ = [
    # Enums
    "AlertDirection",
    "Intent",
    "PlanStatus",
    "RankBy",
    "RiskBand",
    "SessionStage",

    # Entities
    "AlertRule",
    "Allocation",
    "Candidate",
    "DeploymentPlan",
    "LedgerAccount",
    "Position",
    "Session",

    # Slots
    "AlertSlots",
    "DeploySlots",
    "IntentSlots",
    "RebalanceSlots",
    "ResetBalancesSlots",
    "ShowPositionsSlots",
    "SlotSet",
    "YieldSourcesSlots",
]
