"""
Domain Models - Enums
Shared enumerations for sessions, slots and plans
"""

from enum import Enum


class Intent(str, Enum):
    """Classified purpose of a user message"""
    DEPLOY = "deploy"
    REBALANCE = "rebalance"
    SHOW_YIELD_SOURCES = "show_yield_sources"
    SET_ALERT = "set_alert"
    SHOW_POSITIONS = "show_positions"
    RESET_BALANCES = "reset_balances"


class SessionStage(str, Enum):
    """Conversational stage gating which operations are legal next"""
    IDLE = "idle"
    COLLECTING = "collecting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


class PlanStatus(str, Enum):
    """Plan status; terminal once not PENDING"""
    PENDING = "pending"
    APPLIED = "applied"
    CANCELED = "canceled"


class RiskBand(str, Enum):
    """Risk appetite requested by the user and risk label of a protocol"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RankBy(str, Enum):
    """Candidate ranking key"""
    APY = "apy"
    TVL = "tvl"


class AlertDirection(str, Enum):
    BELOW = "below"
    ABOVE = "above"
