"""
Plan lifecycle errors.

Every kind is recoverable: raised before any mutation, converted into a
user-facing reply by the dialogue controller.
"""

from decimal import Decimal
from typing import Optional

from app.utils.money import format_usd


class PlanError(Exception):
    """Base class for plan lifecycle failures"""

    kind = "PlanError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NoPendingPlan(PlanError):
    kind = "NoPendingPlan"

    def __init__(self, message: str = "There is no pending plan to act on."):
        super().__init__(message)


class PlanNotFound(PlanError):
    kind = "PlanNotFound"

    def __init__(self, plan_id: Optional[str]):
        super().__init__(f"Plan {plan_id} was not found.")
        self.plan_id = plan_id


class PlanIdMismatch(PlanError):
    kind = "PlanIdMismatch"

    def __init__(self, expected: Optional[str], actual: Optional[str]):
        super().__init__(
            f"Plan {actual} is not the current proposal (current: {expected})."
        )
        self.expected = expected
        self.actual = actual


class PlanNotPending(PlanError):
    kind = "PlanNotPending"

    def __init__(self, plan_id: str, status: str):
        super().__init__(f"Plan {plan_id} is already {status}.")
        self.plan_id = plan_id
        self.status = status


class InvalidAmount(PlanError):
    kind = "InvalidAmount"

    def __init__(self, amount):
        super().__init__(f"Invalid amount: {amount}. Amount must be a positive number.")
        self.amount = amount


class InsufficientFunds(PlanError):
    kind = "InsufficientFunds"

    def __init__(self, asset: str, available: Decimal, required: Decimal):
        super().__init__(
            f"Insufficient {asset} balance: available {format_usd(available)}, "
            f"required {format_usd(required)}."
        )
        self.asset = asset
        self.available = available
        self.required = required


class DebitFailed(PlanError):
    kind = "DebitFailed"

    def __init__(self, reason: str):
        super().__init__(f"Ledger debit failed: {reason}.")
        self.reason = reason


class NoCandidates(PlanError):
    kind = "NoCandidates"

    def __init__(self, asset: str, chain: str, risk: str):
        super().__init__(
            f"No {risk}-risk protocols found for {asset} on {chain}."
        )
        self.asset = asset
        self.chain = chain
        self.risk = risk


class SlotValidationError(PlanError):
    kind = "SlotValidationError"
