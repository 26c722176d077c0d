"""
Reply text formatting.
Plain text; transports render it however they like.
"""

from decimal import Decimal
from typing import List

from app.domain.models import AlertRule, Candidate, DeploymentPlan, Intent, LedgerAccount, Position
from app.utils.money import format_pct, format_usd


def format_plan(plan: DeploymentPlan) -> str:
    verb = "rebalance" if plan.intent == Intent.REBALANCE else "deploy"
    lines = [
        f"Proposed plan {plan.id}: {verb} {format_usd(plan.capital_usd)} {plan.asset} "
        f"on {plan.chain.title()} ({plan.risk} risk)",
    ]
    for allocation in plan.allocations:
        lines.append(
            f"  - {allocation.protocol}: {format_usd(allocation.amount_usd)} "
            f"({allocation.weight_pct.normalize():f}%) at {format_pct(allocation.apy)} APY, "
            f"{allocation.risk_label} risk"
        )
    lines.append(f"Weighted APY: {format_pct(plan.weighted_apy)}")
    if plan.auto_rebalance:
        lines.append("Auto-rebalance: on")
    lines.append("Reply 'confirm' to execute, 'cancel' to discard, or give a new amount to adjust.")
    return "\n".join(lines)


def format_applied(plan: DeploymentPlan, positions: List[Position]) -> str:
    total = sum((p.amount_usd for p in positions), Decimal("0"))
    return (
        f"Executed plan {plan.id}: {len(positions)} positions opened, "
        f"{format_usd(total)} {plan.asset} deployed."
    )


def format_canceled(plan: DeploymentPlan) -> str:
    return f"Plan {plan.id} canceled. Nothing was executed."


def format_positions(positions: List[Position]) -> str:
    if not positions:
        return "You have no open positions."
    lines = ["Your positions:"]
    for position in positions:
        lines.append(
            f"  - {position.protocol} ({position.chain}): {format_usd(position.amount_usd)} "
            f"{position.asset} at {format_pct(position.base_apy)} APY"
        )
    total = sum((p.amount_usd for p in positions), Decimal("0"))
    lines.append(f"Total: {format_usd(total)}")
    return "\n".join(lines)


def format_yield_sources(asset: str, candidates: List[Candidate]) -> str:
    if not candidates:
        return f"No yield sources found for {asset}."
    lines = [f"Top yield sources for {asset} by TVL:"]
    for candidate in candidates:
        lines.append(
            f"  - {candidate.protocol} ({candidate.chain}): {format_pct(candidate.apy)} APY, "
            f"TVL {format_usd(candidate.tvl)}, {candidate.risk_label} risk"
        )
    return "\n".join(lines)


def format_alert(alert: AlertRule) -> str:
    where = f" on {alert.chain.title()}" if alert.chain else ""
    return (
        f"Alert set: notify when {alert.asset}{where} APY goes {alert.direction.value} "
        f"{format_pct(alert.threshold_pct)}."
    )


def format_balances(account: LedgerAccount) -> str:
    parts = [f"{amount.normalize():f} {asset}" for asset, amount in sorted(account.balances.items())]
    return "Balances reset: " + ", ".join(parts) + "."


HELP_TEXT = (
    "I can deploy capital ('deploy 250k USDC on Solana, medium risk'), rebalance "
    "('rebalance 1m USDC on Solana, 50% across top 3'), list yield sources, set APY "
    "alerts, show positions or reset balances."
)
