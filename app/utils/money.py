"""Money helpers. All amounts are Decimal; never float."""

from decimal import Decimal, ROUND_HALF_UP

WHOLE_UNIT = Decimal("1")


def round_whole(amount: Decimal) -> Decimal:
    """Round to whole currency units (half up)."""
    return amount.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


def format_usd(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return f"${amount:,.0f}"
    return f"${amount:,.2f}"


def format_pct(value: Decimal) -> str:
    return f"{value:.2f}%"
