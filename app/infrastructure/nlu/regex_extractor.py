"""
Regex slot extractor.

Best-effort: returns only the slots it found. Values are raw (Decimal,
str, int); the core re-validates before merging.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional

from app.domain.models import Intent

DEFAULT_ASSETS = ("USDC", "USDT", "SOL", "INJ", "ETH", "WETH", "BTC", "JITOSOL", "MSOL")
DEFAULT_CHAINS = ("solana", "injective", "ethereum")

_MULTIPLIERS = {
    "k": Decimal("1000"),
    "thousand": Decimal("1000"),
    "m": Decimal("1000000"),
    "mn": Decimal("1000000"),
    "million": Decimal("1000000"),
    "b": Decimal("1000000000"),
    "bn": Decimal("1000000000"),
    "billion": Decimal("1000000000"),
}

_AMOUNT = re.compile(
    r"(?<![\w.])\$?(\d[\d,]*(?:\.\d+)?)\s*(thousand|million|billion|mn|bn|k|m|b)?(?![\w%])(?!\s*(%|percent))"
)
_PERCENT = re.compile(r"(\d+(?:\.\d+)?)\s*(%|percent\b)")
_COUNT = re.compile(r"\btop\s*(\d+)\b|\b(\d+)\s+(?:protocols?|pools?|venues?)\b")
_RISK = re.compile(r"\b(low|medium|med|high)[\s-]*risk\b|\brisk\s*(?:is|of|:|=)?\s*(low|medium|high)\b")
_BARE_RISK = re.compile(r"^\s*(low|medium|high)\s*[.!]?\s*$")
_RISK_WORDS = {
    "conservative": "low",
    "safe": "low",
    "moderate": "medium",
    "balanced": "medium",
    "aggressive": "high",
    "degen": "high",
}
_BELOW = re.compile(r"\b(below|under|drops?|falls?|less than)\b|<")
_ABOVE = re.compile(r"\b(above|over|exceeds?|rises?|more than|spikes?)\b|>")


def _parse_amount(number: str, suffix: Optional[str]) -> Optional[Decimal]:
    try:
        value = Decimal(number.replace(",", ""))
    except InvalidOperation:
        return None
    if suffix:
        value *= _MULTIPLIERS[suffix.lower()]
    return value


class RegexSlotExtractor:
    def __init__(self, assets: Iterable[str] = DEFAULT_ASSETS, chains: Iterable[str] = DEFAULT_CHAINS):
        assets = sorted({a.upper() for a in assets}, key=len, reverse=True)
        chains = sorted({c.lower() for c in chains}, key=len, reverse=True)
        self._asset = re.compile(r"\b(" + "|".join(map(re.escape, assets)) + r")\b", re.IGNORECASE)
        self._chain = re.compile(r"\b(" + "|".join(map(re.escape, chains)) + r")\b", re.IGNORECASE)

    def extract(self, text: str, intent: Optional[Intent] = None) -> Dict[str, Any]:
        s = (text or "").strip()
        lower = s.lower()
        slots: Dict[str, Any] = {}

        count_spans = []
        for match in _COUNT.finditer(lower):
            slots.setdefault("count", int(match.group(1) or match.group(2)))
            count_spans.append(match.span())

        for match in _AMOUNT.finditer(lower):
            if any(start <= match.start() < end for start, end in count_spans):
                continue
            amount = _parse_amount(match.group(1), match.group(2))
            if amount is not None:
                slots["amount"] = amount
                break

        percent = _PERCENT.search(lower)
        if percent:
            slots["percentage"] = Decimal(percent.group(1))

        asset = self._asset.search(s)
        if asset:
            slots["asset"] = asset.group(1).upper()

        chain = self._chain.search(lower)
        if chain:
            slots["chain"] = chain.group(1).lower()

        risk = self._extract_risk(lower)
        if risk:
            slots["risk"] = risk

        if intent == Intent.SET_ALERT:
            if _ABOVE.search(lower):
                slots["direction"] = "above"
            elif _BELOW.search(lower):
                slots["direction"] = "below"

        return slots

    @staticmethod
    def _extract_risk(lower: str) -> Optional[str]:
        match = _RISK.search(lower) or _BARE_RISK.search(lower)
        if match:
            word = next(g for g in match.groups() if g)
            return "medium" if word == "med" else word
        for word, band in _RISK_WORDS.items():
            if re.search(rf"\b{word}\b", lower):
                return band
        return None
