"""
Keyword intent classifier.

Ordered patterns; the first match wins. Specific intents come before the
generic deploy verbs so "rebalance 1m" is not read as a deploy.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from app.domain.models import Intent

_PATTERNS: List[Tuple[Intent, re.Pattern]] = [
    (Intent.RESET_BALANCES, re.compile(r"\breset\b.*\b(balances?|funds|wallet|ledger)\b")),
    (Intent.REBALANCE, re.compile(r"\b(auto[- ]?)?rebalanc(e|ing)\b")),
    (Intent.SET_ALERT, re.compile(r"\b(alert|notify|warn)\b")),
    (Intent.SHOW_YIELD_SOURCES, re.compile(r"\b(yield sources?|opportunities|best yields?|where .* yield)\b")),
    (Intent.SHOW_POSITIONS, re.compile(r"\b(positions?|portfolio|holdings)\b")),
    (Intent.DEPLOY, re.compile(r"\b(deploy|allocate|invest|stake|lend|put .* to work)\b")),
]


class RegexIntentClassifier:
    def classify(self, text: str) -> Optional[Intent]:
        s = (text or "").lower()
        for intent, pattern in _PATTERNS:
            if pattern.search(s):
                return intent
        return None
