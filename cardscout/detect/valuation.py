"""Deterministic fair-value estimate for a card listing."""

from __future__ import annotations

import re
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable, Optional

from cardscout.config import settings

# Additive premiums over the base estimate, keyed on title keywords
KEYWORD_PREMIUMS: tuple[tuple[str, re.Pattern, Decimal], ...] = (
    ("PSA 10", re.compile(r"\bPSA\s*10\b", re.IGNORECASE), Decimal("0.4")),
    ("BGS 9.5", re.compile(r"\bBGS\s*9\.5\b", re.IGNORECASE), Decimal("0.3")),
    ("Auto", re.compile(r"\bauto(?:graph(?:ed)?)?\b", re.IGNORECASE), Decimal("0.5")),
    ("RC", re.compile(r"\b(?:RC|rookie)\b", re.IGNORECASE), Decimal("0.2")),
    ("Chrome", re.compile(r"\bchrome\b", re.IGNORECASE), Decimal("0.1")),
)


class FairValueEstimator:
    """
    Estimates what a listing should sell for.

    value = floor(base * (1 + sum(keyword premiums)) * demand)

    where demand is the high-demand multiplier when the subject appears on the
    configured high-demand list and 1 otherwise.
    """

    def __init__(
        self,
        base_value: Optional[Decimal] = None,
        high_demand_subjects: Optional[Iterable[str]] = None,
        demand_multiplier: Optional[Decimal] = None,
    ):
        self.base_value = Decimal(str(base_value if base_value is not None else settings.base_card_value))
        self.high_demand_subjects = tuple(
            high_demand_subjects if high_demand_subjects is not None else settings.high_demand_subjects
        )
        self.demand_multiplier = Decimal(
            str(demand_multiplier if demand_multiplier is not None else settings.high_demand_multiplier)
        )

    def matched_keywords(self, title: str) -> list[str]:
        return [label for label, pattern, _ in KEYWORD_PREMIUMS if pattern.search(title or "")]

    def multiplier(self, title: str) -> Decimal:
        total = Decimal("1")
        for _, pattern, premium in KEYWORD_PREMIUMS:
            if pattern.search(title or ""):
                total += premium
        return total

    def is_high_demand(self, subject_name: str) -> bool:
        return any(name and name in subject_name for name in self.high_demand_subjects)

    def estimate(self, subject_name: str, title: str) -> Decimal:
        value = self.base_value * self.multiplier(title)
        if self.is_high_demand(subject_name):
            value *= self.demand_multiplier
        return value.to_integral_value(rounding=ROUND_FLOOR)
