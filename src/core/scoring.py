"""
Score arithmetic shared by the grader, tracker and calculators.

Percentages round half up (2.5 -> 3), matching how scores were recorded in
existing grade snapshots. Python's built-in ``round`` rounds half to even and
would disagree on exact halves.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round ``value`` to ``ndigits`` decimals, halves away from zero."""
    quantum = Decimal(1).scaleb(-ndigits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return float(rounded)


def percent(part: float, whole: float) -> int:
    """Integer percentage of ``part`` over ``whole``; 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    return int(round_half_up(100 * part / whole))


class CompetencyLevel(str, Enum):
    """Competency bands reported on learner grade summaries."""

    NOT_COMPETENT = "not_competent"
    DEVELOPING = "developing"
    COMPETENT = "competent"
    MASTERY = "mastery"


def calculate_competency(score: float) -> CompetencyLevel:
    """Map a 0-100 score to its competency band."""
    if score >= 95:
        return CompetencyLevel.MASTERY
    if score >= 80:
        return CompetencyLevel.COMPETENT
    if score >= 60:
        return CompetencyLevel.DEVELOPING
    return CompetencyLevel.NOT_COMPETENT
