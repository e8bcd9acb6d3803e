"""
Scoring step: sanitized factor scores → overall score and grade tier (deterministic, no LLM).

validate_score is the one clamp-and-default routine; the analyzer, the aggregator
and the confidence check all go through it.
"""
import math
from typing import Any, Mapping

from gradethread.schemas import FactorScores

SCORE_MIN = 1.0
SCORE_MAX = 10.0
NEUTRAL_SCORE = 7.0

FACTOR_WEIGHTS: dict[str, float] = {
    "fabric_condition": 0.30,
    "structural_integrity": 0.25,
    "cosmetic_appearance": 0.20,
    "functional_elements": 0.15,
    "odor_cleanliness": 0.10,
}
FACTOR_KEYS = tuple(FACTOR_WEIGHTS)

# Highest first; the first breakpoint the score reaches wins.
GRADE_TIER_BREAKPOINTS: list[tuple[float, str]] = [
    (10.0, "NWT"),
    (9.0, "NWOT"),
    (8.0, "Excellent"),
    (7.0, "Very Good"),
    (6.0, "Good"),
    (5.0, "Fair"),
]
LOWEST_TIER = "Poor"


def validate_score(raw: Any, minimum: float, maximum: float, default: float) -> float:
    """Return raw clamped to [minimum, maximum], or default when raw is not a finite number."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return default
    try:
        value = float(raw)
    except OverflowError:
        # An int past float range is still a finite number on one side of the range.
        return maximum if raw > 0 else minimum
    if not math.isfinite(value):
        return default
    return max(minimum, min(maximum, value))


def sanitize_factor_scores(raw: Mapping[str, Any]) -> FactorScores:
    """Run each of the five factors through validate_score. Missing keys get the neutral score."""
    return FactorScores(**{
        key: validate_score(raw.get(key), SCORE_MIN, SCORE_MAX, NEUTRAL_SCORE)
        for key in FACTOR_KEYS
    })


def round_to_half(value: float) -> float:
    """Round to the nearest 0.5, halves going up (7.25 → 7.5, 7.75 → 8.0)."""
    # Collapse float noise such as 7.749999999 before the half-up step.
    doubled = round(value * 2, 9)
    return math.floor(doubled + 0.5) / 2


def weighted_sum(scores: FactorScores) -> float:
    return sum(getattr(scores, key) * weight for key, weight in FACTOR_WEIGHTS.items())


def compute_overall_score(scores: FactorScores) -> float:
    """Authoritative overall score: weighted sum, rounded to 0.5, reclamped to [1.0, 10.0]."""
    return max(SCORE_MIN, min(SCORE_MAX, round_to_half(weighted_sum(scores))))


def grade_tier_for_score(score: float) -> str:
    for breakpoint, tier in GRADE_TIER_BREAKPOINTS:
        if score >= breakpoint:
            return tier
    return LOWEST_TIER
