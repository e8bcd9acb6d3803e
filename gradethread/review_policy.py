"""
Review flag policy: confidence score → human-review decision (deterministic).

REVIEW_THRESHOLD is the single boundary shared by the binary flag and the
display bands; the bands only add a split above it.
"""
from typing import Literal

from gradethread.scoring import validate_score

REVIEW_THRESHOLD = 0.75
HIGH_CONFIDENCE_THRESHOLD = 0.85
DEFAULT_CONFIDENCE = 0.5

ConfidenceBand = Literal["high", "medium", "low"]


def validate_confidence(raw: object) -> float:
    """Finite number clamped to [0, 1]; anything else falls back to 0.5."""
    return validate_score(raw, 0.0, 1.0, DEFAULT_CONFIDENCE)


def needs_human_review(confidence_score: float) -> bool:
    return confidence_score < REVIEW_THRESHOLD


def confidence_band(confidence_score: float) -> ConfidenceBand:
    """Display bucket: high (>= 0.85), medium (>= 0.75), low (< 0.75, always flagged)."""
    if needs_human_review(confidence_score):
        return "low"
    if confidence_score >= HIGH_CONFIDENCE_THRESHOLD:
        return "high"
    return "medium"
