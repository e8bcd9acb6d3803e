"""Score validator, rounding, weighted overall score and grade tiers (pure functions)."""
import math

import pytest

from gradethread.schemas import FactorScores
from gradethread.scoring import (
    FACTOR_KEYS,
    FACTOR_WEIGHTS,
    compute_overall_score,
    grade_tier_for_score,
    round_to_half,
    sanitize_factor_scores,
    validate_score,
)


def _scores(fabric, structural, cosmetic, functional, odor) -> FactorScores:
    return FactorScores(
        fabric_condition=fabric,
        structural_integrity=structural,
        cosmetic_appearance=cosmetic,
        functional_elements=functional,
        odor_cleanliness=odor,
    )


def test_weights_sum_to_one() -> None:
    assert math.isclose(sum(FACTOR_WEIGHTS.values()), 1.0)
    assert FACTOR_WEIGHTS["fabric_condition"] == 0.30
    assert FACTOR_WEIGHTS["odor_cleanliness"] == 0.10


@pytest.mark.parametrize("raw", ["8.5", None, float("nan"), float("inf"), True, [8], {"score": 8}])
def test_invalid_input_defaults_to_neutral(raw) -> None:
    assert validate_score(raw, 1.0, 10.0, 7.0) == 7.0


@pytest.mark.parametrize("raw, expected", [(0, 1.0), (-3.5, 1.0), (11, 10.0), (9, 9.0), (6.25, 6.25)])
def test_numbers_are_clamped(raw, expected) -> None:
    assert validate_score(raw, 1.0, 10.0, 7.0) == expected


@pytest.mark.parametrize("raw, score, confidence", [(10 ** 400, 10.0, 1.0), (-(10 ** 400), 1.0, 0.0)])
def test_integers_beyond_float_range_are_clamped(raw, score, confidence) -> None:
    assert validate_score(raw, 1.0, 10.0, 7.0) == score
    assert validate_score(raw, 0.0, 1.0, 0.5) == confidence


def test_sanitize_fills_missing_and_clamps_every_factor() -> None:
    scores = sanitize_factor_scores({"fabric_condition": 15, "structural_integrity": "bad", "cosmetic_appearance": 0.2})
    assert scores.fabric_condition == 10.0
    assert scores.structural_integrity == 7.0
    assert scores.cosmetic_appearance == 1.0
    assert scores.functional_elements == 7.0
    assert scores.odor_cleanliness == 7.0
    for key in FACTOR_KEYS:
        assert 1.0 <= getattr(scores, key) <= 10.0


@pytest.mark.parametrize("value, expected", [(7.24, 7.0), (7.25, 7.5), (7.74, 7.5), (7.75, 8.0), (7.749999999999, 8.0), (8.0, 8.0)])
def test_round_to_half_goes_up_on_halves(value, expected) -> None:
    assert round_to_half(value) == expected


def test_overall_score_is_weighted_sum_rounded() -> None:
    # 2.7 + 2.0 + 1.4 + 0.9 + 0.5 = 7.5
    assert compute_overall_score(_scores(9.0, 8.0, 7.0, 6.0, 5.0)) == 7.5
    # 2.25 + 1.875 + 1.4 + 1.05 + 0.7 = 7.275
    assert compute_overall_score(_scores(7.5, 7.5, 7.0, 7.0, 7.0)) == 7.5
    # 6.3 + 0.95 = 7.25, halves go up
    assert compute_overall_score(_scores(7.0, 7.0, 7.0, 7.0, 9.5)) == 7.5
    # 7.2 + 0.55 = 7.75 (inexact in floating point)
    assert compute_overall_score(_scores(8.0, 8.0, 8.0, 8.0, 5.5)) == 8.0


def test_overall_score_stays_in_range() -> None:
    assert compute_overall_score(_scores(10.0, 10.0, 10.0, 10.0, 10.0)) == 10.0
    assert compute_overall_score(_scores(1.0, 1.0, 1.0, 1.0, 1.0)) == 1.0


@pytest.mark.parametrize("score, tier", [
    (10.0, "NWT"),
    (9.3, "NWOT"),
    (9.99, "NWOT"),
    (8.0, "Excellent"),
    (7.0, "Very Good"),
    (6.5, "Good"),
    (5.0, "Fair"),
    (4.0, "Poor"),
    (1.0, "Poor"),
])
def test_grade_tier_breakpoints(score, tier) -> None:
    assert grade_tier_for_score(score) == tier
