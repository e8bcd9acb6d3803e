"""Golden-case tests: no LLM. Canned model replies go through the real post-processing."""
import json
import logging

import pytest

from gradethread import composite
from gradethread.composite import composite_grade, parse_composite_response
from gradethread.errors import AggregationError, ErrorKind, ResponseShapeError
from gradethread.llm import Completion
from gradethread.schemas import CompositeGradeResult, FactorScores, GarmentInfo, PerImageAnalysis

GARMENT = GarmentInfo(garment_type="tops", garment_category="t-shirt", brand="Uniqlo", title="Uniqlo U Crew Neck Tee, M")

ALL_EIGHTS = {
    "fabric_condition": 8.0,
    "structural_integrity": 8.0,
    "cosmetic_appearance": 8.0,
    "functional_elements": 8.0,
    "odor_cleanliness": 8.0,
}


def _analysis(role: str) -> PerImageAnalysis:
    return PerImageAnalysis(image_role=role, estimated_scores=FactorScores(**ALL_EIGHTS))


def _reply(payload: dict) -> str:
    return json.dumps(payload)


def _fake_complete(text: str):
    def fake(system: str, user: str, **kwargs) -> Completion:
        return Completion(text=text, model="fake-model", input_tokens=100, output_tokens=50)
    return fake


def test_four_photos_all_eights_grade_excellent(monkeypatch) -> None:
    analyses = [_analysis(r) for r in ("front", "back", "label", "detail")]
    reply = _reply({
        "overall_score": 8.0,
        "grade_tier": "Excellent",
        "factor_scores": ALL_EIGHTS,
        "ai_summary": "Clean tee with minimal wear.",
        "defects_found": [],
        "confidence_score": 0.9,
    })
    monkeypatch.setattr(composite, "complete", _fake_complete(reply))

    result = composite_grade(analyses, GARMENT)

    assert result.overall_score == 8.0
    assert result.grade_tier == "Excellent"
    assert result.needs_human_review is False
    assert result.prompt_version == "composite_v1"
    CompositeGradeResult.model_validate(result.model_dump())


def test_low_confidence_flags_review_regardless_of_score() -> None:
    reply = _reply({
        "factor_scores": {k: 10.0 for k in ALL_EIGHTS},
        "ai_summary": "Appears new with tags.",
        "confidence_score": 0.6,
    })
    result = parse_composite_response(reply)
    assert result.overall_score == 10.0
    assert result.grade_tier == "NWT"
    assert result.confidence_score == 0.6
    assert result.needs_human_review is True


def test_fenced_reply_is_parsed() -> None:
    reply = "```json\n" + _reply({"factor_scores": ALL_EIGHTS, "confidence_score": 0.8}) + "\n```"
    result = parse_composite_response(reply)
    assert result.overall_score == 8.0
    assert result.ai_summary == "Grade report generated by AI analysis."


def test_model_overall_score_is_discarded() -> None:
    reply = _reply({
        "overall_score": 3.0,
        "grade_tier": "Poor",
        "factor_scores": {k: 9.0 for k in ALL_EIGHTS},
        "confidence_score": 0.95,
    })
    result = parse_composite_response(reply)
    assert result.overall_score == 9.0
    assert result.grade_tier == "NWOT"


def test_missing_factor_scores_is_hard_failure(monkeypatch) -> None:
    reply = _reply({"overall_score": 8.0, "grade_tier": "Excellent", "confidence_score": 0.9})
    with pytest.raises(ResponseShapeError):
        parse_composite_response(reply)

    monkeypatch.setattr(composite, "complete", _fake_complete(reply))
    with pytest.raises(AggregationError) as exc_info:
        composite_grade([_analysis("front")], GARMENT)
    assert exc_info.value.kind == ErrorKind.RESPONSE_SHAPE
    assert isinstance(exc_info.value.__cause__, ResponseShapeError)


def test_same_reply_gives_identical_result(monkeypatch) -> None:
    reply = _reply({
        "factor_scores": {"fabric_condition": 7.3, "structural_integrity": 8.1, "cosmetic_appearance": 6.9, "functional_elements": 9.4, "odor_cleanliness": 8.0},
        "ai_summary": "Good overall, faint fading.",
        "defects_found": [{"defect": "fading", "severity": "minor", "location": "shoulders", "impact_on_grade": "slight"}],
        "confidence_score": 0.81,
    })
    monkeypatch.setattr(composite, "complete", _fake_complete(reply))
    analyses = [_analysis("front"), _analysis("back")]

    first = composite_grade(analyses, GARMENT)
    second = composite_grade(analyses, GARMENT)

    assert first == second
    assert first.model_dump_json() == second.model_dump_json()


def test_scores_past_float_range_are_clamped(monkeypatch) -> None:
    huge = 10 ** 400
    reply = _reply({
        "factor_scores": {**{k: huge for k in ALL_EIGHTS}, "odor_cleanliness": -huge},
        "confidence_score": huge,
    })
    monkeypatch.setattr(composite, "complete", _fake_complete(reply))

    result = composite_grade([_analysis("front")], GARMENT)

    assert result.factor_scores.fabric_condition == 10.0
    assert result.factor_scores.odor_cleanliness == 1.0
    # 9.0 + 0.1 = 9.1
    assert result.overall_score == 9.0
    assert result.grade_tier == "NWOT"
    assert result.confidence_score == 1.0
    assert result.needs_human_review is False


def test_flagged_grade_is_logged_with_usage(monkeypatch, caplog) -> None:
    reply = _reply({"factor_scores": ALL_EIGHTS, "confidence_score": 0.6})
    monkeypatch.setattr(composite, "complete", _fake_complete(reply))

    with caplog.at_level(logging.INFO, logger="gradethread.composite"):
        composite_grade([_analysis("front"), _analysis("back")], GARMENT)

    assert "garment_type=tops images=2 input_tokens=100 output_tokens=50 latency_ms=" in caplog.text
    flagged = [r for r in caplog.records if "flagged for human review" in r.getMessage()]
    assert len(flagged) == 1
    assert flagged[0].levelno == logging.WARNING
    assert "confidence=0.60 overall_score=8.0" in flagged[0].getMessage()


def test_confident_grade_is_not_flagged_in_logs(monkeypatch, caplog) -> None:
    reply = _reply({"factor_scores": ALL_EIGHTS, "confidence_score": 0.75})
    monkeypatch.setattr(composite, "complete", _fake_complete(reply))

    with caplog.at_level(logging.INFO, logger="gradethread.composite"):
        result = composite_grade([_analysis("front")], GARMENT)

    assert result.needs_human_review is False
    assert "composite_grade garment_type=tops images=1" in caplog.text
    assert "flagged for human review" not in caplog.text
