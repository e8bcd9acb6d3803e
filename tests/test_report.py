"""Grade report mapping, re-derivation check, certificate rendering, CLI demo run."""
import argparse
import json

import pytest

from gradethread.audit import read_events
from gradethread.composite import parse_composite_response
from gradethread.run import DEMO_COMPOSITE_REPLY, parse_image_arg, run
from gradethread.report import (
    build_detailed_notes,
    build_grade_report,
    render_certificate,
    verify_grade_report,
)
from gradethread.schemas import ConditionSignal, DetectedIssue, FactorScores, GarmentInfo, PerImageAnalysis

GARMENT = GarmentInfo(garment_type="footwear", garment_category="sneakers", title="Nike Air Max 90, US 10")

REPLY = json.dumps({
    "factor_scores": {
        "fabric_condition": 6.0,
        "structural_integrity": 6.5,
        "cosmetic_appearance": 6.0,
        "functional_elements": 7.0,
        "odor_cleanliness": 5.0,
    },
    "ai_summary": "Visible creasing and sole wear.",
    "defects_found": [
        {"defect": "rip", "severity": "extreme", "location": "hem"},
        {"defect": "rip", "severity": "major", "location": "hem", "impact_on_grade": "lowers score"},
        {"defect": None, "severity": "minor", "location": "toe"},
        "scuffs",
    ],
    "confidence_score": 0.7,
})


def _analysis(role: str, issues=(), signals=()) -> PerImageAnalysis:
    return PerImageAnalysis(
        image_role=role,
        detected_issues=list(issues),
        condition_signals=list(signals),
        estimated_scores=FactorScores(fabric_condition=6, structural_integrity=6, cosmetic_appearance=6, functional_elements=6, odor_cleanliness=6),
    )


def test_defect_filter_keeps_only_valid_entries() -> None:
    result = parse_composite_response(REPLY)
    assert len(result.defects_found) == 1
    kept = result.defects_found[0]
    assert (kept.defect, kept.severity, kept.location, kept.impact_on_grade) == ("rip", "major", "hem", "lowers score")


def test_report_maps_result_one_to_one() -> None:
    result = parse_composite_response(REPLY)
    report = build_grade_report("sub-9", [_analysis("front")], result, certificate_id="cert-1", created_at="2026-01-01T00:00:00+00:00")

    assert report.certificate_id == "cert-1"
    assert report.overall_score == result.overall_score == 6.0
    assert report.grade_tier == "Good"
    assert report.odor_cleanliness_score == 5.0
    assert report.model_version == result.prompt_version
    assert report.needs_human_review is True
    assert verify_grade_report(report)


def test_reports_differ_only_in_store_fields() -> None:
    result = parse_composite_response(REPLY)
    first = build_grade_report("sub-9", [_analysis("front")], result)
    second = build_grade_report("sub-9", [_analysis("front")], parse_composite_response(REPLY))
    store_fields = {"certificate_id", "created_at"}
    assert first.certificate_id != second.certificate_id
    assert first.model_dump(exclude=store_fields) == second.model_dump(exclude=store_fields)


def test_tampered_report_fails_verification() -> None:
    report = build_grade_report("sub-9", [_analysis("front")], parse_composite_response(REPLY))
    assert verify_grade_report(report.model_copy(update={"overall_score": 7.0})) is False
    assert verify_grade_report(report.model_copy(update={"grade_tier": "Excellent"})) is False
    assert verify_grade_report(report.model_copy(update={"needs_human_review": False})) is False


def test_detailed_notes_per_role() -> None:
    analyses = [
        _analysis("front", issues=[DetectedIssue(issue="Crease", severity="moderate", location="toe box")]),
        _analysis("detail", signals=[ConditionSignal(signal="Laces intact", sentiment="positive")]),
        _analysis("detail"),
    ]
    notes = build_detailed_notes(analyses, parse_composite_response(REPLY))

    assert notes["front"] == "Issues: [moderate] Crease (toe box). Signals: None."
    assert notes["detail"] == "Issues: None. Signals: [positive] Laces intact."
    assert notes["detail_2"] == "Issues: None. Signals: None."
    assert notes["defects_summary"] == "[major] rip at hem (lowers score)"


def test_certificate_shows_grade_and_review_flag() -> None:
    report = build_grade_report("sub-9", [_analysis("front")], parse_composite_response(REPLY), certificate_id="cert-xyz")
    md = render_certificate(report, GARMENT)
    assert "**Overall score:** 6.0 / 10" in md
    assert "**Grade tier:** Good" in md
    assert "(low)" in md
    assert "Pending human review" in md
    assert "| Odor & Cleanliness | 5.0 |" in md
    assert "`cert-xyz`" in md


def test_demo_reply_overrides_model_tier() -> None:
    # Model claims NWOT 9.0; the weighted factors give 8.025.
    result = parse_composite_response(DEMO_COMPOSITE_REPLY)
    assert result.overall_score == 8.0
    assert result.grade_tier == "Excellent"
    assert result.needs_human_review is False


def test_demo_run_writes_outputs(tmp_path, capsys) -> None:
    assert run([], GARMENT, str(tmp_path), demo=True) is True

    (out_dir,) = list(tmp_path.iterdir())
    for name in ("per_image.json", "grade.json", "grade_report.json", "certificate.md", "audit.jsonl"):
        assert (out_dir / name).exists()
    grade = json.loads((out_dir / "grade.json").read_text(encoding="utf-8"))
    assert grade["grade_tier"] == "Excellent"
    assert [e["event_type"] for e in read_events(out_dir / "audit.jsonl")][-1] == "outputs_written"
    assert "Overall score: 8.0 (Excellent)" in capsys.readouterr().out


def test_parse_image_arg() -> None:
    assert parse_image_arg("Front=photos/front.jpg") == ("front", "photos/front.jpg")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_image_arg("front")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_image_arg("sleeve=x.jpg")
