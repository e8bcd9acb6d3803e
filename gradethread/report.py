"""
Grade report step: CompositeGradeResult → persisted record + Markdown certificate.

The record maps the composite result one-to-one and adds what the store owns
(certificate id, timestamps, per-image notes). verify_grade_report re-derives the
published numbers from the stored breakdown, so any report can be audited later.
"""
import uuid
from datetime import datetime, timezone
from typing import Sequence

from gradethread.review_policy import confidence_band, needs_human_review
from gradethread.schemas import (
    CompositeGradeResult,
    FactorScores,
    GarmentInfo,
    GradeReport,
    PerImageAnalysis,
)
from gradethread.scoring import compute_overall_score, grade_tier_for_score

FACTOR_LABELS = {
    "fabric_condition": "Fabric Condition",
    "structural_integrity": "Structural Integrity",
    "cosmetic_appearance": "Cosmetic Appearance",
    "functional_elements": "Functional Elements",
    "odor_cleanliness": "Odor & Cleanliness",
}


def _image_notes(analysis: PerImageAnalysis) -> str:
    issues = "; ".join(f"[{i.severity}] {i.issue} ({i.location})" for i in analysis.detected_issues)
    signals = "; ".join(f"[{s.sentiment}] {s.signal}" for s in analysis.condition_signals)
    return f"Issues: {issues or 'None'}. Signals: {signals or 'None'}."


def build_detailed_notes(analyses: Sequence[PerImageAnalysis], result: CompositeGradeResult) -> dict[str, str]:
    """Per-role notes (repeated roles get _2, _3 ...) plus a defects summary when defects exist."""
    notes: dict[str, str] = {}
    for analysis in analyses:
        key = analysis.image_role
        n = 2
        while key in notes:
            key = f"{analysis.image_role}_{n}"
            n += 1
        notes[key] = _image_notes(analysis)
    if result.defects_found:
        notes["defects_summary"] = "; ".join(
            f"[{d.severity}] {d.defect} at {d.location}" + (f" ({d.impact_on_grade})" if d.impact_on_grade else "")
            for d in result.defects_found
        )
    return notes


def build_grade_report(
    submission_id: str,
    analyses: Sequence[PerImageAnalysis],
    result: CompositeGradeResult,
    certificate_id: str | None = None,
    created_at: str | None = None,
) -> GradeReport:
    scores = result.factor_scores
    return GradeReport(
        certificate_id=certificate_id or str(uuid.uuid4()),
        submission_id=submission_id,
        created_at=created_at or datetime.now(tz=timezone.utc).isoformat(),
        model_version=result.prompt_version,
        overall_score=result.overall_score,
        grade_tier=result.grade_tier,
        fabric_condition_score=scores.fabric_condition,
        structural_integrity_score=scores.structural_integrity,
        cosmetic_appearance_score=scores.cosmetic_appearance,
        functional_elements_score=scores.functional_elements,
        odor_cleanliness_score=scores.odor_cleanliness,
        ai_summary=result.ai_summary,
        defects_found=list(result.defects_found),
        detailed_notes=build_detailed_notes(analyses, result),
        confidence_score=result.confidence_score,
        needs_human_review=result.needs_human_review,
    )


def report_factor_scores(report: GradeReport) -> FactorScores:
    return FactorScores(**{key: getattr(report, f"{key}_score") for key in FACTOR_LABELS})


def verify_grade_report(report: GradeReport) -> bool:
    """True iff overall score, tier and review flag are reproducible from the stored breakdown."""
    expected_score = compute_overall_score(report_factor_scores(report))
    return (
        report.overall_score == expected_score
        and report.grade_tier == grade_tier_for_score(expected_score)
        and report.needs_human_review == needs_human_review(report.confidence_score)
    )


def render_certificate(report: GradeReport, garment: GarmentInfo) -> str:
    """Markdown grade certificate built from the stored record (no LLM)."""
    lines = [
        "# Garment Grade Certificate",
        "",
        "## Garment",
        f"- **Title:** {garment.title}",
        f"- **Type:** {garment.garment_type} ({garment.garment_category})",
        f"- **Brand:** {garment.brand or 'Unknown'}",
        "",
        "## Grade",
        f"- **Overall score:** {report.overall_score:.1f} / 10",
        f"- **Grade tier:** {report.grade_tier}",
        f"- **Confidence:** {report.confidence_score:.2f} ({confidence_band(report.confidence_score)})",
    ]
    if report.needs_human_review:
        lines.append("\n*Pending human review: confidence below threshold.*")
    lines.append("")
    lines.append("## Factor Scores")
    lines.append("| Factor | Score |")
    lines.append("| --- | --- |")
    for key, label in FACTOR_LABELS.items():
        lines.append(f"| {label} | {getattr(report, f'{key}_score'):.1f} |")
    lines.append("")
    lines.append("## Summary")
    lines.append(report.ai_summary)
    lines.append("")
    lines.append("## Defects")
    if report.defects_found:
        for d in report.defects_found:
            impact = f": {d.impact_on_grade}" if d.impact_on_grade else ""
            lines.append(f"- [{d.severity}] {d.defect} ({d.location}){impact}")
    else:
        lines.append("- None")
    lines.append("")
    lines.append("---")
    lines.append(f"*Certificate:* `{report.certificate_id}` | *Version:* {report.model_version} | *Issued:* {report.created_at}")
    return "\n".join(lines)
