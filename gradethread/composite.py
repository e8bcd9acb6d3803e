"""
Composite step: per-image analyses + GarmentInfo → CompositeGradeResult.

The LLM synthesizes factor scores, a summary, consolidated defects and a confidence.
Everything published is then fixed up in Python:
- factor scores clamped/defaulted (scoring.validate_score);
- overall score recomputed from the weighted factors, the model's number discarded;
- grade tier and human-review flag derived from those values.

parse_composite_response is a pure function of the reply text, so a stored reply
always reproduces the same grade.
"""
import json
import logging
import time
from pathlib import Path
from typing import Any, Sequence

from gradethread.audit import log_event
from gradethread.errors import (
    AggregationError,
    ConfigurationError,
    ErrorKind,
    GradingError,
    ResponseShapeError,
)
from gradethread.llm import complete, extract_json_from_response
from gradethread.review_policy import needs_human_review, validate_confidence
from gradethread.schemas import (
    SEVERITIES,
    CompositeGradeResult,
    DefectFound,
    GarmentInfo,
    PerImageAnalysis,
)
from gradethread.scoring import (
    compute_overall_score,
    grade_tier_for_score,
    sanitize_factor_scores,
)
from gradethread.utils import elapsed_ms

logger = logging.getLogger(__name__)

PROMPT_VERSION = "composite_v1"
FALLBACK_SUMMARY = "Grade report generated by AI analysis."

GRADE_TIER_DEFINITIONS = """Grade tiers (score ranges):
- 10.0: NWT (New with Tags): unworn, original retail tags attached.
- 9.0-9.5: NWOT (New without Tags): unworn, tags removed.
- 8.0-8.5: Excellent: barely worn, no visible defects.
- 7.0-7.5: Very Good: light wear, no notable flaws, all functional elements work.
- 6.0-6.5: Good: moderate wear, minor flaws (light pilling, slight fading, small mark).
- 5.0-5.5: Fair: noticeable wear and minor flaws.
- 3.0-4.5: Poor: significant wear, damage or flaws.
- 1.0-2.5: Very Poor/Salvage: severe damage, parts or craft use only."""

COMPOSITE_SYSTEM = f"""You are an expert clothing condition grading specialist. You produce one final grade for a garment by synthesizing per-image analysis results.

{GRADE_TIER_DEFINITIONS}

Factor weights:
- fabric_condition 30%: material integrity, pilling, thinning, holes, stains, fading
- structural_integrity 25%: seams, hems, construction, shape retention
- cosmetic_appearance 20%: visual appeal, color consistency, print condition
- functional_elements 15%: zippers, buttons, closures, pockets, elastic
- odor_cleanliness 10%: visible cleanliness indicators, staining patterns

When images disagree, weight the more revealing image for its specific claim (a defect close-up outweighs a front overview shot for the area it shows).

Output ONLY valid JSON matching the requested schema (no markdown, no explanation outside JSON)."""

RESPONSE_SCHEMA = """{
  "overall_score": <1.0-10.0, weighted average rounded to nearest 0.5>,
  "grade_tier": "NWT | NWOT | Excellent | Very Good | Good | Fair | Poor",
  "factor_scores": {
    "fabric_condition": <1.0-10.0>,
    "structural_integrity": <1.0-10.0>,
    "cosmetic_appearance": <1.0-10.0>,
    "functional_elements": <1.0-10.0>,
    "odor_cleanliness": <1.0-10.0>
  },
  "ai_summary": "2-4 sentence professional condition summary",
  "defects_found": [
    {"defect": "description", "severity": "minor | moderate | major", "location": "where", "impact_on_grade": "how it affects the score"}
  ],
  "confidence_score": <0.0-1.0>
}"""


def build_user_prompt(analyses: Sequence[PerImageAnalysis], garment: GarmentInfo) -> str:
    analyses_json = json.dumps([a.model_dump() for a in analyses], indent=2)
    description = f"\n- Description: {garment.description}" if garment.description else ""
    return f"""Synthesize the following per-image analyses into a single composite grade for this garment.

GARMENT INFO:
- Type: {garment.garment_type}
- Category: {garment.garment_category}
- Brand: {garment.brand or "Unknown"}
- Title: {garment.title}{description}

PER-IMAGE ANALYSES:
{analyses_json}

Respond with a JSON object matching this schema:
{RESPONSE_SCHEMA}

Rules:
- factor_scores: synthesize across all images, weighting image types appropriately.
- ai_summary: professional, objective, suitable for a grade certificate.
- defects_found: consolidate unique defects from all images (empty array if none).
- confidence_score: lower it for blurry images, incomplete coverage, conflicting signals, or unusual garments."""


def _clean_defects(raw: Any) -> list[DefectFound]:
    if not isinstance(raw, list):
        return []
    defects = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("defect"), str):
            continue
        if item.get("severity") not in SEVERITIES:
            continue
        location = item.get("location")
        impact = item.get("impact_on_grade")
        defects.append(DefectFound(
            defect=item["defect"],
            severity=item["severity"],
            location=location if isinstance(location, str) and location else "unspecified",
            impact_on_grade=impact if isinstance(impact, str) else "",
        ))
    dropped = len(raw) - len(defects)
    if dropped:
        logger.debug("composite defects_found dropped=%d kept=%d", dropped, len(defects))
    return defects


def parse_composite_response(text: str) -> CompositeGradeResult:
    """
    Reply text → CompositeGradeResult (pure).
    Raises ParseError for unparseable text, ResponseShapeError when factor_scores is missing.
    """
    data = extract_json_from_response(text)
    raw_scores = data.get("factor_scores")
    if not isinstance(raw_scores, dict):
        raise ResponseShapeError("AI response missing factor_scores")

    factor_scores = sanitize_factor_scores(raw_scores)
    overall_score = compute_overall_score(factor_scores)
    confidence = validate_confidence(data.get("confidence_score"))
    summary = data.get("ai_summary")

    return CompositeGradeResult(
        overall_score=overall_score,
        grade_tier=grade_tier_for_score(overall_score),
        factor_scores=factor_scores,
        ai_summary=summary if isinstance(summary, str) and summary.strip() else FALLBACK_SUMMARY,
        defects_found=_clean_defects(data.get("defects_found")),
        confidence_score=confidence,
        needs_human_review=needs_human_review(confidence),
        prompt_version=PROMPT_VERSION,
    )


def _failure_message(error: GradingError) -> str:
    if error.kind == ErrorKind.TIMEOUT:
        return "AI composite grading timed out"
    if error.kind == ErrorKind.RATE_LIMIT:
        return "AI service rate limit reached. Please try again shortly."
    return f"AI composite grading failed: {error}"


def composite_grade(
    analyses: Sequence[PerImageAnalysis],
    garment: GarmentInfo,
    audit_path: Path | None = None,
    run_id: str = "",
) -> CompositeGradeResult:
    """
    Synthesize all per-image analyses into one grade. One model call.
    Raises AggregationError (kind set) on any model or parse failure; ConfigurationError as is.
    """
    if not analyses:
        raise AggregationError("AI composite grading needs at least one image analysis", ErrorKind.INVALID_INPUT)

    start = time.perf_counter()
    try:
        reply = complete(COMPOSITE_SYSTEM, build_user_prompt(analyses, garment), max_tokens=2048)
        logger.info(
            "composite_grade garment_type=%s images=%d input_tokens=%d output_tokens=%d latency_ms=%d",
            garment.garment_type, len(analyses), reply.input_tokens, reply.output_tokens, elapsed_ms(start),
        )
        result = parse_composite_response(reply.text)
    except ConfigurationError:
        raise
    except GradingError as e:
        latency_ms = elapsed_ms(start)
        logger.error(
            "composite_grade failed garment_type=%s images=%d latency_ms=%d kind=%s error=%s",
            garment.garment_type, len(analyses), latency_ms, e.kind.value, e,
        )
        if audit_path:
            log_event(audit_path, run_id, "composite_failed", {"kind": e.kind.value, "error": str(e), "latency_ms": latency_ms})
        raise AggregationError(_failure_message(e), e.kind) from e

    if result.needs_human_review:
        logger.warning(
            "composite_grade flagged for human review confidence=%.2f overall_score=%.1f",
            result.confidence_score, result.overall_score,
        )
    if audit_path:
        log_event(
            audit_path, run_id, "composite_ok",
            {
                "overall_score": result.overall_score,
                "grade_tier": result.grade_tier,
                "confidence_score": result.confidence_score,
                "needs_human_review": result.needs_human_review,
                "input_tokens": reply.input_tokens,
                "output_tokens": reply.output_tokens,
            },
            model_name=reply.model,
        )
    return result
