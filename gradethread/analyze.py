"""
Analysis step: one garment photo → sanitized PerImageAnalysis.

The LLM looks at a single image, told what kind of shot it is (front, back, label,
detail, defect) and what to look for on this garment type, and reports issues,
condition signals and five estimated factor scores.

Optional lists degrade to empty; estimated_scores is required. Every factor goes
through scoring.validate_score, so nothing out of range leaves this module.
"""
import logging
import time
from pathlib import Path
from typing import Any

from gradethread.audit import log_event
from gradethread.errors import (
    AnalysisError,
    ConfigurationError,
    ErrorKind,
    GradingError,
    ResponseShapeError,
)
from gradethread.llm import complete, extract_json_from_response
from gradethread.schemas import (
    SENTIMENTS,
    SEVERITIES,
    ConditionSignal,
    DetectedIssue,
    PerImageAnalysis,
)
from gradethread.scoring import sanitize_factor_scores
from gradethread.utils import elapsed_ms, to_data_uri

logger = logging.getLogger(__name__)

IMAGE_ROLE_CONTEXT = {
    "front": "This is the FRONT VIEW of the garment. Focus on overall appearance, fabric condition visible from the front, stains, pilling, fading, print condition, and general wear patterns.",
    "back": "This is the BACK VIEW of the garment. Focus on overall appearance from behind, seat wear (for bottoms), back panel condition, any stains or damage not visible from front.",
    "label": "This is the LABEL/TAG of the garment. Focus on brand identification, care instructions legibility, label condition (fading, fraying, removal), size tag presence, and material composition.",
    "detail": "This is a DETAIL/CLOSE-UP shot of the garment. Focus on stitching quality, seam integrity, button/zipper condition, hardware condition, and any specific areas of wear or damage shown.",
    "defect": "This is a DEFECT/DAMAGE close-up. Focus on identifying and assessing the specific defect shown: its type (tear, stain, hole, missing button, broken zipper, etc.), severity, repairability, and impact on overall garment condition.",
}

GARMENT_TYPE_CRITERIA = {
    "tops": "Pay special attention to collar condition, armpit discoloration, cuff wear, button integrity, print/graphic condition, and pilling around high-friction areas.",
    "bottoms": "Pay special attention to waistband elasticity, zipper/button fly function, knee wear, seat wear, hem fraying, pocket integrity, and crotch reinforcement.",
    "outerwear": "Pay special attention to zipper function, snap/button closures, lining condition, insulation integrity, waterproofing, cuff elasticity, and hood attachment.",
    "dresses": "Pay special attention to zipper function, hemline condition, lining integrity, belt/sash condition, embellishment security, and shape retention.",
    "footwear": "Pay special attention to sole wear patterns, heel condition, upper material, stitching, insole condition, laces/straps, and staining that suggests odor.",
    "accessories": "Pay special attention to hardware (buckles, clasps, zippers), material wear, stitching, shape retention, and tarnish or corrosion on metal parts.",
}

GENERIC_CRITERIA = "Evaluate using general garment condition criteria."

ANALYSIS_SYSTEM = """You are an expert clothing condition assessor for a professional garment grading service.
You analyze ONE photo of a pre-owned garment and grade what is visible on a 1.0-10.0 scale
(10 NWT, 9 NWOT, 8 Excellent, 7 Very Good, 6 Good, 5 Fair, 4 and below Poor).

Five condition factors:
1. fabric_condition (30%): material integrity, pilling, thinning, holes, stains, fading
2. structural_integrity (25%): seams, hems, construction, shape retention
3. cosmetic_appearance (20%): visual appeal, color consistency, print condition
4. functional_elements (15%): zippers, buttons, closures, pockets, elastic
5. odor_cleanliness (10%): visible cleanliness indicators, staining patterns

Output ONLY valid JSON matching the requested schema (no markdown, no explanation outside JSON)."""

RESPONSE_SCHEMA = """{
  "detected_issues": [
    {"issue": "description", "severity": "minor | moderate | major", "location": "where on the garment"}
  ],
  "condition_signals": [
    {"signal": "condition indicator", "sentiment": "positive | neutral | negative"}
  ],
  "estimated_scores": {
    "fabric_condition": <1.0-10.0>,
    "structural_integrity": <1.0-10.0>,
    "cosmetic_appearance": <1.0-10.0>,
    "functional_elements": <1.0-10.0>,
    "odor_cleanliness": <1.0-10.0>
  }
}"""


def build_user_prompt(image_role: str, garment_type: str) -> str:
    image_context = IMAGE_ROLE_CONTEXT.get(image_role)
    if image_context is None:
        logger.warning("unknown image_role=%s, using generic context", image_role)
        image_context = f"This is a {image_role} image of the garment."
    criteria = GARMENT_TYPE_CRITERIA.get(garment_type)
    if criteria is None:
        logger.warning("unknown garment_type=%s, using generic criteria", garment_type)
        criteria = GENERIC_CRITERIA
    else:
        criteria = f"For {garment_type}: {criteria}"

    return f"""Analyze this garment image and provide a condition assessment.

IMAGE CONTEXT: {image_context}

GARMENT-SPECIFIC CRITERIA: {criteria}

Respond with a JSON object matching this schema:
{RESPONSE_SCHEMA}

Rules:
- detected_issues: every visible issue. Empty array if none.
- condition_signals: positive AND negative indicators you observe.
- estimated_scores: score each factor from what is visible in THIS image only.
- For factors not assessable from this image, score 7.0 (neutral) and say so in condition_signals.
- Do not guess about things not visible in the image."""


def _clean_issues(raw: Any) -> list[DetectedIssue]:
    if not isinstance(raw, list):
        return []
    issues = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("issue"), str):
            continue
        if item.get("severity") not in SEVERITIES:
            continue
        location = item.get("location")
        issues.append(DetectedIssue(
            issue=item["issue"],
            severity=item["severity"],
            location=location if isinstance(location, str) and location else "unspecified",
        ))
    return issues


def _clean_signals(raw: Any) -> list[ConditionSignal]:
    if not isinstance(raw, list):
        return []
    return [
        ConditionSignal(signal=item["signal"], sentiment=item["sentiment"])
        for item in raw
        if isinstance(item, dict) and isinstance(item.get("signal"), str) and item.get("sentiment") in SENTIMENTS
    ]


def parse_image_response(text: str, image_role: str) -> PerImageAnalysis:
    """Reply text → PerImageAnalysis. Raises ParseError or ResponseShapeError."""
    data = extract_json_from_response(text)
    scores = data.get("estimated_scores")
    if not isinstance(scores, dict):
        raise ResponseShapeError("AI response missing estimated_scores")
    return PerImageAnalysis(
        image_role=image_role,
        detected_issues=_clean_issues(data.get("detected_issues")),
        condition_signals=_clean_signals(data.get("condition_signals")),
        estimated_scores=sanitize_factor_scores(scores),
    )


def _failure_message(error: GradingError, image_role: str) -> str:
    if error.kind == ErrorKind.TIMEOUT:
        return f"AI analysis timed out for {image_role} image"
    if error.kind == ErrorKind.RATE_LIMIT:
        return "AI service rate limit reached. Please try again shortly."
    return f"AI analysis failed for {image_role} image: {error}"


def analyze_image(
    image: bytes | str,
    image_role: str,
    garment_type: str,
    audit_path: Path | None = None,
    run_id: str = "",
) -> PerImageAnalysis:
    """
    Analyze one photo. One model call; the reply is sanitized before it is returned.
    Raises AnalysisError (kind set) on any model or parse failure; ConfigurationError as is.
    """
    start = time.perf_counter()
    try:
        reply = complete(
            ANALYSIS_SYSTEM,
            build_user_prompt(image_role, garment_type),
            images=[to_data_uri(image)],
            max_tokens=1024,
        )
        logger.info(
            "analyze_image image_role=%s garment_type=%s input_tokens=%d output_tokens=%d latency_ms=%d",
            image_role, garment_type, reply.input_tokens, reply.output_tokens, elapsed_ms(start),
        )
        analysis = parse_image_response(reply.text, image_role)
    except ConfigurationError:
        raise
    except GradingError as e:
        latency_ms = elapsed_ms(start)
        logger.error(
            "analyze_image failed image_role=%s garment_type=%s latency_ms=%d kind=%s error=%s",
            image_role, garment_type, latency_ms, e.kind.value, e,
        )
        if audit_path:
            log_event(audit_path, run_id, "analysis_failed", {"image_role": image_role, "kind": e.kind.value, "error": str(e), "latency_ms": latency_ms})
        raise AnalysisError(_failure_message(e, image_role), e.kind, image_role) from e

    if audit_path:
        log_event(
            audit_path, run_id, "analysis_ok",
            {
                "image_role": image_role,
                "issues_count": len(analysis.detected_issues),
                "input_tokens": reply.input_tokens,
                "output_tokens": reply.output_tokens,
                "latency_ms": elapsed_ms(start),
            },
            model_name=reply.model,
        )
    return analysis
