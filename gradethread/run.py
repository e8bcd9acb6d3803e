"""
CLI: grade one garment submission.

  photos (role=path) → per-image analysis (parallel) → composite (score recomputed) → grade report

Outputs: per_image.json, grade.json, grade_report.json, certificate.md, audit.jsonl
"""
import argparse
import json
import logging
import os
import sys

from gradethread.audit import log_event
from gradethread.composite import parse_composite_response
from gradethread.errors import GradingError
from gradethread.llm import close_client
from gradethread.pipeline import SubmissionOutcome, grade_submission
from gradethread.report import build_grade_report, render_certificate
from gradethread.review_policy import confidence_band
from gradethread.schemas import (
    GARMENT_TYPES,
    IMAGE_ROLES,
    ConditionSignal,
    DetectedIssue,
    FactorScores,
    GarmentInfo,
    PerImageAnalysis,
    SubmissionImage,
)
from gradethread.utils import ensure_output_dir, generate_run_id, read_image

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

DEMO_GARMENT = GarmentInfo(
    garment_type="outerwear",
    garment_category="jacket",
    brand="Patagonia",
    title="Patagonia Better Sweater Fleece Jacket, Men's M",
    description="Grey heather, full zip.",
)

DEMO_ANALYSES = [
    PerImageAnalysis(
        image_role="front",
        detected_issues=[DetectedIssue(issue="Light pilling", severity="minor", location="left chest")],
        condition_signals=[ConditionSignal(signal="Colour even, no fading", sentiment="positive")],
        estimated_scores=FactorScores(fabric_condition=8.0, structural_integrity=8.5, cosmetic_appearance=8.0, functional_elements=8.5, odor_cleanliness=8.5),
    ),
    PerImageAnalysis(
        image_role="back",
        condition_signals=[ConditionSignal(signal="No stains on back panel", sentiment="positive")],
        estimated_scores=FactorScores(fabric_condition=8.5, structural_integrity=8.5, cosmetic_appearance=8.5, functional_elements=7.0, odor_cleanliness=8.5),
    ),
    PerImageAnalysis(
        image_role="label",
        condition_signals=[ConditionSignal(signal="Care label fully legible", sentiment="positive")],
        estimated_scores=FactorScores(fabric_condition=7.0, structural_integrity=7.0, cosmetic_appearance=7.0, functional_elements=7.0, odor_cleanliness=7.0),
    ),
    PerImageAnalysis(
        image_role="defect",
        detected_issues=[DetectedIssue(issue="Zipper pull slightly bent", severity="minor", location="front zipper")],
        estimated_scores=FactorScores(fabric_condition=7.0, structural_integrity=8.0, cosmetic_appearance=7.5, functional_elements=6.5, odor_cleanliness=7.0),
    ),
]

# Fenced on purpose; overall_score and grade_tier are ignored by the parser.
DEMO_COMPOSITE_REPLY = """```json
{
  "overall_score": 9.0,
  "grade_tier": "NWOT",
  "factor_scores": {"fabric_condition": 8.0, "structural_integrity": 8.5, "cosmetic_appearance": 8.0, "functional_elements": 7.0, "odor_cleanliness": 8.5},
  "ai_summary": "Well kept fleece with light pilling on the chest and a slightly bent zipper pull that still works. No stains, holes or fading.",
  "defects_found": [
    {"defect": "Light pilling", "severity": "minor", "location": "left chest", "impact_on_grade": "Small deduction on fabric condition"},
    {"defect": "Bent zipper pull", "severity": "minor", "location": "front zipper", "impact_on_grade": "Small deduction on functional elements"}
  ],
  "confidence_score": 0.82
}
```"""


def parse_image_arg(value: str) -> tuple[str, str]:
    """'front=photos/front.jpg' → ('front', 'photos/front.jpg')."""
    role, sep, path = value.partition("=")
    role = role.strip().lower()
    if not sep or not path.strip():
        raise argparse.ArgumentTypeError(f"Expected ROLE=PATH, got '{value}'")
    if role not in IMAGE_ROLES:
        raise argparse.ArgumentTypeError(f"Unknown image role '{role}'. Use one of: {', '.join(IMAGE_ROLES)}")
    return role, path.strip()


def _demo_outcome(submission_id: str) -> SubmissionOutcome:
    result = parse_composite_response(DEMO_COMPOSITE_REPLY)
    report = build_grade_report(submission_id, DEMO_ANALYSES, result)
    return SubmissionOutcome(analyses=DEMO_ANALYSES, result=result, report=report)


def run(
    images: list[tuple[str, str]],
    garment: GarmentInfo,
    out_base: str,
    submission_id: str | None = None,
    max_workers: int | None = None,
    demo: bool = False,
) -> bool:
    run_id = generate_run_id()
    submission_id = submission_id or run_id
    out_dir = ensure_output_dir(out_base, run_id)
    audit_path = out_dir / "audit.jsonl"
    log_event(audit_path, run_id, "input_received", {"submission_id": submission_id, "images": [r for r, _ in images], "demo": demo})

    if demo:
        outcome = _demo_outcome(submission_id)
        garment = DEMO_GARMENT
        log_event(audit_path, run_id, "composite_ok", {"demo": True, "overall_score": outcome.result.overall_score})
    else:
        try:
            submission_images = [SubmissionImage(image_role=role, image=read_image(path)) for role, path in images]
            outcome = grade_submission(submission_id, submission_images, garment, max_workers=max_workers, audit_path=audit_path, run_id=run_id)
        except (GradingError, FileNotFoundError) as e:
            print(f"ERROR: {e}")
            print(f"Submission failed; no grade report created. See {audit_path}")
            return False

    (out_dir / "per_image.json").write_text(json.dumps([a.model_dump() for a in outcome.analyses], indent=2), encoding="utf-8")
    (out_dir / "grade.json").write_text(outcome.result.model_dump_json(indent=2), encoding="utf-8")
    (out_dir / "grade_report.json").write_text(outcome.report.model_dump_json(indent=2), encoding="utf-8")
    (out_dir / "certificate.md").write_text(render_certificate(outcome.report, garment), encoding="utf-8")
    log_event(audit_path, run_id, "outputs_written", {})

    result = outcome.result
    if demo:
        print("(Demo mode: no LLM; used built-in analyses and composite reply)")
    print(f"Run ID: {run_id}")
    print(f"Overall score: {result.overall_score:.1f} ({result.grade_tier})")
    print(f"Confidence: {result.confidence_score:.2f} ({confidence_band(result.confidence_score)})")
    if result.needs_human_review:
        print("Flagged for human review")
    print(f"Output folder: {out_dir}")
    return True


def main() -> None:
    p = argparse.ArgumentParser(description="Garment grading: photos → per-image analysis → composite grade → report")
    p.add_argument("--image", dest="images", action="append", type=parse_image_arg, default=[], metavar="ROLE=PATH",
                   help=f"Photo with its role ({', '.join(IMAGE_ROLES)}); repeat for each photo")
    p.add_argument("--garment-type", choices=GARMENT_TYPES, default="tops")
    p.add_argument("--category", default="other", help="Garment category, e.g. t-shirt, jeans, sneakers")
    p.add_argument("--title", default="Untitled garment")
    p.add_argument("--brand", default=None)
    p.add_argument("--description", default=None)
    p.add_argument("--submission-id", default=None, help="Defaults to the run ID")
    p.add_argument("--workers", type=int, default=None, help="Parallel per-image analyses (default GRADING_MAX_WORKERS or 4)")
    p.add_argument("--out", default="outputs", help="Output folder")
    p.add_argument("--demo", action="store_true", help="Skip LLM; use built-in analyses")
    args = p.parse_args()
    if not args.demo and not args.images:
        p.error("at least one --image is required unless --demo is set")

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), format=LOG_FORMAT)
    garment = GarmentInfo(
        garment_type=args.garment_type,
        garment_category=args.category,
        brand=args.brand,
        title=args.title,
        description=args.description,
    )
    try:
        ok = run(args.images, garment, args.out, submission_id=args.submission_id, max_workers=args.workers, demo=args.demo)
    finally:
        close_client()
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
