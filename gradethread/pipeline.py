"""
Submission pipeline: photos + GarmentInfo → per-image analyses → composite grade → grade report.

Per-image analyses are independent and run concurrently, bounded by max_workers.
The composite step is the join point and only runs once every analysis succeeded.
Any failed analysis fails the whole submission: queued analyses are cancelled and
finished ones are discarded. A set cancel_event does the same at the next check.
Nothing here retries; that is the caller's decision (see GradingError.retryable).
"""
import logging
import os
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Iterable, Sequence

from pydantic import BaseModel

from gradethread.analyze import analyze_image
from gradethread.audit import log_event
from gradethread.composite import composite_grade
from gradethread.errors import (
    AnalysisError,
    ConfigurationError,
    ErrorKind,
    SubmissionCancelled,
)
from gradethread.report import build_grade_report
from gradethread.schemas import (
    CompositeGradeResult,
    GarmentInfo,
    GradeReport,
    PerImageAnalysis,
    SubmissionImage,
)
from gradethread.utils import elapsed_ms

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4
RECOMMENDED_ROLES = ("front", "back", "label", "detail")
CANCEL_POLL_SECONDS = 0.5


class SubmissionOutcome(BaseModel):
    analyses: list[PerImageAnalysis]
    result: CompositeGradeResult
    report: GradeReport


def get_max_workers() -> int:
    """Fan-out bound from GRADING_MAX_WORKERS (default 4)."""
    raw = os.getenv("GRADING_MAX_WORKERS")
    if not raw:
        return DEFAULT_MAX_WORKERS
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"GRADING_MAX_WORKERS must be an integer, got '{raw}'") from None
    if value < 1:
        raise ConfigurationError("GRADING_MAX_WORKERS must be at least 1")
    return value


def coverage_gaps(roles: Iterable[str]) -> list[str]:
    """Recommended roles (front, back, label, detail) with no photo."""
    present = set(roles)
    return [role for role in RECOMMENDED_ROLES if role not in present]


def _check_cancelled(cancel_event: threading.Event | None, submission_id: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise SubmissionCancelled(f"Submission {submission_id} was cancelled")


def analyze_all(
    images: Sequence[SubmissionImage],
    garment_type: str,
    submission_id: str = "",
    max_workers: int | None = None,
    cancel_event: threading.Event | None = None,
    audit_path: Path | None = None,
    run_id: str = "",
) -> list[PerImageAnalysis]:
    """
    Run analyze_image for every photo, at most max_workers at a time.
    Returns analyses in input order. Raises the first AnalysisError, or SubmissionCancelled.
    """
    _check_cancelled(cancel_event, submission_id)
    workers = max(1, min(max_workers or get_max_workers(), len(images)))
    results: list[PerImageAnalysis | None] = [None] * len(images)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="analyze") as pool:
        futures: dict[Future, int] = {
            pool.submit(analyze_image, img.image, img.image_role, garment_type, audit_path, run_id): idx
            for idx, img in enumerate(images)
        }
        pending = set(futures)
        try:
            while pending:
                done, pending = wait(pending, timeout=CANCEL_POLL_SECONDS, return_when=FIRST_EXCEPTION)
                _check_cancelled(cancel_event, submission_id)
                for future in done:
                    results[futures[future]] = future.result()
        except BaseException:
            for future in pending:
                future.cancel()
            raise

    return [r for r in results if r is not None]


def grade_submission(
    submission_id: str,
    images: Sequence[SubmissionImage],
    garment: GarmentInfo,
    max_workers: int | None = None,
    cancel_event: threading.Event | None = None,
    audit_path: Path | None = None,
    run_id: str = "",
) -> SubmissionOutcome:
    """
    Grade one submission end to end. Returns analyses, composite result and the report
    to persist. Raises AnalysisError, AggregationError, SubmissionCancelled or
    ConfigurationError; in every failure case no report exists.
    """
    start = time.perf_counter()
    if not images:
        raise AnalysisError(f"No images found for submission {submission_id}", ErrorKind.INVALID_INPUT, image_role="")

    gaps = coverage_gaps(img.image_role for img in images)
    if gaps:
        logger.warning("submission_id=%s missing recommended photos: %s", submission_id, ", ".join(gaps))
    logger.info("grade_submission start submission_id=%s images=%d", submission_id, len(images))
    if audit_path:
        log_event(audit_path, run_id, "submission_started", {"submission_id": submission_id, "images": len(images), "coverage_gaps": gaps})

    try:
        analyses = analyze_all(images, garment.garment_type, submission_id, max_workers, cancel_event, audit_path, run_id)
        _check_cancelled(cancel_event, submission_id)
        result = composite_grade(analyses, garment, audit_path, run_id)
        _check_cancelled(cancel_event, submission_id)
    except Exception as e:
        logger.error(
            "grade_submission failed submission_id=%s total_ms=%d error=%s",
            submission_id, elapsed_ms(start), e,
        )
        if audit_path:
            log_event(audit_path, run_id, "submission_failed", {"submission_id": submission_id, "error": str(e)})
        raise

    report = build_grade_report(submission_id, analyses, result)
    logger.info(
        "grade_submission complete submission_id=%s overall_score=%.1f grade_tier=%s confidence=%.2f total_ms=%d",
        submission_id, result.overall_score, result.grade_tier, result.confidence_score, elapsed_ms(start),
    )
    if audit_path:
        log_event(audit_path, run_id, "submission_graded", {"submission_id": submission_id, "certificate_id": report.certificate_id})
    return SubmissionOutcome(analyses=analyses, result=result, report=report)
