"""
Data shapes for the garment grading workflow.

- PerImageAnalysis: what the model reports for one photo (ephemeral).
- CompositeGradeResult: the single authoritative grade. Scores, tier and review
  flag are set by Python rules, not copied from the model.
- GradeReport: the record handed to the grade-report store.
"""
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["minor", "moderate", "major"]
Sentiment = Literal["positive", "neutral", "negative"]
GradeTier = Literal["NWT", "NWOT", "Excellent", "Very Good", "Good", "Fair", "Poor"]

IMAGE_ROLES: tuple[str, ...] = ("front", "back", "label", "detail", "defect")
GARMENT_TYPES: tuple[str, ...] = ("tops", "bottoms", "outerwear", "dresses", "footwear", "accessories")
SEVERITIES: tuple[str, ...] = ("minor", "moderate", "major")
SENTIMENTS: tuple[str, ...] = ("positive", "neutral", "negative")


# --- Factor scores: five weighted sub-scores, each 1.0-10.0 ---

class FactorScores(BaseModel):
    model_config = ConfigDict(frozen=True)

    fabric_condition: float = Field(ge=1.0, le=10.0)
    structural_integrity: float = Field(ge=1.0, le=10.0)
    cosmetic_appearance: float = Field(ge=1.0, le=10.0)
    functional_elements: float = Field(ge=1.0, le=10.0)
    odor_cleanliness: float = Field(ge=1.0, le=10.0)


# --- Per-image analysis ---

class DetectedIssue(BaseModel):
    """One visible problem in a single photo."""

    issue: str
    severity: Severity
    location: str = "unspecified"


class ConditionSignal(BaseModel):
    signal: str
    sentiment: Sentiment


class PerImageAnalysis(BaseModel):
    """Sanitized assessment of one photo. Consumed by aggregation, never stored on its own."""

    image_role: str
    detected_issues: List[DetectedIssue] = Field(default_factory=list)
    condition_signals: List[ConditionSignal] = Field(default_factory=list)
    estimated_scores: FactorScores


# --- Submission metadata ---

class GarmentInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    garment_type: str
    garment_category: str
    brand: Optional[str] = None
    title: str
    description: Optional[str] = None


class SubmissionImage(BaseModel):
    """One uploaded photo: raw bytes, a data URI, or bare base64."""

    model_config = ConfigDict(frozen=True)

    image_role: str
    image: bytes | str


# --- Composite grade (output of aggregation step) ---

class DefectFound(BaseModel):
    model_config = ConfigDict(frozen=True)

    defect: str
    severity: Severity
    location: str = "unspecified"
    impact_on_grade: str = ""


class CompositeGradeResult(BaseModel):
    """Final grade. overall_score, grade_tier and needs_human_review are derived, never taken from the model."""

    model_config = ConfigDict(frozen=True)

    overall_score: float = Field(ge=1.0, le=10.0)
    grade_tier: GradeTier
    factor_scores: FactorScores
    ai_summary: str
    defects_found: List[DefectFound] = Field(default_factory=list)
    confidence_score: float = Field(ge=0.0, le=1.0)
    needs_human_review: bool
    prompt_version: str


# --- Persisted grade report (one-to-one with CompositeGradeResult + store fields) ---

class GradeReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    certificate_id: str
    submission_id: str
    created_at: str
    model_version: str
    overall_score: float
    grade_tier: GradeTier
    fabric_condition_score: float
    structural_integrity_score: float
    cosmetic_appearance_score: float
    functional_elements_score: float
    odor_cleanliness_score: float
    ai_summary: str
    defects_found: List[DefectFound] = Field(default_factory=list)
    detailed_notes: Dict[str, str] = Field(default_factory=dict)
    confidence_score: float
    needs_human_review: bool
