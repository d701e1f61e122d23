"""Pydantic models shared by the evaluation engine, the worker and the API."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CodeTriple(BaseModel):
    """HTML/CSS/JS source of a single solution (candidate or expected)."""
    model_config = ConfigDict(frozen=True)

    html: str = ""
    css: str = ""
    js: str = ""


class Thresholds(BaseModel):
    structure: int = 70
    visual: int = 70
    overall: int = 70


# ---------------------------------------------------------------------------
# Content checker
# ---------------------------------------------------------------------------


class RequirementType(str, Enum):
    TEXT_CONTENT = "text_content"
    HTML_STRUCTURE = "html_structure"
    IMAGES = "images"
    CSS_PROPERTIES = "css_properties"
    CLASS_NAMES = "class_names"


class ImageRef(BaseModel):
    src: str | None = None
    alt: str | None = None


class Requirement(BaseModel):
    """One scored criterion mined from the expected solution."""
    type: RequirementType
    description: str
    # list[str] for text/css/classes, dict[str, int] for structure, list[ImageRef] for images
    required: list[str] | dict[str, int] | list[ImageRef]
    weight: int


class RequirementResult(BaseModel):
    type: RequirementType
    description: str
    passed: bool
    score: int  # 0-100
    weight: int
    details: str


class ContentResult(BaseModel):
    score: int
    passed: bool
    details: list[RequirementResult] = []
    feedback: str = ""
    requirements: list[Requirement] = []


# ---------------------------------------------------------------------------
# Semantic role matcher
# ---------------------------------------------------------------------------


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    MISSING = "missing"


class MatchedElement(BaseModel):
    tag: str
    classes: str = ""
    text: str = ""


class RoleMatch(BaseModel):
    role: str
    confidence: Confidence
    score: int = 0
    element: MatchedElement | None = None
    evidence: dict[str, str] = {}
    suggestion: str | None = None
    expected_confidence: Confidence | None = None  # same role matched against the expected DOM


class StructureResult(BaseModel):
    score: int
    total_roles: int
    credited: float
    roles_found: list[RoleMatch] = []
    roles_partial: list[RoleMatch] = []
    roles_missing: list[RoleMatch] = []
    optional_roles: list[RoleMatch] = []


# ---------------------------------------------------------------------------
# Visual diff
# ---------------------------------------------------------------------------


class VisualWarning(str, Enum):
    RENDER_SCRIPT_ERROR = "render_script_error"
    IMAGE_SIZE_MISMATCH = "image_size_mismatch"


class ScreenshotRefs(BaseModel):
    candidate: str
    expected: str
    diff: str


class VisualDiffResult(BaseModel):
    score: int
    diff_pixels: int
    total_pixels: int
    diff_percentage: float
    screenshots: ScreenshotRefs
    width: int
    height: int
    warnings: list[VisualWarning] = []
    script_errors: list[str] = []
    candidate_blank: bool = False


# ---------------------------------------------------------------------------
# Aggregate result
# ---------------------------------------------------------------------------


class FeedbackType(str, Enum):
    ENCOURAGEMENT = "encouragement"
    IMPROVEMENT = "improvement"
    MATCHING = "matching"
    PARTIAL = "partial"
    MISSING = "missing"
    CONTENT = "content"
    ERROR = "error"


class FeedbackEntry(BaseModel):
    type: FeedbackType
    message: str
    details: str | None = None


class ContentDetail(BaseModel):
    score: int
    passed: bool
    details: list[RequirementResult] = []
    requirements: list[Requirement] = []


class StructureDetail(BaseModel):
    score: int
    passed: bool
    roles_found: list[RoleMatch] = []
    roles_partial: list[RoleMatch] = []
    roles_missing: list[RoleMatch] = []


class VisualDetail(BaseModel):
    score: int
    passed: bool
    diff_pixels: int
    total_pixels: int
    diff_percentage: float
    screenshots: ScreenshotRefs
    warnings: list[VisualWarning] = []
    script_errors: list[str] = []
    candidate_blank: bool = False


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class EvaluationResult(BaseModel):
    submission_id: str
    challenge_id: str | None = None
    timestamp: str = Field(default_factory=_utcnow)
    content_score: int = 0
    structure_score: int = 0
    visual_score: int = 0
    behavior_score: int = 0
    final_score: int = 0
    passed: bool = False
    thresholds: Thresholds = Thresholds()
    content: ContentDetail | None = None
    structure: StructureDetail | None = None
    visual: VisualDetail | None = None
    feedback: list[FeedbackEntry] = []
    error: str | None = None


# ---------------------------------------------------------------------------
# Collaborator records
# ---------------------------------------------------------------------------


class SubmissionStatus(str, Enum):
    PENDING = "pending"  # legacy pre-queue state, migrated to QUEUED at start-up
    QUEUED = "queued"
    EVALUATING = "evaluating"
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"


class Submission(BaseModel):
    id: str
    challenge_id: str
    code: CodeTriple = CodeTriple()
    status: SubmissionStatus = SubmissionStatus.QUEUED
    submitted_at: str | None = None


class Challenge(BaseModel):
    id: str
    title: str = ""
    expected_solution: CodeTriple = CodeTriple()
    passing_threshold: Thresholds = Thresholds()
