"""Hybrid evaluation of HTML/CSS/JS submissions.

Runs the content checker, the semantic role matcher and the visual diff in
that order and blends the stage scores into a single result. A failing stage
never propagates to the caller; it yields a zero-score result carrying the
error instead.
"""

import logging
from typing import Awaitable, Callable, TypeVar

from .content_checker import StrictContentChecker
from .errors import StageException
from .models import (
    CodeTriple,
    ContentDetail,
    EvaluationResult,
    FeedbackEntry,
    FeedbackType,
    StructureDetail,
    Thresholds,
    VisualDetail,
)
from .scoring import compute_final_score, is_passing
from .semantic_roles import SemanticRoleMatcher
from .visual_diff import VisualDiffEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Interactivity is not exercised yet
BEHAVIOR_SCORE = 0


class HybridEvaluator:
    """Evaluates a candidate solution against the expected one."""

    def __init__(
        self,
        visual_engine: VisualDiffEngine,
        content_checker: StrictContentChecker | None = None,
        role_matcher: SemanticRoleMatcher | None = None,
    ):
        self.visual_engine = visual_engine
        self.content_checker = content_checker or StrictContentChecker()
        self.role_matcher = role_matcher or SemanticRoleMatcher()

    async def evaluate(
        self,
        candidate: CodeTriple,
        expected: CodeTriple,
        thresholds: Thresholds | None = None,
        submission_id: str = "preview",
        challenge_id: str | None = None,
    ) -> EvaluationResult:
        """
        Score ``candidate`` against ``expected``.

        Args:
            candidate: Submitted HTML/CSS/JS
            expected: Reference solution of the challenge
            thresholds: Per-stage thresholds; only annotate the detail ``passed``
                flags, the overall pass gate is fixed
            submission_id: Used for logging and screenshot file names
            challenge_id: Echoed back on the result

        Returns:
            EvaluationResult; on failure all scores are 0 and ``error`` is set
        """
        thresholds = thresholds or Thresholds()
        logger.info("Starting hybrid evaluation for %s", submission_id)

        try:
            content = await self._run_stage(
                "content",
                lambda: self.content_checker.evaluate(
                    candidate.html, candidate.css, expected.html, expected.css
                ),
            )
            structure = await self._run_stage(
                "structure",
                lambda: self.role_matcher.evaluate_structure(candidate.html, expected.html),
            )
            visual = await self._run_async_stage(
                "visual",
                lambda: self.visual_engine.compare(candidate, expected, submission_id),
            )
        except StageException as e:
            logger.error("Evaluation of %s failed: %s", submission_id, e, exc_info=e.cause)
            return EvaluationResult(
                submission_id=submission_id,
                challenge_id=challenge_id,
                thresholds=thresholds,
                error=str(e),
                feedback=[FeedbackEntry(type=FeedbackType.ERROR, message=f"Evaluation failed: {e}")],
            )

        final_score = compute_final_score(
            content.score, structure.score, visual.score, BEHAVIOR_SCORE
        )
        passed = is_passing(content.score, visual.score, final_score)

        feedback = self.role_matcher.generate_feedback(structure, visual.score)
        feedback.append(FeedbackEntry(
            type=FeedbackType.CONTENT,
            message="Content Validation",
            details=content.feedback,
        ))

        logger.info(
            "Evaluation of %s: content=%d structure=%d visual=%d final=%d passed=%s",
            submission_id, content.score, structure.score, visual.score, final_score, passed,
        )
        return EvaluationResult(
            submission_id=submission_id,
            challenge_id=challenge_id,
            content_score=content.score,
            structure_score=structure.score,
            visual_score=visual.score,
            behavior_score=BEHAVIOR_SCORE,
            final_score=final_score,
            passed=passed,
            thresholds=thresholds,
            content=ContentDetail(
                score=content.score,
                passed=content.passed,
                details=content.details,
                requirements=content.requirements,
            ),
            structure=StructureDetail(
                score=structure.score,
                passed=structure.score >= thresholds.structure,
                roles_found=structure.roles_found,
                roles_partial=structure.roles_partial,
                roles_missing=structure.roles_missing,
            ),
            visual=VisualDetail(
                score=visual.score,
                passed=visual.score >= thresholds.visual,
                diff_pixels=visual.diff_pixels,
                total_pixels=visual.total_pixels,
                diff_percentage=visual.diff_percentage,
                screenshots=visual.screenshots,
                warnings=visual.warnings,
                script_errors=visual.script_errors,
                candidate_blank=visual.candidate_blank,
            ),
            feedback=feedback,
        )

    @staticmethod
    async def _run_stage(stage: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except Exception as e:
            raise StageException(stage, e) from e

    @staticmethod
    async def _run_async_stage(stage: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fn()
        except Exception as e:
            raise StageException(stage, e) from e
