"""Evaluation module for HTML/CSS/JS challenges.

This module contains all evaluation-related functionality:
- Strict content checking
- Semantic role matching
- Visual (pixel) comparison
- Scoring
"""

from .content_checker import StrictContentChecker
from .errors import ChallengeNotFound, EvaluationError, RenderTimeout, StageException
from .evaluator import HybridEvaluator
from .models import CodeTriple, EvaluationResult, Thresholds
from .scoring import compute_final_score, is_passing
from .semantic_roles import SEMANTIC_ROLES, SemanticRoleMatcher
from .visual_diff import VisualDiffEngine, build_document

__all__ = [
    "HybridEvaluator",
    "StrictContentChecker",
    "SemanticRoleMatcher",
    "SEMANTIC_ROLES",
    "VisualDiffEngine",
    "build_document",
    "CodeTriple",
    "EvaluationResult",
    "Thresholds",
    "compute_final_score",
    "is_passing",
    "EvaluationError",
    "RenderTimeout",
    "ChallengeNotFound",
    "StageException",
]
