"""Exceptions raised inside the evaluation engine.

Script errors in candidate JS and screenshot size mismatches are not
exceptions: they are reported as ``VisualWarning`` values on the visual result.
"""


class EvaluationError(Exception):
    """Base class for evaluation failures."""


class RenderTimeout(EvaluationError):
    """Navigation or screenshot capture exceeded the render timeout."""


class ChallengeNotFound(EvaluationError):
    def __init__(self, challenge_id: str):
        super().__init__(f"Challenge {challenge_id} not found")
        self.challenge_id = challenge_id


class StageException(EvaluationError):
    """An unexpected error inside one scoring stage."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage} failed: {cause}")
        self.stage = stage
        self.cause = cause
