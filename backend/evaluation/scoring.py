"""Composite scoring for hybrid evaluations.

Final = round(
        0.50 * Content
      + 0.00 * Structure
      + 0.50 * Visual
      + 0.00 * Behavior
      )

All stage scores and the composite are integers on a 0-100 scale.
Structure is reported but not blended: the role matcher is not
challenge-aware yet. Behavior is a placeholder for interactivity tests.
"""

import math

WEIGHTS = {
    "content": 0.50,
    "structure": 0.00,
    "visual": 0.50,
    "behavior": 0.00,
}

# Pass gate. Deliberately independent of the challenge's passing_threshold,
# which only annotates the per-stage `passed` flags.
PASS_CONTENT = 70
PASS_VISUAL = 70
PASS_OVERALL = 70


def round_score(value: float) -> int:
    """Round half up (62.5 -> 63), unlike Python's banker's rounding."""
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    """Round and clamp a raw percentage into [0, 100]."""
    return max(0, min(100, round_score(value)))


def compute_final_score(
    content: int,
    structure: int,
    visual: int,
    behavior: int = 0,
) -> int:
    blended = (
        WEIGHTS["content"] * content
        + WEIGHTS["structure"] * structure
        + WEIGHTS["visual"] * visual
        + WEIGHTS["behavior"] * behavior
    )
    return clamp_score(blended)


def is_passing(content: int, visual: int, final: int) -> bool:
    return content >= PASS_CONTENT and visual >= PASS_VISUAL and final >= PASS_OVERALL
