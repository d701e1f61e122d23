"""Pixel-level visual comparison of candidate and expected renders.

Both code triples are wrapped into standalone documents, rendered in the shared
headless browser at a fixed viewport, and compared pixel by pixel with a
perceptual (YIQ) colour distance, the same metric pixelmatch uses.
"""

import io
import json
import logging
import re
from pathlib import Path

import numpy as np
from PIL import Image
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config import settings
from screenshot_capture import SCRIPT_ERROR_MARKER, ScreenshotCapture, ScreenshotOptions

from .errors import RenderTimeout
from .models import CodeTriple, ScreenshotRefs, VisualDiffResult, VisualWarning
from .scoring import clamp_score

logger = logging.getLogger(__name__)

# Squared YIQ distance of black vs white; scales the 0-1 threshold
MAX_YIQ_DELTA = 35215.0

DIFF_COLOR = (255, 0, 0)
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")
BLANK_TOLERANCE = 5

DOCUMENT_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Render</title>
  <style>
    /* Reset for consistency */
    * {{
      margin: 0;
      padding: 0;
      box-sizing: border-box;
    }}

    /* User CSS */
    {css}
  </style>
</head>
<body>
{html}
<script>
  try {{
    (new Function({js}))();
  }} catch (e) {{
    console.error({marker} + " " + String(e));
  }}
</script>
</body>
</html>
"""


def _script_literal(value: str) -> str:
    """JSON-encode a string for inlining into <script> without closing the tag."""
    return json.dumps(value).replace("</", "<\\/")


def build_document(code: CodeTriple) -> str:
    """Wrap a code triple into a complete, self-contained HTML document.

    The JS is compiled through ``new Function`` inside the try block so that
    syntax errors are caught as well as runtime errors.

    Top-level ``function`` and ``var`` declarations therefore live in the function
    scope, not on ``window``, so inline handlers such as
    ``onclick="addToCart()"`` cannot resolve them. Only the rendered pixels are
    graded, so interaction is not affected.
    """
    return DOCUMENT_TEMPLATE.format(
        css=code.css or "",
        html=code.html or "",
        js=_script_literal(code.js or ""),
        marker=_script_literal(SCRIPT_ERROR_MARKER),
    )


def _load_rgba(png: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(png)) as img:
        return np.asarray(img.convert("RGBA"), dtype=np.float64)


def _fit_to(image: np.ndarray, height: int, width: int) -> np.ndarray:
    """Place an image on a transparent canvas of the given size (no resampling)."""
    canvas = np.zeros((height, width, 4), dtype=np.float64)
    h = min(height, image.shape[0])
    w = min(width, image.shape[1])
    canvas[:h, :w] = image[:h, :w]
    return canvas


def _blend_on_white(image: np.ndarray) -> np.ndarray:
    alpha = image[..., 3:4] / 255.0
    return 255.0 + (image[..., :3] - 255.0) * alpha


def _yiq(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


def diff_images(
    candidate: np.ndarray,
    expected: np.ndarray,
    threshold: float = 0.1,
    alpha: float = 0.1,
) -> tuple[int, np.ndarray]:
    """Count perceptually different pixels of two equally sized RGBA arrays.

    Returns the number of differing pixels and an RGBA diff image: the expected
    render faded to ``alpha`` in greyscale, with differing pixels in red.
    """
    y1, i1, q1 = _yiq(_blend_on_white(candidate))
    y2, i2, q2 = _yiq(_blend_on_white(expected))
    delta = 0.5053 * (y1 - y2) ** 2 + 0.299 * (i1 - i2) ** 2 + 0.1957 * (q1 - q2) ** 2
    mask = delta > MAX_YIQ_DELTA * threshold * threshold

    grey = 255.0 + (y2 - 255.0) * alpha
    diff = np.empty(expected.shape[:2] + (4,), dtype=np.uint8)
    diff[..., 0] = diff[..., 1] = diff[..., 2] = np.clip(grey, 0, 255).astype(np.uint8)
    diff[..., 3] = 255
    diff[mask] = (*DIFF_COLOR, 255)
    return int(mask.sum()), diff


def is_solid_color(image: np.ndarray, tolerance: int = BLANK_TOLERANCE) -> bool:
    """True when every pixel is within ``tolerance`` of the top-left one."""
    rgb = image[..., :3]
    return bool(np.all(np.abs(rgb - rgb[0, 0]) <= tolerance))


class VisualDiffEngine:
    """Renders both solutions and scores how much of the viewport differs."""

    def __init__(
        self,
        capture: ScreenshotCapture,
        screenshot_dir: Path | None = None,
        url_prefix: str | None = None,
        options: ScreenshotOptions | None = None,
        threshold: float | None = None,
        alpha: float | None = None,
    ):
        self.capture = capture
        self.screenshot_dir = Path(screenshot_dir or settings.screenshot_dir)
        self.url_prefix = (url_prefix if url_prefix is not None else settings.screenshot_url_prefix).rstrip("/")
        self.options = options or ScreenshotOptions.from_settings()
        self.threshold = threshold if threshold is not None else settings.pixel_threshold
        self.alpha = alpha if alpha is not None else settings.diff_alpha

    async def compare(
        self,
        candidate: CodeTriple,
        expected: CodeTriple,
        submission_id: str,
    ) -> VisualDiffResult:
        candidate_render = await self._render(build_document(candidate), "candidate")
        expected_render = await self._render(build_document(expected), "expected")

        candidate_img = _load_rgba(candidate_render.image)
        expected_img = _load_rgba(expected_render.image)
        height, width = expected_img.shape[:2]

        warnings = []
        if candidate_render.script_errors:
            logger.warning(
                "Candidate JS for %s raised: %s", submission_id, candidate_render.script_errors[0]
            )
            warnings.append(VisualWarning.RENDER_SCRIPT_ERROR)
        if candidate_img.shape[:2] != expected_img.shape[:2]:
            logger.warning(
                "Image size mismatch for %s: candidate %dx%d, expected %dx%d",
                submission_id, candidate_img.shape[1], candidate_img.shape[0], width, height,
            )
            warnings.append(VisualWarning.IMAGE_SIZE_MISMATCH)
            candidate_img = _fit_to(candidate_img, height, width)

        diff_pixels, diff_img = diff_images(
            candidate_img, expected_img, threshold=self.threshold, alpha=self.alpha
        )
        total_pixels = width * height
        diff_percentage = diff_pixels / total_pixels * 100 if total_pixels else 0.0
        score = clamp_score(max(0.0, 100 - diff_percentage))

        screenshots = self._save(
            submission_id,
            candidate=candidate_render.image,
            expected=expected_render.image,
            diff=diff_img,
        )

        logger.info(
            "Visual diff for %s: %d/%d pixels differ (%.2f%%), score %d",
            submission_id, diff_pixels, total_pixels, diff_percentage, score,
        )
        return VisualDiffResult(
            score=score,
            diff_pixels=diff_pixels,
            total_pixels=total_pixels,
            diff_percentage=round(diff_percentage, 2),
            screenshots=screenshots,
            width=width,
            height=height,
            warnings=warnings,
            script_errors=candidate_render.script_errors,
            candidate_blank=is_solid_color(candidate_img) and not is_solid_color(expected_img),
        )

    async def _render(self, document: str, label: str):
        try:
            return await self.capture.render(document, self.options)
        except PlaywrightTimeoutError as e:
            raise RenderTimeout(
                f"Rendering the {label} solution exceeded {self.options.timeout_ms}ms"
            ) from e

    def _save(self, submission_id: str, candidate: bytes, expected: bytes, diff: np.ndarray) -> ScreenshotRefs:
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        stem = _UNSAFE_FILENAME_CHARS.sub("_", submission_id)
        names = {
            "candidate": f"{stem}-candidate.png",
            "expected": f"{stem}-expected.png",
            "diff": f"{stem}-diff.png",
        }
        (self.screenshot_dir / names["candidate"]).write_bytes(candidate)
        (self.screenshot_dir / names["expected"]).write_bytes(expected)
        Image.fromarray(diff).save(self.screenshot_dir / names["diff"], format="PNG")
        return ScreenshotRefs(**{key: f"{self.url_prefix}/{name}" for key, name in names.items()})
