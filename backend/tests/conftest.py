"""Shared fixtures for backend tests.

Rendering is replaced by ``FakeCapture``, which hands back pre-built PNGs, so
nothing here needs a browser. Persistence is replaced by ``FakeStore``.
"""

import io

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

from evaluation import HybridEvaluator, VisualDiffEngine
from evaluation.models import Challenge, CodeTriple, Submission, SubmissionStatus, Thresholds
from main import app
from screenshot_capture import RenderedPage, ScreenshotOptions

VIEWPORT = (64, 48)

WHITE = (255, 255, 255)
RED = (255, 0, 0)


def make_png(color=WHITE, size=VIEWPORT, left_half=None) -> bytes:
    """Solid PNG; ``left_half`` paints the left half in another colour."""
    img = Image.new("RGBA", size, color + (255,))
    if left_half is not None:
        img.paste(left_half + (255,), (0, 0, size[0] // 2, size[1]))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class FakeCapture:
    """Stands in for ScreenshotCapture.

    ``images`` is cycled through on successive renders (candidate first, then
    expected); ``script_errors`` are reported on the first render of each pair.
    """

    def __init__(self, images=None, script_errors=None, error: Exception | None = None):
        self.images = images or [make_png()]
        self.script_errors = script_errors or []
        self.error = error
        self.documents: list[str] = []
        self.started = False

    async def render(self, html_content: str, options=None) -> RenderedPage:
        if self.error is not None:
            raise self.error
        index = len(self.documents)
        self.documents.append(html_content)
        image = self.images[index % len(self.images)]
        errors = list(self.script_errors) if index % 2 == 0 else []
        return RenderedPage(image=image, script_errors=errors)

    async def close(self):
        pass


class FakeStore:
    """In-memory SubmissionStore double."""

    def __init__(self, submissions=None, challenges=None):
        self.submissions: dict[str, Submission] = {s.id: s for s in submissions or []}
        self.challenges: dict[str, Challenge] = {c.id: c for c in challenges or []}
        self.results = {}
        self.statuses: dict[str, SubmissionStatus] = {}
        self.configured = True

    async def get_challenge(self, challenge_id):
        return self.challenges.get(challenge_id)

    async def get_submission(self, submission_id):
        return self.submissions.get(submission_id)

    async def claim_next_queued_submission(self):
        for submission in self.submissions.values():
            if submission.status is SubmissionStatus.QUEUED:
                submission.status = SubmissionStatus.EVALUATING
                self.statuses[submission.id] = SubmissionStatus.EVALUATING
                return submission
        return None

    async def update_submission_status(self, submission_id, status):
        self.statuses[submission_id] = status

    async def update_submission_evaluation(self, submission_id, result):
        self.results[submission_id] = result
        self.statuses[submission_id] = (
            SubmissionStatus.PASSED if result.passed else SubmissionStatus.FAILED
        )

    async def requeue_pending_submissions(self):
        return 0


# ---------------------------------------------------------------------------
# Sample solutions
# ---------------------------------------------------------------------------

PRODUCT_HTML = '<h1 class="title">Wireless Headphones</h1><span class="price">$99.99</span>'
PRODUCT_NO_PRICE_HTML = '<h1 class="title">Wireless Headphones</h1>'


@pytest.fixture
def expected_code() -> CodeTriple:
    return CodeTriple(html=PRODUCT_HTML)


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def screenshot_options() -> ScreenshotOptions:
    return ScreenshotOptions(width=VIEWPORT[0], height=VIEWPORT[1], settle_ms=0)


@pytest.fixture
def visual_engine(capture, tmp_path, screenshot_options) -> VisualDiffEngine:
    return VisualDiffEngine(
        capture,
        screenshot_dir=tmp_path,
        url_prefix="/screenshots",
        options=screenshot_options,
    )


@pytest.fixture
def evaluator(visual_engine) -> HybridEvaluator:
    return HybridEvaluator(visual_engine)


@pytest.fixture
def challenge(expected_code) -> Challenge:
    return Challenge(
        id="ch-1",
        title="Product card",
        expected_solution=expected_code,
        passing_threshold=Thresholds(),
    )


@pytest.fixture(autouse=True)
def _reset_overrides():
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client():
    """Async HTTP client against the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
