"""Rendering tests.

The browser-backed tests are skipped when Chromium is not installed; the
lifecycle tests at the bottom use a stubbed Playwright.
"""

import io

import pytest
import pytest_asyncio
from PIL import Image
from playwright.async_api import Error as PlaywrightError

from evaluation import HybridEvaluator, VisualDiffEngine
from evaluation.models import CodeTriple, VisualWarning
from evaluation.visual_diff import build_document
from screenshot_capture import ScreenshotCapture, ScreenshotOptions

OPTIONS = ScreenshotOptions(width=320, height=240, settle_ms=50, timeout_ms=15000)

CARD = CodeTriple(
    html='<div class="card"><h1 class="title">Wireless Headphones</h1><span class="price">$99.99</span></div>',
    css=".card { padding: 16px; background: #eef; } .price { color: green; }",
)


@pytest_asyncio.fixture
async def browser_capture():
    capture = ScreenshotCapture()
    try:
        await capture.start()
    except PlaywrightError as e:
        pytest.skip(f"Chromium not available: {e}")
    yield capture
    await capture.close()


@pytest.mark.asyncio
async def test_render_produces_viewport_png(browser_capture):
    rendered = await browser_capture.render(build_document(CARD), OPTIONS)
    with Image.open(io.BytesIO(rendered.image)) as img:
        assert img.size == (OPTIONS.width, OPTIONS.height)
    assert rendered.script_errors == []


@pytest.mark.asyncio
async def test_script_errors_are_reported(browser_capture):
    broken = CodeTriple(html="<p>x</p>", js="undefinedFunction();")
    rendered = await browser_capture.render(build_document(broken), OPTIONS)
    assert any("undefinedFunction" in err for err in rendered.script_errors)


@pytest.mark.asyncio
async def test_identical_solution_end_to_end(browser_capture, tmp_path):
    engine = VisualDiffEngine(browser_capture, screenshot_dir=tmp_path, options=OPTIONS)
    result = await HybridEvaluator(engine).evaluate(CARD, CARD, submission_id="e2e")

    assert result.error is None
    assert result.visual_score == 100
    assert result.final_score == 100
    assert result.passed is True


@pytest.mark.asyncio
async def test_syntax_error_does_not_fail_evaluation(browser_capture, tmp_path):
    engine = VisualDiffEngine(browser_capture, screenshot_dir=tmp_path, options=OPTIONS)
    broken = CARD.model_copy(update={"js": "function ( {"})
    result = await HybridEvaluator(engine).evaluate(broken, CARD, submission_id="e2e-js")

    assert result.error is None
    assert VisualWarning.RENDER_SCRIPT_ERROR in result.visual.warnings


@pytest.mark.asyncio
async def test_close_is_idempotent(browser_capture):
    await browser_capture.close()
    await browser_capture.close()
    assert browser_capture.started is False


@pytest.mark.asyncio
async def test_render_recovers_after_browser_dies(browser_capture):
    await browser_capture.browser.close()

    rendered = await browser_capture.render(build_document(CARD), OPTIONS)

    assert browser_capture.browser.is_connected()
    with Image.open(io.BytesIO(rendered.image)) as img:
        assert img.size == (OPTIONS.width, OPTIONS.height)


# =========================================================================
# Browser lifecycle without Chromium
# =========================================================================


class StubBrowser:
    def __init__(self):
        self.connected = True

    def is_connected(self):
        return self.connected

    async def close(self):
        self.connected = False


class StubPlaywright:
    def __init__(self, launched: list):
        self.launched = launched
        self.stopped = False
        self.chromium = self

    async def launch(self, **kwargs):
        browser = StubBrowser()
        self.launched.append(browser)
        return browser

    async def stop(self):
        self.stopped = True


@pytest.fixture
def stub_playwright(monkeypatch):
    launched: list[StubBrowser] = []
    instances: list[StubPlaywright] = []

    class Starter:
        async def start(self):
            instance = StubPlaywright(launched)
            instances.append(instance)
            return instance

    monkeypatch.setattr("screenshot_capture.async_playwright", Starter)
    return launched, instances


@pytest.mark.asyncio
async def test_start_reuses_connected_browser(stub_playwright):
    launched, _ = stub_playwright
    capture = ScreenshotCapture()

    first = await capture.start()
    second = await capture.start()

    assert first is second
    assert len(launched) == 1


@pytest.mark.asyncio
async def test_start_relaunches_disconnected_browser(stub_playwright):
    launched, instances = stub_playwright
    capture = ScreenshotCapture()

    crashed = await capture.start()
    crashed.connected = False
    relaunched = await capture.start()

    assert relaunched is not crashed
    assert relaunched.is_connected()
    assert len(launched) == 2
    assert instances[0].stopped is True
    assert capture.started is True

    await capture.close()
    assert capture.started is False
