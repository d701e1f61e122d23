"""Grader backend: FastAPI application."""

import asyncio
import logging
import uuid

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from fastapi import Depends, FastAPI, HTTPException

logger = logging.getLogger(__name__)

# Ensure module loggers output to console
_root_logger = logging.getLogger()
if not _root_logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    _root_logger.addHandler(console_handler)
    _root_logger.setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from config import settings

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        traces_sample_rate=0.1,
        environment=settings.environment,
    )

from database import SubmissionStore
from evaluation import HybridEvaluator, VisualDiffEngine
from evaluation.models import CodeTriple, EvaluationResult, Thresholds
from screenshot_capture import ScreenshotCapture
from worker import EvaluationWorker

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(title="Grader", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

settings.screenshot_dir.mkdir(parents=True, exist_ok=True)
app.mount(
    settings.screenshot_url_prefix,
    StaticFiles(directory=settings.screenshot_dir),
    name="screenshots",
)

# One browser for the whole process; every evaluation borrows a page from it
capture = ScreenshotCapture()
evaluator = HybridEvaluator(VisualDiffEngine(capture))
store = SubmissionStore()
worker: EvaluationWorker | None = None

# Direct (non-queued) evaluations share the worker's concurrency ceiling
_direct_slots = asyncio.Semaphore(settings.worker_concurrency)
_direct_active = 0


def get_evaluator() -> HybridEvaluator:
    return evaluator


def get_store() -> SubmissionStore:
    return store


async def _evaluate_bounded(
    engine: HybridEvaluator,
    candidate: CodeTriple,
    expected: CodeTriple,
    thresholds: Thresholds | None,
    submission_id: str,
    challenge_id: str | None = None,
) -> EvaluationResult:
    global _direct_active
    async with _direct_slots:
        _direct_active += 1
        try:
            return await engine.evaluate(candidate, expected, thresholds, submission_id, challenge_id)
        finally:
            _direct_active -= 1


@app.on_event("startup")
async def _start_worker() -> None:
    global worker
    if not settings.worker_enabled:
        logger.info("Evaluation worker disabled by configuration")
        return
    if not store.configured:
        logger.warning("Supabase not configured; evaluation worker not started")
        return
    try:
        await store.requeue_pending_submissions()
    except Exception:
        logger.exception("Failed to requeue pending submissions")
    worker = EvaluationWorker(store, evaluator)
    worker.start()


@app.on_event("shutdown")
async def _shutdown() -> None:
    if worker is not None:
        worker.stop()
        await worker.wait_idle()
    await capture.close()


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class EvaluateRequest(BaseModel):
    submission_id: str


class QuickEvaluateRequest(BaseModel):
    candidate: CodeTriple
    expected: CodeTriple
    thresholds: Thresholds | None = None
    submission_id: str | None = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "browser": capture.started,
        "worker": worker.running if worker else False,
    }


@app.post("/api/evaluate")
async def evaluate_submission(
    req: EvaluateRequest,
    engine: HybridEvaluator = Depends(get_evaluator),
    submissions: SubmissionStore = Depends(get_store),
) -> EvaluationResult:
    """Evaluate a stored submission right away (bypassing the queue) and persist the result."""
    if not submissions.configured:
        raise HTTPException(status_code=503, detail="Submission storage is not configured")

    submission = await submissions.get_submission(req.submission_id)
    if submission is None:
        raise HTTPException(status_code=404, detail="Submission not found")

    challenge = await submissions.get_challenge(submission.challenge_id)
    if challenge is None:
        raise HTTPException(status_code=404, detail="Challenge not found")

    logger.info("Direct evaluation requested for %s", submission.id)
    result = await _evaluate_bounded(
        engine,
        submission.code,
        challenge.expected_solution,
        challenge.passing_threshold,
        submission.id,
        challenge.id,
    )
    await submissions.update_submission_evaluation(submission.id, result)
    return result


@app.post("/api/evaluate/quick")
async def evaluate_quick(
    req: QuickEvaluateRequest,
    engine: HybridEvaluator = Depends(get_evaluator),
) -> EvaluationResult:
    """Evaluate two code triples without touching storage."""
    submission_id = req.submission_id or f"quick-{uuid.uuid4().hex[:12]}"
    return await _evaluate_bounded(
        engine, req.candidate, req.expected, req.thresholds, submission_id
    )


@app.get("/api/evaluate/queue")
async def queue_stats():
    if worker is not None:
        worker_stats = worker.stats()
    else:
        worker_stats = {"active": 0, "concurrency": settings.worker_concurrency, "running": False}
    return {
        "worker": worker_stats,
        "direct": {"active": _direct_active, "concurrency": settings.worker_concurrency},
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.host, port=settings.port)
