"""Supabase-backed persistence for challenges and submissions.

Submissions move through ``queued -> evaluating -> passed | failed | error``.
The ``queued -> evaluating`` transition is a conditional update so that only
one worker can ever claim a given row.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone

from supabase import create_client, Client

from config import settings
from evaluation.models import (
    Challenge,
    CodeTriple,
    EvaluationResult,
    Submission,
    SubmissionStatus,
    Thresholds,
)

logger = logging.getLogger(__name__)

_supabase: Client | None = None

# Rows fetched per claim attempt; losing a race moves on to the next one
CLAIM_BATCH_SIZE = 5


def get_supabase_client() -> Client | None:
    """
    Get or initialize the Supabase client.
    Returns None if credentials are missing.
    """
    global _supabase
    if _supabase is None:
        if not settings.supabase_url or not settings.supabase_service_key:
            logger.warning("Supabase credentials not found. Persistence disabled.")
            return None
        try:
            _supabase = create_client(settings.supabase_url, settings.supabase_service_key)
        except Exception as e:
            logger.error(f"Failed to initialize Supabase client: {e}")
            return None
    return _supabase


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _json_field(value, default):
    """Columns written by older tooling hold JSON text instead of JSONB."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_challenge(row: dict) -> Challenge:
    """Convert a Supabase row to a Challenge model."""
    expected = _json_field(row.get("expected_solution"), None)
    if expected is None:
        expected = {
            "html": row.get("expected_html") or "",
            "css": row.get("expected_css") or "",
            "js": row.get("expected_js") or "",
        }
    thresholds = _json_field(row.get("passing_threshold"), {})
    return Challenge(
        id=str(row["id"]),
        title=row.get("title") or "",
        expected_solution=CodeTriple(**{k: expected.get(k) or "" for k in ("html", "css", "js")}),
        passing_threshold=Thresholds(**thresholds),
    )


def _row_to_submission(row: dict) -> Submission:
    """Convert a Supabase row to a Submission model."""
    return Submission(
        id=str(row["id"]),
        challenge_id=str(row["challenge_id"]),
        code=CodeTriple(
            html=row.get("html_code") or "",
            css=row.get("css_code") or "",
            js=row.get("js_code") or "",
        ),
        status=SubmissionStatus(row.get("status") or SubmissionStatus.QUEUED.value),
        submitted_at=row.get("submitted_at"),
    )


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


async def _execute(query):
    """Run a blocking postgrest query off the event loop."""
    return await asyncio.to_thread(query.execute)


class SubmissionStore:
    """Reads challenges and submissions and records evaluation outcomes."""

    def __init__(self, client: Client | None = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        if self._client is None:
            raise RuntimeError("Supabase not configured: submission persistence disabled")
        return self._client

    @property
    def configured(self) -> bool:
        return self._client is not None or get_supabase_client() is not None

    async def get_challenge(self, challenge_id: str) -> Challenge | None:
        response = await _execute(
            self.client.table("challenges")
            .select("*")
            .eq("id", challenge_id)
            .limit(1)
        )
        if response.data:
            return _row_to_challenge(response.data[0])
        return None

    async def get_submission(self, submission_id: str) -> Submission | None:
        response = await _execute(
            self.client.table("submissions")
            .select("*")
            .eq("id", submission_id)
            .limit(1)
        )
        if response.data:
            return _row_to_submission(response.data[0])
        return None

    async def claim_next_queued_submission(self) -> Submission | None:
        """
        Atomically move the oldest queued submission to ``evaluating``.

        The update is conditional on the row still being ``queued``; an empty
        update result means another worker got there first.
        """
        response = await _execute(
            self.client.table("submissions")
            .select("id")
            .eq("status", SubmissionStatus.QUEUED.value)
            .order("submitted_at")
            .limit(CLAIM_BATCH_SIZE)
        )
        for row in response.data or []:
            claimed = await _execute(
                self.client.table("submissions")
                .update({"status": SubmissionStatus.EVALUATING.value})
                .eq("id", row["id"])
                .eq("status", SubmissionStatus.QUEUED.value)
            )
            if claimed.data:
                submission = _row_to_submission(claimed.data[0])
                logger.info("Claimed submission %s", submission.id)
                return submission
            logger.debug("Submission %s already claimed elsewhere", row["id"])
        return None

    async def update_submission_status(self, submission_id: str, status: SubmissionStatus) -> None:
        try:
            await _execute(
                self.client.table("submissions")
                .update({"status": SubmissionStatus(status).value})
                .eq("id", submission_id)
            )
        except Exception as e:
            logger.error("Error updating status of submission %s: %s", submission_id, e)
            raise

    async def update_submission_evaluation(self, submission_id: str, result: EvaluationResult) -> None:
        status = SubmissionStatus.PASSED if result.passed else SubmissionStatus.FAILED
        screenshots = result.visual.screenshots if result.visual else None
        updates = {
            "status": status.value,
            "evaluated_at": _utcnow_iso(),
            "content_score": result.content_score,
            "structure_score": result.structure_score,
            "visual_score": result.visual_score,
            "final_score": result.final_score,
            "passed": result.passed,
            "evaluation_result": result.model_dump(mode="json"),
            "user_screenshot": screenshots.candidate if screenshots else None,
            "expected_screenshot": screenshots.expected if screenshots else None,
        }
        try:
            await _execute(self.client.table("submissions").update(updates).eq("id", submission_id))
        except Exception as e:
            logger.error("Error saving evaluation of submission %s: %s", submission_id, e)
            raise

    async def requeue_pending_submissions(self) -> int:
        """Move legacy ``pending`` submissions into the queue. Returns the count."""
        response = await _execute(
            self.client.table("submissions")
            .update({"status": SubmissionStatus.QUEUED.value})
            .eq("status", SubmissionStatus.PENDING.value)
        )
        count = len(response.data or [])
        if count:
            logger.info("Requeued %d pending submission(s)", count)
        return count
