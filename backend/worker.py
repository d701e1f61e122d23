"""Background worker that drains the submission queue.

Queued submissions are claimed from the store one at a time, evaluated with
at most ``concurrency_limit`` evaluations in flight, and their outcome is
written back. The worker never raises into the event loop: every failure is
logged and, where possible, recorded as status ``error`` on the submission.
"""

import asyncio
import logging

from config import settings
from database import SubmissionStore
from evaluation import ChallengeNotFound, HybridEvaluator
from evaluation.models import Submission, SubmissionStatus

logger = logging.getLogger(__name__)


class EvaluationWorker:
    def __init__(
        self,
        store: SubmissionStore,
        evaluator: HybridEvaluator,
        poll_interval: float | None = None,
        concurrency_limit: int | None = None,
    ):
        self.store = store
        self.evaluator = evaluator
        self.poll_interval = poll_interval if poll_interval is not None else settings.worker_poll_interval_sec
        self.concurrency_limit = concurrency_limit or settings.worker_concurrency
        self.active = 0
        self._poll_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._poll_task is not None

    def start(self) -> None:
        """Begin polling. The first pass runs immediately. Idempotent."""
        if self._poll_task is not None:
            return
        logger.info(
            "Evaluation worker started (interval %.1fs, concurrency %d)",
            self.poll_interval, self.concurrency_limit,
        )
        self._poll_task = asyncio.get_event_loop().create_task(self._poll_loop())

    def stop(self) -> None:
        """Stop polling. In-flight evaluations run to completion. Idempotent."""
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        self._poll_task = None
        logger.info("Evaluation worker stopped")

    async def wait_idle(self) -> None:
        """Wait until no evaluation is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def stats(self) -> dict:
        return {
            "active": self.active,
            "concurrency": self.concurrency_limit,
            "running": self.running,
        }

    async def _poll_loop(self) -> None:
        while True:
            await self._drain()
            await asyncio.sleep(self.poll_interval)

    async def _drain(self) -> None:
        """Claim submissions until the queue is empty or every slot is busy."""
        while await self.process_next():
            pass

    async def process_next(self) -> bool:
        """
        Claim one queued submission and start evaluating it in the background.

        Returns True if a submission was claimed.
        """
        if self.active >= self.concurrency_limit:
            return False

        # Reserve the slot before the first await so concurrent callers
        # cannot overshoot the limit
        self.active += 1
        claimed = False
        try:
            submission = await self.store.claim_next_queued_submission()
            if submission is None:
                return False
            task = asyncio.get_event_loop().create_task(self._process(submission))
            claimed = True
        except Exception:
            logger.exception("Evaluation worker failed to poll the queue")
            return False
        finally:
            # The task owns the slot once it exists; otherwise give it back
            if not claimed:
                self.active -= 1

        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _process(self, submission: Submission) -> None:
        try:
            await self._run_evaluation(submission)
        finally:
            self.active -= 1
        if self.running:
            await self._drain()

    async def _run_evaluation(self, submission: Submission) -> None:
        logger.info("Starting evaluation for submission %s", submission.id)
        try:
            challenge = await self.store.get_challenge(submission.challenge_id)
            if challenge is None:
                raise ChallengeNotFound(submission.challenge_id)

            result = await self.evaluator.evaluate(
                submission.code,
                challenge.expected_solution,
                challenge.passing_threshold,
                submission.id,
                challenge.id,
            )
            await self.store.update_submission_evaluation(submission.id, result)
            logger.info(
                "Evaluation complete for %s: %s (final %d)",
                submission.id, "PASSED" if result.passed else "FAILED", result.final_score,
            )
        except ChallengeNotFound as e:
            logger.error("Evaluation failed for %s: %s", submission.id, e)
            await self._mark_error(submission.id)
        except Exception:
            logger.exception("Evaluation failed for %s", submission.id)
            await self._mark_error(submission.id)

    async def _mark_error(self, submission_id: str) -> None:
        try:
            await self.store.update_submission_status(submission_id, SubmissionStatus.ERROR)
        except Exception:
            logger.exception("Could not mark submission %s as error", submission_id)
