"""Deterministic outcome classification and retry policy for job executions."""

from __future__ import annotations

import logging

from queue_consumer.consumer.contracts import FailedJobProvider, Job, Queue
from queue_consumer.consumer.models import Outcome, OutcomeKind
from queue_consumer.errors import MaxAttemptsExceededError

logger = logging.getLogger(__name__)


def attempts_exceeded_before_run(*, attempts: int, max_attempts: int) -> bool:
    """Return True when a delivery is already over budget and must not run.

    Jobs that only ever time out never raise, so their attempts keep growing
    through redelivery until they pass ``max_attempts``.
    """

    return max_attempts > 0 and attempts > max_attempts


def classify_outcome(
    *,
    attempts: int,
    max_attempts: int,
    error: BaseException | None,
) -> Outcome:
    """Map one execution result to an outcome.

    The result depends only on the arguments. An error raised on the last
    allowed attempt is escalated to a permanent failure whose cause is the
    original error.
    """

    if error is None:
        return Outcome.success()
    if isinstance(error, MaxAttemptsExceededError):
        return Outcome.permanent(error)
    if max_attempts > 0 and attempts >= max_attempts:
        escalated = MaxAttemptsExceededError("Job exceeded its maximum attempts")
        escalated.__cause__ = error
        return Outcome.permanent(escalated)
    return Outcome.retryable(error)


def execute_job(job: Job) -> Outcome:
    """Run the job routine unless it is over budget, then classify the result."""

    attempts = job.attempts
    max_attempts = job.max_attempts
    if attempts_exceeded_before_run(attempts=attempts, max_attempts=max_attempts):
        return classify_outcome(
            attempts=attempts,
            max_attempts=max_attempts,
            error=MaxAttemptsExceededError("Job exceeded maximum attempts, due to timeouts"),
        )

    try:
        job.process()
    except Exception as error:  # noqa: BLE001
        return classify_outcome(attempts=attempts, max_attempts=max_attempts, error=error)
    return Outcome.success()


class OutcomeResolver:
    """Applies exactly one terminal or retry action per classified outcome."""

    def __init__(self, *, failed_provider: FailedJobProvider) -> None:
        self.failed_provider = failed_provider

    def resolve(
        self,
        job: Job,
        outcome: Outcome,
        *,
        queue: Queue,
        stop_on_error: bool = False,
    ) -> None:
        """Acknowledge, release, or permanently fail the job.

        Raises the original error of a retryable failure when ``stop_on_error``
        is set; every other failure is handled here.
        """

        if outcome.kind is OutcomeKind.SUCCESS:
            queue.acknowledge(job)
            return

        if outcome.error is None:
            raise RuntimeError("Failure outcome must carry an error.")

        if outcome.kind is OutcomeKind.PERMANENT_FAILURE:
            self.fail_permanently(job, outcome.error)
            return

        logger.info(
            "Releasing job from queue %s after attempt %d/%s: %s",
            job.queue_name,
            job.attempts,
            job.max_attempts or "unlimited",
            outcome.error,
        )
        job.release()
        if stop_on_error:
            raise outcome.error

    def fail_permanently(self, job: Job, error: BaseException) -> None:
        """Delete the job, run its failure hook, and record it as failed."""

        queue_name = job.queue_name
        logger.warning("Job on queue %s failed permanently: %s", queue_name, error)
        try:
            job.delete()
        except Exception:  # noqa: BLE001
            logger.exception("Failed to delete job from queue %s", queue_name)
        try:
            job.failed(error)
        except Exception:  # noqa: BLE001
            logger.exception("Job failure hook raised for queue %s", queue_name)
        try:
            self.failed_provider.log(queue_name, job, error)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to record failed job for queue %s", queue_name)
