"""SQLite-backed queue, job, and failed-job provider."""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field

from queue_consumer.backends.payload import JobPayload
from queue_consumer.consumer.contracts import Job
from queue_consumer.errors import JobNotFoundError
from queue_consumer.storage.models import FailedJobView, QueuedJobView
from queue_consumer.storage.repository import QueueRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class SqliteJob:
    """One reserved row; attempts already include this delivery."""

    repository: QueueRepository = field(repr=False)
    view: QueuedJobView

    @property
    def job_id(self) -> str:
        return self.view.job_id

    @property
    def queue_name(self) -> str:
        return self.view.queue

    @property
    def attempts(self) -> int:
        return self.view.attempts

    @property
    def max_attempts(self) -> int:
        return self.view.max_attempts

    @property
    def timeout_seconds(self) -> int:
        return self.view.timeout_seconds

    @property
    def payload(self) -> str:
        return self.view.payload

    def process(self) -> None:
        JobPayload.from_json(self.view.payload).run()

    def release(self, delay_seconds: int = 0) -> None:
        if not self.repository.release(job_id=self.job_id, delay_seconds=delay_seconds):
            logger.warning("Job %s was no longer reserved when released", self.job_id)

    def delete(self) -> None:
        self.repository.remove(job_id=self.job_id)

    def failed(self, error: BaseException) -> None:
        JobPayload.from_json(self.view.payload).run_failure_hook(error)


class SqliteQueue:
    """Named queue stored in the ``queue_jobs`` table."""

    def __init__(
        self,
        repository: QueueRepository,
        *,
        name: str = "default",
        retry_after_seconds: int = 90,
    ) -> None:
        if retry_after_seconds <= 0:
            raise ValueError("retry_after_seconds must be > 0.")
        self.repository = repository
        self.name = name
        self.retry_after_seconds = retry_after_seconds

    def push(
        self,
        payload: JobPayload,
        *,
        max_attempts: int = 0,
        timeout_seconds: int = 0,
        delay_seconds: int = 0,
    ) -> QueuedJobView:
        return self.repository.push(
            queue=self.name,
            payload=payload.to_json(),
            max_attempts=max_attempts,
            timeout_seconds=timeout_seconds,
            delay_seconds=delay_seconds,
        )

    def dequeue(self) -> SqliteJob | None:
        view = self.repository.reserve_next(
            queue=self.name,
            retry_after_seconds=self.retry_after_seconds,
        )
        if view is None:
            return None
        logger.debug("Reserved job %s (attempt %d) from queue %s", view.job_id, view.attempts, self.name)
        return SqliteJob(repository=self.repository, view=view)

    def acknowledge(self, job: Job) -> None:
        if not isinstance(job, SqliteJob):
            raise TypeError(f"SqliteQueue cannot acknowledge {type(job).__name__}")
        self.repository.remove(job_id=job.job_id)

    def size(self) -> int:
        return self.repository.size(queue=self.name)


class SqliteFailedJobProvider:
    """Failed-job log stored in the ``failed_jobs`` table."""

    def __init__(self, repository: QueueRepository) -> None:
        self.repository = repository

    def log(self, queue_name: str, job: Job, error: BaseException) -> FailedJobView:
        return self.repository.log_failed(
            job_id=str(getattr(job, "job_id", "")),
            queue=queue_name,
            payload=str(getattr(job, "payload", "")),
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            timeout_seconds=job.timeout_seconds,
            exception=format_exception(error),
        )

    def all(self, *, queue: str | None = None, limit: int = 50) -> list[FailedJobView]:
        return self.repository.list_failed(queue=queue, limit=limit)

    def find(self, failed_id: int) -> FailedJobView | None:
        return self.repository.find_failed(failed_id=failed_id)

    def forget(self, failed_id: int) -> None:
        if not self.repository.forget_failed(failed_id=failed_id):
            raise JobNotFoundError(f"Failed job not found: {failed_id}")

    def flush(self, *, queue: str | None = None) -> int:
        return self.repository.flush_failed(queue=queue)

    def retry(self, failed_id: int, *, queue: str | None = None) -> QueuedJobView:
        """Push the failed payload back onto a queue with a fresh attempt budget."""

        return self.repository.retry_failed(failed_id=failed_id, queue=queue)


def format_exception(error: BaseException) -> str:
    """Render an error with its traceback and cause chain."""

    return "".join(traceback.format_exception(type(error), error, error.__traceback__)).rstrip()
