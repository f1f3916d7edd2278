"""In-process queue backend for tests and embedding."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from queue_consumer.storage.common import utc_now


@dataclass(slots=True, eq=False)
class InMemoryJob:
    """Job delivered by :class:`InMemoryQueue`."""

    queue: InMemoryQueue = field(repr=False)
    routine: Callable[[], object] = field(repr=False)
    queue_name: str = "default"
    attempts: int = 0
    max_attempts: int = 0
    timeout_seconds: int = 0
    on_failure: Callable[[BaseException], object] | None = field(default=None, repr=False)
    job_id: str = field(default_factory=lambda: str(uuid4()))

    def process(self) -> None:
        self.routine()

    def release(self) -> None:
        self.queue.requeue(self)

    def delete(self) -> None:
        self.queue.remove(self)

    def failed(self, error: BaseException) -> None:
        if self.on_failure is not None:
            self.on_failure(error)


class InMemoryQueue:
    """FIFO queue; every delivery increments the job's attempts."""

    def __init__(self, name: str = "default") -> None:
        self.name = name
        self._pending: deque[InMemoryJob] = deque()
        self.acknowledged: list[InMemoryJob] = []
        self.released: list[InMemoryJob] = []
        self.deleted: list[InMemoryJob] = []

    def push(
        self,
        routine: Callable[[], object],
        *,
        max_attempts: int = 0,
        timeout_seconds: int = 0,
        attempts: int = 0,
        on_failure: Callable[[BaseException], object] | None = None,
    ) -> InMemoryJob:
        job = InMemoryJob(
            queue=self,
            routine=routine,
            queue_name=self.name,
            attempts=attempts,
            max_attempts=max_attempts,
            timeout_seconds=timeout_seconds,
            on_failure=on_failure,
        )
        self._pending.append(job)
        return job

    def dequeue(self) -> InMemoryJob | None:
        if not self._pending:
            return None
        job = self._pending.popleft()
        job.attempts += 1
        return job

    def acknowledge(self, job: InMemoryJob) -> None:
        self.acknowledged.append(job)

    def requeue(self, job: InMemoryJob) -> None:
        self.released.append(job)
        self._pending.append(job)

    def remove(self, job: InMemoryJob) -> None:
        self.deleted.append(job)

    def size(self) -> int:
        return len(self._pending)


@dataclass(slots=True)
class FailedJobEntry:
    """One permanently failed job kept in memory."""

    queue_name: str
    job: object
    error: BaseException
    failed_at: datetime


class InMemoryFailedJobProvider:
    """Failed-job log kept in a list."""

    def __init__(self) -> None:
        self.entries: list[FailedJobEntry] = []

    def log(self, queue_name: str, job: object, error: BaseException) -> None:
        self.entries.append(
            FailedJobEntry(queue_name=queue_name, job=job, error=error, failed_at=utc_now()),
        )

    def flush(self) -> int:
        count = len(self.entries)
        self.entries.clear()
        return count
