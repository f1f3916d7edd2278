"""Collaborator interfaces consumed by the run loop."""

from __future__ import annotations

from typing import Protocol


class Job(Protocol):
    """One delivery of a queued job."""

    @property
    def queue_name(self) -> str:
        """Queue the job was delivered from."""
        raise NotImplementedError

    @property
    def attempts(self) -> int:
        """Delivery count maintained by the queue, never by the consumer."""
        raise NotImplementedError

    @property
    def max_attempts(self) -> int:
        """Attempt budget, 0 means unlimited."""
        raise NotImplementedError

    @property
    def timeout_seconds(self) -> int:
        """Wall-clock execution bound, 0 means unbounded."""
        raise NotImplementedError

    def process(self) -> None:
        """Run the job routine; any exception counts as a failed attempt."""
        raise NotImplementedError

    def release(self) -> None:
        """Return the job to the queue for a future delivery."""
        raise NotImplementedError

    def delete(self) -> None:
        """Remove the job from the queue without success."""
        raise NotImplementedError

    def failed(self, error: BaseException) -> None:
        """Best-effort cleanup hook for a permanently failed job."""
        raise NotImplementedError


class Queue(Protocol):
    """Source of job deliveries."""

    def dequeue(self) -> Job | None:
        """Return the next available job or None when the queue is empty."""
        raise NotImplementedError

    def acknowledge(self, job: Job) -> None:
        """Mark a job obtained from this queue as successfully completed."""
        raise NotImplementedError


class FailedJobProvider(Protocol):
    """Durable record of permanently failed jobs."""

    def log(self, queue_name: str, job: Job, error: BaseException) -> None:
        """Record the failure; callers swallow errors raised here."""
        raise NotImplementedError
