"""Controllers for queue-consumer CLI commands."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from queue_consumer.backends.payload import JobPayload, resolve_handler
from queue_consumer.backends.sqlite import SqliteFailedJobProvider, SqliteQueue
from queue_consumer.config import ConsumerOptions, Settings
from queue_consumer.consumer.models import ConsumerRunSummary
from queue_consumer.consumer.worker import Consumer
from queue_consumer.errors import JobNotFoundError
from queue_consumer.storage.repository import QueueRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EnqueueCommand:
    """CLI input for pushing one job."""

    db_path: Path | None
    queue: str | None
    handler: str
    args: dict[str, Any] = field(default_factory=dict)
    on_failure: str | None = None
    max_attempts: int = 0
    timeout_seconds: int = 0
    delay_seconds: int = 0


@dataclass(slots=True)
class WorkCommand:
    """CLI input for a consumer run; None keeps the environment value."""

    db_path: Path | None
    queue: str | None
    sleep_seconds: int | None = None
    max_jobs: int | None = None
    max_runtime_seconds: int | None = None
    memory_limit_mb: int | None = None
    stop_on_empty: bool | None = None
    stop_on_error: bool | None = None


@dataclass(slots=True)
class WorkResult:
    """Summary lines plus whether the run ended without a job error."""

    lines: list[str]
    success: bool
    summary: ConsumerRunSummary


@dataclass(slots=True)
class SizeCommand:
    db_path: Path | None
    queue: str | None


@dataclass(slots=True)
class FailedListCommand:
    """CLI input for failed-job listing."""

    db_path: Path | None
    queue: str | None
    limit: int = 50


@dataclass(slots=True)
class FailedMutateCommand:
    """CLI input for show/retry/forget on one failed record."""

    db_path: Path | None
    failed_id: int
    queue: str | None = None


@dataclass(slots=True)
class FailedFlushCommand:
    db_path: Path | None
    queue: str | None = None


class ConsumerCliController:
    """Coordinates enqueue, worker, and failed-job CLI operations."""

    def enqueue(self, command: EnqueueCommand) -> list[str]:
        settings = _settings(command.db_path)
        resolve_handler(command.handler)
        if command.on_failure is not None:
            resolve_handler(command.on_failure)
        payload = JobPayload(
            handler=command.handler,
            args=command.args,
            on_failure=command.on_failure,
        )
        with _repository(settings) as repository:
            queue = _queue(repository, settings, command.queue)
            job = queue.push(
                payload,
                max_attempts=command.max_attempts,
                timeout_seconds=command.timeout_seconds,
                delay_seconds=command.delay_seconds,
            )
        return [
            f"Job queued: {job.job_id} queue={job.queue} handler={payload.handler} "
            f"max_attempts={job.max_attempts or 'unlimited'} "
            f"timeout={job.timeout_seconds or 'none'}",
        ]

    def work(self, command: WorkCommand) -> WorkResult:
        """Run the consumer until one of its stop conditions holds."""

        settings = _settings(command.db_path)
        options = _override_options(settings.consumer, command)
        options.validate()
        success = True
        with _repository(settings) as repository:
            queue = _queue(repository, settings, command.queue)
            consumer = Consumer(failed_provider=SqliteFailedJobProvider(repository))
            try:
                consumer.run(queue, options)
            except Exception:  # noqa: BLE001
                logger.exception("Consumer stopped on job error (queue %s)", queue.name)
                success = False
            summary = consumer.summary

        stop_reason = summary.stop_reason.value if summary.stop_reason else "-"
        return WorkResult(
            lines=[
                "Consumer summary: "
                f"queue={queue.name} stop_reason={stop_reason} "
                f"processed={summary.processed} succeeded={summary.succeeded} "
                f"retried={summary.retried} failed={summary.failed} "
                f"idle_polls={summary.idle_polls} dequeue_errors={summary.dequeue_errors}",
            ],
            success=success,
            summary=summary,
        )

    def size(self, command: SizeCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            queue = _queue(repository, settings, command.queue)
            return [f"Queue {queue.name}: {queue.size()} job(s)"]

    def list_failed(self, command: FailedListCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            records = SqliteFailedJobProvider(repository).all(
                queue=command.queue,
                limit=command.limit,
            )

        lines = [f"Failed jobs: {len(records)}"]
        for record in records:
            summary_line = record.exception.strip().splitlines()[-1] if record.exception else ""
            lines.append(
                f"  #{record.id} job={record.job_id} queue={record.queue} "
                f"attempts={record.attempts} failed_at={record.failed_at.isoformat()} "
                f"error={summary_line}",
            )
        return lines

    def show_failed(self, command: FailedMutateCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            record = SqliteFailedJobProvider(repository).find(command.failed_id)
        if record is None:
            raise JobNotFoundError(f"Failed job not found: {command.failed_id}")
        return [
            f"Failed job: #{record.id}",
            f"  job_id={record.job_id}",
            f"  queue={record.queue}",
            f"  attempts={record.attempts}/{record.max_attempts or 'unlimited'}",
            f"  timeout_seconds={record.timeout_seconds}",
            f"  failed_at={record.failed_at.isoformat()}",
            f"  payload={record.payload}",
            "  exception:",
            *(f"    {line}" for line in record.exception.splitlines()),
        ]

    def retry_failed(self, command: FailedMutateCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            job = SqliteFailedJobProvider(repository).retry(
                command.failed_id,
                queue=command.queue,
            )
        return [f"Failed job #{command.failed_id} re-queued as {job.job_id} on {job.queue}"]

    def forget_failed(self, command: FailedMutateCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            SqliteFailedJobProvider(repository).forget(command.failed_id)
        return [f"Failed job #{command.failed_id} deleted"]

    def flush_failed(self, command: FailedFlushCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            removed = SqliteFailedJobProvider(repository).flush(queue=command.queue)
        return [f"Failed jobs deleted: {removed}"]


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


def _override_options(options: ConsumerOptions, command: WorkCommand) -> ConsumerOptions:
    overrides = {
        "sleep_seconds": command.sleep_seconds,
        "max_jobs": command.max_jobs,
        "max_runtime_seconds": command.max_runtime_seconds,
        "memory_limit_mb": command.memory_limit_mb,
        "stop_on_empty": command.stop_on_empty,
        "stop_on_error": command.stop_on_error,
    }
    return dataclasses.replace(
        options,
        **{name: value for name, value in overrides.items() if value is not None},
    )


def _queue(repository: QueueRepository, settings: Settings, name: str | None) -> SqliteQueue:
    return SqliteQueue(
        repository,
        name=(name or "").strip() or settings.default_queue,
        retry_after_seconds=settings.retry_after_seconds,
    )


@contextmanager
def _repository(settings: Settings) -> Iterator[QueueRepository]:
    repository = QueueRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
