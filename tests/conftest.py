"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from queue_consumer.backends.memory import InMemoryFailedJobProvider, InMemoryQueue
from queue_consumer.backends.sqlite import SqliteFailedJobProvider, SqliteQueue
from queue_consumer.consumer.timeout_guard import TimeoutGuard
from queue_consumer.consumer.worker import Consumer
from queue_consumer.storage.repository import QueueRepository

_ENV_VARS = (
    "QUEUE_CONSUMER_DB_PATH",
    "QUEUE_CONSUMER_SQLITE_BUSY_TIMEOUT_MS",
    "QUEUE_CONSUMER_QUEUE",
    "QUEUE_CONSUMER_RETRY_AFTER_SECONDS",
    "QUEUE_CONSUMER_SLEEP_SECONDS",
    "QUEUE_CONSUMER_MAX_JOBS",
    "QUEUE_CONSUMER_MAX_RUNTIME_SECONDS",
    "QUEUE_CONSUMER_MEMORY_LIMIT_MB",
    "QUEUE_CONSUMER_STOP_ON_EMPTY",
    "QUEUE_CONSUMER_STOP_ON_ERROR",
)


class JobTimedOut(BaseException):
    """Raised by the test terminate hook instead of killing pytest.

    Derives from BaseException so job error handling cannot swallow it.
    """


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def queue() -> InMemoryQueue:
    return InMemoryQueue("default")


@pytest.fixture()
def failed_provider() -> InMemoryFailedJobProvider:
    return InMemoryFailedJobProvider()


@pytest.fixture()
def timed_out() -> type[BaseException]:
    return JobTimedOut


@pytest.fixture()
def terminations() -> list[int]:
    return []


@pytest.fixture()
def consumer(
    monkeypatch: pytest.MonkeyPatch,
    failed_provider: InMemoryFailedJobProvider,
    terminations: list[int],
) -> Consumer:
    """Consumer with a non-lethal timeout guard, a tiny memory probe, and no real sleeping."""

    def _terminate(status: int) -> None:
        terminations.append(status)
        raise JobTimedOut(f"terminated with status {status}")

    instance = Consumer(
        failed_provider=failed_provider,
        timeout_guard=TimeoutGuard(terminate=_terminate),
        memory_probe=lambda: 1.0,
    )
    monkeypatch.setattr(instance, "sleep", lambda seconds: None)
    return instance


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[QueueRepository]:
    repo = QueueRepository(tmp_path / "queue.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def sqlite_queue(repository: QueueRepository) -> SqliteQueue:
    return SqliteQueue(repository, name="default", retry_after_seconds=90)


@pytest.fixture()
def sqlite_failed_provider(repository: QueueRepository) -> SqliteFailedJobProvider:
    return SqliteFailedJobProvider(repository)
