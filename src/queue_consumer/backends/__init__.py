"""Queue backends: in-process for tests and embedding, SQLite for the CLI."""

from queue_consumer.backends.memory import InMemoryFailedJobProvider, InMemoryJob, InMemoryQueue
from queue_consumer.backends.payload import JobPayload, resolve_handler
from queue_consumer.backends.sqlite import SqliteFailedJobProvider, SqliteJob, SqliteQueue

__all__ = [
    "InMemoryFailedJobProvider",
    "InMemoryJob",
    "InMemoryQueue",
    "JobPayload",
    "SqliteFailedJobProvider",
    "SqliteJob",
    "SqliteQueue",
    "resolve_handler",
]
