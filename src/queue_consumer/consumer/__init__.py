"""Consumer run loop: fetch, bound, classify, resolve.

The loop is single-threaded and handles one job per tick. Asynchronous input
only arrives through OS signals: SIGTERM/SIGINT/SIGQUIT request shutdown,
SIGUSR2 pauses, SIGCONT resumes, and SIGALRM enforces the per-job deadline by
killing the process. Storage is reached through the Protocols in
``contracts`` so the same loop drives the in-memory and SQLite backends.
"""

from queue_consumer.consumer.models import (
    ConsumerRunState,
    ConsumerRunSummary,
    ConsumerState,
    Outcome,
    OutcomeKind,
    RunStatistics,
    StopReason,
)
from queue_consumer.consumer.retry_policy import OutcomeResolver, classify_outcome, execute_job
from queue_consumer.consumer.timeout_guard import TimeoutGuard
from queue_consumer.consumer.worker import Consumer

__all__ = [
    "Consumer",
    "ConsumerRunState",
    "ConsumerRunSummary",
    "ConsumerState",
    "Outcome",
    "OutcomeKind",
    "OutcomeResolver",
    "RunStatistics",
    "StopReason",
    "TimeoutGuard",
    "classify_outcome",
    "execute_job",
]
