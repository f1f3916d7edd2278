"""Domain models for the consumer run loop."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class ConsumerState(str, Enum):
    """Lifecycle states of one run."""

    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"


class StopReason(str, Enum):
    """Why the run loop exited."""

    SHUTDOWN = "shutdown"
    MAX_RUNTIME = "max_runtime"
    MEMORY_LIMIT = "memory_limit"
    MAX_JOBS = "max_jobs"
    QUEUE_EMPTY = "queue_empty"
    ERROR = "error"


class OutcomeKind(str, Enum):
    """Classification of one job execution."""

    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    PERMANENT_FAILURE = "permanent_failure"


@dataclass(slots=True, frozen=True)
class Outcome:
    """Transient result of classifying one job execution."""

    kind: OutcomeKind
    error: BaseException | None = None

    @classmethod
    def success(cls) -> Outcome:
        return cls(kind=OutcomeKind.SUCCESS)

    @classmethod
    def retryable(cls, error: BaseException) -> Outcome:
        return cls(kind=OutcomeKind.RETRYABLE_FAILURE, error=error)

    @classmethod
    def permanent(cls, error: BaseException) -> Outcome:
        return cls(kind=OutcomeKind.PERMANENT_FAILURE, error=error)


@dataclass(slots=True)
class ConsumerRunState:
    """Flags written by signal handlers and polled once per tick."""

    shutdown_requested: bool = False
    paused: bool = False
    signal_name: str | None = None

    def request_shutdown(self, *, signal_name: str | None = None) -> None:
        # Never cleared within a run.
        self.shutdown_requested = True
        if signal_name is not None:
            self.signal_name = signal_name

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    @property
    def state(self) -> ConsumerState:
        if self.shutdown_requested:
            return ConsumerState.STOPPING
        if self.paused:
            return ConsumerState.PAUSED
        return ConsumerState.RUNNING


@dataclass(slots=True)
class RunStatistics:
    """Counters used by the max-jobs and max-runtime stop conditions."""

    start_time: float = field(default_factory=time.monotonic)
    processed_jobs: int = 0

    def elapsed_seconds(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.start_time


@dataclass(slots=True)
class ConsumerRunSummary:
    """Aggregate run counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    idle_polls: int = 0
    paused_polls: int = 0
    dequeue_errors: int = 0
    stop_reason: StopReason | None = None

    def record(self, outcome: Outcome) -> None:
        self.processed += 1
        if outcome.kind is OutcomeKind.SUCCESS:
            self.succeeded += 1
        elif outcome.kind is OutcomeKind.RETRYABLE_FAILURE:
            self.retried += 1
        else:
            self.failed += 1
