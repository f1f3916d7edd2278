from __future__ import annotations

import os
import signal

import allure
import pytest

from queue_consumer.backends.memory import InMemoryFailedJobProvider, InMemoryQueue
from queue_consumer.config import ConsumerOptions
from queue_consumer.consumer.models import ConsumerState, StopReason
from queue_consumer.consumer.timeout_guard import TimeoutGuard
from queue_consumer.consumer.worker import Consumer

pytestmark = [
    allure.epic("Queue Consumer"),
    allure.feature("Lifecycle & Run Loop"),
]

needs_posix_signals = pytest.mark.skipif(
    not hasattr(signal, "SIGUSR2"),
    reason="POSIX job-control signals are unavailable on this platform",
)


class CountingQueue:
    """Wraps an in-memory queue and counts dequeue calls."""

    def __init__(self, inner: InMemoryQueue) -> None:
        self.inner = inner
        self.dequeues = 0

    def dequeue(self):
        self.dequeues += 1
        return self.inner.dequeue()

    def acknowledge(self, job) -> None:
        self.inner.acknowledge(job)


class FlakyQueue(CountingQueue):
    def dequeue(self):
        self.dequeues += 1
        if self.dequeues == 1:
            raise ConnectionError("broker unreachable")
        return self.inner.dequeue()


def test_scenario_d_empty_queue_sleeps_then_polls_again(
    monkeypatch: pytest.MonkeyPatch,
    consumer: Consumer,
    queue: InMemoryQueue,
) -> None:
    counting = CountingQueue(queue)
    sleeps: list[float] = []

    def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) == 2:
            consumer.request_shutdown()

    monkeypatch.setattr(consumer, "sleep", _sleep)

    summary = consumer.run(counting, ConsumerOptions(sleep_seconds=2, stop_on_empty=False))

    assert sleeps == [2, 2]
    assert counting.dequeues == 2
    assert summary.idle_polls == 2
    assert summary.stop_reason is StopReason.SHUTDOWN


def test_scenario_e_stops_after_max_jobs(consumer: Consumer, queue: InMemoryQueue) -> None:
    executed: list[int] = []
    for index in range(7):
        queue.push(lambda index=index: executed.append(index))

    summary = consumer.run(queue, ConsumerOptions(max_jobs=5))

    assert executed == [0, 1, 2, 3, 4]
    assert summary.stop_reason is StopReason.MAX_JOBS
    assert consumer.statistics.processed_jobs == 5
    assert queue.size() == 2


def test_max_jobs_counts_failures_too(consumer: Consumer, queue: InMemoryQueue) -> None:
    def _boom() -> None:
        raise RuntimeError("boom")

    queue.push(_boom, max_attempts=1)
    queue.push(lambda: None)

    summary = consumer.run(queue, ConsumerOptions(max_jobs=2))

    assert summary.stop_reason is StopReason.MAX_JOBS
    assert summary.failed == 1
    assert summary.succeeded == 1


def test_stop_on_empty_exits_once_drained(
    consumer: Consumer,
    queue: InMemoryQueue,
    failed_provider: InMemoryFailedJobProvider,
) -> None:
    queue.push(lambda: None)
    queue.push(lambda: None)

    summary = consumer.run(queue, ConsumerOptions(stop_on_empty=True))

    assert summary.stop_reason is StopReason.QUEUE_EMPTY
    assert summary.processed == 2
    assert len(queue.acknowledged) == 2
    assert failed_provider.entries == []


def test_retryable_job_is_redelivered_until_budget_is_spent(
    consumer: Consumer,
    queue: InMemoryQueue,
    failed_provider: InMemoryFailedJobProvider,
) -> None:
    hook_errors: list[BaseException] = []

    def _boom() -> None:
        raise RuntimeError("boom")

    job = queue.push(_boom, max_attempts=3, on_failure=hook_errors.append)

    summary = consumer.run(queue, ConsumerOptions(stop_on_empty=True))

    assert job.attempts == 3
    assert summary.retried == 2
    assert summary.failed == 1
    assert queue.released == [job, job]
    assert queue.deleted == [job]
    assert len(hook_errors) == 1
    assert failed_provider.entries[0].error is hook_errors[0]


def test_dequeue_error_is_treated_as_empty(consumer: Consumer, queue: InMemoryQueue) -> None:
    queue.push(lambda: None)
    flaky = FlakyQueue(queue)

    summary = consumer.run(flaky, ConsumerOptions(stop_on_empty=True))

    assert summary.dequeue_errors == 1
    assert summary.stop_reason is StopReason.QUEUE_EMPTY
    assert queue.size() == 1


def test_stop_on_error_releases_and_raises(consumer: Consumer, queue: InMemoryQueue) -> None:
    def _boom() -> None:
        raise RuntimeError("boom")

    job = queue.push(_boom, max_attempts=3)
    queue.push(lambda: None)

    with pytest.raises(RuntimeError, match="boom"):
        consumer.run(queue, ConsumerOptions(stop_on_error=True, stop_on_empty=True))

    assert consumer.summary.stop_reason is StopReason.ERROR
    assert queue.released == [job]
    assert queue.acknowledged == []


def test_max_runtime_stops_before_dequeue(queue: InMemoryQueue) -> None:
    ticks = iter([0.0, 0.0, 5.0, 11.0])
    consumer = Consumer(
        failed_provider=InMemoryFailedJobProvider(),
        timeout_guard=TimeoutGuard(),
        memory_probe=lambda: 1.0,
        clock=lambda: next(ticks),
    )
    queue.push(lambda: None)
    queue.push(lambda: None)

    summary = consumer.run(queue, ConsumerOptions(max_runtime_seconds=10))

    assert summary.stop_reason is StopReason.MAX_RUNTIME
    assert summary.processed == 1
    assert queue.size() == 1


def test_memory_limit_stops_before_dequeue(queue: InMemoryQueue) -> None:
    consumer = Consumer(
        failed_provider=InMemoryFailedJobProvider(),
        memory_probe=lambda: 128.0,
    )
    queue.push(lambda: None)

    summary = consumer.run(queue, ConsumerOptions(memory_limit_mb=128))

    assert summary.stop_reason is StopReason.MEMORY_LIMIT
    assert summary.processed == 0
    assert queue.size() == 1


def test_runtime_budget_wins_over_memory(queue: InMemoryQueue) -> None:
    ticks = iter([0.0, 0.0, 5.0])
    consumer = Consumer(
        failed_provider=InMemoryFailedJobProvider(),
        memory_probe=lambda: 4096.0,
        clock=lambda: next(ticks),
    )

    summary = consumer.run(queue, ConsumerOptions(max_runtime_seconds=1))

    assert summary.stop_reason is StopReason.MAX_RUNTIME


def test_shutdown_requested_during_job_stops_after_it(
    consumer: Consumer,
    queue: InMemoryQueue,
) -> None:
    def _shutdown_on_first_job() -> None:
        consumer.request_shutdown(signal_name="SIGTERM")

    queue.push(_shutdown_on_first_job)
    queue.push(lambda: None)

    summary = consumer.run(queue, ConsumerOptions())

    assert summary.processed == 1
    assert summary.stop_reason is StopReason.SHUTDOWN
    assert consumer.state.signal_name == "SIGTERM"
    assert queue.size() == 1


@needs_posix_signals
def test_sigterm_finishes_current_job_then_stops(consumer: Consumer, queue: InMemoryQueue) -> None:
    finished: list[str] = []

    def _job() -> None:
        os.kill(os.getpid(), signal.SIGTERM)
        finished.append("first")

    queue.push(_job)
    queue.push(lambda: finished.append("second"))

    summary = consumer.run(queue, ConsumerOptions())

    assert finished == ["first"]
    assert summary.stop_reason is StopReason.SHUTDOWN
    assert consumer.state.state is ConsumerState.STOPPING
    assert consumer.state.signal_name == "SIGTERM"


@needs_posix_signals
def test_pause_and_resume_signals_gate_dequeue(
    monkeypatch: pytest.MonkeyPatch,
    consumer: Consumer,
    queue: InMemoryQueue,
) -> None:
    counting = CountingQueue(queue)
    order: list[str] = []

    def _pausing_job() -> None:
        order.append("job-1")
        os.kill(os.getpid(), signal.SIGUSR2)

    def _sleep(seconds: float) -> None:
        order.append("sleep")
        if order.count("sleep") == 2:
            os.kill(os.getpid(), signal.SIGCONT)

    monkeypatch.setattr(consumer, "sleep", _sleep)
    queue.push(_pausing_job)
    queue.push(lambda: order.append("job-2"))

    summary = consumer.run(counting, ConsumerOptions(stop_on_empty=True))

    assert order == ["job-1", "sleep", "sleep", "job-2"]
    assert summary.paused_polls == 2
    # one delivery per job plus the final empty poll
    assert counting.dequeues == 3
    assert summary.stop_reason is StopReason.QUEUE_EMPTY


@needs_posix_signals
def test_signal_handlers_are_restored_after_run(consumer: Consumer, queue: InMemoryQueue) -> None:
    before = {
        name: signal.getsignal(getattr(signal, name))
        for name in ("SIGTERM", "SIGINT", "SIGUSR2", "SIGCONT", "SIGALRM")
    }

    consumer.run(queue, ConsumerOptions(stop_on_empty=True))

    after = {name: signal.getsignal(getattr(signal, name)) for name in before}
    assert after == before


def test_sleep_returns_early_when_shutdown_requested() -> None:
    consumer = Consumer(failed_provider=InMemoryFailedJobProvider())
    consumer.request_shutdown()

    consumer.sleep(30)

    assert consumer.state.shutdown_requested


def test_run_resets_state_between_runs(consumer: Consumer, queue: InMemoryQueue) -> None:
    consumer.request_shutdown()
    consumer.pause()
    queue.push(lambda: None)

    summary = consumer.run(queue, ConsumerOptions(stop_on_empty=True))

    assert summary.processed == 1
    assert summary.stop_reason is StopReason.QUEUE_EMPTY


def test_in_memory_failed_provider_flush(
    consumer: Consumer,
    queue: InMemoryQueue,
    failed_provider: InMemoryFailedJobProvider,
) -> None:
    def _boom() -> None:
        raise RuntimeError("boom")

    queue.push(_boom, max_attempts=1)
    queue.push(_boom, max_attempts=1)
    consumer.run(queue, ConsumerOptions(stop_on_empty=True))

    assert [entry.queue_name for entry in failed_provider.entries] == ["default", "default"]
    assert failed_provider.flush() == 2
    assert failed_provider.entries == []
