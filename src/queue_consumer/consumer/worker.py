"""Queue consumer run loop with signal-driven lifecycle."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from queue_consumer.config import ConsumerOptions
from queue_consumer.consumer.contracts import FailedJobProvider, Job, Queue
from queue_consumer.consumer.models import (
    ConsumerRunState,
    ConsumerRunSummary,
    ConsumerState,
    Outcome,
    RunStatistics,
    StopReason,
)
from queue_consumer.consumer.resources import memory_exceeded, memory_usage_mb
from queue_consumer.consumer.retry_policy import OutcomeResolver, execute_job
from queue_consumer.consumer.timeout_guard import TimeoutGuard

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS: tuple[str, ...] = ("SIGTERM", "SIGINT", "SIGQUIT")
PAUSE_SIGNAL = "SIGUSR2"
RESUME_SIGNAL = "SIGCONT"
SLEEP_POLL_SECONDS = 0.1


class Consumer:
    """Pulls jobs one at a time and resolves each to ack, release, or failure."""

    def __init__(
        self,
        *,
        failed_provider: FailedJobProvider,
        timeout_guard: TimeoutGuard | None = None,
        memory_probe: Callable[[], float] = memory_usage_mb,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failed_provider = failed_provider
        self.resolver = OutcomeResolver(failed_provider=failed_provider)
        self.timeout_guard = timeout_guard or TimeoutGuard()
        self.memory_probe = memory_probe
        self.clock = clock
        self.options = ConsumerOptions()
        self.state = ConsumerRunState()
        self.statistics = RunStatistics(start_time=clock())
        self.summary = ConsumerRunSummary()
        self._observed_state = ConsumerState.STOPPED

    def run(self, queue: Queue, options: ConsumerOptions) -> ConsumerRunSummary:
        """Tick until a stop condition holds.

        Raises the job error when ``options.stop_on_error`` is set and a job
        fails with attempts left.
        """

        self.options = options
        self.state = ConsumerRunState()
        self.statistics = RunStatistics(start_time=self.clock())
        self.summary = ConsumerRunSummary()
        self._observed_state = ConsumerState.RUNNING
        logger.info(
            "Consumer started: sleep=%ss max_jobs=%d max_runtime=%ss memory_limit=%dMB "
            "stop_on_empty=%s stop_on_error=%s timeouts_enforced=%s",
            options.sleep_seconds,
            options.max_jobs,
            options.max_runtime_seconds,
            options.memory_limit_mb,
            options.stop_on_empty,
            options.stop_on_error,
            self.timeout_guard.supported,
        )

        with self._signal_handlers(), self.timeout_guard.installed():
            try:
                while self.tick(queue):
                    pass
            finally:
                self._observed_state = ConsumerState.STOPPED
                logger.info(
                    "Consumer stopped: reason=%s processed=%d succeeded=%d retried=%d failed=%d",
                    self.summary.stop_reason.value if self.summary.stop_reason else "-",
                    self.summary.processed,
                    self.summary.succeeded,
                    self.summary.retried,
                    self.summary.failed,
                )
        return self.summary

    def tick(self, queue: Queue) -> bool:
        """Run one loop iteration; return False to stop the loop."""

        self._observe_state()
        if self.state.shutdown_requested:
            return self._stop(StopReason.SHUTDOWN)

        reason = self.should_stop()
        if reason is not None:
            return self._stop(reason)

        if self.state.paused:
            self.summary.paused_polls += 1
            self.sleep(self.options.sleep_seconds)
            return True

        job = self._next_job(queue)
        if job is None:
            if self.options.stop_on_empty:
                return self._stop(StopReason.QUEUE_EMPTY)
            self.summary.idle_polls += 1
            self.sleep(self.options.sleep_seconds)
            return True

        self.process(job, queue)
        self.statistics.processed_jobs += 1

        if self.options.max_jobs == 0:
            return True
        if self.statistics.processed_jobs == self.options.max_jobs:
            return self._stop(StopReason.MAX_JOBS)
        return True

    def should_stop(self) -> StopReason | None:
        """Evaluate runtime then memory budgets; first match wins."""

        max_runtime = self.options.max_runtime_seconds
        if max_runtime > 0 and self.statistics.elapsed_seconds(self.clock()) > max_runtime:
            return StopReason.MAX_RUNTIME
        if self.memory_exceeded(self.options.memory_limit_mb):
            return StopReason.MEMORY_LIMIT
        return None

    def memory_exceeded(self, memory_limit_mb: int) -> bool:
        return memory_exceeded(memory_limit_mb, usage_mb=self.memory_probe())

    def process(self, job: Job, queue: Queue) -> Outcome:
        """Execute one delivered job under its deadline and resolve the outcome."""

        with self.timeout_guard.guard(job.timeout_seconds):
            outcome = execute_job(job)
            self.summary.record(outcome)
            try:
                self.resolver.resolve(
                    job,
                    outcome,
                    queue=queue,
                    stop_on_error=self.options.stop_on_error,
                )
            except Exception:
                self.summary.stop_reason = StopReason.ERROR
                raise
        return outcome

    def sleep(self, seconds: float) -> None:
        """Block for ``seconds`` while reacting to shutdown requests."""

        deadline = time.monotonic() + seconds
        while not self.state.shutdown_requested and time.monotonic() < deadline:
            time.sleep(min(SLEEP_POLL_SECONDS, max(0.0, deadline - time.monotonic())))

    def request_shutdown(self, *, signal_name: str | None = None) -> None:
        self.state.request_shutdown(signal_name=signal_name)

    def pause(self) -> None:
        self.state.pause()

    def resume(self) -> None:
        self.state.resume()

    def _next_job(self, queue: Queue) -> Job | None:
        try:
            return queue.dequeue()
        except Exception:  # noqa: BLE001
            self.summary.dequeue_errors += 1
            logger.exception("Dequeue failed; treating queue as empty for this tick")
            return None

    def _stop(self, reason: StopReason) -> bool:
        self.summary.stop_reason = reason
        if reason is StopReason.SHUTDOWN:
            logger.info(
                "Shutdown requested (%s); stopping consumer",
                self.state.signal_name or "operator",
            )
        else:
            logger.info("Stopping consumer: %s", reason.value)
        return False

    def _observe_state(self) -> None:
        current = self.state.state
        if current is self._observed_state:
            return
        if current is ConsumerState.PAUSED:
            logger.info("Consumer paused")
        elif current is ConsumerState.RUNNING and self._observed_state is ConsumerState.PAUSED:
            logger.info("Consumer resumed")
        self._observed_state = current

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        handlers: dict[str, Callable[[int, object | None], None]] = {
            name: self._handle_shutdown_signal for name in SHUTDOWN_SIGNALS
        }
        handlers[PAUSE_SIGNAL] = self._handle_pause_signal
        handlers[RESUME_SIGNAL] = self._handle_resume_signal

        originals: dict[signal.Signals, object] = {}
        try:
            for name, handler in handlers.items():
                signum = getattr(signal, name, None)
                if signum is None:
                    continue
                originals[signum] = signal.getsignal(signum)
                signal.signal(signum, handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            logger.warning("Signal handlers unavailable outside the main thread")
            originals.clear()

        try:
            yield
        finally:
            for signum, original in originals.items():
                try:
                    signal.signal(signum, original)  # type: ignore[arg-type]
                except (TypeError, ValueError):
                    pass

    def _handle_shutdown_signal(self, signum: int, _: object | None) -> None:
        self.state.request_shutdown(signal_name=_signal_name(signum))

    def _handle_pause_signal(self, signum: int, _: object | None) -> None:
        self.state.pause()

    def _handle_resume_signal(self, signum: int, _: object | None) -> None:
        self.state.resume()


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)
