from __future__ import annotations

import logging
import signal
import threading
import time

import allure
import pytest

from queue_consumer.backends.memory import InMemoryQueue
from queue_consumer.config import ConsumerOptions
from queue_consumer.consumer.timeout_guard import TIMEOUT_EXIT_STATUS, TimeoutGuard
from queue_consumer.consumer.worker import Consumer

pytestmark = [
    allure.epic("Queue Consumer"),
    allure.feature("Timeout Guard"),
]

needs_alarm = pytest.mark.skipif(
    not hasattr(signal, "SIGALRM"),
    reason="SIGALRM is unavailable on this platform",
)


@needs_alarm
def test_overrunning_job_triggers_terminate(
    consumer: Consumer,
    queue: InMemoryQueue,
    terminations: list[int],
    timed_out: type[BaseException],
) -> None:
    finished: list[str] = []

    def _hang() -> None:
        time.sleep(5)
        finished.append("never")

    queue.push(_hang, timeout_seconds=1)
    queue.push(lambda: finished.append("next"))

    started = time.monotonic()
    with pytest.raises(timed_out):
        consumer.run(queue, ConsumerOptions(stop_on_empty=True))

    assert time.monotonic() - started < 4
    assert terminations == [TIMEOUT_EXIT_STATUS]
    assert finished == []
    assert not consumer.timeout_guard.armed


@needs_alarm
def test_guard_is_disarmed_after_each_job(consumer: Consumer, queue: InMemoryQueue) -> None:
    pending: list[bool] = []

    def _inspect_alarm() -> None:
        pending.append(consumer.timeout_guard.armed)

    queue.push(_inspect_alarm, timeout_seconds=30)
    queue.push(_inspect_alarm, timeout_seconds=0)

    consumer.run(queue, ConsumerOptions(stop_on_empty=True))

    assert pending == [True, False]
    assert not consumer.timeout_guard.armed
    assert signal.alarm(0) == 0


@needs_alarm
def test_zero_or_negative_timeout_disables_alarm() -> None:
    guard = TimeoutGuard(terminate=lambda status: None)

    with guard.installed():
        assert guard.arm(0) is False
        assert guard.arm(-5) is False
        assert not guard.armed


@needs_alarm
def test_guard_context_disarms_on_error() -> None:
    guard = TimeoutGuard(terminate=lambda status: None)

    with guard.installed():
        with pytest.raises(RuntimeError), guard.guard(30) as armed:
            assert armed is True
            raise RuntimeError("job crashed")
        assert not guard.armed
        assert signal.alarm(0) == 0


def test_guard_is_unsupported_outside_main_thread(caplog: pytest.LogCaptureFixture) -> None:
    guard = TimeoutGuard(terminate=lambda status: None)
    observed: dict[str, bool] = {}

    def _worker() -> None:
        observed["supported"] = guard.supported
        observed["armed"] = guard.arm(5)

    with caplog.at_level(logging.WARNING):
        thread = threading.Thread(target=_worker)
        thread.start()
        thread.join()

    assert observed == {"supported": False, "armed": False}
    assert "job timeouts are not enforced" in caplog.text


def test_guard_degrades_without_sigalrm(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    if hasattr(signal, "SIGALRM"):
        monkeypatch.delattr(signal, "SIGALRM")
    guard = TimeoutGuard(terminate=lambda status: None)

    with caplog.at_level(logging.WARNING), guard.installed():
        assert guard.supported is False
        assert guard.arm(5) is False
        assert guard.arm(5) is False

    assert caplog.text.count("job timeouts are not enforced") == 1
