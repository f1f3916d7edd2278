"""Per-job deadline that tears down the consumer process when exceeded."""

from __future__ import annotations

import logging
import os
import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_STATUS = 1


def kill_process(status: int = TIMEOUT_EXIT_STATUS) -> None:
    """Kill the current process without running cleanup handlers."""

    if hasattr(signal, "SIGKILL"):
        os.kill(os.getpid(), signal.SIGKILL)
    os._exit(status)


class TimeoutGuard:
    """Alarm-based execution bound for one job at a time.

    Job code is opaque and may block anywhere, so the only reliable bound is
    an asynchronous alarm whose default action kills the whole process and
    leaves the restart to a supervisor. Pass a softer ``terminate`` callable
    (for example one that raises) where job routines can be interrupted safely.
    """

    def __init__(self, *, terminate: Callable[[int], None] | None = None) -> None:
        self.terminate = terminate or kill_process
        self._armed = False
        self._original_handler: object | None = None
        self._installed = False
        self._degraded_warning_emitted = False

    @property
    def supported(self) -> bool:
        """Whether asynchronous alarms are available in this process and thread."""

        return hasattr(signal, "SIGALRM") and threading.current_thread() is threading.main_thread()

    @property
    def armed(self) -> bool:
        return self._armed

    @contextmanager
    def installed(self) -> Iterator[TimeoutGuard]:
        """Install the alarm handler for the duration of a run and restore it after."""

        if not self.supported:
            self._warn_degraded()
            yield self
            return

        self._original_handler = signal.getsignal(signal.SIGALRM)
        signal.signal(signal.SIGALRM, self._on_alarm)
        self._installed = True
        try:
            yield self
        finally:
            self.disarm()
            if self._original_handler is not None:
                signal.signal(signal.SIGALRM, self._original_handler)  # type: ignore[arg-type]
            self._installed = False

    def arm(self, timeout_seconds: int) -> bool:
        """Start the deadline for one job; 0 or negative disables it.

        Returns True when an alarm is pending.
        """

        seconds = max(int(timeout_seconds), 0)
        if not self.supported:
            self._warn_degraded()
            return False
        if not self._installed:
            signal.signal(signal.SIGALRM, self._on_alarm)
            self._installed = True
        signal.alarm(seconds)
        self._armed = seconds > 0
        return self._armed

    def disarm(self) -> None:
        """Cancel any pending deadline."""

        if self._armed and self.supported:
            signal.alarm(0)
        self._armed = False

    @contextmanager
    def guard(self, timeout_seconds: int) -> Iterator[bool]:
        """Arm for the enclosed block and always disarm on exit."""

        armed = self.arm(timeout_seconds)
        try:
            yield armed
        finally:
            self.disarm()

    def _on_alarm(self, signum: int, _: object | None) -> None:
        self._armed = False
        logger.error(
            "Job exceeded its timeout; terminating consumer process %d",
            os.getpid(),
        )
        self.terminate(TIMEOUT_EXIT_STATUS)

    def _warn_degraded(self) -> None:
        if self._degraded_warning_emitted:
            return
        self._degraded_warning_emitted = True
        logger.warning(
            "Asynchronous alarms are unavailable; job timeouts are not enforced "
            "and a hung job will block the consumer.",
        )
