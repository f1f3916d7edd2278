"""Built-in job handlers for smoke checks and tests."""

from __future__ import annotations

import logging
import time
from pathlib import Path

logger = logging.getLogger(__name__)


def echo(message: str = "", **_: object) -> str:
    logger.info("echo: %s", message)
    return message


def sleep(seconds: float = 1.0, **_: object) -> None:
    time.sleep(max(0.0, float(seconds)))


def fail(message: str = "Job failed on purpose", **_: object) -> None:
    raise RuntimeError(message)


def append_line(path: str, line: str = "", **_: object) -> None:
    """Append one line to a file; handy for observing side effects across processes."""

    with Path(path).open("a", encoding="utf-8") as handle:
        handle.write(f"{line}\n")


def record_failure(error: BaseException, path: str, **_: object) -> None:
    """Failure hook: append the terminal error to a file."""

    with Path(path).open("a", encoding="utf-8") as handle:
        handle.write(f"failed: {error}\n")
