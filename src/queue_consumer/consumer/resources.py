"""Process resource probes used by the consumer stop conditions."""

from __future__ import annotations

import psutil

_BYTES_PER_MB = 1024 * 1024


def memory_usage_mb() -> float:
    """Current resident memory of this process in megabytes."""

    return psutil.Process().memory_info().rss / _BYTES_PER_MB


def memory_exceeded(memory_limit_mb: int, *, usage_mb: float | None = None) -> bool:
    """Return True when resident memory reached the configured limit."""

    current = memory_usage_mb() if usage_mb is None else usage_mb
    return current >= memory_limit_mb
