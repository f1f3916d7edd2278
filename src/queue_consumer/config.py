"""Runtime configuration for the queue consumer and its SQLite backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True, frozen=True)
class ConsumerOptions:
    """Immutable options snapshot for one consumer run."""

    sleep_seconds: int = 3
    max_jobs: int = 0
    max_runtime_seconds: int = 0
    memory_limit_mb: int = 128
    stop_on_empty: bool = False
    stop_on_error: bool = False

    def validate(self) -> None:
        """Raise configuration error if any option is out of range."""

        if self.sleep_seconds < 0:
            raise ValueError("QUEUE_CONSUMER_SLEEP_SECONDS must be >= 0.")
        if self.max_jobs < 0:
            raise ValueError("QUEUE_CONSUMER_MAX_JOBS must be >= 0 (0 means unbounded).")
        if self.max_runtime_seconds < 0:
            raise ValueError(
                "QUEUE_CONSUMER_MAX_RUNTIME_SECONDS must be >= 0 (0 means unbounded).",
            )
        if self.memory_limit_mb <= 0:
            raise ValueError("QUEUE_CONSUMER_MEMORY_LIMIT_MB must be > 0.")


@dataclass(slots=True)
class Settings:
    """Application settings for CLI wiring."""

    db_path: Path = Path(".queue_consumer.db")
    sqlite_busy_timeout_ms: int = 5_000
    default_queue: str = "default"
    retry_after_seconds: int = 90
    consumer: ConsumerOptions = field(default_factory=ConsumerOptions)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("QUEUE_CONSUMER_DB_PATH", ".queue_consumer.db")),
            sqlite_busy_timeout_ms=int(
                os.getenv("QUEUE_CONSUMER_SQLITE_BUSY_TIMEOUT_MS", "5000"),
            ),
            default_queue=os.getenv("QUEUE_CONSUMER_QUEUE", "default").strip() or "default",
            retry_after_seconds=int(os.getenv("QUEUE_CONSUMER_RETRY_AFTER_SECONDS", "90")),
            consumer=ConsumerOptions(
                sleep_seconds=int(os.getenv("QUEUE_CONSUMER_SLEEP_SECONDS", "3")),
                max_jobs=int(os.getenv("QUEUE_CONSUMER_MAX_JOBS", "0")),
                max_runtime_seconds=int(os.getenv("QUEUE_CONSUMER_MAX_RUNTIME_SECONDS", "0")),
                memory_limit_mb=int(os.getenv("QUEUE_CONSUMER_MEMORY_LIMIT_MB", "128")),
                stop_on_empty=_env_bool("QUEUE_CONSUMER_STOP_ON_EMPTY", default=False),
                stop_on_error=_env_bool("QUEUE_CONSUMER_STOP_ON_ERROR", default=False),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for invalid storage or consumer settings."""

        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("QUEUE_CONSUMER_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if self.retry_after_seconds <= 0:
            raise ValueError(
                "QUEUE_CONSUMER_RETRY_AFTER_SECONDS must be > 0; "
                "reservations held by a killed consumer are never recovered otherwise.",
            )
        self.consumer.validate()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
