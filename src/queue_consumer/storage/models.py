"""Read models for persisted queue and failed-job rows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class JobStatus(str, Enum):
    """Durable job states inside the queue table."""

    QUEUED = "queued"
    RESERVED = "reserved"


@dataclass(slots=True)
class QueuedJobView:
    """Snapshot of one queue row."""

    job_id: str
    queue: str
    payload: str
    attempts: int
    max_attempts: int
    timeout_seconds: int
    status: JobStatus
    available_at: datetime
    reserved_at: datetime | None
    created_at: datetime


@dataclass(slots=True)
class FailedJobView:
    """Snapshot of one failed-job record."""

    id: int
    job_id: str
    queue: str
    payload: str
    attempts: int
    max_attempts: int
    timeout_seconds: int
    exception: str
    failed_at: datetime
