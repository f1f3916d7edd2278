"""Persistent queue repository backed by SQLModel + SQLite."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from uuid import uuid4

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from queue_consumer.errors import JobNotFoundError
from queue_consumer.storage.alembic_runner import upgrade_head
from queue_consumer.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware,
    utc_now,
)
from queue_consumer.storage.models import FailedJobView, JobStatus, QueuedJobView
from queue_consumer.storage.sqlmodel_models import FailedJobRow, QueueJobRow


class QueueRepository:
    """Queue and failed-job persistence facade."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def push(  # noqa: PLR0913
        self,
        *,
        queue: str,
        payload: str,
        max_attempts: int = 0,
        timeout_seconds: int = 0,
        delay_seconds: int = 0,
        job_id: str | None = None,
    ) -> QueuedJobView:
        """Insert a job that becomes available after ``delay_seconds``."""

        with Session(self.engine) as session:
            row = self._new_row(
                queue=queue,
                payload=payload,
                max_attempts=max_attempts,
                timeout_seconds=timeout_seconds,
                delay_seconds=delay_seconds,
                job_id=job_id,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_job_view(row)

    def reserve_next(self, *, queue: str, retry_after_seconds: int) -> QueuedJobView | None:
        """Atomically reserve the oldest available job and count the delivery.

        Reservations older than ``retry_after_seconds`` belong to a consumer
        that died mid-job; they are returned to the queue first.
        """

        if retry_after_seconds <= 0:
            raise ValueError("retry_after_seconds must be > 0.")
        while True:
            now = utc_now()
            with Session(self.engine) as session:
                session.exec(
                    sa_update(QueueJobRow)
                    .where(
                        col(QueueJobRow.queue) == queue,
                        col(QueueJobRow.status) == JobStatus.RESERVED.value,
                        col(QueueJobRow.reserved_at)
                        <= to_db_datetime(now - timedelta(seconds=retry_after_seconds)),
                    )
                    .values(
                        status=JobStatus.QUEUED.value,
                        reserved_at=None,
                        updated_at=to_db_datetime(now),
                    ),
                )

                candidate = session.exec(
                    select(QueueJobRow)
                    .where(
                        QueueJobRow.queue == queue,
                        QueueJobRow.status == JobStatus.QUEUED.value,
                        QueueJobRow.available_at <= to_db_datetime(now),
                    )
                    .order_by(
                        col(QueueJobRow.available_at).asc(),
                        col(QueueJobRow.created_at).asc(),
                    )
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    session.commit()
                    return None

                attempts = candidate.attempts + 1
                result = session.exec(
                    sa_update(QueueJobRow)
                    .where(
                        col(QueueJobRow.job_id) == candidate.job_id,
                        col(QueueJobRow.status) == JobStatus.QUEUED.value,
                        col(QueueJobRow.attempts) == candidate.attempts,
                    )
                    .values(
                        status=JobStatus.RESERVED.value,
                        attempts=attempts,
                        reserved_at=to_db_datetime(now),
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue

                view = QueuedJobView(
                    job_id=candidate.job_id,
                    queue=candidate.queue,
                    payload=candidate.payload,
                    attempts=attempts,
                    max_attempts=candidate.max_attempts,
                    timeout_seconds=candidate.timeout_seconds,
                    status=JobStatus.RESERVED,
                    available_at=to_utc_aware(candidate.available_at),
                    reserved_at=now,
                    created_at=to_utc_aware(candidate.created_at),
                )
                session.commit()
                return view

    def release(self, *, job_id: str, delay_seconds: int = 0) -> bool:
        """Return a reserved job to the queue."""

        now = utc_now()
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(QueueJobRow)
                .where(
                    col(QueueJobRow.job_id) == job_id,
                    col(QueueJobRow.status) == JobStatus.RESERVED.value,
                )
                .values(
                    status=JobStatus.QUEUED.value,
                    reserved_at=None,
                    available_at=to_db_datetime(now + timedelta(seconds=max(0, delay_seconds))),
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def remove(self, *, job_id: str) -> bool:
        """Delete a job row; used for both acknowledge and delete."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_delete(QueueJobRow).where(col(QueueJobRow.job_id) == job_id),
            )
            session.commit()
            return result.rowcount == 1

    def get_job(self, *, job_id: str) -> QueuedJobView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(QueueJobRow).where(QueueJobRow.job_id == job_id),
            ).one_or_none()
            return _to_job_view(row) if row is not None else None

    def size(self, *, queue: str) -> int:
        """Count queued and reserved jobs on one queue."""

        with Session(self.engine) as session:
            return int(
                session.exec(
                    select(func.count()).select_from(QueueJobRow).where(QueueJobRow.queue == queue),
                ).one(),
            )

    def log_failed(
        self,
        *,
        job_id: str,
        queue: str,
        payload: str,
        attempts: int,
        exception: str,
        max_attempts: int = 0,
        timeout_seconds: int = 0,
    ) -> FailedJobView:
        with Session(self.engine) as session:
            row = FailedJobRow(
                job_id=job_id,
                queue=queue,
                payload=payload,
                attempts=attempts,
                max_attempts=max_attempts,
                timeout_seconds=timeout_seconds,
                exception=exception,
                failed_at=to_db_datetime(utc_now()),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_failed_view(row)

    def list_failed(self, *, queue: str | None = None, limit: int = 50) -> list[FailedJobView]:
        with Session(self.engine) as session:
            statement = select(FailedJobRow)
            if queue is not None:
                statement = statement.where(FailedJobRow.queue == queue)
            rows = session.exec(
                statement.order_by(col(FailedJobRow.id).desc()).limit(max(1, limit)),
            ).all()
            return [_to_failed_view(row) for row in rows]

    def find_failed(self, *, failed_id: int) -> FailedJobView | None:
        with Session(self.engine) as session:
            row = session.get(FailedJobRow, failed_id)
            return _to_failed_view(row) if row is not None else None

    def forget_failed(self, *, failed_id: int) -> bool:
        with Session(self.engine) as session:
            result = session.exec(
                sa_delete(FailedJobRow).where(col(FailedJobRow.id) == failed_id),
            )
            session.commit()
            return result.rowcount == 1

    def flush_failed(self, *, queue: str | None = None) -> int:
        with Session(self.engine) as session:
            statement = sa_delete(FailedJobRow)
            if queue is not None:
                statement = statement.where(col(FailedJobRow.queue) == queue)
            result = session.exec(statement)
            session.commit()
            return int(result.rowcount or 0)

    def retry_failed(self, *, failed_id: int, queue: str | None = None) -> QueuedJobView:
        """Requeue a failed payload with zero attempts and forget the record.

        The attempt budget and timeout carry over from the failed job.
        """

        with Session(self.engine) as session:
            failed = session.get(FailedJobRow, failed_id)
            if failed is None:
                raise JobNotFoundError(f"Failed job not found: {failed_id}")
            row = self._new_row(
                queue=queue or failed.queue,
                payload=failed.payload,
                max_attempts=failed.max_attempts,
                timeout_seconds=failed.timeout_seconds,
                delay_seconds=0,
                job_id=None,
            )
            original = session.exec(
                select(QueueJobRow).where(QueueJobRow.job_id == failed.job_id),
            ).one_or_none()
            if original is None:
                row.job_id = failed.job_id
            session.add(row)
            session.delete(failed)
            session.commit()
            session.refresh(row)
            return _to_job_view(row)

    def _new_row(  # noqa: PLR0913
        self,
        *,
        queue: str,
        payload: str,
        max_attempts: int,
        timeout_seconds: int,
        delay_seconds: int,
        job_id: str | None,
    ) -> QueueJobRow:
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0.")
        if timeout_seconds < 0:
            raise ValueError("timeout_seconds must be >= 0.")
        now = utc_now()
        return QueueJobRow(
            job_id=job_id or str(uuid4()),
            queue=queue,
            payload=payload,
            attempts=0,
            max_attempts=max_attempts,
            timeout_seconds=timeout_seconds,
            status=JobStatus.QUEUED.value,
            available_at=to_db_datetime(now + timedelta(seconds=max(0, delay_seconds))),
            reserved_at=None,
            created_at=to_db_datetime(now),
            updated_at=to_db_datetime(now),
        )


def _to_job_view(row: QueueJobRow) -> QueuedJobView:
    return QueuedJobView(
        job_id=row.job_id,
        queue=row.queue,
        payload=row.payload,
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        timeout_seconds=row.timeout_seconds,
        status=JobStatus(row.status),
        available_at=to_utc_aware(row.available_at),
        reserved_at=_optional_utc(row.reserved_at),
        created_at=to_utc_aware(row.created_at),
    )


def _to_failed_view(row: FailedJobRow) -> FailedJobView:
    if row.id is None:
        raise RuntimeError("Failed job row has no id after commit.")
    return FailedJobView(
        id=row.id,
        job_id=row.job_id,
        queue=row.queue,
        payload=row.payload,
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        timeout_seconds=row.timeout_seconds,
        exception=row.exception,
        failed_at=to_utc_aware(row.failed_at),
    )


def _optional_utc(value: datetime | None) -> datetime | None:
    return to_utc_aware(value) if value is not None else None
