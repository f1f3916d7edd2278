"""SQLModel ORM tables for queue storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


class QueueJobRow(SQLModel, table=True):
    __tablename__ = "queue_jobs"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_queue_jobs_ready", "queue", "status", "available_at"),)

    job_id: str = Field(primary_key=True)
    queue: str = Field(index=True)
    payload: str = Field(sa_column=Column(Text, nullable=False))
    attempts: int = Field(default=0)
    max_attempts: int = Field(default=0)
    timeout_seconds: int = Field(default=0)
    status: str = Field(index=True)
    available_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    reserved_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class FailedJobRow(SQLModel, table=True):
    __tablename__ = "failed_jobs"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_failed_jobs_queue_time", "queue", "failed_at"),)

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(index=True)
    queue: str
    payload: str = Field(sa_column=Column(Text, nullable=False))
    attempts: int = Field(default=0)
    max_attempts: int = Field(default=0)
    timeout_seconds: int = Field(default=0)
    exception: str = Field(sa_column=Column(Text, nullable=False))
    failed_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
