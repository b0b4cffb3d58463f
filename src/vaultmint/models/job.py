"""Job entity - one unit of queued work on a named channel."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, SQLModel

from vaultmint.core.timezone import UTCDateTime, utcnow
from vaultmint.models.claim import InvalidStateTransition


class JobKind(str, Enum):
    """Kinds of work the dispatcher can route."""

    PREPARE = "prepare"
    MINT = "mint"


class JobStatus(str, Enum):
    """Job lifecycle status."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(SQLModel, table=True):
    """Job is a queued request to prepare a collection or mint a claim.

    Lifecycle: queued -> running -> completed | queued (retry) | failed.
    """

    __tablename__ = "jobs"  # type: ignore[assignment]
    __table_args__ = (Index("ix_jobs_channel_status_created_at", "channel", "status", "created_at"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    channel: str = Field(max_length=255, index=True)
    kind: JobKind
    payload: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    status: JobStatus = Field(default=JobStatus.QUEUED, index=True)
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=5, ge=1)
    progress: int = Field(default=0, ge=0)
    available_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    last_error: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    finished_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    @property
    def attempts_left(self) -> int:
        return max(self.max_attempts - self.attempts, 0)

    def mark_running(self) -> None:
        """Transition from queued to running and count the attempt.

        Raises:
            InvalidStateTransition: If current status is not queued
        """
        if self.status != JobStatus.QUEUED:
            raise InvalidStateTransition(
                f"Cannot mark running from {self.status.value}. Job must be in queued state."
            )
        self.status = JobStatus.RUNNING
        self.attempts += 1
        self.updated_at = utcnow()

    def mark_completed(self) -> None:
        """Transition from running to completed.

        Raises:
            InvalidStateTransition: If current status is not running
        """
        if self.status != JobStatus.RUNNING:
            raise InvalidStateTransition(
                f"Cannot mark completed from {self.status.value}. Job must be in running state."
            )
        self.status = JobStatus.COMPLETED
        self.progress = 100
        self.finished_at = self.updated_at = utcnow()

    def schedule_retry(self, error_message: str, delay_seconds: float) -> None:
        """Return a running job to the queue, available again after delay_seconds.

        Raises:
            InvalidStateTransition: If current status is not running
        """
        if self.status != JobStatus.RUNNING:
            raise InvalidStateTransition(
                f"Cannot schedule retry from {self.status.value}. Job must be in running state."
            )
        now = utcnow()
        self.status = JobStatus.QUEUED
        self.last_error = error_message[:1000]
        self.available_at = now + timedelta(seconds=delay_seconds)
        self.updated_at = now

    def mark_failed(self, error_message: str) -> None:
        """Transition from any non-terminal state to failed.

        Raises:
            InvalidStateTransition: If current status is already terminal (completed/failed)
        """
        if self.status in (JobStatus.COMPLETED, JobStatus.FAILED):
            raise InvalidStateTransition(
                f"Cannot mark failed from terminal state {self.status.value}."
            )
        self.status = JobStatus.FAILED
        self.last_error = error_message[:1000]
        self.finished_at = self.updated_at = utcnow()
