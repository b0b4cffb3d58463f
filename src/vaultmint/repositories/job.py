"""Job repository for vaultmint.

Backs the prepare and mint queues. Workers claim jobs with
FOR UPDATE SKIP LOCKED so concurrent dispatchers never run the same job.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vaultmint.core.timezone import utcnow
from vaultmint.models.job import Job, JobKind, JobStatus


class JobRepository:
    """Repository for Job entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, job_id: UUID) -> Job | None:
        result = await self.session.execute(select(Job).where(Job.id == job_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def enqueue(
        self,
        channel: str,
        kind: JobKind,
        payload: dict[str, Any],
        max_attempts: int = 5,
    ) -> Job:
        """Add a job to the tail of a channel.

        Args:
            channel: Queue channel name (e.g. "mintQueue")
            kind: Job kind used for routing
            payload: JSON-serializable job data
            max_attempts: Attempts before the job fails permanently

        Returns:
            Persisted job with generated ID
        """
        job = Job(channel=channel, kind=kind, payload=payload, max_attempts=max_attempts)
        self.session.add(job)
        await self.session.flush()
        return job

    async def claim_next(self, channel: str, limit: int = 1) -> list[Job]:
        """Lock and mark running the oldest available jobs on a channel.

        Query explanation:
        - WHERE channel = :channel AND status = 'queued': waiting jobs
        - AND available_at <= now(): skip jobs still in retry backoff
        - ORDER BY created_at ASC: FIFO per channel
        - FOR UPDATE SKIP LOCKED: rows locked by another worker are skipped

        Args:
            channel: Queue channel name
            limit: Maximum number of jobs to claim

        Returns:
            Jobs now in running state (attempt counter incremented)
        """
        if limit <= 0:
            return []

        result = await self.session.execute(
            select(Job)
            .where(Job.channel == channel)  # type: ignore[arg-type]
            .where(Job.status == JobStatus.QUEUED)  # type: ignore[arg-type]
            .where(Job.available_at <= utcnow())  # type: ignore[arg-type]
            .order_by(Job.created_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        jobs = list(result.scalars().all())

        for job in jobs:
            job.mark_running()
            self.session.add(job)
        await self.session.flush()
        return jobs

    async def save(self, job: Job) -> Job:
        self.session.add(job)
        await self.session.flush()
        return job

    async def set_progress(self, job_id: UUID, progress: int) -> None:
        await self.session.execute(
            update(Job)
            .where(Job.id == job_id)  # type: ignore[arg-type]
            .values(progress=progress, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    async def requeue_running(self, channel: str) -> int:
        """Return jobs left running by a crashed worker to the queue.

        The interrupted attempt still counts against max_attempts.

        Returns:
            Number of jobs requeued
        """
        result = await self.session.execute(
            update(Job)
            .where(Job.channel == channel)  # type: ignore[arg-type]
            .where(Job.status == JobStatus.RUNNING)  # type: ignore[arg-type]
            .values(status=JobStatus.QUEUED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def count_by_status(self, channel: str) -> dict[JobStatus, int]:
        """Number of jobs per status on a channel (statuses with no jobs are omitted)."""
        result = await self.session.execute(
            select(Job.status, func.count(Job.id))  # type: ignore[arg-type]
            .where(Job.channel == channel)  # type: ignore[arg-type]
            .group_by(Job.status)
        )
        return {status: count for status, count in result.all()}
