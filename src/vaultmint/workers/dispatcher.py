"""Job dispatcher for the prepare and mint channels.

Each channel is polled independently. Claimed jobs run as asyncio tasks, at
most ``concurrency`` at a time per channel, and are routed by kind to the
collection preparer or the NFT minter.

Job outcomes:
- Handler returns: job completed
- UnrecoverableJobError (bad payload, collection or mint not recorded): job failed
- A mint job that fails for good also marks its claim FAILED
- Any other exception: job requeued with exponential backoff until max_attempts
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID

import structlog

from vaultmint.core.config import Settings
from vaultmint.models.job import JobKind, JobStatus
from vaultmint.services.exceptions import JobPayloadError, UnrecoverableJobError
from vaultmint.services.minting.collection import CollectionPreparer
from vaultmint.services.minting.minter import NFTMinter
from vaultmint.workers.events import JobEvents
from vaultmint.workers.jobs import JobVariant, MintJob, PrepareJob, parse_job

logger = structlog.get_logger()

ERROR_BACKOFF_SECONDS = 5


@dataclass(frozen=True)
class Channel:
    """A named queue and the size of its worker pool."""

    name: str
    kind: JobKind
    concurrency: int


class Dispatcher:
    """Polls job channels and runs their jobs with bounded concurrency."""

    def __init__(
        self,
        uow_factory: Callable,
        preparer: CollectionPreparer,
        minter: NFTMinter,
        channels: list[Channel],
        events: Optional[JobEvents] = None,
        poll_interval: float = 1.0,
        backoff_seconds: float = 2.0,
    ):
        """
        Initialize dispatcher.

        Args:
            uow_factory: Factory producing UnitOfWork instances
            preparer: Handler for prepare jobs
            minter: Handler for mint jobs
            channels: Channels to poll
            events: Lifecycle event registry (a private one is created if omitted)
            poll_interval: Seconds between polls of one channel
            backoff_seconds: Base delay of the exponential retry backoff
        """
        self.uow_factory = uow_factory
        self.preparer = preparer
        self.minter = minter
        self.channels = channels
        self.events = events or JobEvents()
        self.poll_interval = poll_interval
        self.backoff_seconds = backoff_seconds
        self._inflight: dict[str, set[asyncio.Task]] = {c.name: set() for c in channels}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        uow_factory: Callable,
        preparer: CollectionPreparer,
        minter: NFTMinter,
        events: Optional[JobEvents] = None,
    ) -> "Dispatcher":
        channels = [
            Channel(settings.prepare_queue_name, JobKind.PREPARE, settings.prepare_concurrency),
            Channel(settings.mint_queue_name, JobKind.MINT, settings.mint_concurrency),
        ]
        return cls(
            uow_factory,
            preparer,
            minter,
            channels,
            events=events,
            poll_interval=settings.poll_interval_seconds,
            backoff_seconds=settings.job_backoff_seconds,
        )

    def inflight(self, channel_name: str) -> int:
        """Number of jobs currently running on a channel."""
        return len(self._inflight.get(channel_name, ()))

    def backoff_delay(self, attempts: int) -> float:
        return self.backoff_seconds * 2 ** max(attempts - 1, 0)

    async def route(self, job: JobVariant, progress: Optional[Callable] = None) -> None:
        """Run the handler for a job variant.

        Raises:
            JobPayloadError: Variant has no handler
        """
        if isinstance(job, PrepareJob):
            await self.preparer.prepare(job.vault_id, progress=progress)
        elif isinstance(job, MintJob):
            await self.minter.mint(job.claim_id, progress=progress)
        else:
            raise JobPayloadError(f"No handler for job {job!r}")

    async def process_job(self, job_id: UUID) -> JobStatus:
        """Run one claimed job to an outcome and record it.

        The job must already be running (claimed by poll_channel).

        Returns:
            Status recorded for the job (completed, queued for retry, or failed)

        Raises:
            LookupError: If the job does not exist
        """
        async with await self.uow_factory() as uow:
            job = await uow.jobs.get_by_id(job_id)
            if job is None:
                raise LookupError(f"Job {job_id} not found")
            kind, payload, channel = job.kind, job.payload, job.channel

        with structlog.contextvars.bound_contextvars(
            job_id=str(job_id), channel=channel, kind=kind.value
        ):

            async def report_progress(value: int) -> None:
                async with await self.uow_factory() as uow:
                    await uow.jobs.set_progress(job_id, value)
                self.events.emit("progress", job_id=str(job_id), channel=channel, progress=value)

            logger.info("job.started")
            variant = None
            try:
                variant = parse_job(kind, payload)
                await self.route(variant, progress=report_progress)
            except Exception as e:
                return await self._record_failure(job_id, e, variant)

            async with await self.uow_factory() as uow:
                job = await uow.jobs.get_by_id(job_id)
                job.mark_completed()
                await uow.jobs.save(job)
                attempts = job.attempts

            self.events.emit(
                "completed", job_id=str(job_id), channel=channel, kind=kind.value, attempts=attempts
            )
            return JobStatus.COMPLETED

    async def _record_failure(
        self, job_id: UUID, error: Exception, variant: Optional[JobVariant] = None
    ) -> JobStatus:
        message = f"{type(error).__name__}: {error}"

        async with await self.uow_factory() as uow:
            job = await uow.jobs.get_by_id(job_id)
            terminal = isinstance(error, UnrecoverableJobError) or job.attempts >= job.max_attempts
            if terminal:
                job.mark_failed(message)
                delay = None
            else:
                delay = self.backoff_delay(job.attempts)
                job.schedule_retry(message, delay)
            await uow.jobs.save(job)
            attempts, max_attempts, channel = job.attempts, job.max_attempts, job.channel

        log = logger.error if terminal else logger.warning
        log(
            "job.attempt_failed",
            error_type=type(error).__name__,
            error_message=str(error),
            attempts=attempts,
            max_attempts=max_attempts,
            retry_in_seconds=delay,
        )
        if terminal and isinstance(variant, MintJob):
            await self._fail_claim(variant.claim_id, error)

        self.events.emit(
            "failed",
            job_id=str(job_id),
            channel=channel,
            error=message,
            attempts=attempts,
            retrying=not terminal,
        )
        return JobStatus.FAILED if terminal else JobStatus.QUEUED

    async def _fail_claim(self, claim_id: UUID, error: Exception) -> None:
        try:
            await self.minter.fail_claim(claim_id, error)
        except Exception as e:
            # Job is already recorded as failed; the claim keeps its current status
            logger.error(
                "job.claim_not_failed",
                claim_id=str(claim_id),
                error_type=type(e).__name__,
                error_message=str(e),
            )

    async def poll_channel(self, channel: Channel) -> list[asyncio.Task]:
        """Claim as many jobs as the channel has free slots and start them.

        Returns:
            Tasks started by this poll (empty when the pool is full or the queue is empty)
        """
        inflight = self._inflight[channel.name]
        free_slots = channel.concurrency - len(inflight)
        if free_slots <= 0:
            return []

        async with await self.uow_factory() as uow:
            jobs = await uow.jobs.claim_next(channel.name, limit=free_slots)
            job_ids = [job.id for job in jobs]

        tasks = []
        for job_id in job_ids:
            task = asyncio.create_task(self.process_job(job_id), name=f"{channel.name}:{job_id}")
            inflight.add(task)
            task.add_done_callback(self._on_task_done(channel, job_id))
            tasks.append(task)
        return tasks

    def _on_task_done(self, channel: Channel, job_id: UUID):
        def callback(task: asyncio.Task) -> None:
            self._inflight[channel.name].discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc:
                # Outcome could not be recorded; the job stays running until startup recovery
                logger.error(
                    "job.outcome_not_recorded",
                    job_id=str(job_id),
                    channel=channel.name,
                    error_type=type(exc).__name__,
                    error_message=str(exc),
                )

        return callback

    async def recover(self, channel: Channel) -> int:
        """Requeue jobs a previous process left running on this channel."""
        async with await self.uow_factory() as uow:
            requeued = await uow.jobs.requeue_running(channel.name)
            counts = await uow.jobs.count_by_status(channel.name)

        if requeued:
            logger.info("worker.recovery_complete", channel=channel.name, requeued=requeued)
        logger.info(
            "worker.queue_state",
            channel=channel.name,
            **{status.value: count for status, count in counts.items()},
        )
        return requeued

    async def run_channel(self, channel: Channel) -> None:
        """Poll one channel until cancelled.

        Worker lifecycle:
        - Requeues jobs left running by a crashed process on startup
        - Runs until asyncio.CancelledError
        - Waits for in-flight jobs before exit
        """
        await self.recover(channel)
        self.events.emit("ready", channel=channel.name, concurrency=channel.concurrency)

        try:
            while True:
                try:
                    await self.poll_channel(channel)

                except asyncio.CancelledError:
                    raise

                except Exception as e:
                    logger.error(
                        "worker.error",
                        channel=channel.name,
                        error_type=type(e).__name__,
                        error_message=str(e),
                        exc_info=True,
                    )
                    await asyncio.sleep(ERROR_BACKOFF_SECONDS)

                await asyncio.sleep(self.poll_interval)

        except asyncio.CancelledError:
            inflight = list(self._inflight[channel.name])
            if inflight:
                logger.info("worker.draining", channel=channel.name, inflight=len(inflight))
                await asyncio.gather(*inflight, return_exceptions=True)
            self.events.emit("stopped", channel=channel.name)
            raise

    async def run(self) -> None:
        """Run every channel until cancelled."""
        await asyncio.gather(*(self.run_channel(channel) for channel in self.channels))
