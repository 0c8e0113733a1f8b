"""
Job service: enqueueing, atomic claiming, handler dispatch and outcome recording.
"""

import asyncio
import traceback
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Protocol
from uuid import UUID, uuid4

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from delayed_jobs.config.logging import bind_job_context, clear_job_context, get_logger
from delayed_jobs.config.settings import Settings
from delayed_jobs.v1.core.exceptions import DelayedJobError, HandlerNotRegisteredError
from delayed_jobs.v1.core.registries import JobHandlerRegistry
from delayed_jobs.v1.jobs.models import ACTOR_ID_MAX_LENGTH, DelayedJob
from delayed_jobs.v1.jobs.retry import RetryStrategy

logger = get_logger(__name__)

# Frames of the handler traceback kept in last_error
ERROR_TRACE_LIMIT = 20


class JobOutcome(str, Enum):
    """How a handler invocation ended."""

    SUCCESS = "success"
    RECOVERABLE_FAILURE = "recoverable_failure"
    TERMINAL_FAILURE = "terminal_failure"


class JobNotifier(Protocol):
    """Channel that is told about new jobs so they can run right away."""

    def publish(self, job_id: UUID) -> bool: ...


def utcnow() -> datetime:
    return datetime.now(UTC)


def _as_uuid(job_id: UUID | str) -> UUID | None:
    if isinstance(job_id, UUID):
        return job_id
    try:
        return UUID(str(job_id))
    except ValueError:
        return None


def _held_lock(job: DelayedJob) -> tuple:
    """Conditions matching ``job`` only while the lock taken by its claim is still in place."""
    return (
        DelayedJob.id == job.id,
        DelayedJob.locked.is_(True),
        DelayedJob.locked_at == job.locked_at,
    )


def _format_error(error: BaseException) -> str:
    return "".join(
        traceback.format_exception(
            type(error), error, error.__traceback__, limit=ERROR_TRACE_LIMIT
        )
    )


class JobService:
    """
    Service for creating and running delayed jobs.

    Every store interaction runs in its own session and commits before
    returning: a claim is visible to other workers as soon as ``claim``
    returns, and nothing is held open while a handler runs. The session
    factory must be created with ``expire_on_commit=False``.
    """

    def __init__(
        self,
        settings: Settings,
        registry: JobHandlerRegistry,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: JobNotifier | None = None,
        retry_strategy: RetryStrategy | None = None,
    ):
        self.settings = settings
        self.registry = registry
        self.session_factory = session_factory
        self.notifier = notifier
        self.retry_strategy = retry_strategy or RetryStrategy.from_settings(settings)

    # Enqueueing

    async def enqueue(
        self,
        handler_type: type,
        actor_id: str,
        run_at: datetime | None = None,
    ) -> DelayedJob:
        """
        Persist a job for ``handler_type`` and notify the dispatcher.

        Args:
            handler_type: Registered handler class
            actor_id: Identifier of the entity the handler works on
            run_at: Earliest run time, now if omitted

        Returns:
            The persisted job. It may already be running by the time the
            caller looks at it again.

        Raises:
            HandlerNotRegisteredError: if ``handler_type`` was never registered.
                Nothing is persisted in that case.
            ValueError: if ``actor_id`` is longer than the column allows or
                ``run_at`` is naive.
        """
        metadata = self.registry.get_metadata(handler_type)
        if metadata is None:
            raise HandlerNotRegisteredError(
                getattr(handler_type, "__name__", str(handler_type))
            )

        actor_id = str(actor_id)
        if len(actor_id) > ACTOR_ID_MAX_LENGTH:
            raise ValueError(
                f"actor_id must be at most {ACTOR_ID_MAX_LENGTH} characters, "
                f"got {len(actor_id)}"
            )
        if run_at is not None and run_at.tzinfo is None:
            raise ValueError("run_at must be timezone-aware")

        now = utcnow()
        job = DelayedJob(
            id=uuid4(),
            queue_name=metadata.queue_name,
            actor_id=actor_id,
            priority=metadata.priority,
            run_at=run_at or now,
            attempts=0,
            locked=False,
            complete=False,
            completed_with_failure=False,
            created_at=now,
            updated_at=now,
        )

        async with self.session_factory() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)

        logger.info(
            "Job enqueued",
            job_id=str(job.id),
            queue_name=job.queue_name,
            actor_id=job.actor_id,
            priority=job.priority,
            run_at=job.run_at.isoformat(),
        )

        self._notify(job.id)
        return job

    async def enqueue_with_delay(
        self, handler_type: type, actor_id: str, delay: timedelta
    ) -> DelayedJob:
        """Enqueue a job that becomes eligible after ``delay``."""
        return await self.enqueue(handler_type, actor_id, run_at=utcnow() + delay)

    def _notify(self, job_id: UUID) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.publish(job_id)
        except Exception:
            # The job is already committed; the poller will pick it up
            logger.exception("Failed to publish job notification", job_id=str(job_id))

    # Claiming

    async def claim(self, job_id: UUID | str) -> DelayedJob | None:
        """
        Atomically lock a job for processing.

        A single conditional UPDATE takes the lock only if the job is
        unlocked, incomplete and due, so concurrent callers can never both
        succeed.

        Returns:
            The locked job, or None if it does not exist, is locked, is
            complete or is not due yet.
        """
        job_uuid = _as_uuid(job_id)
        if job_uuid is None:
            logger.warning("Ignoring malformed job id", job_id=str(job_id))
            return None

        now = utcnow()
        stmt = (
            update(DelayedJob)
            .where(
                DelayedJob.id == job_uuid,
                DelayedJob.locked.is_(False),
                DelayedJob.complete.is_(False),
                DelayedJob.run_at <= now,
            )
            .values(locked=True, locked_at=now, updated_at=now)
            .returning(DelayedJob)
        )

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            job = result.scalar_one_or_none()
            await session.commit()

        if job is None:
            logger.debug(
                "Job could not be claimed (missing, locked, complete or not due)",
                job_id=str(job_uuid),
            )
            return None

        logger.debug("Job claimed", job_id=str(job.id), queue_name=job.queue_name)
        return job

    # Processing

    async def process(self, job_id: UUID | str) -> JobOutcome | None:
        """
        Claim a job, run its handler and record the outcome.

        Handler failures never propagate; they end up as state on the job.

        Returns:
            The outcome, or None if the job could not be claimed or has no
            registered handler.
        """
        job = await self.claim(job_id)
        if job is None:
            return None

        handler = self.registry.get_handler(job.queue_name)
        if handler is None:
            logger.error(
                "No handler registered for queue",
                job_id=str(job.id),
                queue_name=job.queue_name,
            )
            await self._release(job)
            return None

        bind_job_context(
            str(job.id), queue_name=job.queue_name, actor_id=job.actor_id
        )
        try:
            logger.info("Processing job", attempt=job.attempts + 1)
            try:
                await handler.run(job.actor_id)
            except asyncio.CancelledError:
                await self.record_retry(job, "Processing cancelled", error=None)
                raise
            except DelayedJobError as e:
                if e.recoverable:
                    return await self.record_retry(job, e.message, error=e)
                await self.record_terminal_failure(job, e.message, error=e)
                return JobOutcome.TERMINAL_FAILURE
            except Exception as e:
                return await self.record_retry(job, str(e) or type(e).__name__, error=e)

            await self.record_success(job)
            return JobOutcome.SUCCESS
        finally:
            clear_job_context()

    async def record_success(self, job: DelayedJob) -> None:
        now = utcnow()
        await self._record(
            job,
            complete=True,
            completed_at=now,
            completed_with_failure=False,
        )
        logger.info("Job completed successfully", job_id=str(job.id))

    async def record_terminal_failure(
        self, job: DelayedJob, reason: str, error: BaseException | None = None
    ) -> None:
        now = utcnow()
        await self._record(
            job,
            complete=True,
            completed_at=now,
            completed_with_failure=True,
            failed_at=now,
            failure_reason=reason,
            last_error=_format_error(error) if error else reason,
        )
        logger.error(
            "Job failed terminally",
            job_id=str(job.id),
            reason=reason,
            attempts=job.attempts + 1,
        )

    async def record_retry(
        self, job: DelayedJob, reason: str, error: BaseException | None = None
    ) -> JobOutcome:
        """
        Unlock a failed job and push its ``run_at`` back, or complete it with
        failure once the configured attempt cap is reached.
        """
        attempts = job.attempts + 1
        max_attempts = self.settings.job_max_attempts
        if max_attempts is not None and attempts >= max_attempts:
            await self.record_terminal_failure(
                job, f"Exceeded max attempts ({max_attempts}): {reason}", error=error
            )
            return JobOutcome.TERMINAL_FAILURE

        now = utcnow()
        run_at = self.retry_strategy.next_retry_time(attempts, now=now)
        await self._record(
            job,
            run_at=run_at,
            failed_at=now,
            failure_reason=reason,
            last_error=_format_error(error) if error else reason,
        )
        logger.warning(
            "Job scheduled for retry",
            job_id=str(job.id),
            reason=reason,
            attempts=attempts,
            next_run_at=run_at.isoformat(),
        )
        return JobOutcome.RECOVERABLE_FAILURE

    async def _record(self, job: DelayedJob, **values: Any) -> None:
        """Count the attempt, clear the lock and apply ``values`` in one UPDATE."""
        stmt = (
            update(DelayedJob)
            .where(*_held_lock(job))
            .values(
                locked=False,
                locked_at=None,
                attempts=DelayedJob.attempts + 1,
                updated_at=utcnow(),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()

        if result.rowcount == 0:
            # Lock was swept while the handler ran, possibly re-claimed since
            logger.warning(
                "Job lock lost before outcome was recorded; outcome discarded",
                job_id=str(job.id),
            )

    async def _release(self, job: DelayedJob) -> None:
        """Unlock a claimed job without counting an attempt."""
        stmt = (
            update(DelayedJob)
            .where(*_held_lock(job))
            .values(locked=False, locked_at=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    # Queries

    async def get_job(self, job_id: UUID | str) -> DelayedJob | None:
        job_uuid = _as_uuid(job_id)
        if job_uuid is None:
            return None
        async with self.session_factory() as session:
            return await session.get(DelayedJob, job_uuid)

    async def find_ready_to_run(self, limit: int) -> Sequence[DelayedJob]:
        """
        Jobs that could be claimed now, highest priority first and, within a
        priority, the longest waiting first.
        """
        if limit < 1:
            return []

        stmt = (
            select(DelayedJob)
            .where(
                DelayedJob.complete.is_(False),
                DelayedJob.locked.is_(False),
                DelayedJob.run_at <= utcnow(),
            )
            .order_by(DelayedJob.priority.desc(), DelayedJob.run_at.asc())
            .limit(limit)
        )
        return await self._fetch(stmt)

    async def find_by_actor(self, actor_id: str) -> Sequence[DelayedJob]:
        stmt = (
            select(DelayedJob)
            .where(DelayedJob.actor_id == actor_id)
            .order_by(DelayedJob.created_at.desc())
        )
        return await self._fetch(stmt)

    async def find_incomplete(self) -> Sequence[DelayedJob]:
        stmt = (
            select(DelayedJob)
            .where(DelayedJob.complete.is_(False))
            .order_by(DelayedJob.priority.desc(), DelayedJob.run_at.asc())
        )
        return await self._fetch(stmt)

    async def find_failed(self, limit: int = 100) -> Sequence[DelayedJob]:
        stmt = (
            select(DelayedJob)
            .where(DelayedJob.completed_with_failure.is_(True))
            .order_by(DelayedJob.failed_at.desc())
            .limit(limit)
        )
        return await self._fetch(stmt)

    async def _fetch(self, stmt) -> Sequence[DelayedJob]:
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def get_queue_stats(self) -> dict[str, int]:
        """Job counts by state, for health reporting."""
        now = utcnow()
        incomplete = DelayedJob.complete.is_(False)
        unlocked = DelayedJob.locked.is_(False)

        def count_where(*conditions) -> Any:
            return func.coalesce(func.sum(case((and_(*conditions), 1), else_=0)), 0)

        stmt = select(
            func.count(DelayedJob.id),
            count_where(incomplete, unlocked, DelayedJob.run_at <= now),
            count_where(incomplete, unlocked, DelayedJob.run_at > now),
            count_where(incomplete, DelayedJob.locked.is_(True)),
            count_where(DelayedJob.completed_with_failure.is_(True)),
        )
        async with self.session_factory() as session:
            row = (await session.execute(stmt)).one()

        total, ready, scheduled, locked, failed = (int(v or 0) for v in row)
        return {
            "total": total,
            "ready": ready,
            "scheduled": scheduled,
            "locked": locked,
            "failed": failed,
        }

    # Stale lock recovery

    async def release_stale_locks(self) -> int:
        """
        Unlock incomplete jobs whose lock is older than ``job_lock_timeout_s``.

        Covers workers that died between claiming a job and recording its
        outcome. Disabled when the timeout is not configured.
        """
        timeout_s = self.settings.job_lock_timeout_s
        if timeout_s is None:
            return 0

        now = utcnow()
        cutoff = now - timedelta(seconds=timeout_s)
        stmt = (
            update(DelayedJob)
            .where(
                DelayedJob.locked.is_(True),
                DelayedJob.complete.is_(False),
                DelayedJob.locked_at < cutoff,
            )
            .values(
                locked=False,
                locked_at=None,
                last_error=f"Lock released after {timeout_s}s without an outcome",
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()

        released = result.rowcount or 0
        if released:
            logger.warning(
                "Released stale job locks", released=released, timeout_seconds=timeout_s
            )
        return released
