"""
Asynchronous dispatch of delayed jobs.

New jobs are announced on an in-process channel and picked up by a pool of
consumer tasks. A poller scans the store for due jobs on a fixed interval so
that jobs whose notification was lost, and jobs scheduled for later, still run.
"""

import asyncio
import os
import socket
from uuid import UUID

from delayed_jobs.config.logging import get_logger
from delayed_jobs.config.settings import Settings
from delayed_jobs.v1.jobs.service import JobService

logger = get_logger(__name__)


class JobChannel:
    """
    Bounded in-memory channel of job ids.

    Delivery is best effort: publishing never blocks the caller and a
    notification that does not fit is dropped.
    """

    def __init__(self, capacity: int = 1000):
        self._queue: asyncio.Queue[UUID] = asyncio.Queue(maxsize=capacity)

    def publish(self, job_id: UUID) -> bool:
        try:
            self._queue.put_nowait(job_id)
        except asyncio.QueueFull:
            logger.warning(
                "Job channel full, dropping notification",
                job_id=str(job_id),
                capacity=self._queue.maxsize,
            )
            return False
        return True

    async def get(self) -> UUID:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every published notification has been handled."""
        await self._queue.join()

    def pending(self) -> int:
        return self._queue.qsize()


class JobDispatcher:
    """
    Runs consumer tasks for the channel, the ready-job poller and, when a lock
    timeout is configured, the stale lock sweep.
    """

    def __init__(self, settings: Settings, service: JobService, channel: JobChannel):
        self.settings = settings
        self.service = service
        self.channel = channel
        self.dispatcher_id = f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self.running = False
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Start consumers and background loops without blocking."""
        if self.running:
            raise RuntimeError("Dispatcher is already running")

        self.running = True
        logger.info(
            "Starting job dispatcher",
            dispatcher_id=self.dispatcher_id,
            concurrency=self.settings.job_dispatch_concurrency,
            poll_interval_s=self.settings.job_poll_interval_s,
        )

        for index in range(self.settings.job_dispatch_concurrency):
            self._tasks.append(
                asyncio.create_task(self._consume(), name=f"job-consumer-{index}")
            )
        self._tasks.append(asyncio.create_task(self._poll_loop(), name="job-poller"))
        if self.settings.job_lock_timeout_s is not None:
            self._tasks.append(
                asyncio.create_task(self._sweep_loop(), name="job-lock-sweep")
            )

    async def stop(self) -> None:
        """Cancel all dispatcher tasks and wait for them to finish."""
        if not self.running:
            return

        logger.info("Stopping job dispatcher", dispatcher_id=self.dispatcher_id)
        self.running = False

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def __aenter__(self) -> "JobDispatcher":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def _consume(self) -> None:
        """Handle notifications until cancelled."""
        while True:
            job_id = await self.channel.get()
            try:
                await self.service.process(job_id)
            except Exception:
                logger.exception(
                    "Error processing job notification",
                    job_id=str(job_id),
                    dispatcher_id=self.dispatcher_id,
                )
            finally:
                self.channel.task_done()

    async def run_pending(self) -> int:
        """
        Scan the store once and process every due job found.

        Returns:
            Number of jobs attempted.
        """
        ready_jobs = await self.service.find_ready_to_run(
            self.settings.job_poll_batch_size
        )
        if not ready_jobs:
            return 0

        logger.info("Found delayed jobs ready to run", job_count=len(ready_jobs))
        for job in ready_jobs:
            try:
                await self.service.process(job.id)
            except Exception:
                logger.exception("Error processing polled job", job_id=str(job.id))
        return len(ready_jobs)

    async def _poll_loop(self) -> None:
        while self.running:
            try:
                await self.run_pending()
            except Exception:
                logger.exception(
                    "Error in job poller", dispatcher_id=self.dispatcher_id
                )
            await asyncio.sleep(self.settings.job_poll_interval_s)

    async def _sweep_loop(self) -> None:
        while self.running:
            try:
                await self.service.release_stale_locks()
            except Exception:
                logger.exception("Error in stale lock sweep")
            await asyncio.sleep(self.settings.job_sweep_interval_s)
