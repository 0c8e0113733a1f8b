"""
Wiring of the job engine: database, handler registry, channel, service and
dispatcher, built once per process.
"""

from dataclasses import dataclass

from fastapi import Request

from delayed_jobs.config.logging import get_logger
from delayed_jobs.config.settings import Settings
from delayed_jobs.infra.database import Database
from delayed_jobs.v1.core.registries import JobHandlerRegistry, job_handler_registry
from delayed_jobs.v1.jobs.dispatcher import JobChannel, JobDispatcher
from delayed_jobs.v1.jobs.registry_init import register_job_handlers
from delayed_jobs.v1.jobs.service import JobService
from delayed_jobs.v1.notifications.mailer import Mailer
from delayed_jobs.v1.orders.client import OrderLookup

logger = get_logger(__name__)


@dataclass
class JobRuntime:
    settings: Settings
    database: Database
    registry: JobHandlerRegistry
    channel: JobChannel
    service: JobService
    dispatcher: JobDispatcher

    async def start(self, dispatch: bool | None = None) -> None:
        if self.settings.job_dispatcher_enabled if dispatch is None else dispatch:
            await self.dispatcher.start()

    async def close(self) -> None:
        await self.dispatcher.stop()
        await self.database.close()


def create_runtime(
    settings: Settings,
    registry: JobHandlerRegistry | None = None,
    database: Database | None = None,
    orders: OrderLookup | None = None,
    mailer: Mailer | None = None,
) -> JobRuntime:
    """
    Build the job engine. Handlers are registered here unless the given
    registry has already been populated and frozen.
    """
    registry = registry if registry is not None else job_handler_registry
    if not registry.is_frozen():
        register_job_handlers(registry, settings, orders=orders, mailer=mailer)

    database = database or Database(settings)
    channel = JobChannel(capacity=settings.job_channel_capacity)
    service = JobService(
        settings=settings,
        registry=registry,
        session_factory=database.SessionLocal,
        notifier=channel,
    )
    dispatcher = JobDispatcher(settings, service, channel)

    logger.info("Job runtime created", queues=sorted(registry.registered_queues()))
    return JobRuntime(
        settings=settings,
        database=database,
        registry=registry,
        channel=channel,
        service=service,
        dispatcher=dispatcher,
    )


def get_runtime(request: Request) -> JobRuntime:
    """Dependency returning the runtime attached to the application."""
    return request.app.state.job_runtime


def get_job_service(request: Request) -> JobService:
    return get_runtime(request).service
