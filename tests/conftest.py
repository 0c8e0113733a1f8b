import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from delayed_jobs.config.settings import Settings
from delayed_jobs.infra.database import Database
from delayed_jobs.main import create_app
from delayed_jobs.v1.core.exceptions import RecoverableJobError, TerminalJobError
from delayed_jobs.v1.core.registries import JobHandlerRegistry
from delayed_jobs.v1.jobs.dispatcher import JobChannel, JobDispatcher
from delayed_jobs.v1.jobs.retry import RetryStrategy
from delayed_jobs.v1.jobs.runtime import JobRuntime
from delayed_jobs.v1.jobs.service import JobService

# Import models to ensure they're registered
from delayed_jobs.v1.jobs import models  # noqa: F401


class RecordingHandler:
    """Succeeds and records the actor ids it ran for."""

    priority = 10
    description = "Records calls"

    def __init__(self, calls: list[tuple[str, str]]):
        self.calls = calls

    async def run(self, actor_id: str) -> None:
        self.calls.append(("RecordingHandler", actor_id))


class LowPriorityHandler:
    priority = 5
    description = "Records calls at low priority"

    def __init__(self, calls: list[tuple[str, str]]):
        self.calls = calls

    async def run(self, actor_id: str) -> None:
        self.calls.append(("LowPriorityHandler", actor_id))


class TerminalFailureHandler:
    priority = 5

    async def run(self, actor_id: str) -> None:
        raise TerminalJobError(f"Order not found: {actor_id}")


class RecoverableFailureHandler:
    priority = 5

    async def run(self, actor_id: str) -> None:
        raise RecoverableJobError("Order service unavailable")


class CrashingHandler:
    priority = 5

    async def run(self, actor_id: str) -> None:
        raise RuntimeError("boom")


class UnregisteredHandler:
    async def run(self, actor_id: str) -> None:
        pass


async def wait_until(
    predicate: Callable[[], Awaitable[bool]], timeout: float = 5.0
) -> None:
    """Poll an async predicate until it holds or the timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not await predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.02)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite database."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}",
        job_dispatcher_enabled=False,
        job_dispatch_concurrency=2,
        job_poll_interval_s=0.05,
        job_channel_capacity=100,
    )


@pytest.fixture
async def database(test_settings) -> AsyncGenerator[Database, None]:
    """Create a fresh database with the schema for each test."""
    database = Database(test_settings)
    await database.create_all()
    yield database
    await database.close()


@pytest.fixture
def calls() -> list[tuple[str, str]]:
    return []


@pytest.fixture
def registry(calls) -> JobHandlerRegistry:
    """A frozen registry with the test handlers."""
    registry = JobHandlerRegistry()
    registry.register(RecordingHandler(calls))
    registry.register(LowPriorityHandler(calls))
    registry.register(TerminalFailureHandler())
    registry.register(RecoverableFailureHandler())
    registry.register(CrashingHandler())
    registry.freeze()
    return registry


@pytest.fixture
def fast_retry() -> RetryStrategy:
    """Millisecond backoff so retried jobs become due again within a test."""
    return RetryStrategy(
        base_delay=timedelta(milliseconds=1),
        max_delay=timedelta(milliseconds=50),
        jitter=0,
    )


@pytest.fixture
def service(test_settings, registry, database, fast_retry) -> JobService:
    """Job service without a notifier; nothing runs unless a test runs it."""
    return JobService(
        settings=test_settings,
        registry=registry,
        session_factory=database.SessionLocal,
        retry_strategy=fast_retry,
    )


@pytest.fixture
def channel(test_settings) -> JobChannel:
    return JobChannel(capacity=test_settings.job_channel_capacity)


@pytest.fixture
def notifying_service(test_settings, registry, database, channel, fast_retry) -> JobService:
    """Job service that announces new jobs on the channel."""
    return JobService(
        settings=test_settings,
        registry=registry,
        session_factory=database.SessionLocal,
        notifier=channel,
        retry_strategy=fast_retry,
    )


@pytest.fixture
async def dispatcher(
    test_settings, notifying_service, channel
) -> AsyncGenerator[JobDispatcher, None]:
    dispatcher = JobDispatcher(test_settings, notifying_service, channel)
    yield dispatcher
    await dispatcher.stop()


@pytest.fixture
def runtime(
    test_settings, database, registry, channel, notifying_service, dispatcher
) -> JobRuntime:
    return JobRuntime(
        settings=test_settings,
        database=database,
        registry=registry,
        channel=channel,
        service=notifying_service,
        dispatcher=dispatcher,
    )


@pytest.fixture
def app(runtime):
    """Create a test FastAPI application bound to the test runtime."""
    return create_app(runtime)


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
