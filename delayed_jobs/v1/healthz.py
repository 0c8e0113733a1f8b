from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text

from delayed_jobs.config.settings import Settings, SettingsDep
from delayed_jobs.v1.core.exceptions import create_success_response
from delayed_jobs.v1.jobs.runtime import JobRuntime, get_runtime
from delayed_jobs.v1.jobs.schemas import QueueStatsResponse

router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class DispatcherHealth(BaseModel):
    """Dispatcher status for this process."""

    running: bool
    pending_notifications: int
    registered_queues: list[str]


class HealthResponse(BaseModel):
    """Health response with database, dispatcher and queue status."""

    ok: bool
    version: str
    environment: str
    timestamp: str
    database: DatabaseHealth
    dispatcher: DispatcherHealth
    queue: QueueStatsResponse | None = None


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, runtime: JobRuntime = Depends(get_runtime)
):
    """Health check with database connectivity and job queue status."""

    db_health = await _check_database_health(runtime)

    queue_stats = None
    if db_health.connected:
        queue_stats = QueueStatsResponse(**await runtime.service.get_queue_stats())

    health = HealthResponse(
        ok=db_health.connected,
        version=settings.version,
        environment=settings.environment,
        timestamp=datetime.now(UTC).isoformat(),
        database=db_health,
        dispatcher=DispatcherHealth(
            running=runtime.dispatcher.running,
            pending_notifications=runtime.channel.pending(),
            registered_queues=sorted(runtime.registry.registered_queues()),
        ),
        queue=queue_stats,
    )

    return create_success_response(data=health.model_dump())


async def _check_database_health(runtime: JobRuntime) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        async with runtime.database.SessionLocal() as session:
            await session.execute(text("SELECT 1"))

        end_time = datetime.now(UTC)
        response_time_ms = (end_time - start_time).total_seconds() * 1000

        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))
