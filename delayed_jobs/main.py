from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from delayed_jobs.config.logging import get_logger, setup_logging
from delayed_jobs.config.settings import Settings, get_settings
from delayed_jobs.v1.core.exceptions import (
    DelayedJobsException,
    RequestContextMiddleware,
    delayed_jobs_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from delayed_jobs.v1.healthz import router as health_router
from delayed_jobs.v1.jobs.routes import router as jobs_router
from delayed_jobs.v1.jobs.runtime import JobRuntime, create_runtime

logger = get_logger(__name__)


def create_app(
    runtime: JobRuntime | None = None, settings: Settings | None = None
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Without a ``runtime`` the application builds its own on startup, starts
    the dispatcher if enabled and tears both down on shutdown. A runtime
    passed in is attached as is and left to the caller to manage.
    """
    settings = settings or (runtime.settings if runtime else get_settings())
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if runtime is not None:
            yield
            return

        job_runtime = create_runtime(settings)
        app.state.job_runtime = job_runtime
        await job_runtime.start()
        logger.info(
            "Application started",
            environment=settings.environment,
            dispatcher=job_runtime.dispatcher.running,
        )
        try:
            yield
        finally:
            await job_runtime.close()
            logger.info("Application stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Persistent delayed job processing",
        version=settings.version,
        debug=settings.debug,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    if runtime is not None:
        # ASGI test transports do not run the lifespan
        app.state.job_runtime = runtime

    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(DelayedJobsException, delayed_jobs_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "delayed_jobs.main:create_app",
        factory=True,
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
    )
