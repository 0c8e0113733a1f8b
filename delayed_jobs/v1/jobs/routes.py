"""
Delayed job API endpoints.

Admin endpoints for enqueueing and inspecting jobs.
"""

import logging
from datetime import timedelta
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from delayed_jobs.v1.core.exceptions import (
    HandlerNotRegisteredError,
    NotFoundError,
    create_success_response,
)
from delayed_jobs.v1.jobs.runtime import get_job_service
from delayed_jobs.v1.jobs.schemas import (
    JobEnqueueRequest,
    JobListResponse,
    JobResponse,
    QueueResponse,
)
from delayed_jobs.v1.jobs.service import JobService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


def _job_list(jobs) -> dict[str, Any]:
    return JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs], total=len(jobs)
    ).model_dump(mode="json")


@router.post("", response_model=dict, status_code=201)
async def enqueue_job(
    job_request: JobEnqueueRequest,
    job_service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """Enqueue a job for a registered queue."""

    handler = job_service.registry.get_handler(job_request.queue_name)
    if handler is None:
        raise HandlerNotRegisteredError(job_request.queue_name)

    if job_request.delay_seconds is not None:
        job = await job_service.enqueue_with_delay(
            type(handler),
            job_request.actor_id,
            timedelta(seconds=job_request.delay_seconds),
        )
    else:
        job = await job_service.enqueue(
            type(handler), job_request.actor_id, run_at=job_request.run_at
        )

    logger.info(
        "Job enqueued via API",
        extra={"job_id": str(job.id), "queue_name": job.queue_name},
    )

    return create_success_response(
        data=JobResponse.model_validate(job).model_dump(mode="json")
    )


@router.get("", response_model=dict)
async def list_jobs(
    actor_id: str | None = Query(default=None, description="Filter by actor"),
    job_service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """List jobs for an actor, or all incomplete jobs."""

    if actor_id is not None:
        jobs = await job_service.find_by_actor(actor_id)
    else:
        jobs = await job_service.find_incomplete()

    return create_success_response(data=_job_list(jobs))


@router.get("/ready", response_model=dict)
async def list_ready_jobs(
    limit: int = Query(default=100, ge=1, le=1000, description="Maximum results"),
    job_service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """Jobs that are due, in the order workers will pick them up."""

    jobs = await job_service.find_ready_to_run(limit)
    return create_success_response(data=_job_list(jobs))


@router.get("/failed", response_model=dict)
async def list_failed_jobs(
    limit: int = Query(default=100, ge=1, le=1000, description="Maximum results"),
    job_service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """Jobs that completed with a failure, most recent first."""

    jobs = await job_service.find_failed(limit)
    return create_success_response(data=_job_list(jobs))


@router.get("/queues", response_model=dict)
async def list_queues(
    job_service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """Registered queues and their priorities."""

    queues = [
        QueueResponse(
            queue_name=m.queue_name, priority=m.priority, description=m.description
        ).model_dump()
        for m in job_service.registry.all_metadata()
    ]
    return create_success_response(data={"queues": queues})


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: UUID,
    job_service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """Get a single job."""

    job = await job_service.get_job(job_id)
    if job is None:
        raise NotFoundError(f"Job not found: {job_id}", details={"job_id": str(job_id)})

    return create_success_response(
        data=JobResponse.model_validate(job).model_dump(mode="json")
    )
