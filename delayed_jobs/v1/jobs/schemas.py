"""
Delayed job Pydantic schemas.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from delayed_jobs.v1.jobs.models import ACTOR_ID_MAX_LENGTH


class JobEnqueueRequest(BaseModel):
    """Schema for enqueueing jobs via API."""

    queue_name: str = Field(..., min_length=1, description="Registered queue name")
    actor_id: str = Field(
        ...,
        min_length=1,
        max_length=ACTOR_ID_MAX_LENGTH,
        description="Entity the job operates on",
    )
    run_at: datetime | None = Field(
        default=None, description="Earliest time to run the job"
    )
    delay_seconds: float | None = Field(
        default=None, ge=0, description="Run the job this many seconds from now"
    )

    @model_validator(mode="after")
    def check_schedule(self) -> "JobEnqueueRequest":
        if self.run_at is not None and self.delay_seconds is not None:
            raise ValueError("Specify either run_at or delay_seconds, not both")
        if self.run_at is not None and self.run_at.tzinfo is None:
            raise ValueError("run_at must include a timezone")
        return self


class JobResponse(BaseModel):
    """Schema for job API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    queue_name: str
    actor_id: str
    priority: int
    run_at: datetime
    attempts: int

    # Claim state
    locked: bool
    locked_at: datetime | None = None

    # Completion and failure
    complete: bool
    completed_at: datetime | None = None
    completed_with_failure: bool
    failed_at: datetime | None = None
    failure_reason: str | None = None
    last_error: str | None = None

    created_at: datetime
    updated_at: datetime


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int


class QueueResponse(BaseModel):
    """Registered handler metadata."""

    queue_name: str
    priority: int
    description: str


class QueueStatsResponse(BaseModel):
    total: int
    ready: int
    scheduled: int
    locked: int
    failed: int
