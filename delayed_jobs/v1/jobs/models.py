"""
Delayed job model.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from delayed_jobs.infra.database import Base, UTCDateTime

ACTOR_ID_MAX_LENGTH = 255


def utcnow() -> datetime:
    return datetime.now(UTC)


class DelayedJob(Base):
    """
    A persisted unit of deferred work.

    A job is eligible to be claimed while it is unlocked, incomplete and its
    ``run_at`` has arrived. Claiming sets the lock fields; recording the
    outcome either completes the job (successfully or with failure) or
    unlocks it with a later ``run_at`` for another attempt.
    """

    __tablename__ = "delayed_jobs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Higher values run first"
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of handler invocations",
    )
    queue_name: Mapped[str] = mapped_column(
        String(100), nullable=False, comment="Name of the handler that runs the job"
    )
    actor_id: Mapped[str] = mapped_column(
        String(ACTOR_ID_MAX_LENGTH),
        nullable=False,
        comment="Opaque identifier of the entity the job operates on",
    )
    last_error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Traceback of the most recent failure"
    )
    run_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        comment="Job is not eligible to run before this time",
    )

    # Claim state
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Failure and completion
    failed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="Time of the most recent failure"
    )
    complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_with_failure: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    failure_reason: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Message of the most recent classified failure"
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        Index(
            "idx_delayed_jobs_queue_name_run_at",
            "queue_name",
            "run_at",
            "complete",
            "locked",
        ),
        Index("idx_delayed_jobs_ready", "complete", "locked", "priority", "run_at"),
        Index("idx_delayed_jobs_actor_id", "actor_id"),
    )

    def is_ready(self, now: datetime | None = None) -> bool:
        """Check if the job could be claimed right now."""
        now = now or utcnow()
        return not self.complete and not self.locked and self.run_at <= now

    def is_failed(self) -> bool:
        return self.complete and self.completed_with_failure

    def __repr__(self) -> str:
        return (
            f"<DelayedJob {self.id} queue={self.queue_name} actor={self.actor_id} "
            f"attempts={self.attempts} locked={self.locked} complete={self.complete}>"
        )
