"""create delayed_jobs table

Revision ID: 3b7c1e9d2a40
Revises:
Create Date: 2026-10-18 09:12:41.503118

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b7c1e9d2a40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "delayed_jobs",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "priority",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Higher values run first",
        ),
        sa.Column(
            "attempts",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Number of handler invocations",
        ),
        sa.Column(
            "queue_name",
            sa.String(100),
            nullable=False,
            comment="Name of the handler that runs the job",
        ),
        sa.Column(
            "actor_id",
            sa.String(255),
            nullable=False,
            comment="Opaque identifier of the entity the job operates on",
        ),
        sa.Column(
            "last_error",
            sa.Text,
            nullable=True,
            comment="Traceback of the most recent failure",
        ),
        sa.Column(
            "run_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            comment="Job is not eligible to run before this time",
        ),
        # Claim state
        sa.Column(
            "locked", sa.Boolean, nullable=False, server_default=sa.text("false")
        ),
        sa.Column("locked_at", sa.TIMESTAMP(timezone=True), nullable=True),
        # Failure and completion
        sa.Column(
            "failed_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Time of the most recent failure",
        ),
        sa.Column(
            "complete", sa.Boolean, nullable=False, server_default=sa.text("false")
        ),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "completed_with_failure",
            sa.Boolean,
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "failure_reason",
            sa.Text,
            nullable=True,
            comment="Message of the most recent classified failure",
        ),
        # Timestamps
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # Queue scans: per-queue lookups and the ready-to-run ordering
    op.create_index(
        "idx_delayed_jobs_queue_name_run_at",
        "delayed_jobs",
        ["queue_name", "run_at", "complete", "locked"],
    )
    op.create_index(
        "idx_delayed_jobs_ready",
        "delayed_jobs",
        ["complete", "locked", "priority", "run_at"],
    )
    op.create_index("idx_delayed_jobs_actor_id", "delayed_jobs", ["actor_id"])

    # Stale lock sweep
    op.create_index(
        "idx_delayed_jobs_locked",
        "delayed_jobs",
        ["locked", "locked_at"],
        postgresql_where=sa.text("locked = true"),
    )

    # Failed job monitoring
    op.create_index(
        "idx_delayed_jobs_failed",
        "delayed_jobs",
        [sa.text("failed_at DESC")],
        postgresql_where=sa.text("failed_at IS NOT NULL"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_delayed_jobs_failed", table_name="delayed_jobs")
    op.drop_index("idx_delayed_jobs_locked", table_name="delayed_jobs")
    op.drop_index("idx_delayed_jobs_actor_id", table_name="delayed_jobs")
    op.drop_index("idx_delayed_jobs_ready", table_name="delayed_jobs")
    op.drop_index("idx_delayed_jobs_queue_name_run_at", table_name="delayed_jobs")
    op.drop_table("delayed_jobs")
