"""Create notification_jobs and sweep_runs tables

Revision ID: 001_notification_jobs
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_notification_jobs"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

notification_type = sa.Enum("attendance", "recap", name="notificationtype")
notification_status = sa.Enum("pending", "processing", "sent", "failed", name="notificationstatus")


def upgrade() -> None:
    op.create_table(
        "notification_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("recipient", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_group", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=False),
        sa.Column("status", notification_status, nullable=False),
        sa.Column("error_message", sa.Text(), nullable=False, server_default=""),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("length(recipient) > 0", name="ck_notification_jobs_recipient"),
        sa.CheckConstraint("length(message) > 0", name="ck_notification_jobs_message"),
        sa.CheckConstraint("retry_count >= 0", name="ck_notification_jobs_retry_count"),
    )
    op.create_index("ix_notification_jobs_status", "notification_jobs", ["status"])
    op.create_index("ix_notification_jobs_created_at", "notification_jobs", ["created_at"])

    op.create_table(
        "sweep_runs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("trigger", sa.String(20), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=False),
        sa.Column("stale_after_seconds", sa.Integer(), nullable=False),
        sa.Column("reclaimed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sweep_runs_started_at", "sweep_runs", ["started_at"])


def downgrade() -> None:
    op.drop_index("ix_sweep_runs_started_at", table_name="sweep_runs")
    op.drop_table("sweep_runs")
    op.drop_index("ix_notification_jobs_created_at", table_name="notification_jobs")
    op.drop_index("ix_notification_jobs_status", table_name="notification_jobs")
    op.drop_table("notification_jobs")
    notification_status.drop(op.get_bind(), checkfirst=True)
    notification_type.drop(op.get_bind(), checkfirst=True)
