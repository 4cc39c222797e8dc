"""add summary jobs and summary cache tables

Revision ID: 3b7e9c1d2a45
Revises:
Create Date: 2026-10-18 09:12:40.518233

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b7e9c1d2a45"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "summary_jobs",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "kind",
            sa.Text,
            nullable=False,
            comment="Content kind: github|bookmark|youtube",
        ),
        sa.Column(
            "target_id",
            sa.Text,
            nullable=False,
            comment="Content item the summary is for",
        ),
        sa.Column(
            "request_key", sa.Text, nullable=False, comment="Idempotency fingerprint"
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="queued",
            comment="Job status: queued|running|succeeded|failed|dead",
        ),
        sa.Column(
            "attempt_count",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Incremented on every claim",
        ),
        sa.Column(
            "max_attempts",
            sa.Integer,
            nullable=False,
            server_default="5",
            comment="Claims allowed before dead-letter",
        ),
        sa.Column(
            "next_run_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment="Earliest time the job may be claimed",
        ),
        # Worker coordination fields
        sa.Column(
            "locked_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="When job was locked by worker",
        ),
        sa.Column(
            "locked_by", sa.Text, nullable=True, comment="Worker ID that locked the job"
        ),
        sa.Column(
            "payload",
            sa.JSON,
            nullable=False,
            server_default="{}",
            comment="Executor parameters plus metadata_hash/prompt_version/provider",
        ),
        # Outcome
        sa.Column("result_summary", sa.Text, nullable=True),
        sa.Column(
            "error_code", sa.Text, nullable=True, comment="Structured error identifier"
        ),
        sa.Column("error_message", sa.Text, nullable=True, comment="Last error message"),
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
        sa.UniqueConstraint(
            "kind", "request_key", name="uq_summary_jobs_kind_request_key"
        ),
        sa.CheckConstraint(
            "status IN ('queued', 'running', 'succeeded', 'failed', 'dead')",
            name="summary_jobs_status_check",
        ),
        sa.CheckConstraint("attempt_count >= 0", name="summary_jobs_attempt_count_check"),
        sa.CheckConstraint("max_attempts >= 1", name="summary_jobs_max_attempts_check"),
    )

    # Claim scans: (kind, status, next_run_at) range
    op.create_index(
        "ix_summary_jobs_kind_status_next_run_at",
        "summary_jobs",
        ["kind", "status", "next_run_at"],
    )
    op.create_index(
        "ix_summary_jobs_kind_target_created_at",
        "summary_jobs",
        ["kind", "target_id", "created_at"],
    )
    op.create_index(
        "ix_summary_jobs_status_locked_at", "summary_jobs", ["status", "locked_at"]
    )

    op.create_table(
        "summary_cache",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("kind", sa.Text, nullable=False),
        sa.Column("target_id", sa.Text, nullable=False),
        sa.Column(
            "metadata_hash",
            sa.Text,
            nullable=False,
            comment="Fingerprint of the summarized content",
        ),
        sa.Column("prompt_version", sa.Text, nullable=False),
        sa.Column("provider", sa.Text, nullable=False),
        sa.Column("summary_text", sa.Text, nullable=False, server_default=""),
        sa.Column("generated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("last_success_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("kind", "target_id", name="uq_summary_cache_kind_target_id"),
        sa.CheckConstraint("expires_at > generated_at", name="summary_cache_expiry_check"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("summary_cache")
    op.drop_index("ix_summary_jobs_status_locked_at", table_name="summary_jobs")
    op.drop_index("ix_summary_jobs_kind_target_created_at", table_name="summary_jobs")
    op.drop_index("ix_summary_jobs_kind_status_next_run_at", table_name="summary_jobs")
    op.drop_table("summary_jobs")
