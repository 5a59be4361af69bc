"""create workflow_runs, competitor_alerts and analytics_snapshots tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "workflow_runs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "workflow_id",
            sa.String(length=255),
            nullable=False,
            comment="Automation-engine identifier for this execution",
        ),
        sa.Column("workflow_name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("progress_completed", sa.Integer(), nullable=False),
        sa.Column("progress_total", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_event_seq", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "progress_completed >= 0 AND progress_completed <= progress_total",
            name="ck_workflow_runs_progress_bounds",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("workflow_id", name="uq_workflow_runs_workflow_id"),
    )
    op.create_index("ix_workflow_runs_status", "workflow_runs", ["status"], unique=False)
    op.create_index(
        "ix_workflow_runs_status_started_at",
        "workflow_runs",
        ["status", "started_at"],
        unique=False,
    )

    op.create_table(
        "competitor_alerts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("competitor_name", sa.String(length=255), nullable=False),
        sa.Column("alert_type", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("occurrence_count", sa.Integer(), nullable=False),
        sa.Column(
            "dedupe_key",
            sa.String(length=64),
            nullable=False,
            comment="sha256 of competitor + alert type + normalized message",
        ),
        sa.Column(
            "window_bucket",
            sa.BigInteger(),
            nullable=False,
            comment="floor(anchor detected_at epoch seconds / dedupe window seconds)",
        ),
        sa.Column(
            "originating_workflow_id",
            sa.String(length=255),
            nullable=True,
            comment="Lookup-only reference to workflow_runs.workflow_id",
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("dedupe_key", "window_bucket", name="uq_competitor_alerts_dedupe_window"),
    )
    op.create_index(
        "ix_competitor_alerts_detected_at_id",
        "competitor_alerts",
        ["detected_at", "id"],
        unique=False,
    )
    op.create_index(
        "ix_competitor_alerts_dedupe_key_detected_at",
        "competitor_alerts",
        ["dedupe_key", "detected_at"],
        unique=False,
    )
    op.create_index("ix_competitor_alerts_priority", "competitor_alerts", ["priority"], unique=False)
    op.create_index(
        "ix_competitor_alerts_competitor_name",
        "competitor_alerts",
        ["competitor_name"],
        unique=False,
    )

    op.create_table(
        "analytics_snapshots",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "metrics",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="Metric name to numeric value",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_analytics_snapshots_captured_at",
        "analytics_snapshots",
        ["captured_at"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("ix_analytics_snapshots_captured_at", table_name="analytics_snapshots")
    op.drop_table("analytics_snapshots")

    op.drop_index("ix_competitor_alerts_competitor_name", table_name="competitor_alerts")
    op.drop_index("ix_competitor_alerts_priority", table_name="competitor_alerts")
    op.drop_index("ix_competitor_alerts_dedupe_key_detected_at", table_name="competitor_alerts")
    op.drop_index("ix_competitor_alerts_detected_at_id", table_name="competitor_alerts")
    op.drop_table("competitor_alerts")

    op.drop_index("ix_workflow_runs_status_started_at", table_name="workflow_runs")
    op.drop_index("ix_workflow_runs_status", table_name="workflow_runs")
    op.drop_table("workflow_runs")
