"""Initial protocol engine schema."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "202501150900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "earned_badges",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "protocols",
        sa.Column("id", sa.String(length=120), primary_key=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
    )

    op.create_table(
        "module_protocol_map",
        sa.Column("module_id", sa.String(length=120), primary_key=True, nullable=False),
        sa.Column("protocol_id", sa.String(length=120), primary_key=True, nullable=False),
        sa.Column("is_starter_protocol", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_index("ix_module_protocol_map_module_id", "module_protocol_map", ["module_id"], unique=False)

    op.create_table(
        "module_enrollment",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("module_id", sa.String(length=120), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_active_date", sa.Date(), nullable=True),
        sa.Column("streak_freeze_available", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("streak_freeze_used_date", sa.Date(), nullable=True),
        sa.Column("progress_pct", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "module_id", name="uq_module_enrollment_user_module"),
        sa.CheckConstraint("current_streak >= 0", name="ck_module_enrollment_streak_non_negative"),
    )
    op.create_index("ix_module_enrollment_user_id", "module_enrollment", ["user_id"], unique=False)

    op.create_table(
        "user_protocol_enrollment",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("protocol_id", sa.String(length=120), nullable=False),
        sa.Column("module_id", sa.String(length=120), nullable=True),
        sa.Column("default_time_utc", sa.String(length=5), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "protocol_id", name="uq_user_protocol_enrollment_user_protocol"),
    )
    op.create_index("ix_user_protocol_enrollment_user_id", "user_protocol_enrollment", ["user_id"], unique=False)

    op.create_table(
        "protocol_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("module_id", sa.String(length=120), nullable=False),
        sa.Column("protocol_id", sa.String(length=120), nullable=False),
        sa.Column("module_enrollment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("source", sa.String(length=50), nullable=False, server_default=sa.text("'manual'")),
        sa.Column("status", sa.String(length=50), nullable=False, server_default=sa.text("'completed'")),
        sa.Column("logged_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_protocol_logs_user_module", "protocol_logs", ["user_id", "module_id"], unique=False)

    op.create_table(
        "daily_tasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("task_key", sa.String(length=160), nullable=False),
        sa.Column("task_date", sa.Date(), nullable=False),
        sa.Column("protocol_id", sa.String(length=120), nullable=False),
        sa.Column("module_id", sa.String(length=120), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("emphasis", sa.String(length=20), nullable=False, server_default=sa.text("'normal'")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'pending'")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "task_key", name="uq_daily_tasks_user_task_key"),
    )
    op.create_index("ix_daily_tasks_user_date", "daily_tasks", ["user_id", "task_date"], unique=False)

    op.create_table(
        "calendar_integrations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync_status", sa.String(length=20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("last_sync_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "provider", name="uq_calendar_integrations_user_provider"),
    )

    op.create_table(
        "daily_calendar_metrics",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("meeting_hours", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("meeting_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("back_to_back_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("density", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("heavy_day", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("overload", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("mvd_activated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("provider", sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "date", name="uq_daily_calendar_metrics_user_date"),
    )
    op.create_index("ix_daily_calendar_metrics_user_id", "daily_calendar_metrics", ["user_id"], unique=False)

    op.create_table(
        "user_state",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("mvd_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("mvd_type", sa.String(length=50), nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exit_condition", sa.Text(), nullable=True),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_deactivation_reason", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "mvd_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("mvd_type", sa.String(length=50), nullable=False),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_hours", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_mvd_history_user_id", "mvd_history", ["user_id"], unique=False)

    op.create_table(
        "live_nudges",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("nudge_key", sa.String(length=200), nullable=False),
        sa.Column("module_id", sa.String(length=120), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False, server_default=sa.text("'streak_maintenance'")),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("nudge_text", sa.Text(), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("priority", sa.String(length=20), nullable=False, server_default=sa.text("'medium'")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("source", sa.String(length=50), nullable=False, server_default=sa.text("'streak_maintenance'")),
        sa.Column("delivery_status", sa.String(length=20), nullable=True),
        sa.Column("delivery_reason", sa.Text(), nullable=True),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "nudge_key", name="uq_live_nudges_user_nudge_key"),
    )
    op.create_index("ix_live_nudges_user_id", "live_nudges", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_live_nudges_user_id", table_name="live_nudges")
    op.drop_table("live_nudges")

    op.drop_index("ix_mvd_history_user_id", table_name="mvd_history")
    op.drop_table("mvd_history")
    op.drop_table("user_state")

    op.drop_index("ix_daily_calendar_metrics_user_id", table_name="daily_calendar_metrics")
    op.drop_table("daily_calendar_metrics")
    op.drop_table("calendar_integrations")

    op.drop_index("ix_daily_tasks_user_date", table_name="daily_tasks")
    op.drop_table("daily_tasks")

    op.drop_index("ix_protocol_logs_user_module", table_name="protocol_logs")
    op.drop_table("protocol_logs")

    op.drop_index("ix_user_protocol_enrollment_user_id", table_name="user_protocol_enrollment")
    op.drop_table("user_protocol_enrollment")

    op.drop_index("ix_module_enrollment_user_id", table_name="module_enrollment")
    op.drop_table("module_enrollment")

    op.drop_index("ix_module_protocol_map_module_id", table_name="module_protocol_map")
    op.drop_table("module_protocol_map")
    op.drop_table("protocols")

    op.drop_table("users")
