"""Initial pipeline schema: subjects, analysis artifacts, usage ledger."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "subjects",
        sa.Column("subject_id", sa.String(), primary_key=True),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("media_url", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("analysis_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_subjects_account_id", "subjects", ["account_id"])
    op.create_index("ix_subjects_status", "subjects", ["status"])

    op.create_table(
        "analysis_reports",
        sa.Column("report_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("overall_score", sa.Float(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("analysis_type", sa.String(), nullable=False, server_default="full"),
        sa.Column("focus_areas_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("play_count", sa.Integer(), nullable=True),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_home", sa.Integer(), nullable=True),
        sa.Column("points_away", sa.Integer(), nullable=True),
        sa.Column("ai_model", sa.String(), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("parse_degraded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_analysis_reports_subject_id", "analysis_reports", ["subject_id"])
    op.create_index("ix_analysis_reports_account_id", "analysis_reports", ["account_id"])

    op.create_table(
        "analysis_errors",
        sa.Column("error_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "report_id",
            sa.Integer(),
            sa.ForeignKey("analysis_reports.report_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("time_range", sa.String(), nullable=False, server_default=""),
        sa.Column("frequency", sa.String(), nullable=False, server_default=""),
        sa.Column("player_description", sa.String(), nullable=True),
        sa.Column("video_timestamp", sa.Integer(), nullable=True),
    )
    op.create_index("ix_analysis_errors_report_id", "analysis_errors", ["report_id"])
    op.create_index("ix_analysis_errors_category", "analysis_errors", ["category"])

    op.create_table(
        "analysis_exercises",
        sa.Column("exercise_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "report_id",
            sa.Integer(),
            sa.ForeignKey("analysis_reports.report_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("duration", sa.String(), nullable=False),
        sa.Column("sets", sa.String(), nullable=False),
        sa.Column("target_area", sa.String(), nullable=False),
        sa.Column("difficulty", sa.String(), nullable=False, server_default="intermediate"),
        sa.Column("related_error", sa.String(), nullable=True),
    )
    op.create_index("ix_analysis_exercises_report_id", "analysis_exercises", ["report_id"])

    op.create_table(
        "analysis_subject_stats",
        sa.Column("stat_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "report_id",
            sa.Integer(),
            sa.ForeignKey("analysis_reports.report_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("player_ref", sa.String(), nullable=True),
        sa.Column("description", sa.String(), nullable=False, server_default=""),
        sa.Column("position", sa.String(), nullable=False, server_default="unknown"),
        sa.Column("reception", sa.Text(), nullable=True),
        sa.Column("attack", sa.Text(), nullable=True),
        sa.Column("blocking", sa.Text(), nullable=True),
        sa.Column("serving", sa.Text(), nullable=True),
        sa.Column("setting", sa.Text(), nullable=True),
        sa.Column("defense", sa.Text(), nullable=True),
        sa.Column("overall_rating", sa.Float(), nullable=True),
    )
    op.create_index(
        "ix_analysis_subject_stats_report_id",
        "analysis_subject_stats",
        ["report_id"],
    )
    op.create_index(
        "ix_analysis_subject_stats_player_ref",
        "analysis_subject_stats",
        ["player_ref"],
    )

    op.create_table(
        "usage_records",
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("capability", sa.String(), nullable=False),
        sa.Column("used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("limit_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("account_id", "capability", name="pk_usage_records"),
    )


def downgrade() -> None:
    op.drop_table("usage_records")
    op.drop_index("ix_analysis_subject_stats_player_ref", table_name="analysis_subject_stats")
    op.drop_index("ix_analysis_subject_stats_report_id", table_name="analysis_subject_stats")
    op.drop_table("analysis_subject_stats")
    op.drop_index("ix_analysis_exercises_report_id", table_name="analysis_exercises")
    op.drop_table("analysis_exercises")
    op.drop_index("ix_analysis_errors_category", table_name="analysis_errors")
    op.drop_index("ix_analysis_errors_report_id", table_name="analysis_errors")
    op.drop_table("analysis_errors")
    op.drop_index("ix_analysis_reports_account_id", table_name="analysis_reports")
    op.drop_index("ix_analysis_reports_subject_id", table_name="analysis_reports")
    op.drop_table("analysis_reports")
    op.drop_index("ix_subjects_status", table_name="subjects")
    op.drop_index("ix_subjects_account_id", table_name="subjects")
    op.drop_table("subjects")
