"""SQLModel ORM tables for pipeline storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, PrimaryKeyConstraint, Text
from sqlmodel import Field, SQLModel


class Subject(SQLModel, table=True):
    __tablename__ = "subjects"  # type: ignore[bad-override]

    subject_id: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    media_url: str | None = None
    status: str = Field(index=True)
    analysis_complete: bool = False
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AnalysisReport(SQLModel, table=True):
    __tablename__ = "analysis_reports"  # type: ignore[bad-override]

    report_id: int | None = Field(default=None, primary_key=True)
    subject_id: str = Field(index=True)
    account_id: str = Field(index=True)
    task_id: str
    overall_score: float | None = None
    summary: str = Field(sa_column=Column(Text, nullable=False))
    analysis_type: str = "full"
    focus_areas_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    play_count: int | None = None
    error_count: int = 0
    points_home: int | None = None
    points_away: int | None = None
    ai_model: str | None = None
    processing_time_ms: int = 0
    parse_degraded: bool = False
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AnalysisErrorRow(SQLModel, table=True):
    __tablename__ = "analysis_errors"  # type: ignore[bad-override]

    error_id: int | None = Field(default=None, primary_key=True)
    report_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("analysis_reports.report_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    title: str
    description: str = Field(sa_column=Column(Text, nullable=False))
    severity: str
    category: str | None = Field(default=None, index=True)
    time_range: str = ""
    frequency: str = ""
    player_description: str | None = None
    video_timestamp: int | None = None


class AnalysisExerciseRow(SQLModel, table=True):
    __tablename__ = "analysis_exercises"  # type: ignore[bad-override]

    exercise_id: int | None = Field(default=None, primary_key=True)
    report_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("analysis_reports.report_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    name: str
    description: str = Field(sa_column=Column(Text, nullable=False))
    duration: str
    sets: str
    target_area: str
    difficulty: str = "intermediate"
    related_error: str | None = None


class AnalysisSubjectStatRow(SQLModel, table=True):
    __tablename__ = "analysis_subject_stats"  # type: ignore[bad-override]

    stat_id: int | None = Field(default=None, primary_key=True)
    report_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("analysis_reports.report_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    player_ref: str | None = Field(default=None, index=True)
    description: str = ""
    position: str = "unknown"
    reception: str | None = Field(default=None, sa_column=Column(Text))
    attack: str | None = Field(default=None, sa_column=Column(Text))
    blocking: str | None = Field(default=None, sa_column=Column(Text))
    serving: str | None = Field(default=None, sa_column=Column(Text))
    setting: str | None = Field(default=None, sa_column=Column(Text))
    defense: str | None = Field(default=None, sa_column=Column(Text))
    overall_rating: float | None = None


class UsageRecord(SQLModel, table=True):
    __tablename__ = "usage_records"  # type: ignore[bad-override]
    __table_args__ = (
        PrimaryKeyConstraint("account_id", "capability", name="pk_usage_records"),
    )

    account_id: str
    capability: str
    used: int = 0
    limit_value: int = 0
    period_end: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
