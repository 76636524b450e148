"""Result store: persisted analysis artifacts and subject status."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from pathlib import Path

from sqlmodel import Session, col, select

from volley_coach.pipeline.models import (
    AnalysisErrorWrite,
    AnalysisReportView,
    AnalysisReportWrite,
    Difficulty,
    ExerciseWrite,
    Severity,
    SkillCategory,
    SubjectStatus,
    SubjectStatView,
    SubjectStatWrite,
    SubjectView,
)
from volley_coach.storage.alembic_runner import upgrade_head
from volley_coach.storage.common import as_utc, build_sqlite_engine, utc_now
from volley_coach.storage.sqlmodel_models import (
    AnalysisErrorRow,
    AnalysisExerciseRow,
    AnalysisReport,
    AnalysisSubjectStatRow,
    Subject,
)


class ReportNotFoundError(LookupError):
    """Referenced analysis report does not exist."""

    def __init__(self, report_id: int) -> None:
        super().__init__(f"Analysis report {report_id} not found")
        self.report_id = report_id


class ResultStore:
    """Artifact persistence facade backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    async def mark_subject(
        self,
        subject_id: str,
        *,
        account_id: str,
        status: SubjectStatus,
        media_url: str | None = None,
    ) -> None:
        """Create or update the subject row with a new status."""

        await asyncio.to_thread(
            self._mark_subject,
            subject_id,
            account_id,
            status,
            media_url,
        )

    async def get_subject(self, subject_id: str) -> SubjectView | None:
        return await asyncio.to_thread(self._get_subject, subject_id)

    async def save_analysis(
        self,
        report: AnalysisReportWrite,
        errors: Sequence[AnalysisErrorWrite],
        exercises: Sequence[ExerciseWrite] = (),
        stats: Sequence[SubjectStatWrite] = (),
    ) -> int:
        """Persist one Stage 1 report with its child rows; return the report id."""

        return await asyncio.to_thread(self._save_analysis, report, errors, exercises, stats)

    async def save_plan(self, report_id: int, exercises: Sequence[ExerciseWrite]) -> int:
        """Append Stage 2 exercises to an existing report; return inserted count."""

        return await asyncio.to_thread(self._save_plan, report_id, exercises)

    async def get_report(self, report_id: int) -> AnalysisReportView | None:
        return await asyncio.to_thread(self._get_report, report_id)

    async def list_subject_stats(self, player_ref: str, *, limit: int = 10) -> list[SubjectStatView]:
        """Most recent stat rows for one player reference, newest first."""

        return await asyncio.to_thread(self._list_subject_stats, player_ref, limit)

    def _mark_subject(
        self,
        subject_id: str,
        account_id: str,
        status: SubjectStatus,
        media_url: str | None,
    ) -> None:
        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(Subject, subject_id)
            if row is None:
                row = Subject(
                    subject_id=subject_id,
                    account_id=account_id,
                    media_url=media_url,
                    status=status.value,
                    created_at=now,
                    updated_at=now,
                )
            else:
                row.status = status.value
                row.updated_at = now
                if media_url is not None:
                    row.media_url = media_url
            if status is SubjectStatus.COMPLETE:
                row.analysis_complete = True
            session.add(row)
            session.commit()

    def _get_subject(self, subject_id: str) -> SubjectView | None:
        with Session(self.engine) as session:
            row = session.get(Subject, subject_id)
            if row is None:
                return None
            return SubjectView(
                subject_id=row.subject_id,
                account_id=row.account_id,
                media_url=row.media_url,
                status=SubjectStatus(row.status),
                analysis_complete=row.analysis_complete,
                updated_at=as_utc(row.updated_at) or utc_now(),
            )

    def _save_analysis(
        self,
        report: AnalysisReportWrite,
        errors: Sequence[AnalysisErrorWrite],
        exercises: Sequence[ExerciseWrite],
        stats: Sequence[SubjectStatWrite],
    ) -> int:
        with Session(self.engine) as session:
            row = AnalysisReport(
                subject_id=report.subject_id,
                account_id=report.account_id,
                task_id=report.task_id,
                overall_score=report.overall_score,
                summary=report.summary,
                analysis_type=report.analysis_type,
                focus_areas_json=json.dumps(list(report.focus_areas)),
                play_count=report.play_count,
                error_count=len(errors),
                points_home=report.points_home,
                points_away=report.points_away,
                ai_model=report.ai_model,
                processing_time_ms=report.processing_time_ms,
                parse_degraded=report.parse_degraded,
                created_at=utc_now(),
            )
            session.add(row)
            session.flush()
            report_id = row.report_id
            if report_id is None:
                raise RuntimeError("Report insert did not return a primary key")
            session.add_all(_error_rows(report_id, errors))
            session.add_all(_exercise_rows(report_id, exercises))
            session.add_all(_stat_rows(report_id, stats))
            session.commit()
            return report_id

    def _save_plan(self, report_id: int, exercises: Sequence[ExerciseWrite]) -> int:
        with Session(self.engine) as session:
            if session.get(AnalysisReport, report_id) is None:
                raise ReportNotFoundError(report_id)
            rows = _exercise_rows(report_id, exercises)
            session.add_all(rows)
            session.commit()
            return len(rows)

    def _get_report(self, report_id: int) -> AnalysisReportView | None:
        with Session(self.engine) as session:
            row = session.get(AnalysisReport, report_id)
            if row is None:
                return None
            error_rows = session.exec(
                select(AnalysisErrorRow)
                .where(AnalysisErrorRow.report_id == report_id)
                .order_by(col(AnalysisErrorRow.error_id).asc()),
            ).all()
            exercise_rows = session.exec(
                select(AnalysisExerciseRow)
                .where(AnalysisExerciseRow.report_id == report_id)
                .order_by(col(AnalysisExerciseRow.exercise_id).asc()),
            ).all()
            stat_rows = session.exec(
                select(AnalysisSubjectStatRow)
                .where(AnalysisSubjectStatRow.report_id == report_id)
                .order_by(col(AnalysisSubjectStatRow.stat_id).asc()),
            ).all()
            return AnalysisReportView(
                report_id=report_id,
                subject_id=row.subject_id,
                account_id=row.account_id,
                task_id=row.task_id,
                overall_score=row.overall_score,
                summary=row.summary,
                analysis_type=row.analysis_type,
                focus_areas=tuple(json.loads(row.focus_areas_json or "[]")),
                play_count=row.play_count,
                error_count=row.error_count,
                points_home=row.points_home,
                points_away=row.points_away,
                ai_model=row.ai_model,
                processing_time_ms=row.processing_time_ms,
                parse_degraded=row.parse_degraded,
                created_at=as_utc(row.created_at) or utc_now(),
                errors=[_to_error_write(item) for item in error_rows],
                exercises=[_to_exercise_write(item) for item in exercise_rows],
                stats=[_to_stat_write(item) for item in stat_rows],
            )

    def _list_subject_stats(self, player_ref: str, limit: int) -> list[SubjectStatView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(AnalysisSubjectStatRow, AnalysisReport)
                .join(
                    AnalysisReport,
                    col(AnalysisReport.report_id) == col(AnalysisSubjectStatRow.report_id),
                )
                .where(AnalysisSubjectStatRow.player_ref == player_ref)
                .order_by(col(AnalysisSubjectStatRow.stat_id).desc())
                .limit(max(1, limit)),
            ).all()
            return [
                SubjectStatView(
                    stat_id=stat.stat_id or 0,
                    report_id=stat.report_id,
                    player_ref=stat.player_ref,
                    overall_rating=stat.overall_rating,
                    created_at=as_utc(report.created_at) or utc_now(),
                )
                for stat, report in rows
            ]


def _error_rows(report_id: int, errors: Sequence[AnalysisErrorWrite]) -> list[AnalysisErrorRow]:
    return [
        AnalysisErrorRow(
            report_id=report_id,
            title=error.title,
            description=error.description,
            severity=error.severity.value,
            category=error.category.value if error.category is not None else None,
            time_range=error.time_range,
            frequency=error.frequency,
            player_description=error.player_description,
            video_timestamp=error.video_timestamp,
        )
        for error in errors
    ]


def _exercise_rows(
    report_id: int,
    exercises: Sequence[ExerciseWrite],
) -> list[AnalysisExerciseRow]:
    return [
        AnalysisExerciseRow(
            report_id=report_id,
            name=exercise.name,
            description=exercise.description,
            duration=exercise.duration,
            sets=exercise.sets,
            target_area=exercise.target_area,
            difficulty=exercise.difficulty.value,
            related_error=exercise.related_error,
        )
        for exercise in exercises
    ]


def _stat_rows(report_id: int, stats: Sequence[SubjectStatWrite]) -> list[AnalysisSubjectStatRow]:
    return [
        AnalysisSubjectStatRow(
            report_id=report_id,
            player_ref=stat.player_ref,
            description=stat.description,
            position=stat.position,
            reception=stat.reception,
            attack=stat.attack,
            blocking=stat.blocking,
            serving=stat.serving,
            setting=stat.setting,
            defense=stat.defense,
            overall_rating=stat.overall_rating,
        )
        for stat in stats
    ]


def _to_error_write(row: AnalysisErrorRow) -> AnalysisErrorWrite:
    return AnalysisErrorWrite(
        title=row.title,
        description=row.description,
        severity=Severity(row.severity),
        category=SkillCategory(row.category) if row.category else None,
        time_range=row.time_range,
        frequency=row.frequency,
        player_description=row.player_description,
        video_timestamp=row.video_timestamp,
    )


def _to_exercise_write(row: AnalysisExerciseRow) -> ExerciseWrite:
    return ExerciseWrite(
        name=row.name,
        description=row.description,
        duration=row.duration,
        sets=row.sets,
        target_area=row.target_area,
        difficulty=Difficulty(row.difficulty),
        related_error=row.related_error,
    )


def _to_stat_write(row: AnalysisSubjectStatRow) -> SubjectStatWrite:
    return SubjectStatWrite(
        player_ref=row.player_ref,
        description=row.description,
        position=row.position,
        reception=row.reception,
        attack=row.attack,
        blocking=row.blocking,
        serving=row.serving,
        setting=row.setting,
        defense=row.defense,
        overall_rating=row.overall_rating,
    )
