"""Controllers for pipeline CLI commands."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from volley_coach.config import Settings
from volley_coach.pipeline.bootstrap import open_runtime
from volley_coach.pipeline.ledger import UsageLedger
from volley_coach.pipeline.models import Result, ResultStatus, Task, TaskType
from volley_coach.pipeline.store import ResultStore


@dataclass(slots=True)
class DbInitCommand:
    db_path: Path | None


@dataclass(slots=True)
class SubmitCommand:
    """CLI input for one pipeline submission."""

    db_path: Path | None
    task_type: str
    subject_id: str
    account_id: str
    tier: str
    media_url: str | None = None
    mime_type: str | None = None
    analysis_type: str | None = None
    focus_areas: tuple[str, ...] = ()
    report_id: int | None = None
    player_ref: str | None = None
    limit: int | None = None
    task_id: str | None = None


@dataclass(slots=True)
class SubmitOutcome:
    lines: list[str]
    success: bool


@dataclass(slots=True)
class UsageShowCommand:
    db_path: Path | None
    account_id: str
    capability: str


@dataclass(slots=True)
class ReportShowCommand:
    db_path: Path | None
    report_id: int
    output_format: str = "summary"


class PipelineCliController:
    """Coordinates schema, submission and inspection CLI operations."""

    def init_db(self, command: DbInitCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        store = ResultStore(db_path=settings.db_path)
        try:
            store.init_schema()
        finally:
            store.close()
        return [f"Database ready: {settings.db_path}"]

    def submit(self, command: SubmitCommand) -> SubmitOutcome:
        settings = Settings.from_env(db_path=command.db_path)
        task = Task(
            task_type=command.task_type,
            subject_id=command.subject_id,
            account_id=command.account_id,
            tier=command.tier,
            payload=build_payload(command),
            **({"task_id": command.task_id} if command.task_id else {}),
        )
        result = asyncio.run(_submit(settings, task))
        return SubmitOutcome(
            lines=[json.dumps(result.to_payload(), indent=2, ensure_ascii=False)],
            success=result.status is not ResultStatus.FAILED,
        )

    def usage_show(self, command: UsageShowCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _store(settings):
            ledger = UsageLedger(db_path=settings.db_path)
            try:
                usage = asyncio.run(ledger.check(command.account_id, command.capability))
            finally:
                ledger.close()
        limit = "unlimited" if usage.limit == -1 else str(usage.limit)
        period_end = usage.period_end.isoformat() if usage.period_end else "-"
        return [
            f"Usage: account={command.account_id} capability={command.capability} "
            f"used={usage.used} limit={limit} allowed={str(usage.allowed).lower()} "
            f"period_end={period_end}",
        ]

    def report_show(self, command: ReportShowCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _store(settings) as store:
            report = asyncio.run(store.get_report(command.report_id))
        if report is None:
            raise LookupError(f"Analysis report {command.report_id} not found")
        if command.output_format == "json":
            return [json.dumps(report.to_payload(), indent=2, ensure_ascii=False)]

        score = f"{report.overall_score:g}" if report.overall_score is not None else "unknown"
        lines = [
            f"Report {report.report_id}: subject={report.subject_id} account={report.account_id} "
            f"score={score} degraded={str(report.parse_degraded).lower()}",
            f"Counts: errors={len(report.errors)} exercises={len(report.exercises)} "
            f"stats={len(report.stats)} plays={_or_unknown(report.play_count)} "
            f"points={_or_unknown(report.points_home)}-{_or_unknown(report.points_away)}",
            f"Summary: {report.summary}",
        ]
        lines.extend(
            f"- [{error.severity.value}] {error.title}"
            + (f" ({error.category.value})" if error.category else "")
            for error in report.errors
        )
        return lines


def build_payload(command: SubmitCommand) -> dict[str, Any]:
    """Translate CLI options into the task payload for ``command.task_type``."""

    payload: dict[str, Any] = {}
    if command.task_type == TaskType.ANALYZE.value:
        if command.media_url is not None:
            payload["mediaUrl"] = command.media_url
        if command.mime_type is not None:
            payload["mimeType"] = command.mime_type
        if command.analysis_type is not None:
            payload["analysisType"] = command.analysis_type
        if command.focus_areas:
            payload["focusAreas"] = list(command.focus_areas)
    elif command.task_type == TaskType.GENERATE_PLAN.value:
        if command.report_id is not None:
            payload["reportId"] = command.report_id
    elif command.task_type == TaskType.ASSESS.value:
        if command.player_ref is not None:
            payload["playerRef"] = command.player_ref
        if command.limit is not None:
            payload["limit"] = command.limit
    return payload


async def _submit(settings: Settings, task: Task) -> Result:
    async with open_runtime(settings) as runtime:
        return await runtime.orchestrator.submit(task)


def _or_unknown(value: int | None) -> str:
    return "?" if value is None else str(value)


@contextmanager
def _store(settings: Settings) -> Iterator[ResultStore]:
    store = ResultStore(db_path=settings.db_path)
    store.init_schema()
    try:
        yield store
    finally:
        store.close()
