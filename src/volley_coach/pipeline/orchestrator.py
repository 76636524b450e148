"""Task orchestrator: tier gating, staged processing, quota and notifications."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any
from uuid import uuid4

from volley_coach.pipeline.broadcaster import ProgressBroadcaster, ProgressReporter
from volley_coach.pipeline.contracts import (
    AnalyzePayload,
    AssessPayload,
    GeneratePlanPayload,
    parse_task_payload,
)
from volley_coach.pipeline.ledger import UsageLedger
from volley_coach.pipeline.models import (
    ErrorKind,
    NotificationMessage,
    PipelineError,
    ProgressStage,
    Result,
    ResultStatus,
    SubjectStatus,
    Task,
    TaskType,
)
from volley_coach.pipeline.notifier import Notifier
from volley_coach.pipeline.processors import (
    AgentCard,
    PlanGenerationProcessor,
    PlanRequest,
    VisionAnalysisProcessor,
    VisionRequest,
)
from volley_coach.pipeline.processors.base import elapsed_ms
from volley_coach.pipeline.store import ResultStore
from volley_coach.tiers import CapabilityGate, next_quota_tier, parse_tier, resolve_gate

logger = logging.getLogger(__name__)

EMPTY_ASSESSMENT_CONFIDENCE = 0.5
ASSESSMENT_CONFIDENCE = 0.85


class Orchestrator:
    """Coordinates one pipeline run per submitted task.

    Collaborators are injected; the orchestrator owns only the in-memory
    per-subject exclusivity set, pending cancellations and background
    notification tasks.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        vision: VisionAnalysisProcessor,
        plan: PlanGenerationProcessor,
        store: ResultStore,
        ledger: UsageLedger,
        broadcaster: ProgressBroadcaster,
        notifier: Notifier,
    ) -> None:
        self.agent_id = f"orchestrator_{uuid4().hex[:12]}"
        self.vision = vision
        self.plan = plan
        self.store = store
        self.ledger = ledger
        self.broadcaster = broadcaster
        self.notifier = notifier
        self._in_flight: set[str] = set()
        self._cancelled: set[str] = set()
        self._background: set[asyncio.Task[None]] = set()

    def describe_agents(self) -> list[AgentCard]:
        return [self.vision.describe(), self.plan.describe()]

    def is_in_flight(self, subject_id: str) -> bool:
        return subject_id in self._in_flight

    def cancel(self, subject_id: str) -> None:
        """Prevent the next run for ``subject_id`` from starting.

        A run that is already dispatched is not interrupted.
        """

        self._cancelled.add(subject_id)

    async def drain(self) -> None:
        """Wait for pending notification deliveries."""

        while self._background:
            await asyncio.gather(*tuple(self._background), return_exceptions=True)

    async def submit(self, task: Task) -> Result:  # noqa: PLR0911
        """Run ``task`` to a terminal state and return its result envelope."""

        started = time.monotonic()
        try:
            task_type = TaskType(task.task_type)
        except ValueError:
            return self._failed(
                task,
                ErrorKind.UNKNOWN_TASK_TYPE,
                f"Unknown task type: {task.task_type!r}",
                started,
            )
        try:
            tier = parse_tier(task.tier)
        except ValueError as error:
            return self._failed(task, ErrorKind.INVALID_PAYLOAD, str(error), started)

        gate = resolve_gate(tier, task_type)
        if not gate.enabled:
            return self._failed(
                task,
                ErrorKind.UPGRADE_REQUIRED,
                f"{task_type.value} requires the {gate.required_tier.value} tier or higher.",
                started,
                details={
                    "requiredTier": gate.required_tier.value,
                    "currentTier": tier.value,
                    "capability": gate.capability.value,
                },
            )

        try:
            payload = parse_task_payload(task_type, task.payload)
        except (TypeError, ValueError) as error:
            return self._failed(task, ErrorKind.INVALID_PAYLOAD, str(error), started)

        if task.subject_id in self._cancelled:
            self._cancelled.discard(task.subject_id)
            logger.info("Run for subject %s cancelled before start", task.subject_id)
            return self._failed(
                task,
                ErrorKind.CANCELLED,
                f"Processing of subject {task.subject_id} was cancelled.",
                started,
            )
        if task.subject_id in self._in_flight:
            return self._failed(
                task,
                ErrorKind.ALREADY_IN_PROGRESS,
                f"Subject {task.subject_id} is already being processed.",
                started,
                details={"subjectId": task.subject_id},
            )

        self._in_flight.add(task.subject_id)
        reporter = self.broadcaster.reporter(task.subject_id)
        try:
            if gate.metered:
                usage = await self.ledger.check(
                    task.account_id,
                    gate.capability.value,
                    limit=gate.limit,
                )
                if not usage.allowed:
                    upgrade = next_quota_tier(tier, gate.capability)
                    return self._failed(
                        task,
                        ErrorKind.QUOTA_EXCEEDED,
                        f"Monthly {gate.capability.value} quota reached ({usage.used}/{usage.limit}).",
                        started,
                        details={
                            "used": usage.used,
                            "limit": usage.limit,
                            "periodEnd": usage.period_end.isoformat() if usage.period_end else None,
                            "requiredTier": upgrade.value if upgrade is not None else None,
                        },
                    )
            if isinstance(payload, AnalyzePayload):
                return await self._run_analysis(task, payload, gate, reporter, started)
            if isinstance(payload, GeneratePlanPayload):
                return await self._run_plan(task, payload, started)
            return await self._run_assessment(task, payload, started)
        except Exception as error:  # noqa: BLE001
            logger.exception("Unexpected failure processing task %s", task.task_id)
            if task_type is TaskType.ANALYZE:
                await self._mark_failed(task)
                reporter.emit(ProgressStage.ERROR, 0, "Analysis failed unexpectedly.")
            return self._failed(
                task,
                ErrorKind.PROCESSING_ERROR,
                f"Unexpected error: {error}",
                started,
                details={"exceptionType": type(error).__name__},
            )
        finally:
            self._in_flight.discard(task.subject_id)

    async def aclose(self) -> None:
        await self.drain()

    async def _run_analysis(
        self,
        task: Task,
        payload: AnalyzePayload,
        gate: CapabilityGate,
        reporter: ProgressReporter,
        started: float,
    ) -> Result:
        await self.store.mark_subject(
            task.subject_id,
            account_id=task.account_id,
            status=SubjectStatus.PROCESSING,
            media_url=payload.media_url,
        )
        reporter.emit(ProgressStage.QUEUED, 5, "Analysis queued.")
        reporter.emit(ProgressStage.ANALYZING, 10, "Analyzing video...")
        logger.info("Stage 1 started for subject %s (task %s)", task.subject_id, task.task_id)

        stage1 = await self.vision.process(
            VisionRequest(
                task_id=task.task_id,
                subject_id=task.subject_id,
                account_id=task.account_id,
                payload=payload,
            ),
            progress=lambda percent, message: reporter.emit(
                ProgressStage.ANALYZING,
                percent,
                message,
            ),
        )
        if stage1.status is ResultStatus.FAILED:
            logger.info(
                "Stage 1 failed for subject %s: %s",
                task.subject_id,
                stage1.error.message if stage1.error else "unknown error",
            )
            await self.store.mark_subject(
                task.subject_id,
                account_id=task.account_id,
                status=SubjectStatus.FAILED,
            )
            reporter.emit(
                ProgressStage.ERROR,
                0,
                stage1.error.message if stage1.error else "Analysis failed.",
            )
            return stage1

        reporter.emit(ProgressStage.GENERATING, 70, "Generating coaching recommendations...")
        report_id = int(stage1.data["reportId"])
        stage2_started = time.monotonic()
        try:
            stage2 = await self.plan.process(PlanRequest(task_id=task.task_id, report_id=report_id))
        except Exception as error:  # noqa: BLE001
            logger.exception("Stage 2 crashed for subject %s (task %s)", task.subject_id, task.task_id)
            stage2 = self.plan.failed(
                task_id=task.task_id,
                kind=ErrorKind.PROCESSING_ERROR,
                message=f"Plan generation failed unexpectedly: {error}",
                started=stage2_started,
                details={"exceptionType": type(error).__name__},
            )

        data: dict[str, Any] = dict(stage1.data)
        if stage2.status is ResultStatus.FAILED:
            status = ResultStatus.PARTIAL
            data["plan"] = None
            data["planError"] = stage2.error.to_payload() if stage2.error else None
            logger.warning(
                "Stage 2 failed for subject %s; returning partial result",
                task.subject_id,
            )
        else:
            status = ResultStatus.SUCCESS
            data["plan"] = stage2.data

        await self.store.mark_subject(
            task.subject_id,
            account_id=task.account_id,
            status=SubjectStatus.COMPLETE,
        )
        used = await self.ledger.increment(
            task.account_id,
            gate.capability.value,
            limit=gate.limit,
        )
        data["usage"] = {"used": used, "limit": gate.limit}
        reporter.emit(ProgressStage.COMPLETE, 100, "Analysis complete! View your results.")
        logger.info(
            "Pipeline finished for subject %s: status=%s used=%d",
            task.subject_id,
            status.value,
            used,
        )
        self._notify(
            NotificationMessage(
                account_id=task.account_id,
                type="analysis_ready",
                title="Analysis Ready",
                body="Your volleyball video analysis is complete. Tap to view results.",
                data={"subjectId": task.subject_id, "reportId": report_id},
            ),
        )
        return Result(
            task_id=task.task_id,
            agent_id=self.agent_id,
            status=status,
            data=data,
            confidence=stage1.confidence,
            processing_time_ms=elapsed_ms(started),
            error=stage1.error,
        )

    async def _run_plan(self, task: Task, payload: GeneratePlanPayload, started: float) -> Result:
        result = await self.plan.process(
            PlanRequest(task_id=task.task_id, report_id=payload.report_id),
        )
        return Result(
            task_id=task.task_id,
            agent_id=self.agent_id,
            status=result.status,
            data=result.data,
            confidence=result.confidence,
            processing_time_ms=elapsed_ms(started),
            error=result.error,
        )

    async def _run_assessment(self, task: Task, payload: AssessPayload, started: float) -> Result:
        stats = await self.store.list_subject_stats(payload.player_ref, limit=payload.limit)
        if not stats:
            return Result(
                task_id=task.task_id,
                agent_id=self.agent_id,
                status=ResultStatus.PARTIAL,
                data={
                    "message": "No analysis data found for this player",
                    "playerRef": payload.player_ref,
                },
                confidence=EMPTY_ASSESSMENT_CONFIDENCE,
                processing_time_ms=elapsed_ms(started),
            )

        ratings = [
            stat.overall_rating
            for stat in stats
            if stat.overall_rating is not None and stat.overall_rating > 0
        ]
        average = sum(ratings) / len(ratings) if ratings else 0.0
        if len(ratings) >= 2:
            trend = "improving" if ratings[0] > ratings[-1] else "declining"
        else:
            trend = "insufficient_data"
        latest = stats[0]
        return Result(
            task_id=task.task_id,
            agent_id=self.agent_id,
            status=ResultStatus.SUCCESS,
            data={
                "playerRef": payload.player_ref,
                "averageRating": round(average, 1),
                "trend": trend,
                "analysisCount": len(stats),
                "latestStat": {
                    "statId": latest.stat_id,
                    "reportId": latest.report_id,
                    "overallRating": latest.overall_rating,
                    "createdAt": latest.created_at.isoformat(),
                },
                "historicalRatings": ratings,
            },
            confidence=ASSESSMENT_CONFIDENCE,
            processing_time_ms=elapsed_ms(started),
        )

    async def _mark_failed(self, task: Task) -> None:
        try:
            await self.store.mark_subject(
                task.subject_id,
                account_id=task.account_id,
                status=SubjectStatus.FAILED,
            )
        except Exception:  # noqa: BLE001
            logger.exception("Could not mark subject %s as failed", task.subject_id)

    def _notify(self, message: NotificationMessage) -> None:
        background = asyncio.create_task(self._deliver(message))
        self._background.add(background)
        background.add_done_callback(self._background.discard)

    async def _deliver(self, message: NotificationMessage) -> None:
        try:
            await self.notifier.deliver(message)
        except Exception:  # noqa: BLE001
            logger.warning(
                "Notification delivery failed for account %s",
                message.account_id,
                exc_info=True,
            )

    def _failed(
        self,
        task: Task,
        kind: ErrorKind,
        message: str,
        started: float,
        *,
        details: dict[str, Any] | None = None,
    ) -> Result:
        return Result(
            task_id=task.task_id,
            agent_id=self.agent_id,
            status=ResultStatus.FAILED,
            data={},
            confidence=0.0,
            processing_time_ms=elapsed_ms(started),
            error=PipelineError(kind=kind, message=message, details=details or {}),
        )
