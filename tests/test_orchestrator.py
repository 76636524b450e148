from __future__ import annotations

import asyncio
from dataclasses import dataclass

import allure
import pytest
from conftest import BlockingBackend, FakeBackend, RecordingNotifier, plan_text, vision_text

from volley_coach.pipeline.backend.base import BackendCallError
from volley_coach.pipeline.broadcaster import ProgressBroadcaster
from volley_coach.pipeline.ledger import UsageLedger
from volley_coach.pipeline.models import (
    AnalysisReportWrite,
    ErrorKind,
    ProgressEvent,
    ProgressStage,
    Result,
    ResultStatus,
    SubjectStatus,
    SubjectStatWrite,
    Task,
)
from volley_coach.pipeline.orchestrator import Orchestrator
from volley_coach.pipeline.processors import PlanGenerationProcessor, VisionAnalysisProcessor
from volley_coach.pipeline.store import ResultStore

pytestmark = [
    allure.epic("Analysis Pipeline"),
    allure.feature("Orchestrator"),
]

MEDIA = {"mediaUrl": "https://cdn.test/match.mp4"}


@dataclass(slots=True)
class Harness:
    orchestrator: Orchestrator
    vision_backend: FakeBackend | None
    plan_backend: FakeBackend | None
    notifier: RecordingNotifier
    broadcaster: ProgressBroadcaster
    store: ResultStore
    ledger: UsageLedger


def _harness(
    store: ResultStore,
    ledger: UsageLedger,
    *,
    vision_backend: FakeBackend | None,
    plan_backend: FakeBackend | None = None,
    notifier: RecordingNotifier | None = None,
) -> Harness:
    broadcaster = ProgressBroadcaster()
    recorder = notifier or RecordingNotifier()
    orchestrator = Orchestrator(
        vision=VisionAnalysisProcessor(backend=vision_backend, store=store),
        plan=PlanGenerationProcessor(backend=plan_backend, store=store),
        store=store,
        ledger=ledger,
        broadcaster=broadcaster,
        notifier=recorder,
    )
    return Harness(orchestrator, vision_backend, plan_backend, recorder, broadcaster, store, ledger)


def _task(tier: str = "pro", task_type: str = "analyze", subject_id: str = "video-1", **kwargs) -> Task:
    return Task(
        task_type=task_type,
        subject_id=subject_id,
        account_id=kwargs.pop("account_id", "acct-1"),
        tier=tier,
        payload=kwargs.pop("payload", MEDIA),
        **kwargs,
    )


def _run(harness: Harness, task: Task) -> tuple[Result, list[ProgressEvent]]:
    async def scenario() -> tuple[Result, list[ProgressEvent]]:
        subscription = harness.broadcaster.subscribe(task.subject_id)
        result = await harness.orchestrator.submit(task)
        await harness.orchestrator.drain()
        events: list[ProgressEvent] = []
        while not subscription._queue.empty():
            events.append(subscription._queue.get_nowait())
        subscription.close()
        return result, events

    return asyncio.run(scenario())


def _used(ledger: UsageLedger, account_id: str = "acct-1") -> int:
    return asyncio.run(ledger.check(account_id, "video_analysis")).used


@pytest.mark.parametrize("tier", ["free", "starter"])
def test_disabled_tier_returns_upgrade_required_without_side_effects(
    store: ResultStore,
    ledger: UsageLedger,
    tier: str,
) -> None:
    harness = _harness(store, ledger, vision_backend=FakeBackend(vision_text()))

    result, events = _run(harness, _task(tier=tier))

    assert result.status is ResultStatus.FAILED
    assert result.error_kind is ErrorKind.UPGRADE_REQUIRED
    assert result.error is not None
    assert result.error.details["requiredTier"] == "pro"
    assert result.error.details["currentTier"] == tier
    assert harness.vision_backend is not None
    assert harness.vision_backend.calls == 0
    assert _used(ledger) == 0
    assert events == []
    assert asyncio.run(store.get_subject("video-1")) is None


def test_full_run_increments_quota_and_reports_progress(
    store: ResultStore,
    ledger: UsageLedger,
) -> None:
    asyncio.run(ledger.upsert_record("acct-1", "video_analysis", limit=5, used=4))
    harness = _harness(
        store,
        ledger,
        vision_backend=FakeBackend(vision_text()),
        plan_backend=FakeBackend(plan_text()),
    )

    result, events = _run(harness, _task())

    assert result.status is ResultStatus.SUCCESS
    assert result.agent_id == harness.orchestrator.agent_id
    assert result.confidence == 0.9
    assert result.data["plan"]["source"] == "ai"
    assert result.data["usage"] == {"used": 5, "limit": 5}
    assert _used(ledger) == 5

    percents = [event.progress_percent for event in events]
    assert percents == sorted(percents)
    assert percents[-1] == 100
    assert events[-1].stage is ProgressStage.COMPLETE
    assert {ProgressStage.ANALYZING, ProgressStage.GENERATING} <= {event.stage for event in events}

    subject = asyncio.run(store.get_subject("video-1"))
    assert subject is not None
    assert subject.status is SubjectStatus.COMPLETE
    assert [message.type for message in harness.notifier.messages] == ["analysis_ready"]
    assert harness.notifier.messages[0].data["reportId"] == result.data["reportId"]


def test_exhausted_quota_is_rejected_before_processing(
    store: ResultStore,
    ledger: UsageLedger,
) -> None:
    asyncio.run(ledger.upsert_record("acct-1", "video_analysis", limit=5, used=5))
    harness = _harness(store, ledger, vision_backend=FakeBackend(vision_text()))

    result, events = _run(harness, _task())

    assert result.error_kind is ErrorKind.QUOTA_EXCEEDED
    assert result.error is not None
    assert result.error.details["used"] == 5
    assert result.error.details["limit"] == 5
    assert result.error.details["requiredTier"] == "club"
    assert harness.vision_backend is not None
    assert harness.vision_backend.calls == 0
    assert events == []
    assert _used(ledger) == 5


def test_unlimited_tier_ignores_usage(store: ResultStore, ledger: UsageLedger) -> None:
    asyncio.run(ledger.upsert_record("acct-1", "video_analysis", limit=-1, used=500))
    harness = _harness(store, ledger, vision_backend=FakeBackend(vision_text()))

    result, _ = _run(harness, _task(tier="club"))

    assert result.status is ResultStatus.SUCCESS
    assert _used(ledger) == 501


def test_stage_one_failure_skips_stage_two_and_quota(
    store: ResultStore,
    ledger: UsageLedger,
) -> None:
    plan_backend = FakeBackend(plan_text())
    harness = _harness(
        store,
        ledger,
        vision_backend=FakeBackend(BackendCallError("HTTP 500", status_code=500)),
        plan_backend=plan_backend,
    )

    result, events = _run(harness, _task())

    assert result.status is ResultStatus.FAILED
    assert result.error_kind is ErrorKind.PROCESSING_ERROR
    assert result.agent_id == harness.orchestrator.vision.agent_id
    assert plan_backend.calls == 0
    assert _used(ledger) == 0
    assert events[-1].stage is ProgressStage.ERROR
    assert events[-1].progress_percent == 0
    subject = asyncio.run(store.get_subject("video-1"))
    assert subject is not None
    assert subject.status is SubjectStatus.FAILED
    assert harness.notifier.messages == []


def test_unconfigured_vision_backend_fails_run(store: ResultStore, ledger: UsageLedger) -> None:
    harness = _harness(store, ledger, vision_backend=None)

    result, _ = _run(harness, _task())

    assert result.error_kind is ErrorKind.CAPABILITY_NOT_CONFIGURED
    assert _used(ledger) == 0


def test_stage_two_failure_returns_partial_and_still_consumes_quota(
    store: ResultStore,
    ledger: UsageLedger,
) -> None:
    harness = _harness(
        store,
        ledger,
        vision_backend=FakeBackend(vision_text()),
        plan_backend=FakeBackend(BackendCallError("HTTP 503", status_code=503)),
    )

    result, events = _run(harness, _task())

    assert result.status is ResultStatus.PARTIAL
    assert result.data["reportId"]
    assert result.data["summary"]
    assert result.data["plan"] is None
    assert result.data["planError"]["kind"] == "processing_error"
    assert result.confidence == 0.9
    assert _used(ledger) == 1
    assert events[-1].progress_percent == 100
    subject = asyncio.run(store.get_subject("video-1"))
    assert subject is not None
    assert subject.status is SubjectStatus.COMPLETE
    assert len(harness.notifier.messages) == 1


def test_stage_two_crash_returns_partial(store: ResultStore, ledger: UsageLedger) -> None:
    harness = _harness(
        store,
        ledger,
        vision_backend=FakeBackend(vision_text()),
        plan_backend=FakeBackend(RuntimeError("plan driver crashed")),
    )

    result, events = _run(harness, _task())

    assert result.status is ResultStatus.PARTIAL
    assert result.data["plan"] is None
    assert result.data["planError"]["kind"] == "processing_error"
    assert result.data["planError"]["exceptionType"] == "RuntimeError"
    assert asyncio.run(store.get_report(result.data["reportId"])) is not None
    assert _used(ledger) == 1
    assert events[-1].stage is ProgressStage.COMPLETE
    subject = asyncio.run(store.get_subject("video-1"))
    assert subject is not None
    assert subject.status is SubjectStatus.COMPLETE
    assert not harness.orchestrator.is_in_flight("video-1")


def test_plan_write_failure_returns_partial(
    store: ResultStore,
    ledger: UsageLedger,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def failing_save_plan(report_id, exercises):
        raise OSError("disk I/O error")

    monkeypatch.setattr(store, "save_plan", failing_save_plan)
    harness = _harness(store, ledger, vision_backend=FakeBackend(vision_text()), plan_backend=None)

    result, events = _run(harness, _task())

    assert result.status is ResultStatus.PARTIAL
    assert result.data["planError"]["exceptionType"] == "OSError"
    assert result.confidence == 0.9
    assert _used(ledger) == 1
    assert events[-1].progress_percent == 100
    subject = asyncio.run(store.get_subject("video-1"))
    assert subject is not None
    assert subject.status is SubjectStatus.COMPLETE
    assert len(harness.notifier.messages) == 1


def test_unconfigured_plan_backend_uses_library(store: ResultStore, ledger: UsageLedger) -> None:
    harness = _harness(store, ledger, vision_backend=FakeBackend(vision_text()), plan_backend=None)

    result, _ = _run(harness, _task())

    assert result.status is ResultStatus.SUCCESS
    plan = result.data["plan"]
    assert plan["source"] == "library"
    areas = [exercise["targetArea"] for exercise in plan["exercises"]]
    assert areas[0] == "general"
    assert {"blocking", "serving"} <= set(areas)
    assert result.confidence == 0.9


def test_degraded_stage_one_caps_confidence(store: ResultStore, ledger: UsageLedger) -> None:
    harness = _harness(store, ledger, vision_backend=FakeBackend("unstructured rambling " * 100))

    result, _ = _run(harness, _task())

    assert result.status is ResultStatus.SUCCESS
    assert result.error_kind is ErrorKind.PARSE_DEGRADED
    assert result.confidence <= 0.5
    assert len(result.data["summary"]) <= 500
    assert [exercise["targetArea"] for exercise in result.data["plan"]["exercises"]] == ["general"]


def test_duplicate_submission_is_rejected_while_in_flight(
    store: ResultStore,
    ledger: UsageLedger,
) -> None:
    backend = BlockingBackend(vision_text())
    harness = _harness(store, ledger, vision_backend=backend)

    async def scenario() -> tuple[Result, Result, bool]:
        first = asyncio.create_task(harness.orchestrator.submit(_task()))
        await backend.entered.wait()
        second = await harness.orchestrator.submit(_task())
        in_flight = harness.orchestrator.is_in_flight("video-1")
        backend.release.set()
        first_result = await first
        await harness.orchestrator.drain()
        return first_result, second, in_flight

    first, second, in_flight = asyncio.run(scenario())

    assert in_flight
    assert second.error_kind is ErrorKind.ALREADY_IN_PROGRESS
    assert first.status is ResultStatus.SUCCESS
    assert backend.calls == 1
    assert _used(ledger) == 1
    assert not harness.orchestrator.is_in_flight("video-1")


def test_different_subjects_run_concurrently(store: ResultStore, ledger: UsageLedger) -> None:
    harness = _harness(store, ledger, vision_backend=FakeBackend(vision_text(), vision_text()))

    async def scenario() -> list[Result]:
        results = await asyncio.gather(
            harness.orchestrator.submit(_task(subject_id="video-a")),
            harness.orchestrator.submit(_task(subject_id="video-b")),
        )
        await harness.orchestrator.drain()
        return list(results)

    results = asyncio.run(scenario())

    assert [result.status for result in results] == [ResultStatus.SUCCESS, ResultStatus.SUCCESS]
    assert _used(ledger) == 2


def test_unexpected_exception_becomes_processing_error(
    store: ResultStore,
    ledger: UsageLedger,
) -> None:
    class ExplodingBackend(FakeBackend):
        async def generate(self, request):
            raise RuntimeError("driver crashed")

    harness = _harness(store, ledger, vision_backend=ExplodingBackend())

    result, events = _run(harness, _task())

    assert result.status is ResultStatus.FAILED
    assert result.error_kind is ErrorKind.PROCESSING_ERROR
    assert result.error is not None
    assert result.error.details["exceptionType"] == "RuntimeError"
    assert events[-1].stage is ProgressStage.ERROR
    subject = asyncio.run(store.get_subject("video-1"))
    assert subject is not None
    assert subject.status is SubjectStatus.FAILED
    assert not harness.orchestrator.is_in_flight("video-1")
    assert _used(ledger) == 0


def test_notification_failure_does_not_affect_result(
    store: ResultStore,
    ledger: UsageLedger,
) -> None:
    harness = _harness(
        store,
        ledger,
        vision_backend=FakeBackend(vision_text()),
        notifier=RecordingNotifier(fail=True),
    )

    result, _ = _run(harness, _task())

    assert result.status is ResultStatus.SUCCESS
    assert len(harness.notifier.messages) == 1


def test_unknown_task_type_has_no_side_effects(store: ResultStore, ledger: UsageLedger) -> None:
    harness = _harness(store, ledger, vision_backend=FakeBackend(vision_text()))

    result, events = _run(harness, _task(task_type="transcode"))

    assert result.error_kind is ErrorKind.UNKNOWN_TASK_TYPE
    assert events == []
    assert asyncio.run(store.get_subject("video-1")) is None


def test_invalid_payload_is_rejected(store: ResultStore, ledger: UsageLedger) -> None:
    harness = _harness(store, ledger, vision_backend=FakeBackend(vision_text()))

    result, _ = _run(harness, _task(payload={"mediaUrl": ""}))

    assert result.error_kind is ErrorKind.INVALID_PAYLOAD
    assert harness.vision_backend is not None
    assert harness.vision_backend.calls == 0


def test_cancel_prevents_next_run_only(store: ResultStore, ledger: UsageLedger) -> None:
    harness = _harness(store, ledger, vision_backend=FakeBackend(vision_text()))
    harness.orchestrator.cancel("video-1")

    cancelled, _ = _run(harness, _task())
    resubmitted, _ = _run(harness, _task())

    assert cancelled.error_kind is ErrorKind.CANCELLED
    assert resubmitted.status is ResultStatus.SUCCESS
    assert _used(ledger) == 1


def test_standalone_plan_generation(store: ResultStore, ledger: UsageLedger) -> None:
    harness = _harness(store, ledger, vision_backend=FakeBackend(vision_text()))
    analysis, _ = _run(harness, _task())

    result, _ = _run(
        harness,
        _task(task_type="generate-plan", payload={"reportId": analysis.data["reportId"]}),
    )
    missing, _ = _run(harness, _task(task_type="generate-plan", payload={"reportId": 9999}))

    assert result.status is ResultStatus.SUCCESS
    assert result.agent_id == harness.orchestrator.agent_id
    assert result.data["source"] == "library"
    assert missing.error_kind is ErrorKind.NOT_FOUND
    assert _used(ledger) == 1


def test_assessment_without_data_is_partial(store: ResultStore, ledger: UsageLedger) -> None:
    harness = _harness(store, ledger, vision_backend=None)

    result, _ = _run(harness, _task(task_type="assess", payload={"playerRef": "jersey:3"}))

    assert result.status is ResultStatus.PARTIAL
    assert result.confidence == 0.5


def test_assessment_reports_average_and_trend(store: ResultStore, ledger: UsageLedger) -> None:
    for rating in (60.0, 71.0, 75.5):
        asyncio.run(
            store.save_analysis(
                AnalysisReportWrite(
                    subject_id="video-1",
                    account_id="acct-1",
                    task_id="task_seed",
                    overall_score=None,
                    summary="seed",
                ),
                [],
                stats=[SubjectStatWrite(player_ref="jersey:7", description="#7", overall_rating=rating)],
            ),
        )
    harness = _harness(store, ledger, vision_backend=None)

    result, _ = _run(harness, _task(task_type="assess", payload={"playerRef": "jersey:7"}))
    blocked, _ = _run(
        harness,
        _task(tier="starter", task_type="assess", payload={"playerRef": "jersey:7"}),
    )

    assert result.status is ResultStatus.SUCCESS
    assert result.confidence == 0.85
    assert result.data["averageRating"] == 68.8
    assert result.data["trend"] == "improving"
    assert result.data["historicalRatings"] == [75.5, 71.0, 60.0]
    assert blocked.error_kind is ErrorKind.UPGRADE_REQUIRED


def test_describe_agents_lists_both_processors(store: ResultStore, ledger: UsageLedger) -> None:
    harness = _harness(store, ledger, vision_backend=None)

    names = [card.name for card in harness.orchestrator.describe_agents()]

    assert names == ["Vision Analysis Agent", "Coaching Plan Agent"]
