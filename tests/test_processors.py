from __future__ import annotations

import asyncio
import json

import allure
from conftest import PLAN_RESPONSE, VISION_RESPONSE, FakeBackend, plan_text, vision_text

from volley_coach.pipeline.backend.base import BackendCallError
from volley_coach.pipeline.contracts import AnalyzePayload
from volley_coach.pipeline.models import (
    AnalysisErrorWrite,
    AnalysisReportWrite,
    ErrorKind,
    ResultStatus,
    Severity,
    SkillCategory,
)
from volley_coach.pipeline.processors import (
    PlanGenerationProcessor,
    PlanRequest,
    VisionAnalysisProcessor,
    VisionRequest,
)
from volley_coach.pipeline.store import ResultStore

pytestmark = [
    allure.epic("Analysis Pipeline"),
    allure.feature("Capability Processors"),
]


def _vision_request(**payload_overrides) -> VisionRequest:
    return VisionRequest(
        task_id="task_v",
        subject_id="video-1",
        account_id="acct-1",
        payload=AnalyzePayload(media_url="https://cdn.test/v.mp4", **payload_overrides),
    )


def _seed_report(store: ResultStore, errors: list[AnalysisErrorWrite]) -> int:
    return asyncio.run(
        store.save_analysis(
            AnalysisReportWrite(
                subject_id="video-1",
                account_id="acct-1",
                task_id="task_seed",
                overall_score=70.0,
                summary="seeded",
            ),
            errors,
        ),
    )


def test_vision_without_backend_is_not_configured(store: ResultStore) -> None:
    processor = VisionAnalysisProcessor(backend=None, store=store)

    result = asyncio.run(processor.process(_vision_request()))

    assert result.status is ResultStatus.FAILED
    assert result.error_kind is ErrorKind.CAPABILITY_NOT_CONFIGURED
    assert result.agent_id == processor.agent_id


def test_vision_parses_fenced_output_and_persists(store: ResultStore) -> None:
    backend = FakeBackend(vision_text())
    processor = VisionAnalysisProcessor(backend=backend, store=store)
    progress: list[int] = []

    result = asyncio.run(
        processor.process(
            _vision_request(focus_areas=("blocking",), analysis_type="quick"),
            progress=lambda percent, _message: progress.append(percent),
        ),
    )

    assert result.status is ResultStatus.SUCCESS
    assert result.error is None
    assert result.confidence == 0.9
    assert result.data["overallScore"] == 72.0
    assert result.data["errorCount"] == 2
    assert result.data["parseDegraded"] is False
    assert progress == [20, 50, 65]
    assert backend.requests[0].media_url == "https://cdn.test/v.mp4"
    assert "FOCUS AREAS: pay special attention to blocking" in backend.requests[0].prompt
    assert "QUICK analysis" in backend.requests[0].prompt

    report = asyncio.run(store.get_report(result.data["reportId"]))
    assert report is not None
    assert report.ai_model == "fake-model"
    assert report.focus_areas == ("blocking",)
    assert len(report.errors) == 2
    assert report.stats[0].player_ref == "jersey:7"


def test_vision_clamps_out_of_range_score(store: ResultStore) -> None:
    payload = dict(VISION_RESPONSE, overallScore=180)
    processor = VisionAnalysisProcessor(backend=FakeBackend(json.dumps(payload)), store=store)

    result = asyncio.run(processor.process(_vision_request()))

    assert result.data["overallScore"] == 100.0


def test_vision_without_score_has_lower_confidence(store: ResultStore) -> None:
    payload = dict(VISION_RESPONSE, overallScore=None)
    processor = VisionAnalysisProcessor(backend=FakeBackend(json.dumps(payload)), store=store)

    result = asyncio.run(processor.process(_vision_request()))

    assert result.data["overallScore"] is None
    assert result.confidence == 0.7


def test_vision_unparsable_output_degrades(store: ResultStore) -> None:
    raw = "The team looked good overall but I cannot produce JSON today. " * 30
    processor = VisionAnalysisProcessor(
        backend=FakeBackend(raw),
        store=store,
        summary_max_chars=120,
    )

    result = asyncio.run(processor.process(_vision_request()))

    assert result.status is ResultStatus.SUCCESS
    assert result.error_kind is ErrorKind.PARSE_DEGRADED
    assert result.confidence <= 0.5
    assert result.data["parseDegraded"] is True
    assert len(result.data["summary"]) == 120
    assert result.data["overallScore"] is None
    report = asyncio.run(store.get_report(result.data["reportId"]))
    assert report is not None
    assert report.parse_degraded


def test_vision_empty_output_gets_placeholder_summary(store: ResultStore) -> None:
    processor = VisionAnalysisProcessor(backend=FakeBackend("  "), store=store)

    result = asyncio.run(processor.process(_vision_request()))

    assert result.status is ResultStatus.SUCCESS
    assert result.data["summary"]


def test_vision_backend_error_is_classified(store: ResultStore) -> None:
    backend = FakeBackend(BackendCallError("HTTP 503", status_code=503))
    processor = VisionAnalysisProcessor(backend=backend, store=store)

    result = asyncio.run(processor.process(_vision_request()))

    assert result.status is ResultStatus.FAILED
    assert result.error_kind is ErrorKind.PROCESSING_ERROR
    assert result.error is not None
    assert result.error.details["failureClass"] == "backend_transient"


def test_vision_timeout_is_processing_error(store: ResultStore) -> None:
    class SlowBackend(FakeBackend):
        async def generate(self, request):
            await asyncio.sleep(5)
            return await super().generate(request)

    processor = VisionAnalysisProcessor(
        backend=SlowBackend(vision_text()),
        store=store,
        timeout_seconds=0.01,
    )

    result = asyncio.run(processor.process(_vision_request()))

    assert result.status is ResultStatus.FAILED
    assert result.error is not None
    assert result.error.details["failureClass"] == "timeout"


def test_plan_missing_report_is_not_found(store: ResultStore) -> None:
    processor = PlanGenerationProcessor(backend=None, store=store)

    result = asyncio.run(processor.process(PlanRequest(task_id="task_p", report_id=404)))

    assert result.status is ResultStatus.FAILED
    assert result.error_kind is ErrorKind.NOT_FOUND


def test_plan_library_fallback_follows_error_categories(store: ResultStore) -> None:
    report_id = _seed_report(
        store,
        [
            AnalysisErrorWrite("Late block", "", Severity.HIGH, SkillCategory.BLOCKING),
            AnalysisErrorWrite("Shanked pass", "", Severity.LOW, SkillCategory.PASSING),
        ],
    )
    processor = PlanGenerationProcessor(backend=None, store=store)

    result = asyncio.run(processor.process(PlanRequest(task_id="task_p", report_id=report_id)))

    assert result.status is ResultStatus.SUCCESS
    assert result.data["source"] == "library"
    assert result.confidence == 0.7
    assert [item["targetArea"] for item in result.data["exercises"]] == [
        "general",
        "blocking",
        "passing",
    ]
    assert result.data["priorityFocus"] == "blocking"
    report = asyncio.run(store.get_report(report_id))
    assert report is not None
    assert len(report.exercises) == result.data["exerciseCount"] == 3


def test_plan_uses_backend_output(store: ResultStore) -> None:
    report_id = _seed_report(
        store,
        [AnalysisErrorWrite("Late block", "", Severity.HIGH, SkillCategory.BLOCKING)],
    )
    backend = FakeBackend(plan_text())
    processor = PlanGenerationProcessor(backend=backend, store=store)

    result = asyncio.run(processor.process(PlanRequest(task_id="task_p", report_id=report_id)))

    assert result.status is ResultStatus.SUCCESS
    assert result.data["source"] == "ai"
    assert result.confidence == 0.88
    assert result.data["exerciseCount"] == len(PLAN_RESPONSE["exercises"])
    assert result.data["weeklyPlan"]["monday"] == ["Block Footwork Ladder"]
    assert "Late block" in backend.requests[0].prompt


def test_plan_unusable_output_falls_back_to_library(store: ResultStore) -> None:
    report_id = _seed_report(
        store,
        [AnalysisErrorWrite("Toss", "", Severity.MEDIUM, SkillCategory.SERVING)],
    )
    processor = PlanGenerationProcessor(backend=FakeBackend("no plan today"), store=store)

    result = asyncio.run(processor.process(PlanRequest(task_id="task_p", report_id=report_id)))

    assert result.status is ResultStatus.SUCCESS
    assert result.error_kind is ErrorKind.PARSE_DEGRADED
    assert result.data["source"] == "library"
    assert result.confidence <= 0.5
    assert result.data["exerciseCount"] == 3


def test_plan_backend_error_fails_stage(store: ResultStore) -> None:
    report_id = _seed_report(store, [])
    processor = PlanGenerationProcessor(
        backend=FakeBackend(BackendCallError("HTTP 401", status_code=401)),
        store=store,
    )

    result = asyncio.run(processor.process(PlanRequest(task_id="task_p", report_id=report_id)))

    assert result.status is ResultStatus.FAILED
    assert result.error is not None
    assert result.error.details["failureClass"] == "access_or_auth"


def test_processors_describe_themselves(store: ResultStore) -> None:
    vision = VisionAnalysisProcessor(backend=None, store=store).describe()
    plan = PlanGenerationProcessor(backend=None, store=store).describe()

    assert vision.agent_id != plan.agent_id
    assert vision.agent_id.startswith("agent_")
    assert {capability.name for capability in plan.capabilities} >= {"generate_plan"}
