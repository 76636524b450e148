"""Stage 1: video analysis through the vision capability backend."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from volley_coach.pipeline.backend.base import (
    BackendCallError,
    CapabilityBackend,
    GenerationRequest,
)
from volley_coach.pipeline.contracts import AnalysisOutput, AnalyzePayload, normalize_analysis_output
from volley_coach.pipeline.decoder import decode_structured_output
from volley_coach.pipeline.failure_classifier import classify_backend_failure
from volley_coach.pipeline.models import (
    AnalysisReportWrite,
    ErrorKind,
    PipelineError,
    Result,
)
from volley_coach.pipeline.processors.base import (
    AgentCapability,
    CapabilityProcessor,
    ProgressCallback,
    elapsed_ms,
)
from volley_coach.pipeline.prompts import build_vision_prompt
from volley_coach.pipeline.store import ResultStore

logger = logging.getLogger(__name__)

SCORED_CONFIDENCE = 0.9
UNSCORED_CONFIDENCE = 0.7
DEGRADED_SUMMARY = "Analysis completed but the response could not be parsed."


@dataclass(frozen=True, slots=True)
class VisionRequest:
    """Stage 1 input resolved by the orchestrator."""

    task_id: str
    subject_id: str
    account_id: str
    payload: AnalyzePayload


class VisionAnalysisProcessor(CapabilityProcessor):
    """Sends footage to the vision backend and persists the resulting report."""

    name = "Vision Analysis Agent"
    description = "Analyzes volleyball footage for technique errors, player stats and rally counts."
    capabilities = (
        AgentCapability("analyze_video", "Full technique analysis of match footage"),
        AgentCapability("detect_errors", "Detects and categorizes technique errors"),
        AgentCapability("player_stats", "Per-player skill assessment"),
    )

    def __init__(  # noqa: PLR0913
        self,
        *,
        backend: CapabilityBackend | None,
        store: ResultStore,
        timeout_seconds: float = 600.0,
        temperature: float = 0.3,
        max_output_tokens: int = 8192,
        summary_max_chars: int = 500,
        degraded_confidence_cap: float = 0.5,
    ) -> None:
        super().__init__()
        self.backend = backend
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.summary_max_chars = summary_max_chars
        self.degraded_confidence_cap = degraded_confidence_cap

    async def process(
        self,
        request: VisionRequest,
        progress: ProgressCallback | None = None,
    ) -> Result:
        started = time.monotonic()
        if self.backend is None:
            return self.failed(
                task_id=request.task_id,
                kind=ErrorKind.CAPABILITY_NOT_CONFIGURED,
                message="Vision analysis backend is not configured.",
                started=started,
            )

        _report(progress, 20, "Sending footage to the vision backend")
        try:
            response = await asyncio.wait_for(
                self.backend.generate(
                    GenerationRequest(
                        prompt=build_vision_prompt(request.payload),
                        media_url=request.payload.media_url,
                        media_mime_type=request.payload.mime_type,
                        temperature=self.temperature,
                        max_output_tokens=self.max_output_tokens,
                    ),
                ),
                timeout=self.timeout_seconds,
            )
        except (TimeoutError, BackendCallError) as error:
            classification = classify_backend_failure(agent="vision", error=error)
            reason = str(error) or "timed out"
            logger.warning(
                "Vision backend failed for subject %s: %s (%s)",
                request.subject_id,
                reason,
                classification.failure_class.value,
            )
            return self.failed(
                task_id=request.task_id,
                kind=ErrorKind.PROCESSING_ERROR,
                message=f"Vision analysis failed: {reason}",
                started=started,
                details=classification.to_details(),
            )

        _report(progress, 50, "Parsing analysis results")
        decoded = decode_structured_output(response.text)
        if decoded.payload is not None:
            output = normalize_analysis_output(
                decoded.payload,
                summary_max_chars=self.summary_max_chars,
            )
            confidence = SCORED_CONFIDENCE if output.overall_score is not None else UNSCORED_CONFIDENCE
        else:
            logger.warning(
                "Vision output for subject %s was not structured (strategy=%s)",
                request.subject_id,
                decoded.strategy,
            )
            output = AnalysisOutput(
                overall_score=None,
                summary=decoded.plain_text(self.summary_max_chars) or DEGRADED_SUMMARY,
                play_count=None,
                points_home=None,
                points_away=None,
            )
            confidence = min(UNSCORED_CONFIDENCE, self.degraded_confidence_cap)

        _report(progress, 65, "Saving analysis report")
        report_id = await self.store.save_analysis(
            AnalysisReportWrite(
                subject_id=request.subject_id,
                account_id=request.account_id,
                task_id=request.task_id,
                overall_score=output.overall_score,
                summary=output.summary,
                analysis_type=request.payload.analysis_type,
                focus_areas=request.payload.focus_areas,
                play_count=output.play_count,
                points_home=output.points_home,
                points_away=output.points_away,
                ai_model=response.model,
                processing_time_ms=elapsed_ms(started),
                parse_degraded=decoded.degraded,
            ),
            output.errors,
            stats=output.players,
        )

        result = self.success(
            task_id=request.task_id,
            data={
                "reportId": report_id,
                "subjectId": request.subject_id,
                "overallScore": output.overall_score,
                "summary": output.summary,
                "playCount": output.play_count,
                "pointsHome": output.points_home,
                "pointsAway": output.points_away,
                "errorCount": len(output.errors),
                "errors": [error.to_payload() for error in output.errors],
                "players": [player.to_payload() for player in output.players],
                "highlights": output.highlights,
                "aiModel": response.model,
                "parseDegraded": decoded.degraded,
            },
            confidence=confidence,
            started=started,
        )
        if decoded.degraded:
            result.error = PipelineError(
                kind=ErrorKind.PARSE_DEGRADED,
                message="Vision output could not be parsed; summary built from raw text.",
                details={"strategy": decoded.strategy},
            )
        return result


def _report(progress: ProgressCallback | None, percent: int, message: str) -> None:
    if progress is not None:
        progress(percent, message)
