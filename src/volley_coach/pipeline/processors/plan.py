"""Stage 2: training plan generation for an existing analysis report."""

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
from volley_coach.pipeline.contracts import PlanOutput, normalize_plan_output
from volley_coach.pipeline.decoder import decode_structured_output
from volley_coach.pipeline.exercise_library import build_library_plan
from volley_coach.pipeline.failure_classifier import classify_backend_failure
from volley_coach.pipeline.models import ErrorKind, PipelineError, Result
from volley_coach.pipeline.processors.base import AgentCapability, CapabilityProcessor
from volley_coach.pipeline.prompts import build_plan_prompt
from volley_coach.pipeline.store import ResultStore

logger = logging.getLogger(__name__)

GENERATED_CONFIDENCE = 0.88
LIBRARY_CONFIDENCE = 0.7


@dataclass(frozen=True, slots=True)
class PlanRequest:
    task_id: str
    report_id: int


class PlanGenerationProcessor(CapabilityProcessor):
    """Builds drills for a report's errors, falling back to the static library."""

    name = "Coaching Plan Agent"
    description = "Generates personalized training plans from detected technique errors."
    capabilities = (
        AgentCapability("generate_plan", "Training plan built from analysis errors"),
        AgentCapability("library_fallback", "Rule-based drills keyed by error category"),
    )

    def __init__(  # noqa: PLR0913
        self,
        *,
        backend: CapabilityBackend | None,
        store: ResultStore,
        timeout_seconds: float = 120.0,
        temperature: float = 0.5,
        max_output_tokens: int = 4096,
        degraded_confidence_cap: float = 0.5,
    ) -> None:
        super().__init__()
        self.backend = backend
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.degraded_confidence_cap = degraded_confidence_cap

    async def process(self, request: PlanRequest) -> Result:
        started = time.monotonic()
        report = await self.store.get_report(request.report_id)
        if report is None:
            return self.failed(
                task_id=request.task_id,
                kind=ErrorKind.NOT_FOUND,
                message=f"Analysis report {request.report_id} not found.",
                started=started,
                details={"reportId": request.report_id},
            )

        degraded_strategy: str | None = None
        if self.backend is None:
            plan = build_library_plan(report.errors)
            source = "library"
            confidence = LIBRARY_CONFIDENCE
        else:
            try:
                response = await asyncio.wait_for(
                    self.backend.generate(
                        GenerationRequest(
                            prompt=build_plan_prompt(report),
                            temperature=self.temperature,
                            max_output_tokens=self.max_output_tokens,
                        ),
                    ),
                    timeout=self.timeout_seconds,
                )
            except (TimeoutError, BackendCallError) as error:
                classification = classify_backend_failure(agent="plan", error=error)
                reason = str(error) or "timed out"
                logger.warning(
                    "Plan backend failed for report %s: %s (%s)",
                    request.report_id,
                    reason,
                    classification.failure_class.value,
                )
                return self.failed(
                    task_id=request.task_id,
                    kind=ErrorKind.PROCESSING_ERROR,
                    message=f"Plan generation failed: {reason}",
                    started=started,
                    details=classification.to_details(),
                )

            decoded = decode_structured_output(response.text)
            generated: PlanOutput | None = None
            if decoded.payload is not None:
                generated = normalize_plan_output(decoded.payload)
            if generated is not None:
                plan = generated
                source = "ai"
                confidence = GENERATED_CONFIDENCE
            else:
                logger.warning(
                    "Plan output for report %s was unusable (strategy=%s); using library",
                    request.report_id,
                    decoded.strategy,
                )
                plan = build_library_plan(report.errors)
                source = "library"
                confidence = min(LIBRARY_CONFIDENCE, self.degraded_confidence_cap)
                degraded_strategy = decoded.strategy

        exercise_count = await self.store.save_plan(request.report_id, plan.exercises)
        result = self.success(
            task_id=request.task_id,
            data={
                "reportId": request.report_id,
                "exerciseCount": exercise_count,
                "exercises": [exercise.to_payload() for exercise in plan.exercises],
                "weeklyPlan": plan.weekly_plan,
                "coachingTips": plan.coaching_tips,
                "priorityFocus": plan.priority_focus,
                "source": source,
                "parseDegraded": degraded_strategy is not None,
            },
            confidence=confidence,
            started=started,
        )
        if degraded_strategy is not None:
            result.error = PipelineError(
                kind=ErrorKind.PARSE_DEGRADED,
                message="Plan output could not be parsed; library exercises used.",
                details={"strategy": degraded_strategy},
            )
        return result
