"""Process bootstrap: builds the orchestrator and owns client lifecycles."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from volley_coach.config import CapabilityBackendSettings, Settings
from volley_coach.pipeline.backend import GeminiBackend
from volley_coach.pipeline.broadcaster import ProgressBroadcaster
from volley_coach.pipeline.ledger import UsageLedger
from volley_coach.pipeline.notifier import LoggingNotifier, Notifier, WebhookNotifier
from volley_coach.pipeline.orchestrator import Orchestrator
from volley_coach.pipeline.processors import PlanGenerationProcessor, VisionAnalysisProcessor
from volley_coach.pipeline.store import ResultStore


@dataclass(slots=True)
class PipelineRuntime:
    """Constructed pipeline plus the resources it must release."""

    orchestrator: Orchestrator
    store: ResultStore
    ledger: UsageLedger
    broadcaster: ProgressBroadcaster
    backends: tuple[GeminiBackend, ...]
    notifier: Notifier

    async def aclose(self) -> None:
        await self.orchestrator.aclose()
        for backend in self.backends:
            await backend.aclose()
        if isinstance(self.notifier, WebhookNotifier):
            await self.notifier.aclose()
        self.store.close()
        self.ledger.close()


def build_runtime(settings: Settings) -> PipelineRuntime:
    """Wire processors, store, ledger and broadcaster from settings."""

    settings.validate()
    store = ResultStore(db_path=settings.db_path)
    ledger = UsageLedger(db_path=settings.db_path)
    broadcaster = ProgressBroadcaster(queue_size=settings.pipeline.subscriber_queue_size)
    vision_backend = _backend(settings.vision)
    plan_backend = _backend(settings.plan)
    notifier: Notifier
    if settings.notifications.webhook_url:
        notifier = WebhookNotifier(
            url=settings.notifications.webhook_url,
            timeout_seconds=settings.notifications.timeout_seconds,
        )
    else:
        notifier = LoggingNotifier()

    vision = VisionAnalysisProcessor(
        backend=vision_backend,
        store=store,
        timeout_seconds=settings.vision.timeout_seconds,
        temperature=settings.vision.temperature,
        max_output_tokens=settings.vision.max_output_tokens,
        summary_max_chars=settings.pipeline.summary_max_chars,
        degraded_confidence_cap=settings.pipeline.degraded_confidence_cap,
    )
    plan = PlanGenerationProcessor(
        backend=plan_backend,
        store=store,
        timeout_seconds=settings.plan.timeout_seconds,
        temperature=settings.plan.temperature,
        max_output_tokens=settings.plan.max_output_tokens,
        degraded_confidence_cap=settings.pipeline.degraded_confidence_cap,
    )
    orchestrator = Orchestrator(
        vision=vision,
        plan=plan,
        store=store,
        ledger=ledger,
        broadcaster=broadcaster,
        notifier=notifier,
    )
    return PipelineRuntime(
        orchestrator=orchestrator,
        store=store,
        ledger=ledger,
        broadcaster=broadcaster,
        backends=tuple(backend for backend in (vision_backend, plan_backend) if backend is not None),
        notifier=notifier,
    )


@asynccontextmanager
async def open_runtime(settings: Settings) -> AsyncIterator[PipelineRuntime]:
    runtime = build_runtime(settings)
    runtime.store.init_schema()
    try:
        yield runtime
    finally:
        await runtime.aclose()


def _backend(config: CapabilityBackendSettings) -> GeminiBackend | None:
    if not config.configured or config.api_key is None:
        return None
    return GeminiBackend(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        timeout_seconds=config.timeout_seconds,
    )
