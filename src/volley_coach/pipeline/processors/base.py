"""Shared processor scaffolding: identity, agent card and result helpers."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from volley_coach.pipeline.models import ErrorKind, PipelineError, Result, ResultStatus

ProgressCallback = Callable[[int, str], None]


@dataclass(frozen=True, slots=True)
class AgentCapability:
    name: str
    description: str


@dataclass(frozen=True, slots=True)
class AgentCard:
    """Self-description a processor publishes to the orchestrator."""

    agent_id: str
    name: str
    description: str
    version: str
    capabilities: tuple[AgentCapability, ...] = field(default_factory=tuple)


class CapabilityProcessor:
    """Base class for processors wrapping one remote capability."""

    name = "processor"
    description = ""
    version = "1.0.0"
    capabilities: tuple[AgentCapability, ...] = ()

    def __init__(self) -> None:
        self.agent_id = f"agent_{uuid4().hex[:12]}"

    def describe(self) -> AgentCard:
        return AgentCard(
            agent_id=self.agent_id,
            name=self.name,
            description=self.description,
            version=self.version,
            capabilities=self.capabilities,
        )

    def success(
        self,
        *,
        task_id: str,
        data: dict[str, Any],
        confidence: float,
        started: float,
    ) -> Result:
        return Result(
            task_id=task_id,
            agent_id=self.agent_id,
            status=ResultStatus.SUCCESS,
            data=data,
            confidence=max(0.0, min(1.0, confidence)),
            processing_time_ms=elapsed_ms(started),
        )

    def failed(
        self,
        *,
        task_id: str,
        kind: ErrorKind,
        message: str,
        started: float,
        details: dict[str, Any] | None = None,
    ) -> Result:
        return Result(
            task_id=task_id,
            agent_id=self.agent_id,
            status=ResultStatus.FAILED,
            data={},
            confidence=0.0,
            processing_time_ms=elapsed_ms(started),
            error=PipelineError(kind=kind, message=message, details=details or {}),
        )


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
