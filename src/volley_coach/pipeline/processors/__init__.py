"""Capability processors wrapping the two remote pipeline stages."""

from volley_coach.pipeline.processors.base import AgentCard, CapabilityProcessor
from volley_coach.pipeline.processors.plan import PlanGenerationProcessor, PlanRequest
from volley_coach.pipeline.processors.vision import VisionAnalysisProcessor, VisionRequest

__all__ = [
    "AgentCard",
    "CapabilityProcessor",
    "PlanGenerationProcessor",
    "PlanRequest",
    "VisionAnalysisProcessor",
    "VisionRequest",
]
