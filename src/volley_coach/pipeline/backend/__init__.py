"""Remote generative capability backends."""

from volley_coach.pipeline.backend.base import (
    BackendCallError,
    CapabilityBackend,
    GenerationRequest,
    GenerationResponse,
)
from volley_coach.pipeline.backend.gemini import GeminiBackend

__all__ = [
    "BackendCallError",
    "CapabilityBackend",
    "GeminiBackend",
    "GenerationRequest",
    "GenerationResponse",
]
