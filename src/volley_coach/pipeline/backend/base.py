"""Backend interface for remote generative capabilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True)
class GenerationRequest:
    """Inputs for one generation call."""

    prompt: str
    media_url: str | None = None
    media_mime_type: str = "video/mp4"
    temperature: float = 0.3
    max_output_tokens: int = 8192


@dataclass(slots=True)
class GenerationResponse:
    """Raw text returned by the backend."""

    text: str
    model: str


class BackendCallError(Exception):
    """Backend call failed before producing a response body."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str = "",
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.timed_out = timed_out


class CapabilityBackend(Protocol):
    """Protocol implemented by generation backends."""

    model: str

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Run one generation call and return the response text."""
