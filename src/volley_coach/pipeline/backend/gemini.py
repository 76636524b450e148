"""Gemini ``generateContent`` REST backend over httpx."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from volley_coach.pipeline.backend.base import (
    BackendCallError,
    GenerationRequest,
    GenerationResponse,
)

logger = logging.getLogger(__name__)

_ERROR_BODY_PREVIEW_CHARS = 500


class GeminiBackend:
    """Async client for one Gemini model."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout_seconds: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
        )

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        url = f"{self._base_url}/v1beta/models/{self.model}:generateContent"
        try:
            response = await self._client.post(
                url,
                headers={"x-goog-api-key": self._api_key},
                json=_build_body(request),
            )
        except httpx.TimeoutException as exc:
            raise BackendCallError(f"{self.model} request timed out", timed_out=True) from exc
        except httpx.HTTPError as exc:
            raise BackendCallError(f"{self.model} request failed: {exc}") from exc

        if not response.is_success:
            body = response.text[:_ERROR_BODY_PREVIEW_CHARS]
            logger.warning("Gemini %s returned HTTP %s", self.model, response.status_code)
            raise BackendCallError(
                f"{self.model} returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        try:
            payload = response.json()
        except ValueError:
            return GenerationResponse(text=response.text, model=self.model)
        return GenerationResponse(text=_extract_text(payload), model=self.model)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _build_body(request: GenerationRequest) -> dict[str, Any]:
    parts: list[dict[str, Any]] = []
    if request.media_url:
        parts.append(
            {"fileData": {"mimeType": request.media_mime_type, "fileUri": request.media_url}},
        )
    parts.append({"text": request.prompt})
    return {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {
            "temperature": request.temperature,
            "maxOutputTokens": request.max_output_tokens,
        },
    }


def _extract_text(payload: object) -> str:
    if not isinstance(payload, dict):
        return ""
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    return "".join(
        part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)
    )
