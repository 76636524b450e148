"""Structured-output decoder for loosely formatted generative responses."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

DECODER_VERSION = "v1"

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


@dataclass(slots=True)
class DecodedOutput:
    """Decoder outcome: a JSON object, or plain text when no object was found."""

    payload: dict[str, Any] | None
    raw_text: str
    strategy: str

    @property
    def degraded(self) -> bool:
        return self.payload is None

    def plain_text(self, max_chars: int) -> str:
        """Compact raw text truncated to ``max_chars``."""

        return normalize_plain_text(self.raw_text)[:max_chars]


def decode_structured_output(text: str) -> DecodedOutput:
    """Extract one JSON object from backend text, tolerating incidental formatting."""

    stripped = text.strip()
    if not stripped:
        return DecodedOutput(payload=None, raw_text="", strategy="empty")

    direct = _try_load_dict(stripped)
    if direct is not None:
        return DecodedOutput(payload=direct, raw_text=stripped, strategy="direct_json")

    fenced = _FENCED_BLOCK.search(stripped)
    if fenced is not None:
        payload = _try_load_dict(fenced.group(1))
        if payload is not None:
            return DecodedOutput(payload=payload, raw_text=stripped, strategy="fenced_json")

    payload = _first_embedded_dict(stripped)
    if payload is not None:
        return DecodedOutput(payload=payload, raw_text=stripped, strategy="embedded_json")

    return DecodedOutput(payload=None, raw_text=stripped, strategy="plain_text")


def _first_embedded_dict(text: str) -> dict[str, Any] | None:
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            parsed, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)
    return None


def _try_load_dict(raw: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def normalize_plain_text(text: str) -> str:
    without_fences = _FENCED_BLOCK.sub(lambda match: match.group(1), text)
    lines = [line.rstrip() for line in without_fences.splitlines()]
    compact = "\n".join(line for line in lines if line.strip())
    return compact.strip()
