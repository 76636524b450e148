"""Runtime configuration for the analysis pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_GENERATIVE_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_GENERATIVE_MODEL = "gemini-2.0-flash"


@dataclass(slots=True)
class CapabilityBackendSettings:
    """Connection settings for one remote generative capability."""

    api_key: str | None = None
    model: str = DEFAULT_GENERATIVE_MODEL
    base_url: str = DEFAULT_GENERATIVE_BASE_URL
    timeout_seconds: float = 600.0
    temperature: float = 0.3
    max_output_tokens: int = 8192

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(slots=True)
class NotificationSettings:
    """Completion notification delivery settings."""

    webhook_url: str | None = None
    timeout_seconds: float = 10.0


@dataclass(slots=True)
class PipelineSettings:
    """Orchestrator behaviour knobs."""

    summary_max_chars: int = 500
    degraded_confidence_cap: float = 0.5
    subscriber_queue_size: int = 100


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".volley_coach.db")
    vision: CapabilityBackendSettings = field(default_factory=CapabilityBackendSettings)
    plan: CapabilityBackendSettings = field(
        default_factory=lambda: CapabilityBackendSettings(
            timeout_seconds=120.0,
            temperature=0.5,
            max_output_tokens=4096,
        ),
    )
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        shared_key = _env_str("VOLLEY_COACH_GEMINI_API_KEY")
        return cls(
            db_path=db_path or Path(os.getenv("VOLLEY_COACH_DB_PATH", ".volley_coach.db")),
            vision=CapabilityBackendSettings(
                api_key=_env_str("VOLLEY_COACH_VISION_API_KEY") or shared_key,
                model=os.getenv("VOLLEY_COACH_VISION_MODEL", DEFAULT_GENERATIVE_MODEL),
                base_url=os.getenv("VOLLEY_COACH_VISION_BASE_URL", DEFAULT_GENERATIVE_BASE_URL),
                timeout_seconds=_env_float("VOLLEY_COACH_VISION_TIMEOUT_SECONDS", 600.0),
                temperature=_env_float("VOLLEY_COACH_VISION_TEMPERATURE", 0.3),
                max_output_tokens=_env_int("VOLLEY_COACH_VISION_MAX_OUTPUT_TOKENS", 8192),
            ),
            plan=CapabilityBackendSettings(
                api_key=_env_str("VOLLEY_COACH_PLAN_API_KEY") or shared_key,
                model=os.getenv("VOLLEY_COACH_PLAN_MODEL", DEFAULT_GENERATIVE_MODEL),
                base_url=os.getenv("VOLLEY_COACH_PLAN_BASE_URL", DEFAULT_GENERATIVE_BASE_URL),
                timeout_seconds=_env_float("VOLLEY_COACH_PLAN_TIMEOUT_SECONDS", 120.0),
                temperature=_env_float("VOLLEY_COACH_PLAN_TEMPERATURE", 0.5),
                max_output_tokens=_env_int("VOLLEY_COACH_PLAN_MAX_OUTPUT_TOKENS", 4096),
            ),
            notifications=NotificationSettings(
                webhook_url=_env_str("VOLLEY_COACH_NOTIFY_WEBHOOK_URL"),
                timeout_seconds=_env_float("VOLLEY_COACH_NOTIFY_TIMEOUT_SECONDS", 10.0),
            ),
            pipeline=PipelineSettings(
                summary_max_chars=_env_int("VOLLEY_COACH_SUMMARY_MAX_CHARS", 500),
                degraded_confidence_cap=_env_float(
                    "VOLLEY_COACH_DEGRADED_CONFIDENCE_CAP",
                    0.5,
                ),
                subscriber_queue_size=_env_int("VOLLEY_COACH_SUBSCRIBER_QUEUE_SIZE", 100),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        for prefix, backend in (("VISION", self.vision), ("PLAN", self.plan)):
            if backend.timeout_seconds <= 0:
                raise ValueError(f"VOLLEY_COACH_{prefix}_TIMEOUT_SECONDS must be > 0.")
            if backend.max_output_tokens <= 0:
                raise ValueError(f"VOLLEY_COACH_{prefix}_MAX_OUTPUT_TOKENS must be > 0.")
            _validate_http_url(backend.base_url, name=f"VOLLEY_COACH_{prefix}_BASE_URL")
        if self.notifications.webhook_url is not None:
            _validate_http_url(
                self.notifications.webhook_url,
                name="VOLLEY_COACH_NOTIFY_WEBHOOK_URL",
            )
        if self.notifications.timeout_seconds <= 0:
            raise ValueError("VOLLEY_COACH_NOTIFY_TIMEOUT_SECONDS must be > 0.")
        if self.pipeline.summary_max_chars <= 0:
            raise ValueError("VOLLEY_COACH_SUMMARY_MAX_CHARS must be > 0.")
        if not 0.0 <= self.pipeline.degraded_confidence_cap <= 1.0:
            raise ValueError("VOLLEY_COACH_DEGRADED_CONFIDENCE_CAP must be within 0..1.")
        if self.pipeline.subscriber_queue_size <= 0:
            raise ValueError("VOLLEY_COACH_SUBSCRIBER_QUEUE_SIZE must be > 0.")


def _validate_http_url(value: str, *, name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_str(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error
