"""Domain models for pipeline tasks, results and persisted artifacts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4


class TaskType(str, Enum):
    """Fixed set of orchestrated request types."""

    ANALYZE = "analyze"
    GENERATE_PLAN = "generate-plan"
    ASSESS = "assess"


class ResultStatus(str, Enum):
    """Outcome of one processor or pipeline invocation."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Stable machine-readable error kinds surfaced in results."""

    UPGRADE_REQUIRED = "upgrade_required"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNKNOWN_TASK_TYPE = "unknown_task_type"
    INVALID_PAYLOAD = "invalid_payload"
    CAPABILITY_NOT_CONFIGURED = "capability_not_configured"
    PROCESSING_ERROR = "processing_error"
    PARSE_DEGRADED = "parse_degraded"
    NOT_FOUND = "not_found"
    ALREADY_IN_PROGRESS = "already_in_progress"
    CANCELLED = "cancelled"


class FailureClass(str, Enum):
    """Normalized backend failure classes."""

    TIMEOUT = "timeout"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_NON_RETRYABLE = "backend_non_retryable"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"


class ProgressStage(str, Enum):
    """Stages reported to progress subscribers."""

    QUEUED = "queued"
    ANALYZING = "analyzing"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


class SubjectStatus(str, Enum):
    """Persisted lifecycle of a processed subject."""

    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SkillCategory(str, Enum):
    """Technique areas used to classify detected errors."""

    SERVING = "serving"
    PASSING = "passing"
    SETTING = "setting"
    ATTACKING = "attacking"
    BLOCKING = "blocking"
    DIGGING = "digging"
    POSITIONING = "positioning"
    COMMUNICATION = "communication"


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


@dataclass(frozen=True, slots=True)
class Task:
    """One submitted pipeline run. Immutable once submitted."""

    task_type: str
    subject_id: str
    account_id: str
    tier: str
    payload: dict[str, Any] = field(default_factory=dict)
    task_id: str = field(default_factory=lambda: f"task_{uuid4().hex[:12]}")
    priority: int = 100


@dataclass(slots=True)
class PipelineError:
    """Typed failure description carried inside a result."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, **self.details}


@dataclass(slots=True)
class Result:
    """Uniform result envelope produced by processors and the orchestrator."""

    task_id: str
    agent_id: str
    status: ResultStatus
    data: dict[str, Any]
    confidence: float
    processing_time_ms: int
    error: PipelineError | None = None

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the submission interface."""

        payload: dict[str, Any] = {
            "taskId": self.task_id,
            "agentId": self.agent_id,
            "status": self.status.value,
            "data": self.data,
            "confidence": self.confidence,
            "processingTimeMs": self.processing_time_ms,
        }
        if self.error is not None:
            payload["error"] = self.error.to_payload()
        return payload


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """Ephemeral progress update for one subject."""

    subject_id: str
    stage: ProgressStage
    progress_percent: int
    message: str

    @property
    def terminal(self) -> bool:
        return self.stage in {ProgressStage.COMPLETE, ProgressStage.ERROR}


@dataclass(slots=True)
class NotificationMessage:
    """Fire-and-forget message delivered to an account."""

    account_id: str
    type: str
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AnalysisReportWrite:
    """Stage 1 report row payload."""

    subject_id: str
    account_id: str
    task_id: str
    overall_score: float | None
    summary: str
    analysis_type: str = "full"
    focus_areas: tuple[str, ...] = ()
    play_count: int | None = None
    points_home: int | None = None
    points_away: int | None = None
    ai_model: str | None = None
    processing_time_ms: int = 0
    parse_degraded: bool = False


@dataclass(slots=True)
class AnalysisErrorWrite:
    """One detected technique error."""

    title: str
    description: str
    severity: Severity
    category: SkillCategory | None
    time_range: str = ""
    frequency: str = ""
    player_description: str | None = None
    video_timestamp: int | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "category": self.category.value if self.category is not None else None,
            "timeRange": self.time_range,
            "frequency": self.frequency,
            "playerDescription": self.player_description,
            "videoTimestamp": self.video_timestamp,
        }


@dataclass(slots=True)
class ExerciseWrite:
    """One generated training exercise."""

    name: str
    description: str
    duration: str
    sets: str
    target_area: str
    difficulty: Difficulty = Difficulty.INTERMEDIATE
    related_error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "duration": self.duration,
            "sets": self.sets,
            "targetArea": self.target_area,
            "difficulty": self.difficulty.value,
            "relatedError": self.related_error,
        }


@dataclass(slots=True)
class SubjectStatWrite:
    """Per-player skill assessment captured during Stage 1."""

    player_ref: str | None
    description: str
    position: str = "unknown"
    reception: str | None = None
    attack: str | None = None
    blocking: str | None = None
    serving: str | None = None
    setting: str | None = None
    defense: str | None = None
    overall_rating: float | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "playerRef": self.player_ref,
            "description": self.description,
            "position": self.position,
            "reception": self.reception,
            "attack": self.attack,
            "blocking": self.blocking,
            "serving": self.serving,
            "setting": self.setting,
            "defense": self.defense,
            "overallRating": self.overall_rating,
        }


@dataclass(slots=True)
class AnalysisReportView:
    """Stored report with its linked child rows."""

    report_id: int
    subject_id: str
    account_id: str
    task_id: str
    overall_score: float | None
    summary: str
    analysis_type: str
    focus_areas: tuple[str, ...]
    play_count: int | None
    error_count: int
    points_home: int | None
    points_away: int | None
    ai_model: str | None
    processing_time_ms: int
    parse_degraded: bool
    created_at: datetime
    errors: list[AnalysisErrorWrite] = field(default_factory=list)
    exercises: list[ExerciseWrite] = field(default_factory=list)
    stats: list[SubjectStatWrite] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "reportId": self.report_id,
            "subjectId": self.subject_id,
            "accountId": self.account_id,
            "taskId": self.task_id,
            "overallScore": self.overall_score,
            "summary": self.summary,
            "analysisType": self.analysis_type,
            "focusAreas": list(self.focus_areas),
            "playCount": self.play_count,
            "errorCount": self.error_count,
            "pointsHome": self.points_home,
            "pointsAway": self.points_away,
            "aiModel": self.ai_model,
            "processingTimeMs": self.processing_time_ms,
            "parseDegraded": self.parse_degraded,
            "createdAt": self.created_at.isoformat(),
            "errors": [error.to_payload() for error in self.errors],
            "exercises": [exercise.to_payload() for exercise in self.exercises],
            "stats": [stat.to_payload() for stat in self.stats],
        }


@dataclass(slots=True)
class SubjectStatView:
    """Stored stat row joined with its report timestamp."""

    stat_id: int
    report_id: int
    player_ref: str | None
    overall_rating: float | None
    created_at: datetime


@dataclass(slots=True)
class SubjectView:
    """Stored subject state."""

    subject_id: str
    account_id: str
    media_url: str | None
    status: SubjectStatus
    analysis_complete: bool
    updated_at: datetime


@dataclass(slots=True)
class UsageCheck:
    """Read-only quota check outcome."""

    allowed: bool
    used: int
    limit: int
    period_end: datetime | None = None
