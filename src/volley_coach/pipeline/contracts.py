"""Typed request payloads and backend output contracts per task type."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from volley_coach.pipeline.models import (
    AnalysisErrorWrite,
    Difficulty,
    ExerciseWrite,
    Severity,
    SkillCategory,
    SubjectStatWrite,
    TaskType,
)

ANALYSIS_TYPES = frozenset({"full", "quick"})
SCORE_MIN = 0.0
SCORE_MAX = 100.0
PLAYER_SKILLS = ("reception", "attack", "blocking", "serving", "setting", "defense")


@dataclass(frozen=True, slots=True)
class AnalyzePayload:
    """Stage 1 input: the media to analyze and analysis options."""

    media_url: str
    analysis_type: str = "full"
    focus_areas: tuple[str, ...] = ()
    mime_type: str = "video/mp4"


@dataclass(frozen=True, slots=True)
class GeneratePlanPayload:
    """Stage 2 input: an existing report to build a training plan for."""

    report_id: int


@dataclass(frozen=True, slots=True)
class AssessPayload:
    """Assessment input: a player reference across stored stat rows."""

    player_ref: str
    limit: int = 10


TaskPayload = AnalyzePayload | GeneratePlanPayload | AssessPayload


@dataclass(slots=True)
class AnalysisOutput:
    """Normalized Stage 1 backend output."""

    overall_score: float | None
    summary: str
    play_count: int | None
    points_home: int | None
    points_away: int | None
    errors: list[AnalysisErrorWrite] = field(default_factory=list)
    players: list[SubjectStatWrite] = field(default_factory=list)
    highlights: list[dict[str, str]] = field(default_factory=list)


@dataclass(slots=True)
class PlanOutput:
    """Normalized Stage 2 backend output."""

    exercises: list[ExerciseWrite]
    weekly_plan: dict[str, list[str]] = field(default_factory=dict)
    coaching_tips: list[str] = field(default_factory=list)
    priority_focus: str = "general"


def parse_task_payload(task_type: TaskType, raw: Mapping[str, Any]) -> TaskPayload:
    """Validate a raw payload against the schema for its task type."""

    if not isinstance(raw, Mapping):
        raise TypeError("payload must be an object")
    if task_type is TaskType.ANALYZE:
        return _parse_analyze(raw)
    if task_type is TaskType.GENERATE_PLAN:
        return _parse_generate_plan(raw)
    return _parse_assess(raw)


def _parse_analyze(raw: Mapping[str, Any]) -> AnalyzePayload:
    media_url = raw.get("mediaUrl")
    analysis_type = raw.get("analysisType", "full")
    focus_areas = raw.get("focusAreas", [])
    mime_type = raw.get("mimeType", "video/mp4")
    if not isinstance(media_url, str) or not media_url.strip():
        raise ValueError("payload.mediaUrl must be a non-empty string")
    if analysis_type not in ANALYSIS_TYPES:
        raise ValueError(f"payload.analysisType must be one of: {', '.join(sorted(ANALYSIS_TYPES))}")
    if not isinstance(focus_areas, list) or not all(isinstance(area, str) for area in focus_areas):
        raise TypeError("payload.focusAreas must be an array of strings")
    if not isinstance(mime_type, str) or not mime_type.strip():
        raise ValueError("payload.mimeType must be a non-empty string")
    return AnalyzePayload(
        media_url=media_url.strip(),
        analysis_type=analysis_type,
        focus_areas=tuple(area.strip() for area in focus_areas if area.strip()),
        mime_type=mime_type.strip(),
    )


def _parse_generate_plan(raw: Mapping[str, Any]) -> GeneratePlanPayload:
    report_id = raw.get("reportId")
    if isinstance(report_id, bool) or not isinstance(report_id, int) or report_id <= 0:
        raise ValueError("payload.reportId must be a positive integer")
    return GeneratePlanPayload(report_id=report_id)


def _parse_assess(raw: Mapping[str, Any]) -> AssessPayload:
    player_ref = raw.get("playerRef")
    limit = raw.get("limit", 10)
    if not isinstance(player_ref, str) or not player_ref.strip():
        raise ValueError("payload.playerRef must be a non-empty string")
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= 50:
        raise ValueError("payload.limit must be an integer within 1..50")
    return AssessPayload(player_ref=player_ref.strip(), limit=limit)


def normalize_analysis_output(payload: Mapping[str, Any], *, summary_max_chars: int) -> AnalysisOutput:
    """Coerce a decoded Stage 1 object into range-checked typed fields."""

    summary = payload.get("summary")
    errors = [
        error
        for item in _as_list(payload.get("errors"))
        if (error := _normalize_error(item)) is not None
    ]
    players = [
        player
        for item in _as_list(payload.get("players"))
        if (player := _normalize_player(item)) is not None
    ]
    highlights = [
        {
            "description": str(item.get("description", "")),
            "timeRange": str(item.get("timeRange", "")),
            "type": str(item.get("type", "")),
        }
        for item in _as_list(payload.get("highlights"))
        if isinstance(item, dict)
    ]
    return AnalysisOutput(
        overall_score=clamp_score(payload.get("overallScore")),
        summary=(summary.strip() if isinstance(summary, str) else "")[:summary_max_chars],
        play_count=non_negative_int(payload.get("playCount")),
        points_home=non_negative_int(payload.get("pointsHome")),
        points_away=non_negative_int(payload.get("pointsAway")),
        errors=errors,
        players=players,
        highlights=highlights,
    )


def normalize_plan_output(payload: Mapping[str, Any]) -> PlanOutput | None:
    """Coerce a decoded Stage 2 object; ``None`` when it carries no exercises."""

    exercises: list[ExerciseWrite] = []
    for item in _as_list(payload.get("exercises")):
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        description = item.get("description")
        if not isinstance(name, str) or not name.strip():
            continue
        if not isinstance(description, str):
            continue
        exercises.append(
            ExerciseWrite(
                name=name.strip(),
                description=description.strip(),
                duration=str(item.get("duration") or ""),
                sets=str(item.get("sets") or ""),
                target_area=str(item.get("targetArea") or "general"),
                difficulty=_parse_enum(
                    Difficulty,
                    item.get("difficulty"),
                    default=Difficulty.INTERMEDIATE,
                ),
                related_error=_optional_str(item.get("relatedError")),
            ),
        )
    if not exercises:
        return None

    weekly_plan: dict[str, list[str]] = {}
    raw_plan = payload.get("weeklyPlan")
    if isinstance(raw_plan, dict):
        for day, entries in raw_plan.items():
            if isinstance(entries, list):
                weekly_plan[str(day)] = [str(entry) for entry in entries if isinstance(entry, str)]
    tips = [tip for tip in _as_list(payload.get("coachingTips")) if isinstance(tip, str)]
    priority = payload.get("priorityFocus")
    return PlanOutput(
        exercises=exercises,
        weekly_plan=weekly_plan,
        coaching_tips=tips,
        priority_focus=priority.strip() if isinstance(priority, str) and priority.strip() else "general",
    )


def clamp_score(value: object) -> float | None:
    """Score in 0..100, ``None`` for anything non-numeric."""

    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if value != value:  # NaN
        return None
    return float(min(SCORE_MAX, max(SCORE_MIN, value)))


def non_negative_int(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if value != value or value < 0:
        return None
    return int(value)


def _normalize_error(item: object) -> AnalysisErrorWrite | None:
    if not isinstance(item, dict):
        return None
    title = item.get("title")
    if not isinstance(title, str) or not title.strip():
        return None
    return AnalysisErrorWrite(
        title=title.strip(),
        description=str(item.get("description") or ""),
        severity=_parse_enum(Severity, item.get("severity"), default=Severity.MEDIUM),
        category=_parse_enum(SkillCategory, item.get("category"), default=None),
        time_range=str(item.get("timeRange") or ""),
        frequency=str(item.get("frequency") or ""),
        player_description=_optional_str(item.get("playerDescription")),
        video_timestamp=non_negative_int(item.get("videoTimestamp")),
    )


def _normalize_player(item: object) -> SubjectStatWrite | None:
    if not isinstance(item, dict):
        return None
    jersey = non_negative_int(item.get("jerseyNumber"))
    skills = {skill: _optional_str(item.get(skill)) for skill in PLAYER_SKILLS}
    return SubjectStatWrite(
        player_ref=f"jersey:{jersey}" if jersey is not None else None,
        description=str(item.get("description") or ""),
        position=str(item.get("position") or "unknown"),
        overall_rating=clamp_score(item.get("overallRating")),
        **skills,
    )


def _parse_enum(enum_type, value, *, default):  # type: ignore[no-untyped-def]
    if not isinstance(value, str):
        return default
    try:
        return enum_type(value.strip().lower())
    except ValueError:
        return default


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_list(value: object) -> list[Any]:
    return value if isinstance(value, list) else []
