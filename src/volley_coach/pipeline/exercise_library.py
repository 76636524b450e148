"""Static rule-based training plan used when no generation backend answers."""

from __future__ import annotations

from collections.abc import Sequence

from volley_coach.pipeline.contracts import PlanOutput
from volley_coach.pipeline.models import (
    AnalysisErrorWrite,
    Difficulty,
    ExerciseWrite,
    Severity,
    SkillCategory,
)

GENERAL_AREA = "general"

WARM_UP = ExerciseWrite(
    name="Dynamic Volleyball Warm-Up",
    description=(
        "Jog two laps, then high knees, butt kicks, lateral shuffles and arm circles. "
        "Finish with 20 partner pepper contacts (pass-set-hit) to get touches on the ball."
    ),
    duration="8 minutes",
    sets="1 round through all movements",
    target_area=GENERAL_AREA,
    difficulty=Difficulty.BEGINNER,
)

DEFAULT_COACHING_TIPS: tuple[str, ...] = (
    "Focus on consistent form during practice drills",
    "Communicate with teammates before, during, and after plays",
    "Review game footage weekly to track improvement",
)

SEVERITY_WEIGHTS: dict[Severity, int] = {
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}

LIBRARY: dict[SkillCategory, tuple[ExerciseWrite, ...]] = {
    SkillCategory.SERVING: (
        ExerciseWrite(
            name="Target Serving Drill",
            description=(
                "Place towels or cones in different court zones. Serve 10 balls to each zone "
                "with a consistent toss height and contact point, and track accuracy."
            ),
            duration="15 minutes",
            sets="3 rounds of 10 serves per zone",
            target_area=SkillCategory.SERVING.value,
            difficulty=Difficulty.INTERMEDIATE,
        ),
        ExerciseWrite(
            name="Float Serve Progression",
            description=(
                "Start at the 3-meter line and serve over the net. Step back after every "
                "5 clean serves until reaching the baseline. Contact the ball without spin."
            ),
            duration="10 minutes",
            sets="Until reaching the baseline",
            target_area=SkillCategory.SERVING.value,
            difficulty=Difficulty.BEGINNER,
        ),
    ),
    SkillCategory.PASSING: (
        ExerciseWrite(
            name="Platform Control Drill",
            description=(
                "A partner tosses balls at varying heights and angles; the passer returns "
                "every ball to the setter target, keeping the platform angle steady."
            ),
            duration="12 minutes",
            sets="4 sets of 15 passes",
            target_area=SkillCategory.PASSING.value,
            difficulty=Difficulty.INTERMEDIATE,
        ),
    ),
    SkillCategory.SETTING: (
        ExerciseWrite(
            name="Wall Setting Repetitions",
            description=(
                "Stand two feet from a wall and set continuously against it, focusing on "
                "hand shape, follow-through and a consistent height."
            ),
            duration="10 minutes",
            sets="3 sets of 50 contacts",
            target_area=SkillCategory.SETTING.value,
            difficulty=Difficulty.BEGINNER,
        ),
    ),
    SkillCategory.ATTACKING: (
        ExerciseWrite(
            name="Approach Footwork Drill",
            description=(
                "Rehearse the 3- or 4-step approach without a ball, stressing an explosive "
                "penultimate step and arm swing timing. Add a ball once footwork is stable."
            ),
            duration="10 minutes",
            sets="20 approaches, then 15 with a ball",
            target_area=SkillCategory.ATTACKING.value,
            difficulty=Difficulty.INTERMEDIATE,
        ),
    ),
    SkillCategory.BLOCKING: (
        ExerciseWrite(
            name="Lateral Shuffle and Block",
            description=(
                "From position 3 shuffle to position 2, jump and block, return, then repeat "
                "toward position 4. Press the hands over the net to seal it."
            ),
            duration="8 minutes",
            sets="4 sets of 10 blocks",
            target_area=SkillCategory.BLOCKING.value,
            difficulty=Difficulty.INTERMEDIATE,
        ),
    ),
    SkillCategory.DIGGING: (
        ExerciseWrite(
            name="Reaction Ball Digging",
            description=(
                "A coach attacks from across the net at increasing speed. Stay low, read the "
                "hitter's arm and hold the platform angle."
            ),
            duration="10 minutes",
            sets="3 sets of 12 digs",
            target_area=SkillCategory.DIGGING.value,
            difficulty=Difficulty.ADVANCED,
        ),
    ),
    SkillCategory.POSITIONING: (
        ExerciseWrite(
            name="Rotation Shadow Drill",
            description=(
                "Walk the full team through all six rotations. The coach calls serve, pass "
                "or attack and players move to their base positions."
            ),
            duration="15 minutes",
            sets="2 full rotation cycles",
            target_area=SkillCategory.POSITIONING.value,
            difficulty=Difficulty.BEGINNER,
        ),
    ),
    SkillCategory.COMMUNICATION: (
        ExerciseWrite(
            name="Call-Out Scrimmage",
            description=(
                "Scrimmage where every ball must be called before contact; an uncalled ball "
                "is a point for the other side."
            ),
            duration="20 minutes",
            sets="Play to 15 points",
            target_area=SkillCategory.COMMUNICATION.value,
            difficulty=Difficulty.INTERMEDIATE,
        ),
    ),
}


def build_library_plan(errors: Sequence[AnalysisErrorWrite]) -> PlanOutput:
    """Warm-up plus library drills for each error category present, in first-seen order."""

    exercises = [_copy(WARM_UP)]
    seen: set[SkillCategory] = set()
    for error in errors:
        if error.category is None or error.category in seen:
            continue
        seen.add(error.category)
        exercises.extend(_copy(item) for item in LIBRARY.get(error.category, ()))
    return PlanOutput(
        exercises=exercises,
        weekly_plan={},
        coaching_tips=list(DEFAULT_COACHING_TIPS),
        priority_focus=detect_priority_area(errors),
    )


def detect_priority_area(errors: Sequence[AnalysisErrorWrite]) -> str:
    """Category with the highest severity-weighted error count; ties keep first seen."""

    weights: dict[str, int] = {}
    for error in errors:
        area = error.category.value if error.category is not None else GENERAL_AREA
        weights[area] = weights.get(area, 0) + SEVERITY_WEIGHTS[error.severity]

    best_area = GENERAL_AREA
    best_weight = 0
    for area, weight in weights.items():
        if weight > best_weight:
            best_area = area
            best_weight = weight
    return best_area


def _copy(exercise: ExerciseWrite) -> ExerciseWrite:
    return ExerciseWrite(
        name=exercise.name,
        description=exercise.description,
        duration=exercise.duration,
        sets=exercise.sets,
        target_area=exercise.target_area,
        difficulty=exercise.difficulty,
        related_error=exercise.related_error,
    )
