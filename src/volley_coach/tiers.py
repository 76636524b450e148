"""Static subscription tier table and per-task capability gates."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from volley_coach.pipeline.models import TaskType

UNLIMITED = -1


class Tier(str, Enum):
    """Subscription tiers ordered from lowest to highest."""

    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    CLUB = "club"


TIER_HIERARCHY: tuple[Tier, ...] = (Tier.FREE, Tier.STARTER, Tier.PRO, Tier.CLUB)


@dataclass(frozen=True, slots=True)
class TierConfig:
    """Capability switches and monthly quota for one tier."""

    name: str
    can_use_ai_coach: bool
    advanced_analytics: bool
    ai_analyses_per_month: int


TIERS: dict[Tier, TierConfig] = {
    Tier.FREE: TierConfig(
        name="Free",
        can_use_ai_coach=False,
        advanced_analytics=False,
        ai_analyses_per_month=0,
    ),
    Tier.STARTER: TierConfig(
        name="Starter",
        can_use_ai_coach=False,
        advanced_analytics=False,
        ai_analyses_per_month=0,
    ),
    Tier.PRO: TierConfig(
        name="Pro",
        can_use_ai_coach=True,
        advanced_analytics=True,
        ai_analyses_per_month=5,
    ),
    Tier.CLUB: TierConfig(
        name="Club",
        can_use_ai_coach=True,
        advanced_analytics=True,
        ai_analyses_per_month=UNLIMITED,
    ),
}


class Capability(str, Enum):
    """Gated features a task may require."""

    VIDEO_ANALYSIS = "video_analysis"
    COACHING_PLAN = "coaching_plan"
    PLAYER_ASSESSMENT = "player_assessment"


@dataclass(frozen=True, slots=True)
class CapabilityGate:
    """Resolved access decision for one tier and task type."""

    capability: Capability
    enabled: bool
    metered: bool
    limit: int
    required_tier: Tier


TASK_CAPABILITIES: dict[TaskType, Capability] = {
    TaskType.ANALYZE: Capability.VIDEO_ANALYSIS,
    TaskType.GENERATE_PLAN: Capability.COACHING_PLAN,
    TaskType.ASSESS: Capability.PLAYER_ASSESSMENT,
}

METERED_CAPABILITIES: frozenset[Capability] = frozenset({Capability.VIDEO_ANALYSIS})


def parse_tier(value: str) -> Tier:
    """Parse tier key, raising ``ValueError`` for unknown values."""

    try:
        return Tier(value.strip().lower())
    except ValueError as error:
        allowed = ", ".join(tier.value for tier in TIER_HIERARCHY)
        raise ValueError(f"Unknown tier {value!r}. Expected one of: {allowed}") from error


def capability_enabled(tier: Tier, capability: Capability) -> bool:
    config = TIERS[tier]
    if capability is Capability.PLAYER_ASSESSMENT:
        return config.advanced_analytics
    if not config.can_use_ai_coach:
        return False
    if capability is Capability.VIDEO_ANALYSIS:
        return config.ai_analyses_per_month != 0
    return True


def capability_limit(tier: Tier, capability: Capability) -> int:
    """Monthly limit for a capability: -1 unlimited, 0 disabled."""

    if not capability_enabled(tier, capability):
        return 0
    if capability in METERED_CAPABILITIES:
        return TIERS[tier].ai_analyses_per_month
    return UNLIMITED


def minimum_tier(capability: Capability) -> Tier:
    for tier in TIER_HIERARCHY:
        if capability_enabled(tier, capability):
            return tier
    raise ValueError(f"No tier enables capability {capability.value!r}")


def next_quota_tier(tier: Tier, capability: Capability) -> Tier | None:
    """Lowest tier above ``tier`` with a larger quota for ``capability``."""

    current = capability_limit(tier, capability)
    if current == UNLIMITED:
        return None
    for candidate in TIER_HIERARCHY[TIER_HIERARCHY.index(tier) + 1 :]:
        limit = capability_limit(candidate, capability)
        if limit == UNLIMITED or limit > current:
            return candidate
    return None


def resolve_gate(tier: Tier, task_type: TaskType) -> CapabilityGate:
    """Resolve the capability gate for a task type under a tier."""

    capability = TASK_CAPABILITIES[task_type]
    return CapabilityGate(
        capability=capability,
        enabled=capability_enabled(tier, capability),
        metered=capability in METERED_CAPABILITIES,
        limit=capability_limit(tier, capability),
        required_tier=minimum_tier(capability),
    )
