# ABOUTME: Groups the pure progression calculator: level curve, rewards, attributes, and awards.
# ABOUTME: Re-exports the public functions consumed by the adaptive engine facade.

from .attributes import Attribute, Specialization, apply_specialization, specialization_bonuses
from .award import (
    AwardResult,
    ProgressionLedger,
    ProgressionState,
    SagaProgressionLedger,
    award_xp,
)
from .levels import level_from_xp, level_progress, xp_for_next_level, xp_to_reach_level
from .rewards import RelevantAttributes, RewardBreakdown, compose_reward

__all__ = [
    "Attribute",
    "Specialization",
    "apply_specialization",
    "specialization_bonuses",
    "AwardResult",
    "ProgressionLedger",
    "ProgressionState",
    "SagaProgressionLedger",
    "award_xp",
    "level_from_xp",
    "level_progress",
    "xp_for_next_level",
    "xp_to_reach_level",
    "RelevantAttributes",
    "RewardBreakdown",
    "compose_reward",
]
