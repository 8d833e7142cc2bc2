# ABOUTME: Composes the XP reward for a graded question from difficulty, accuracy, speed, and attributes.
# ABOUTME: Reports each floored component alongside the floored total.

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Optional, Union

from src.common.errors import InvalidInputError
from src.common.schemas import validate_difficulty

from .attributes import Attribute, subject_attributes

NEUTRAL_ATTRIBUTE = 10
PRIMARY_WEIGHT = 0.02
SECONDARY_WEIGHT = 0.01


@dataclass(frozen=True)
class RelevantAttributes:
    primary: int
    secondary: Optional[int] = None


@dataclass(frozen=True)
class RewardBreakdown:
    base_xp: int
    accuracy_bonus: int
    time_bonus: int
    stat_bonus: int
    total_xp: int


def _unit_interval(value: float, name: str) -> float:
    if not 0.0 <= value <= 1.0:
        raise InvalidInputError(f"{name} must be between 0 and 1, got {value}")
    return float(value)


def _coerce_attributes(attributes: Union[RelevantAttributes, Mapping[str, int]]) -> RelevantAttributes:
    if isinstance(attributes, RelevantAttributes):
        return attributes
    if "primary" not in attributes:
        raise InvalidInputError("attributes must include a 'primary' value")
    return RelevantAttributes(primary=attributes["primary"], secondary=attributes.get("secondary"))


def compose_reward(
    difficulty: int,
    accuracy: float,
    time_bonus: float,
    attributes: Union[RelevantAttributes, Mapping[str, int]],
) -> RewardBreakdown:
    """
    Compute the XP awarded for an answer.

    base = difficulty * 10; accuracy adds up to 50% of base, speed up to 30%.
    Attributes scale the sum by 2% per primary point and 1% per secondary point
    away from 10 (below 10 reduces the reward).
    """

    difficulty = validate_difficulty(difficulty)
    accuracy = _unit_interval(accuracy, "accuracy")
    time_bonus = _unit_interval(time_bonus, "time_bonus")
    relevant = _coerce_attributes(attributes)

    base_xp = difficulty * 10
    accuracy_bonus = accuracy * 0.5 * base_xp
    time_bonus_xp = time_bonus * 0.3 * base_xp

    multiplier = 1 + (relevant.primary - NEUTRAL_ATTRIBUTE) * PRIMARY_WEIGHT
    if relevant.secondary is not None:
        multiplier += (relevant.secondary - NEUTRAL_ATTRIBUTE) * SECONDARY_WEIGHT
    stat_bonus = (base_xp + accuracy_bonus + time_bonus_xp) * (multiplier - 1)

    return RewardBreakdown(
        base_xp=math.floor(base_xp),
        accuracy_bonus=math.floor(accuracy_bonus),
        time_bonus=math.floor(time_bonus_xp),
        stat_bonus=math.floor(stat_bonus),
        total_xp=max(0, math.floor(base_xp + accuracy_bonus + time_bonus_xp + stat_bonus)),
    )


def relevant_attributes_for(
    subject_name: str, attributes: Mapping[Attribute, int]
) -> RelevantAttributes:
    """Pick the subject's primary/secondary attribute values; neutral when unmapped."""
    mapping = subject_attributes(subject_name)
    if mapping is None:
        return RelevantAttributes(primary=NEUTRAL_ATTRIBUTE)
    return RelevantAttributes(
        primary=attributes.get(mapping.primary, NEUTRAL_ATTRIBUTE),
        secondary=attributes.get(mapping.secondary, NEUTRAL_ATTRIBUTE),
    )
