# ABOUTME: Implements the tiered experience curve mapping total XP to character level.
# ABOUTME: Levels 2-11 cost 100 XP each, the next 15 levels 150 XP, every later level 200 XP.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.common.errors import InvalidInputError

# (number of level-ups in the tier, XP cost per level-up); the last tier is open-ended.
XP_TIERS = ((10, 100), (15, 150), (None, 200))


@dataclass(frozen=True)
class LevelProgress:
    level: int
    current_xp: int
    xp_for_next_level: int
    fraction: float


def xp_to_reach_level(level: int) -> int:
    """Cumulative XP needed to reach `level`; 0 for level 1 and below."""
    if level <= 1:
        return 0

    remaining = level - 1
    total = 0
    for span, cost in XP_TIERS:
        steps = remaining if span is None else min(remaining, span)
        total += steps * cost
        remaining -= steps
        if remaining <= 0:
            break
    return total


def level_from_xp(total_xp: int) -> int:
    """Largest level L with xp_to_reach_level(L) <= total_xp."""
    if total_xp < 0:
        raise InvalidInputError(f"total XP must be non-negative, got {total_xp}")

    level = 1
    remaining = int(total_xp)
    for span, cost in XP_TIERS:
        steps = remaining // cost if span is None else min(remaining // cost, span)
        level += steps
        remaining -= steps * cost
        if span is not None and steps < span:
            break
    return level


def current_xp_in_level(total_xp: int, level: Optional[int] = None) -> int:
    if level is None:
        level = level_from_xp(total_xp)
    return total_xp - xp_to_reach_level(level)


def xp_for_next_level(level: int) -> int:
    """Cost of the level-up from `level` to `level + 1`."""
    return xp_to_reach_level(level + 1) - xp_to_reach_level(level)


def level_progress(total_xp: int) -> LevelProgress:
    level = level_from_xp(total_xp)
    current = current_xp_in_level(total_xp, level)
    needed = xp_for_next_level(level)
    return LevelProgress(
        level=level,
        current_xp=current,
        xp_for_next_level=needed,
        fraction=current / needed,
    )
