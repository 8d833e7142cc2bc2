# ABOUTME: Applies XP awards to a learner's progression state, granting attribute points on level-up.
# ABOUTME: Persists each award atomically via compare-and-swap, or as a compensated saga for split stores.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from src.common.errors import (
    ConcurrentAwardError,
    InvalidInputError,
    PartialAwardError,
)

from .levels import current_xp_in_level, level_from_xp

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL = 3


@dataclass(frozen=True)
class ProgressionState:
    """XP and unspent attribute points; level and in-level XP are derived from total XP."""

    learner_id: str
    total_xp: int = 0
    available_points: int = 0

    def __post_init__(self) -> None:
        if self.total_xp < 0:
            raise InvalidInputError(f"total_xp must be non-negative, got {self.total_xp}")
        if self.available_points < 0:
            raise InvalidInputError(
                f"available_points must be non-negative, got {self.available_points}"
            )

    @property
    def level(self) -> int:
        return level_from_xp(self.total_xp)

    @property
    def current_xp(self) -> int:
        return current_xp_in_level(self.total_xp, self.level)


@dataclass(frozen=True)
class AwardResult:
    new_level: int
    new_current_xp: int
    attribute_points_awarded: int
    leveled_up: bool
    new_total_xp: int


def award_xp(
    state: ProgressionState, delta: int, points_per_level: int = POINTS_PER_LEVEL
) -> AwardResult:
    """Compute the outcome of adding `delta` XP without touching any store."""
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise InvalidInputError(f"XP delta must be an integer, got {delta!r}")
    if delta < 0:
        raise InvalidInputError(f"XP delta must be non-negative, got {delta}")

    old_level = state.level
    new_total = state.total_xp + delta
    new_level = level_from_xp(new_total)
    levels_gained = max(0, new_level - old_level)
    return AwardResult(
        new_level=new_level,
        new_current_xp=current_xp_in_level(new_total, new_level),
        attribute_points_awarded=levels_gained * points_per_level,
        leveled_up=levels_gained > 0,
        new_total_xp=new_total,
    )


def apply_award(state: ProgressionState, result: AwardResult) -> ProgressionState:
    return ProgressionState(
        learner_id=state.learner_id,
        total_xp=result.new_total_xp,
        available_points=state.available_points + result.attribute_points_awarded,
    )


class ProgressionStore(Protocol):
    def load_progression(self, learner_id: str) -> Optional[ProgressionState]:
        ...

    def compare_and_swap(self, expected: ProgressionState, updated: ProgressionState) -> bool:
        """Replace `expected` with `updated` in one write; False if the stored state differs."""


class SplitProgressionStore(Protocol):
    def load_progression(self, learner_id: str) -> Optional[ProgressionState]:
        ...

    def write_experience(self, learner_id: str, total_xp: int) -> None:
        ...

    def grant_attribute_points(self, learner_id: str, points: int) -> None:
        ...


class ProgressionLedger:
    """Applies awards as a single conditional update of the whole progression state."""

    def __init__(
        self,
        store: ProgressionStore,
        points_per_level: int = POINTS_PER_LEVEL,
        max_retries: int = 3,
    ):
        self.store = store
        self.points_per_level = points_per_level
        self.max_retries = max_retries

    def award(self, learner_id: str, delta: int) -> AwardResult:
        attempts = 0
        while attempts < self.max_retries:
            attempts += 1
            current = self.store.load_progression(learner_id) or ProgressionState(learner_id)
            result = award_xp(current, delta, self.points_per_level)
            if self.store.compare_and_swap(current, apply_award(current, result)):
                if result.leveled_up:
                    logger.info(
                        "Learner %s reached level %d (+%d attribute points)",
                        learner_id,
                        result.new_level,
                        result.attribute_points_awarded,
                    )
                return result
            logger.debug("Progression for %s changed concurrently; retrying award", learner_id)
        raise ConcurrentAwardError(learner_id, attempts)


class SagaProgressionLedger:
    """
    Applies awards to stores that write XP and attribute points separately.

    The XP write happens first. If the point grant then fails for any reason
    (outage, timeout, driver error), the previous
    total XP is written back (the compensating action) and the grant
    failure is re-raised. If the compensation also fails, PartialAwardError
    tells the caller exactly what needs reconciling.
    """

    def __init__(self, store: SplitProgressionStore, points_per_level: int = POINTS_PER_LEVEL):
        self.store = store
        self.points_per_level = points_per_level

    def award(self, learner_id: str, delta: int) -> AwardResult:
        current = self.store.load_progression(learner_id) or ProgressionState(learner_id)
        result = award_xp(current, delta, self.points_per_level)

        self.store.write_experience(learner_id, result.new_total_xp)
        if result.attribute_points_awarded == 0:
            return result

        try:
            self.store.grant_attribute_points(learner_id, result.attribute_points_awarded)
        except Exception:
            try:
                self.store.write_experience(learner_id, current.total_xp)
            except Exception as rollback_exc:
                logger.error(
                    "Award for %s left XP at %d without %d attribute points",
                    learner_id,
                    result.new_total_xp,
                    result.attribute_points_awarded,
                )
                raise PartialAwardError(
                    learner_id, result.new_total_xp, result.attribute_points_awarded
                ) from rollback_exc
            logger.warning("Rolled back XP award for %s after failed point grant", learner_id)
            raise

        logger.info(
            "Learner %s reached level %d (+%d attribute points)",
            learner_id,
            result.new_level,
            result.attribute_points_awarded,
        )
        return result
