# ABOUTME: Provides an in-memory progression store with compare-and-swap and split writes.
# ABOUTME: A lock serializes writes per process so concurrent awards for one learner cannot interleave.

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, Iterable, Optional, Set

from src.common.errors import DataSourceUnavailableError

from .award import ProgressionState

PROGRESSION = "progression"


class InMemoryProgressionStore:
    """
    Reference store for ProgressionLedger and SagaProgressionLedger.

    `failing_operations` names operations ("load", "swap", "write_experience",
    "grant_attribute_points") that raise DataSourceUnavailableError.
    """

    def __init__(self, states: Iterable[ProgressionState] = ()):
        self._states: Dict[str, ProgressionState] = {s.learner_id: s for s in states}
        self._lock = threading.Lock()
        self.failing_operations: Set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.failing_operations:
            raise DataSourceUnavailableError(PROGRESSION, f"{operation} failed")

    def load_progression(self, learner_id: str) -> Optional[ProgressionState]:
        self._check("load")
        with self._lock:
            return self._states.get(learner_id)

    def compare_and_swap(self, expected: ProgressionState, updated: ProgressionState) -> bool:
        self._check("swap")
        with self._lock:
            stored = self._states.get(expected.learner_id, ProgressionState(expected.learner_id))
            if stored != expected:
                return False
            self._states[updated.learner_id] = updated
            return True

    def write_experience(self, learner_id: str, total_xp: int) -> None:
        self._check("write_experience")
        with self._lock:
            stored = self._states.get(learner_id, ProgressionState(learner_id))
            self._states[learner_id] = replace(stored, total_xp=total_xp)

    def grant_attribute_points(self, learner_id: str, points: int) -> None:
        self._check("grant_attribute_points")
        with self._lock:
            stored = self._states.get(learner_id, ProgressionState(learner_id))
            self._states[learner_id] = replace(
                stored, available_points=stored.available_points + points
            )
