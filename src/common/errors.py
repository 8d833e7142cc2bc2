# ABOUTME: Declares the exception hierarchy raised by the adaptive and progression engines.
# ABOUTME: Separates invalid input, unavailable data sources, and partially applied awards.

from __future__ import annotations

from typing import Optional


class EngineError(Exception):
    """Base class for every error raised by the engine."""


class InvalidInputError(EngineError, ValueError):
    """Input violates an invariant (difficulty outside 1-5, negative XP, ...)."""


class DataSourceUnavailableError(EngineError):
    """An external collaborator (history, profiles, content) could not be reached."""

    def __init__(self, source: str, message: Optional[str] = None):
        self.source = source
        super().__init__(message or f"Data source '{source}' is unavailable")


class ConcurrentAwardError(EngineError):
    """The progression state kept changing underneath an award."""

    def __init__(self, learner_id: str, attempts: int):
        self.learner_id = learner_id
        self.attempts = attempts
        super().__init__(
            f"Could not apply award for learner '{learner_id}' after {attempts} attempts"
        )


class PartialAwardError(EngineError):
    """
    XP was written but the attribute-point grant failed and could not be undone.

    The caller must reconcile `pending_points` for `learner_id`; the store holds
    `committed_total_xp`.
    """

    def __init__(self, learner_id: str, committed_total_xp: int, pending_points: int):
        self.learner_id = learner_id
        self.committed_total_xp = committed_total_xp
        self.pending_points = pending_points
        super().__init__(
            f"Partial award for learner '{learner_id}': total XP {committed_total_xp} "
            f"committed, {pending_points} attribute points not granted"
        )
