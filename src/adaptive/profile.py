# ABOUTME: Creates learning profiles lazily with age-based defaults and refreshes them from mastery.
# ABOUTME: Estimates typical session length by splitting recent responses on 30-minute gaps.

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from src.common.errors import DataSourceUnavailableError, InvalidInputError
from src.common.schemas import ConceptMastery, LearningProfile, LearningStyle, ensure_utc
from src.common.sources import LearnerDirectory, LearningProfileStore, ResponseHistorySource

from .mastery import Clock, MasteryAnalyzer, MasteryThresholds, utc_now

logger = logging.getLogger(__name__)

DEFAULT_AGE = 10
DEFAULT_MOTIVATION_FACTORS = ("achievements", "progress_bars", "social_recognition")
SESSION_GAP_MINUTES = 30
MIN_SESSION_MINUTES = 5.0


def default_profile(learner_id: str, age: int, now: datetime) -> LearningProfile:
    young = age <= 10
    return LearningProfile(
        learner_id=learner_id,
        preferred_learning_style=LearningStyle.MIXED,
        strengths=[],
        weaknesses=[],
        average_session_length=10.0 if young else 15.0,
        difficulty_curve=0.05 if young else 0.1,
        motivation_factors=list(DEFAULT_MOTIVATION_FACTORS),
        last_updated=now,
    )


def estimate_session_length(timestamps: Sequence[datetime]) -> Optional[float]:
    """
    Mean session length in minutes, splitting sessions on gaps over 30 minutes.

    Returns None with fewer than two timestamps.
    """

    if len(timestamps) < 2:
        return None

    ordered = sorted(ensure_utc(t) for t in timestamps)
    sessions: List[List[datetime]] = [[ordered[0]]]
    for moment in ordered[1:]:
        gap = (moment - sessions[-1][-1]).total_seconds() / 60
        if gap <= SESSION_GAP_MINUTES:
            sessions[-1].append(moment)
        else:
            sessions.append([moment])

    lengths = [
        MIN_SESSION_MINUTES
        if len(session) < 2
        else (session[-1] - session[0]).total_seconds() / 60
        for session in sessions
    ]
    return sum(lengths) / len(lengths)


def refreshed_profile(
    profile: LearningProfile,
    masteries: Sequence[ConceptMastery],
    session_length: Optional[float],
    now: datetime,
) -> LearningProfile:
    strengths = [m.subject_id for m in masteries if m.mastery_level >= MasteryThresholds.STRENGTH_AT_LEAST]
    weaknesses = [m.subject_id for m in masteries if m.mastery_level < MasteryThresholds.LOW_MASTERY_BELOW]
    return replace(
        profile,
        strengths=strengths,
        weaknesses=weaknesses,
        average_session_length=session_length or profile.average_session_length,
        last_updated=now,
    )


class LearningProfileService:
    def __init__(
        self,
        profiles: LearningProfileStore,
        learners: LearnerDirectory,
        history: ResponseHistorySource,
        analyzer: MasteryAnalyzer,
        clock: Optional[Clock] = None,
        default_age: int = DEFAULT_AGE,
    ):
        self.profiles = profiles
        self.learners = learners
        self.history = history
        self.analyzer = analyzer
        self.clock = clock or utc_now
        self.default_age = default_age

    def learner_age(self, learner_id: str) -> int:
        try:
            age = self.learners.fetch_learner_age(learner_id)
        except DataSourceUnavailableError as exc:
            logger.warning("Degraded data: age unavailable for learner %s (%s)", learner_id, exc)
            return self.default_age
        if age is None:
            return self.default_age
        if age < 0:
            raise InvalidInputError(f"age must be non-negative, got {age}")
        return int(age)

    def get_or_create(self, learner_id: str) -> LearningProfile:
        try:
            profile = self.profiles.fetch_learning_profile(learner_id)
        except DataSourceUnavailableError as exc:
            logger.warning(
                "Degraded data: learning profile unavailable for learner %s (%s); using defaults",
                learner_id,
                exc,
            )
            return default_profile(learner_id, self.learner_age(learner_id), self.clock())
        if profile is not None:
            return profile

        profile = default_profile(learner_id, self.learner_age(learner_id), self.clock())
        try:
            self.profiles.upsert_learning_profile(profile)
            logger.info("Created default learning profile for learner %s", learner_id)
        except DataSourceUnavailableError as exc:
            logger.warning("Failed to store default learning profile for %s (%s)", learner_id, exc)
        return profile

    def refresh(self, learner_id: str) -> LearningProfile:
        """
        Recompute strengths, weaknesses, and session length, then upsert.

        Store failures on the final write propagate to the caller.
        """

        now = self.clock()
        current = self.get_or_create(learner_id)
        masteries = self.analyzer.concept_masteries(learner_id)

        session_length = None
        try:
            recent = self.history.fetch_response_history(
                learner_id, since=now - timedelta(days=7), limit=self.analyzer.config.history_limit
            )
            session_length = estimate_session_length([e.timestamp for e in recent])
        except DataSourceUnavailableError as exc:
            logger.warning("Degraded data: recent sessions unavailable for %s (%s)", learner_id, exc)

        updated = refreshed_profile(current, masteries, session_length, now)
        self.profiles.upsert_learning_profile(updated)
        return updated
