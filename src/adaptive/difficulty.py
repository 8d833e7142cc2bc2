# ABOUTME: Recommends a target question difficulty from a learner's age and recent subject performance.
# ABOUTME: Applies accuracy, speed, streak, and mastery adjustments to an age baseline, with a reasoning trace.

from __future__ import annotations

import logging
import math
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

import numpy as np

from src.common.config import DifficultyConfig
from src.common.errors import DataSourceUnavailableError, InvalidInputError
from src.common.schemas import (
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    ContentItem,
    DifficultyRecommendation,
    PerformanceMetrics,
    ResponseEvent,
)
from src.common.sources import ResponseHistorySource

from .mastery import Clock, utc_now

logger = logging.getLogger(__name__)

# (maximum age, value); ages above the last bound use the fallback.
AGE_BASELINES = ((6, 1), (10, 2), (14, 3), (18, 4))
ADULT_BASELINE = 3
EXPECTED_RESPONSE_SECONDS = ((6, 45.0), (10, 30.0), (14, 20.0))
OLDER_EXPECTED_RESPONSE_SECONDS = 15.0


def _validate_age(age: int) -> int:
    if age is None or age < 0:
        raise InvalidInputError(f"age must be a non-negative integer, got {age!r}")
    return age


def age_baseline(age: int) -> int:
    age = _validate_age(age)
    for bound, baseline in AGE_BASELINES:
        if age <= bound:
            return baseline
    return ADULT_BASELINE


def expected_response_time(age: int) -> float:
    age = _validate_age(age)
    for bound, seconds in EXPECTED_RESPONSE_SECONDS:
        if age <= bound:
            return seconds
    return OLDER_EXPECTED_RESPONSE_SECONDS


def round_to_half(value: float) -> float:
    """Round to the nearest 0.5, halves going up."""
    return math.floor(value * 2 + 0.5) / 2


def performance_metrics(
    events: Sequence[ResponseEvent], default_response_time: float = 30.0
) -> PerformanceMetrics:
    """Summarize events ordered most recent first."""
    total = len(events)
    if total == 0:
        return PerformanceMetrics(
            accuracy=0.5,
            average_response_time=default_response_time,
            recent_streak=0,
            total_questions=0,
            subject_mastery=0.0,
        )

    correct = sum(1 for e in events if e.correct)
    accuracy = correct / total

    timed = [e.response_time_s for e in events if e.response_time_s and e.response_time_s > 0]
    average_response_time = float(np.mean(timed)) if timed else default_response_time

    streak = 0
    for event in events:
        if not event.correct:
            break
        streak += 1

    mean_difficulty = float(np.mean([e.difficulty for e in events]))
    subject_mastery = min(1.0, (mean_difficulty / MAX_DIFFICULTY) * accuracy)

    return PerformanceMetrics(
        accuracy=accuracy,
        average_response_time=average_response_time,
        recent_streak=streak,
        total_questions=total,
        subject_mastery=subject_mastery,
    )


def recommend_from_metrics(
    metrics: PerformanceMetrics, age: int, min_events: int = 5
) -> DifficultyRecommendation:
    baseline = age_baseline(age)
    phrases: List[str] = []
    adjustment = 0.0
    confidence = 0.5

    if metrics.total_questions >= min_events:
        confidence = min(0.9, 0.3 + metrics.total_questions / 50)

        if metrics.accuracy >= 0.85:
            adjustment += 1.0
            phrases.append("high accuracy (+1)")
        elif metrics.accuracy >= 0.70:
            adjustment += 0.5
            phrases.append("good accuracy (+0.5)")
        elif metrics.accuracy <= 0.50:
            adjustment -= 1.0
            phrases.append("low accuracy (-1)")
        elif metrics.accuracy <= 0.60:
            adjustment -= 0.5
            phrases.append("below average accuracy (-0.5)")

        time_ratio = metrics.average_response_time / expected_response_time(age)
        if time_ratio <= 0.7:
            adjustment += 0.5
            phrases.append("fast responses (+0.5)")
        elif time_ratio >= 1.5:
            adjustment -= 0.5
            phrases.append("slow responses (-0.5)")

        if metrics.recent_streak >= 10:
            adjustment += 0.5
            phrases.append("long streak (+0.5)")
        elif metrics.recent_streak >= 5:
            adjustment += 0.25
            phrases.append("good streak (+0.25)")

        if metrics.subject_mastery >= 0.8:
            adjustment += 1.0
            phrases.append("high mastery (+1)")
        elif metrics.subject_mastery >= 0.6:
            adjustment += 0.5
            phrases.append("good mastery (+0.5)")
        elif metrics.subject_mastery <= 0.3:
            adjustment -= 0.5
            phrases.append("low mastery (-0.5)")
    else:
        phrases.append("insufficient data for performance adjustment")

    target = float(np.clip(baseline + adjustment, MIN_DIFFICULTY, MAX_DIFFICULTY))
    reasoning = "; ".join([f"age-appropriate baseline ({baseline})"] + phrases)
    return DifficultyRecommendation(
        target_difficulty=round_to_half(target),
        confidence_level=confidence,
        reasoning=reasoning,
        adjustment_factor=adjustment,
        adjustments=tuple(phrases),
    )


def select_adaptive_items(
    target_difficulty: float, candidates: Sequence[ContentItem], limit: int
) -> List[ContentItem]:
    """
    Keep candidates within half a level of the target band, closest first.

    Falls back to the unfiltered candidates when nothing lies in the band.
    """

    low = max(MIN_DIFFICULTY, math.floor(target_difficulty - 0.5))
    high = min(MAX_DIFFICULTY, math.ceil(target_difficulty + 0.5))
    in_band = [c for c in candidates if low <= c.difficulty <= high]
    if not in_band:
        return list(candidates)[:limit]
    in_band.sort(key=lambda c: abs(c.difficulty - target_difficulty))
    return in_band[:limit]


class DifficultyScaler:
    def __init__(
        self,
        history: ResponseHistorySource,
        config: Optional[DifficultyConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.history = history
        self.config = config or DifficultyConfig()
        self.clock = clock or utc_now

    def recent_events(self, learner_id: str, subject_id: str) -> List[ResponseEvent]:
        since = self.clock() - timedelta(days=self.config.lookback_days)
        try:
            events = self.history.fetch_response_history(
                learner_id, subject_id=subject_id, since=since, limit=self.config.history_limit
            )
        except DataSourceUnavailableError as exc:
            logger.warning(
                "Degraded data: no performance history for learner %s in %s (%s)",
                learner_id,
                subject_id,
                exc,
            )
            return []
        # streaks count from the newest answer whatever order the source returns
        ordered = sorted(events, key=lambda e: (e.timestamp, e.question_id), reverse=True)
        return ordered[: self.config.history_limit]

    def recommend(self, learner_id: str, subject_id: str, age: int) -> DifficultyRecommendation:
        _validate_age(age)
        metrics = performance_metrics(
            self.recent_events(learner_id, subject_id), self.config.default_response_time
        )
        recommendation = recommend_from_metrics(metrics, age, self.config.min_events)
        logger.debug(
            "Difficulty for %s/%s: %.1f (%s)",
            learner_id,
            subject_id,
            recommendation.target_difficulty,
            recommendation.reasoning,
        )
        return recommendation

    def difficulty_distribution(
        self, learner_id: str, subject_id: str, days: int = 30
    ) -> Optional[Dict[int, Dict[str, int]]]:
        since = self.clock() - timedelta(days=days)
        try:
            events = self.history.fetch_response_history(
                learner_id, subject_id=subject_id, since=since, limit=10_000
            )
        except DataSourceUnavailableError as exc:
            logger.warning("Degraded data: distribution unavailable for %s (%s)", learner_id, exc)
            return None

        distribution = {level: {"total": 0, "correct": 0} for level in range(MIN_DIFFICULTY, MAX_DIFFICULTY + 1)}
        for event in events:
            distribution[event.difficulty]["total"] += 1
            if event.correct:
                distribution[event.difficulty]["correct"] += 1
        return distribution
