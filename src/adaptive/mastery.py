# ABOUTME: Aggregates a learner's graded responses into per-concept mastery and knowledge gaps.
# ABOUTME: Mastery blends accuracy, recent consistency, and recency of practice; gaps flag weak or stale concepts.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from src.common.config import MasteryConfig
from src.common.errors import DataSourceUnavailableError
from src.common.events import events_to_frame
from src.common.schemas import (
    ConceptMastery,
    ContentItem,
    GapKind,
    KnowledgeGap,
    ResponseEvent,
    ensure_utc,
)
from src.common.sources import ResponseHistorySource, SubjectCatalog

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MasteryThresholds:
    NEEDS_REVIEW_BELOW = 0.7
    STALE_AFTER_DAYS = 7
    LOW_MASTERY_BELOW = 0.6
    STRENGTH_AT_LEAST = 0.8
    CONSISTENCY_WINDOW = 10
    MIN_EVENTS_FOR_CONSISTENCY = 5
    CONSISTENCY_FLOOR = 0.5


@dataclass(frozen=True)
class MasterySnapshot:
    events: Tuple[ResponseEvent, ...]
    masteries: List[ConceptMastery]
    gaps: List[KnowledgeGap]
    degraded: bool = False


@dataclass(frozen=True)
class LearningAnalytics:
    learner_id: str
    concept_masteries: List[ConceptMastery]
    knowledge_gaps: List[KnowledgeGap]
    focus_topics: List[str]
    learning_velocity: int
    time_spent_minutes: int
    streak_days: int
    analyzed_at: datetime
    degraded: bool = False


def days_since(moment: datetime, now: datetime) -> int:
    """Whole days between two instants, rounded up (2 hours ago counts as 1 day)."""
    seconds = abs((ensure_utc(now) - ensure_utc(moment)).total_seconds())
    return math.ceil(seconds / 86400)


def recency_factor(days: int) -> float:
    if days <= 1:
        return 1.0
    if days <= 7:
        return 0.9
    if days <= 30:
        return 0.7
    return 0.5


def consistency_factor(correct_recent_first: Sequence[bool]) -> float:
    """
    Share of correct answers among the most recent attempts, floored at 0.5.

    Fewer than five attempts is too little evidence to penalize, so 1.0.
    """

    if len(correct_recent_first) < MasteryThresholds.MIN_EVENTS_FOR_CONSISTENCY:
        return 1.0
    window = list(correct_recent_first[: MasteryThresholds.CONSISTENCY_WINDOW])
    return max(MasteryThresholds.CONSISTENCY_FLOOR, sum(window) / len(window))


def _concept_name(subject_id: str, group: pd.DataFrame, subject_names: Optional[Mapping[str, str]]) -> str:
    if subject_names and subject_id in subject_names:
        return subject_names[subject_id]
    names = group["subject_name"].dropna()
    if not names.empty:
        return str(names.iloc[0])
    return f"Subject {subject_id}"


def compute_concept_masteries(
    events: Iterable[ResponseEvent],
    now: datetime,
    subject_names: Optional[Mapping[str, str]] = None,
) -> List[ConceptMastery]:
    """
    Build one ConceptMastery per subject touched by `events`.

    Output is sorted by mastery level, highest first; equal levels keep
    subject-id order so repeated calls return identical lists.
    """

    frame = events_to_frame(events)
    if frame.empty:
        return []

    frame = frame.sort_values(["timestamp", "question_id"], ascending=False, kind="mergesort")

    masteries: List[ConceptMastery] = []
    for subject_id, group in frame.groupby("subject_id", sort=True):
        attempted = len(group)
        correct_flags = [bool(c) for c in group["correct"].tolist()]
        correct = sum(correct_flags)
        accuracy = correct / attempted

        latencies = group["response_time_s"].dropna()
        latencies = latencies[latencies > 0]
        average_response_time = float(latencies.mean()) if not latencies.empty else 0.0

        last_practiced = group["timestamp"].iloc[0].to_pydatetime()
        days = days_since(last_practiced, now)
        mastery_level = min(
            1.0, accuracy * consistency_factor(correct_flags) * recency_factor(days)
        )

        masteries.append(
            ConceptMastery(
                concept_id=str(subject_id),
                concept_name=_concept_name(subject_id, group, subject_names),
                subject_id=str(subject_id),
                mastery_level=mastery_level,
                questions_attempted=attempted,
                questions_correct=correct,
                average_response_time=average_response_time,
                last_practiced=last_practiced,
                needs_review=(
                    mastery_level < MasteryThresholds.NEEDS_REVIEW_BELOW
                    or days > MasteryThresholds.STALE_AFTER_DAYS
                ),
            )
        )

    masteries.sort(key=lambda m: m.mastery_level, reverse=True)
    return masteries


def derive_knowledge_gaps(
    masteries: Sequence[ConceptMastery], now: datetime, limit: int = 10
) -> List[KnowledgeGap]:
    """Low-mastery concepts first, then well-known concepts that have gone stale."""
    low = [
        KnowledgeGap(m.subject_id, m.concept_name, GapKind.LOW_MASTERY)
        for m in masteries
        if m.mastery_level < MasteryThresholds.LOW_MASTERY_BELOW
    ]
    stale = [
        KnowledgeGap(m.subject_id, m.concept_name, GapKind.STALE)
        for m in masteries
        if m.mastery_level >= MasteryThresholds.LOW_MASTERY_BELOW
        and m.needs_review
        and days_since(m.last_practiced, now) > MasteryThresholds.STALE_AFTER_DAYS
    ]
    return (low + stale)[:limit]


def focus_topics(masteries: Sequence[ConceptMastery]) -> List[str]:
    suggestions: List[str] = []

    improving = sorted(
        (m for m in masteries if 0.4 <= m.mastery_level < MasteryThresholds.STRENGTH_AT_LEAST),
        key=lambda m: m.mastery_level,
        reverse=True,
    )[:3]
    suggestions.extend(f"Continue practicing {m.concept_name}" for m in improving)

    if any(m.mastery_level >= MasteryThresholds.STRENGTH_AT_LEAST for m in masteries):
        suggestions.append("Explore advanced topics in your strong subjects")

    review = [m for m in masteries if m.needs_review]
    if review:
        suggestions.append(f"Review {review[0].concept_name} to maintain mastery")

    return suggestions[:5]


def learning_velocity(events: Iterable[ResponseEvent], now: datetime, days: int = 7) -> int:
    """Distinct subjects practiced in the last `days` days."""
    cutoff = ensure_utc(now) - timedelta(days=days)
    return len({e.subject_id for e in events if e.timestamp >= cutoff})


def time_spent_minutes(events: Iterable[ResponseEvent]) -> int:
    seconds = sum(e.response_time_s for e in events if e.response_time_s)
    return round(seconds / 60)


def activity_streak_days(events: Iterable[ResponseEvent], now: datetime) -> int:
    """Consecutive UTC calendar days with at least one response, ending today."""
    active_days = {e.timestamp.date() for e in events}
    day = ensure_utc(now).date()
    streak = 0
    while day in active_days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def next_steps(analytics: LearningAnalytics, weaknesses: Sequence[str]) -> List[str]:
    steps: List[str] = []
    if analytics.knowledge_gaps:
        steps.append(f"Focus on addressing: {analytics.knowledge_gaps[0].message}")

    if analytics.learning_velocity < 1:
        steps.append("Try to engage with learning content more regularly")
    elif analytics.learning_velocity > 3:
        steps.append("Consider exploring more challenging topics")

    if analytics.streak_days == 0:
        steps.append("Start building a daily learning habit")
    elif analytics.streak_days >= 7:
        steps.append("Great job maintaining your learning streak!")

    if weaknesses:
        steps.append(f"Dedicate extra time to {weaknesses[0]}")

    return steps[:3]


def learning_objectives(items: Sequence[ContentItem], masteries: Sequence[ConceptMastery]) -> List[str]:
    by_subject = {m.subject_id: m for m in masteries}
    objectives: List[str] = []
    seen: List[str] = []
    for item in items:
        if item.subject_id not in seen:
            seen.append(item.subject_id)

    for subject_id in seen:
        subject_items = [i for i in items if i.subject_id == subject_id]
        average_difficulty = sum(i.difficulty for i in subject_items) / len(subject_items)
        mastery = by_subject.get(subject_id)
        name = mastery.concept_name if mastery else "this subject"
        if mastery and mastery.mastery_level < MasteryThresholds.LOW_MASTERY_BELOW:
            objectives.append(f"Improve understanding of {name}")
        elif average_difficulty >= 4:
            objectives.append(f"Master advanced concepts in {name}")
        else:
            objectives.append(f"Practice and reinforce {name} skills")
    return objectives


class MasteryAnalyzer:
    """Reads response history and derives mastery, gaps, and learning analytics."""

    def __init__(
        self,
        history: ResponseHistorySource,
        config: Optional[MasteryConfig] = None,
        clock: Optional[Clock] = None,
        catalog: Optional[SubjectCatalog] = None,
    ):
        self.history = history
        self.config = config or MasteryConfig()
        self.clock = clock or utc_now
        self.catalog = catalog

    def _subject_names(self) -> Optional[Mapping[str, str]]:
        if self.catalog is None:
            return None
        try:
            return {s.subject_id: s.name for s in self.catalog.fetch_known_subjects()}
        except DataSourceUnavailableError:
            logger.debug("Subject catalog unavailable; falling back to names recorded on events")
            return None

    def snapshot(self, learner_id: str) -> MasterySnapshot:
        now = self.clock()
        try:
            events = self.history.fetch_response_history(
                learner_id, limit=self.config.history_limit
            )
        except DataSourceUnavailableError as exc:
            logger.warning(
                "Degraded data: response history unavailable for learner %s (%s); "
                "treating as a new learner",
                learner_id,
                exc,
            )
            return MasterySnapshot(events=(), masteries=[], gaps=[], degraded=True)

        events = list(events)[: self.config.history_limit]
        masteries = compute_concept_masteries(events, now, self._subject_names())
        gaps = derive_knowledge_gaps(masteries, now, self.config.max_gaps)
        return MasterySnapshot(events=tuple(events), masteries=masteries, gaps=gaps)

    def concept_masteries(self, learner_id: str) -> List[ConceptMastery]:
        return self.snapshot(learner_id).masteries

    def knowledge_gaps(self, learner_id: str) -> List[KnowledgeGap]:
        return self.snapshot(learner_id).gaps

    def analytics(self, learner_id: str, snapshot: Optional[MasterySnapshot] = None) -> LearningAnalytics:
        snapshot = snapshot or self.snapshot(learner_id)
        now = self.clock()
        return LearningAnalytics(
            learner_id=learner_id,
            concept_masteries=snapshot.masteries,
            knowledge_gaps=snapshot.gaps,
            focus_topics=focus_topics(snapshot.masteries),
            learning_velocity=learning_velocity(snapshot.events, now),
            time_spent_minutes=time_spent_minutes(snapshot.events),
            streak_days=activity_streak_days(snapshot.events, now),
            analyzed_at=now,
            degraded=snapshot.degraded,
        )
