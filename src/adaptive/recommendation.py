# ABOUTME: Ranks topics and content items for a learner's next session from mastery, profile, and difficulty.
# ABOUTME: Produces a deduplicated item list, topic priorities, a readable rationale, and multi-day study plans.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from src.common.config import RecommendationConfig
from src.common.errors import DataSourceUnavailableError, InvalidInputError
from src.common.schemas import (
    ConceptMastery,
    ContentItem,
    LearningProfile,
    RecommendationContext,
    RecommendationMetadata,
    RecommendationResult,
    Subject,
    TopicPriority,
)
from src.common.sources import (
    CONTENT,
    RESPONSE_HISTORY,
    SUBJECTS,
    ContentSource,
    ResponseHistorySource,
    SubjectCatalog,
)

from .difficulty import DifficultyScaler, select_adaptive_items
from .mastery import Clock, MasteryAnalyzer, utc_now
from .profile import LearningProfileService

logger = logging.getLogger(__name__)


class TopicRules:
    BASE_PRIORITY = 0.5
    LOW_MASTERY_BELOW = 0.4
    MODERATE_MASTERY_BELOW = 0.7
    LOW_MASTERY_BOOST = 0.3
    MODERATE_MASTERY_BOOST = 0.2
    REVIEW_BOOST = 0.15
    NEW_TOPIC_BOOST = 0.25
    WEAKNESS_BOOST = 0.2
    STRENGTH_BOOST = 0.1
    CURRENT_SUBJECT_BOOST = 0.3
    TIME_PRESSURE_FACTOR = 0.7
    DEFAULT_MINUTES = 15.0


class ItemRules:
    NEW_CONCEPT_EASY = 8.0
    NEW_CONCEPT_HARD = 4.0
    EASY_MAX_DIFFICULTY = 2
    WEAKNESS_BONUS = 5.0
    STRENGTH_REVIEW_BONUS = 3.0
    STRENGTH_PENALTY = -2.0
    KNOWLEDGE_GAP_BONUS = 7.0


@dataclass(frozen=True)
class DailyPlan:
    day: int
    topics: List[TopicPriority]
    estimated_time: float
    goals: List[str]


@dataclass(frozen=True)
class StudyPlan:
    daily_plans: List[DailyPlan]
    overall_goals: List[str]
    progress_milestones: List[str]


def _percent(level: float) -> int:
    return int(math.floor(level * 100 + 0.5))


def learning_outcomes(mastery_level: float) -> Tuple[str, ...]:
    if mastery_level < 0.3:
        return ("Build foundational understanding", "Practice basic concepts")
    if mastery_level < 0.7:
        return ("Strengthen core skills", "Apply concepts to new problems")
    return ("Master advanced applications", "Develop expertise and fluency")


def score_topic(
    subject: Subject,
    mastery: Optional[ConceptMastery],
    profile: LearningProfile,
    context: RecommendationContext,
    prerequisites: Sequence[str] = (),
) -> TopicPriority:
    priority = TopicRules.BASE_PRIORITY
    reasoning = f"General practice in {subject.name}"
    estimated_time = TopicRules.DEFAULT_MINUTES

    if mastery is not None:
        level = mastery.mastery_level
        if level < TopicRules.LOW_MASTERY_BELOW:
            priority += TopicRules.LOW_MASTERY_BOOST
            reasoning = f"Low mastery ({_percent(level)}%) - needs attention"
            estimated_time = 20.0
        elif level < TopicRules.MODERATE_MASTERY_BELOW:
            priority += TopicRules.MODERATE_MASTERY_BOOST
            reasoning = f"Moderate mastery ({_percent(level)}%) - room for improvement"
            estimated_time = 15.0
        elif mastery.needs_review:
            priority += TopicRules.REVIEW_BOOST
            reasoning = "High mastery but needs review to maintain"
            estimated_time = 10.0
    else:
        priority += TopicRules.NEW_TOPIC_BOOST
        reasoning = "New topic - good for exploration"
        estimated_time = 20.0

    if subject.subject_id in profile.weaknesses:
        priority += TopicRules.WEAKNESS_BOOST
        reasoning += " (identified weakness)"
    if subject.subject_id in profile.strengths:
        priority += TopicRules.STRENGTH_BOOST
        reasoning += " (building on strength)"
    if context.current_subject == subject.subject_id:
        priority += TopicRules.CURRENT_SUBJECT_BOOST
        reasoning += " (current focus area)"

    if context.time_available < estimated_time:
        priority *= TopicRules.TIME_PRESSURE_FACTOR
        estimated_time = min(estimated_time, context.time_available)

    return TopicPriority(
        topic_id=subject.subject_id,
        topic_name=subject.name,
        subject_id=subject.subject_id,
        priority=min(1.0, priority),
        reasoning=reasoning,
        estimated_time=estimated_time,
        prerequisites=tuple(prerequisites),
        learning_outcomes=learning_outcomes(mastery.mastery_level if mastery else 0.0),
    )


def rank_topics(
    subjects: Iterable[Subject],
    masteries: Sequence[ConceptMastery],
    profile: LearningProfile,
    context: RecommendationContext,
    prerequisites: Optional[Mapping[str, Sequence[str]]] = None,
    limit: int = 5,
) -> List[TopicPriority]:
    by_subject = {m.subject_id: m for m in masteries}
    prerequisites = prerequisites or {}
    scored = [
        score_topic(s, by_subject.get(s.subject_id), profile, context, prerequisites.get(s.subject_id, ()))
        for s in subjects
    ]
    scored.sort(key=lambda t: t.priority, reverse=True)
    return scored[:limit]


def score_item(
    item: ContentItem,
    mastery: Optional[ConceptMastery],
    profile: LearningProfile,
    gap_subjects: Set[str],
) -> float:
    if mastery is not None:
        score = 1 - abs(item.difficulty - mastery.mastery_level * 5)
    elif item.difficulty <= ItemRules.EASY_MAX_DIFFICULTY:
        score = ItemRules.NEW_CONCEPT_EASY
    else:
        score = ItemRules.NEW_CONCEPT_HARD

    if item.subject_id in profile.weaknesses:
        score += ItemRules.WEAKNESS_BONUS
    if item.subject_id in profile.strengths:
        needs_review = mastery is not None and mastery.needs_review
        score += ItemRules.STRENGTH_REVIEW_BONUS if needs_review else ItemRules.STRENGTH_PENALTY
    if item.subject_id in gap_subjects:
        score += ItemRules.KNOWLEDGE_GAP_BONUS
    return score


def merge_candidates(*sources: Iterable[ContentItem]) -> List[ContentItem]:
    """Merge item lists by id; a later copy replaces an earlier one in place."""
    merged: Dict[str, ContentItem] = {}
    for source in sources:
        for item in source:
            merged[item.item_id] = item
    return list(merged.values())


def goal_relevance(item: ContentItem, goals: Sequence[str]) -> int:
    text = item.prompt.lower()
    return sum(1 for goal in goals for word in goal.lower().split() if word and word in text)


def rank_topic_items(
    candidates: Sequence[ContentItem],
    topic: TopicPriority,
    mastery: Optional[ConceptMastery],
    profile: LearningProfile,
    gap_subjects: Set[str],
    context: RecommendationContext,
    recent_ids: Set[str],
) -> List[ContentItem]:
    pool = [
        c for c in candidates if c.subject_id == topic.subject_id and c.item_id not in recent_ids
    ]
    if context.preferred_difficulty is not None:
        pool = [c for c in pool if abs(c.difficulty - context.preferred_difficulty) <= 1]

    keyed = [
        (score_item(c, mastery, profile, gap_subjects), goal_relevance(c, context.session_goals), c)
        for c in pool
    ]
    keyed.sort(key=lambda k: (k[0], k[1]), reverse=True)
    return [c for _, _, c in keyed]


def describe_difficulty(items: Sequence[ContentItem]) -> str:
    if not items:
        return "no new content available for this session"
    average = sum(i.difficulty for i in items) / len(items)
    if average < 2.5:
        return "emphasizing foundational concepts"
    if average > 3.5:
        return "providing challenging advanced content"
    return "balancing difficulty for optimal learning"


def describe_time_budget(minutes: float) -> str:
    if minutes < 15:
        return "optimized for short study session"
    if minutes > 30:
        return "comprehensive content for extended learning"
    return "sized for a standard study session"


def build_rationale(
    context: RecommendationContext,
    topics: Sequence[TopicPriority],
    items: Sequence[ContentItem],
    has_gaps: bool,
    streak_days: int,
) -> str:
    reasons: List[str] = []
    if topics:
        reasons.append(f"focusing on {topics[0].topic_name} ({topics[0].reasoning})")
    reasons.append(describe_difficulty(items))
    reasons.append(describe_time_budget(context.time_available))
    if has_gaps:
        reasons.append("addressing identified knowledge gaps")
    if streak_days > 0:
        reasons.append(f"maintaining {streak_days}-day learning streak")
    return f"Recommendations based on {', '.join(reasons)}."


def summarize_items(
    items: Sequence[ContentItem], minutes_per_item: float, degraded_sources: Sequence[str] = ()
) -> RecommendationMetadata:
    total = len(items)
    average = sum(i.difficulty for i in items) / total if total else 0.0
    coverage: Dict[str, int] = {}
    for item in items:
        coverage[item.subject_id] = coverage.get(item.subject_id, 0) + 1
    return RecommendationMetadata(
        total_items=total,
        average_difficulty=math.floor(average * 10 + 0.5) / 10,
        estimated_completion_time=total * minutes_per_item,
        coverage_by_subject=coverage,
        degraded_sources=tuple(dict.fromkeys(degraded_sources)),
    )


class ContentRanker:
    """Orchestrates mastery, profile, and difficulty into a ranked session plan."""

    def __init__(
        self,
        analyzer: MasteryAnalyzer,
        profiles: LearningProfileService,
        scaler: DifficultyScaler,
        content: ContentSource,
        catalog: SubjectCatalog,
        history: ResponseHistorySource,
        config: Optional[RecommendationConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.analyzer = analyzer
        self.profiles = profiles
        self.scaler = scaler
        self.content = content
        self.catalog = catalog
        self.history = history
        self.config = config or RecommendationConfig()
        self.clock = clock or utc_now

    def _recent_item_ids(self, learner_id: str, degraded: List[str]) -> Set[str]:
        since = self.clock() - timedelta(days=self.config.avoid_recent_days)
        try:
            events = self.history.fetch_response_history(learner_id, since=since, limit=10_000)
        except DataSourceUnavailableError as exc:
            logger.warning("Degraded data: cannot exclude recent items for %s (%s)", learner_id, exc)
            degraded.append(RESPONSE_HISTORY)
            return set()
        return {e.question_id for e in events}

    def _subjects(self, degraded: List[str]) -> List[Subject]:
        try:
            return list(self.catalog.fetch_known_subjects())
        except DataSourceUnavailableError as exc:
            logger.warning("Degraded data: subject catalog unavailable (%s)", exc)
            degraded.append(SUBJECTS)
            return []

    def _candidates(
        self, learner_id: str, topic: TopicPriority, age: int, per_topic: int, degraded: List[str]
    ) -> List[ContentItem]:
        """
        Fetch one pool of `per_topic * 4` candidates and merge its head with an
        adaptive re-selection from that same pool.

        The adaptive band only reorders what the pool already holds; in-band
        items beyond the fetch limit are never considered.
        """
        try:
            pool = self.content.fetch_age_appropriate_candidates(
                learner_id, topic.subject_id, per_topic * 4
            )
        except DataSourceUnavailableError as exc:
            logger.warning(
                "Degraded data: no candidates for %s in %s (%s)", learner_id, topic.subject_id, exc
            )
            degraded.append(CONTENT)
            return []

        target = self.scaler.recommend(learner_id, topic.subject_id, age).target_difficulty
        adaptive = select_adaptive_items(target, pool, per_topic * 2)
        return merge_candidates(pool[: per_topic * 2], adaptive)

    def recommend(self, context: RecommendationContext) -> RecommendationResult:
        learner_id = context.learner_id
        degraded: List[str] = []

        snapshot = self.analyzer.snapshot(learner_id)
        if snapshot.degraded:
            degraded.append(RESPONSE_HISTORY)
        analytics = self.analyzer.analytics(learner_id, snapshot)
        profile = self.profiles.get_or_create(learner_id)
        age = self.profiles.learner_age(learner_id)

        recent_ids = self._recent_item_ids(learner_id, degraded) if context.avoid_recent else set()
        topics = rank_topics(
            self._subjects(degraded),
            snapshot.masteries,
            profile,
            context,
            self.config.topic_prerequisites,
            self.config.max_topics,
        )

        by_subject = {m.subject_id: m for m in snapshot.masteries}
        gap_subjects = {g.subject_id for g in snapshot.gaps}
        per_topic = math.ceil(self.config.max_items / len(topics)) if topics else 0

        items: List[ContentItem] = []
        for topic in topics[: self.config.scored_topics]:
            candidates = self._candidates(learner_id, topic, age, per_topic, degraded)
            ranked = rank_topic_items(
                candidates,
                topic,
                by_subject.get(topic.subject_id),
                profile,
                gap_subjects,
                context,
                recent_ids,
            )
            items.extend(ranked[:per_topic])
        items = items[: self.config.max_items]

        rationale = build_rationale(context, topics, items, bool(snapshot.gaps), analytics.streak_days)
        metadata = summarize_items(items, self.config.minutes_per_item, degraded)
        logger.debug("Recommended %d items across %d topics for %s", len(items), len(topics), learner_id)
        return RecommendationResult(items=items, topics=topics, rationale=rationale, metadata=metadata)

    def study_plan(self, learner_id: str, days: int = 7, daily_minutes: float = 20) -> StudyPlan:
        if days < 1:
            raise InvalidInputError(f"days must be at least 1, got {days}")
        if daily_minutes <= 0:
            raise InvalidInputError(f"daily_minutes must be positive, got {daily_minutes}")

        result = self.recommend(
            RecommendationContext(
                learner_id=learner_id,
                session_goals=("daily learning objectives",),
                time_available=daily_minutes,
                avoid_recent=True,
            )
        )
        topics = result.topics
        questions_per_day = int(daily_minutes // self.config.minutes_per_item)

        daily_plans: List[DailyPlan] = []
        for day in range(1, days + 1):
            day_topics: List[TopicPriority] = []
            if topics:
                start = ((day - 1) * 2) % len(topics)
                day_topics = [topics[(start + i) % len(topics)] for i in range(min(2, len(topics)))]
            focus = day_topics[0].topic_name if day_topics else "core subjects"
            daily_plans.append(
                DailyPlan(
                    day=day,
                    topics=day_topics,
                    estimated_time=daily_minutes,
                    goals=[f"Complete {questions_per_day} questions", f"Focus on {focus}"],
                )
            )

        return StudyPlan(
            daily_plans=daily_plans,
            overall_goals=[
                "Maintain consistent daily learning habit",
                "Improve understanding in identified weak areas",
                "Build on existing strengths",
            ],
            progress_milestones=[
                f"Complete {questions_per_day * days} questions over {days} days",
                "Achieve 70%+ accuracy in target subjects",
                "Maintain learning streak throughout the plan",
            ],
        )
