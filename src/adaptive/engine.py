# ABOUTME: Wires the analyzer, profile service, difficulty scaler, ranker, and ledger into one facade.
# ABOUTME: Collaborators, config, and clock are passed in so each engine instance is independently testable.

from __future__ import annotations

from typing import List, Mapping, Optional, Sequence, Union

from src.common.config import EngineConfig
from src.common.schemas import (
    ConceptMastery,
    ContentItem,
    DifficultyRecommendation,
    LearningProfile,
    RecommendationContext,
    RecommendationResult,
)
from src.common.sources import (
    ContentSource,
    LearnerDirectory,
    LearningProfileStore,
    ResponseHistorySource,
    SubjectCatalog,
)
from src.progression.award import AwardResult, ProgressionLedger, ProgressionStore
from src.progression.levels import LevelProgress, level_from_xp, level_progress, xp_to_reach_level
from src.progression.rewards import RelevantAttributes, RewardBreakdown, compose_reward

from .difficulty import DifficultyScaler
from .mastery import Clock, LearningAnalytics, MasteryAnalyzer, learning_objectives, next_steps, utc_now
from .profile import LearningProfileService
from .recommendation import ContentRanker, StudyPlan


class AdaptiveEngine:
    """
    Entry point for mastery, difficulty, progression, and recommendation calls.

    Advisory reads degrade to new-learner defaults when a collaborator is
    unavailable. `award_xp` never degrades; store failures propagate.
    """

    def __init__(
        self,
        history: ResponseHistorySource,
        learners: LearnerDirectory,
        profiles: LearningProfileStore,
        content: ContentSource,
        catalog: SubjectCatalog,
        progression: Optional[ProgressionStore] = None,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or EngineConfig()
        self.clock = clock or utc_now
        self.analyzer = MasteryAnalyzer(history, self.config.mastery, self.clock, catalog)
        self.profiles = LearningProfileService(
            profiles, learners, history, self.analyzer, self.clock, self.config.default_age
        )
        self.scaler = DifficultyScaler(history, self.config.difficulty, self.clock)
        self.ranker = ContentRanker(
            self.analyzer,
            self.profiles,
            self.scaler,
            content,
            catalog,
            history,
            self.config.recommendation,
            self.clock,
        )
        self.ledger = (
            ProgressionLedger(
                progression,
                self.config.progression.points_per_level,
                self.config.progression.max_award_retries,
            )
            if progression is not None
            else None
        )

    @classmethod
    def from_store(cls, store, progression: Optional[ProgressionStore] = None, **kwargs) -> "AdaptiveEngine":
        """Build an engine over one object implementing every read interface."""
        return cls(store, store, store, store, store, progression, **kwargs)

    # Mastery & gaps

    def get_concept_masteries(self, learner_id: str) -> List[ConceptMastery]:
        return self.analyzer.concept_masteries(learner_id)

    def get_knowledge_gaps(self, learner_id: str) -> List[str]:
        return [gap.message for gap in self.analyzer.knowledge_gaps(learner_id)]

    def get_learning_analytics(self, learner_id: str) -> LearningAnalytics:
        return self.analyzer.analytics(learner_id)

    def get_next_steps(self, learner_id: str) -> List[str]:
        analytics = self.analyzer.analytics(learner_id)
        return next_steps(analytics, self.profiles.get_or_create(learner_id).weaknesses)

    def get_learning_objectives(self, learner_id: str, items: Sequence[ContentItem]) -> List[str]:
        return learning_objectives(items, self.analyzer.concept_masteries(learner_id))

    # Profiles

    def get_learning_profile(self, learner_id: str) -> LearningProfile:
        return self.profiles.get_or_create(learner_id)

    def refresh_learning_profile(self, learner_id: str) -> LearningProfile:
        return self.profiles.refresh(learner_id)

    # Difficulty

    def recommend_difficulty(
        self, learner_id: str, subject_id: str, age: Optional[int] = None
    ) -> DifficultyRecommendation:
        if age is None:
            age = self.profiles.learner_age(learner_id)
        return self.scaler.recommend(learner_id, subject_id, age)

    # Progression

    def compose_reward(
        self,
        difficulty: int,
        accuracy: float,
        time_bonus: float,
        attributes: Union[RelevantAttributes, Mapping[str, int]],
    ) -> RewardBreakdown:
        return compose_reward(difficulty, accuracy, time_bonus, attributes)

    def level_from_xp(self, total_xp: int) -> int:
        return level_from_xp(total_xp)

    def xp_to_reach_level(self, level: int) -> int:
        return xp_to_reach_level(level)

    def level_progress(self, total_xp: int) -> LevelProgress:
        return level_progress(total_xp)

    def award_xp(self, learner_id: str, delta: int) -> AwardResult:
        if self.ledger is None:
            raise RuntimeError("AdaptiveEngine was built without a progression store")
        return self.ledger.award(learner_id, delta)

    # Recommendations

    def get_recommendations(self, context: RecommendationContext) -> RecommendationResult:
        return self.ranker.recommend(context)

    def get_study_plan(self, learner_id: str, days: int = 7, daily_minutes: float = 20) -> StudyPlan:
        return self.ranker.study_plan(learner_id, days, daily_minutes)
