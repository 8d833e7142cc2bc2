# ABOUTME: Groups the adaptive components: mastery analysis, profiles, difficulty, and recommendations.
# ABOUTME: Re-exports the AdaptiveEngine facade and the component classes it composes.

from .difficulty import DifficultyScaler, recommend_from_metrics
from .engine import AdaptiveEngine
from .mastery import LearningAnalytics, MasteryAnalyzer, compute_concept_masteries
from .profile import LearningProfileService
from .recommendation import ContentRanker, StudyPlan

__all__ = [
    "AdaptiveEngine",
    "ContentRanker",
    "DifficultyScaler",
    "LearningAnalytics",
    "LearningProfileService",
    "MasteryAnalyzer",
    "StudyPlan",
    "compute_concept_masteries",
    "recommend_from_metrics",
]
