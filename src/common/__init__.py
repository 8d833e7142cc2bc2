# ABOUTME: Makes the shared common package importable across engines.
# ABOUTME: Re-exports schema types and error classes for convenience.

from .errors import (
    ConcurrentAwardError,
    DataSourceUnavailableError,
    EngineError,
    InvalidInputError,
    PartialAwardError,
)
from .schemas import (
    ConceptMastery,
    ContentItem,
    DifficultyRecommendation,
    KnowledgeGap,
    LearningProfile,
    LearningStyle,
    RecommendationContext,
    RecommendationResult,
    ResponseEvent,
    Subject,
    TopicPriority,
)

__all__ = [
    "ConcurrentAwardError",
    "DataSourceUnavailableError",
    "EngineError",
    "InvalidInputError",
    "PartialAwardError",
    "ConceptMastery",
    "ContentItem",
    "DifficultyRecommendation",
    "KnowledgeGap",
    "LearningProfile",
    "LearningStyle",
    "RecommendationContext",
    "RecommendationResult",
    "ResponseEvent",
    "Subject",
    "TopicPriority",
]
