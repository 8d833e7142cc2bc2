# ABOUTME: Defines canonical data structures shared by the adaptive and progression engines.
# ABOUTME: Centralizes response, mastery, profile, difficulty, and content schema definitions.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import InvalidInputError

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5


def ensure_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def validate_difficulty(value, name: str = "difficulty") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        else:
            raise InvalidInputError(f"{name} must be an integer between 1 and 5, got {value!r}")
    if not MIN_DIFFICULTY <= value <= MAX_DIFFICULTY:
        raise InvalidInputError(f"{name} must be between 1 and 5, got {value}")
    return value


class LearningStyle(str, Enum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    KINESTHETIC = "kinesthetic"
    MIXED = "mixed"


class GapKind(str, Enum):
    LOW_MASTERY = "low_mastery"
    STALE = "stale"


@dataclass(frozen=True)
class ResponseEvent:
    """One graded attempt, read-only once recorded."""

    learner_id: str
    question_id: str
    subject_id: str
    difficulty: int
    correct: bool
    timestamp: datetime
    response_time_s: Optional[float] = None
    subject_name: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "difficulty", validate_difficulty(self.difficulty))
        object.__setattr__(self, "correct", bool(self.correct))
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        if self.response_time_s is not None and self.response_time_s < 0:
            raise InvalidInputError(
                f"response_time_s must be non-negative, got {self.response_time_s}"
            )


@dataclass(frozen=True)
class ConceptMastery:
    concept_id: str
    concept_name: str
    subject_id: str
    mastery_level: float
    questions_attempted: int
    questions_correct: int
    average_response_time: float
    last_practiced: datetime
    needs_review: bool


@dataclass(frozen=True)
class KnowledgeGap:
    subject_id: str
    concept_name: str
    kind: GapKind

    @property
    def message(self) -> str:
        if self.kind is GapKind.LOW_MASTERY:
            return f"Low mastery in {self.concept_name}"
        return f"{self.concept_name} needs review"


@dataclass
class LearningProfile:
    """Per-learner preferences, created lazily and refreshed from mastery."""

    learner_id: str
    preferred_learning_style: LearningStyle = LearningStyle.MIXED
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    average_session_length: float = 15.0
    difficulty_curve: float = 0.1
    motivation_factors: List[str] = field(default_factory=list)
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class PerformanceMetrics:
    accuracy: float
    average_response_time: float
    recent_streak: int
    total_questions: int
    subject_mastery: float


@dataclass(frozen=True)
class DifficultyRecommendation:
    target_difficulty: float
    confidence_level: float
    reasoning: str
    adjustment_factor: float
    adjustments: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ContentItem:
    """A question served by the content collaborator; the engine never mutates it."""

    item_id: str
    subject_id: str
    prompt: str
    difficulty: int
    answers: Tuple[str, ...] = ()
    correct_answer: Optional[str] = None
    base_reward: int = 0
    age_range: Tuple[int, int] = (3, 18)
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "difficulty", validate_difficulty(self.difficulty))
        object.__setattr__(self, "answers", tuple(self.answers))


@dataclass(frozen=True)
class Subject:
    subject_id: str
    name: str


@dataclass(frozen=True)
class RecommendationContext:
    learner_id: str
    current_subject: Optional[str] = None
    session_goals: Tuple[str, ...] = ()
    time_available: float = 15.0
    preferred_difficulty: Optional[float] = None
    avoid_recent: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "session_goals", tuple(self.session_goals))
        if self.time_available < 0:
            raise InvalidInputError(
                f"time_available must be non-negative, got {self.time_available}"
            )


@dataclass(frozen=True)
class TopicPriority:
    topic_id: str
    topic_name: str
    subject_id: str
    priority: float
    reasoning: str
    estimated_time: float
    prerequisites: Tuple[str, ...] = ()
    learning_outcomes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RecommendationMetadata:
    total_items: int
    average_difficulty: float
    estimated_completion_time: float
    coverage_by_subject: Dict[str, int]
    degraded_sources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RecommendationResult:
    items: List[ContentItem]
    topics: List[TopicPriority]
    rationale: str
    metadata: RecommendationMetadata
