# ABOUTME: Declares the collaborator interfaces the engine reads learner data through.
# ABOUTME: Ships an in-memory store implementing all of them for tests and the demo CLI.

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Set

import pandas as pd

from .errors import DataSourceUnavailableError
from .events import events_from_frame, items_from_frame
from .schemas import ContentItem, LearningProfile, ResponseEvent, Subject, ensure_utc

RESPONSE_HISTORY = "response_history"
LEARNERS = "learners"
LEARNING_PROFILES = "learning_profiles"
CONTENT = "content"
SUBJECTS = "subjects"


class ResponseHistorySource(Protocol):
    def fetch_response_history(
        self,
        learner_id: str,
        subject_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 500,
    ) -> List[ResponseEvent]:
        """Return at most `limit` events, most recent first."""


class LearnerDirectory(Protocol):
    def fetch_learner_age(self, learner_id: str) -> Optional[int]:
        ...


class LearningProfileStore(Protocol):
    def fetch_learning_profile(self, learner_id: str) -> Optional[LearningProfile]:
        ...

    def upsert_learning_profile(self, profile: LearningProfile) -> None:
        ...


class ContentSource(Protocol):
    def fetch_age_appropriate_candidates(
        self, learner_id: str, subject_id: Optional[str] = None, limit: int = 20
    ) -> List[ContentItem]:
        ...


class SubjectCatalog(Protocol):
    def fetch_known_subjects(self) -> List[Subject]:
        ...


class InMemoryLearningStore:
    """
    Dictionary-backed implementation of every collaborator interface.

    `set_unavailable` makes the named sources raise DataSourceUnavailableError,
    which is how outages are exercised in tests.
    """

    def __init__(
        self,
        events: Iterable[ResponseEvent] = (),
        ages: Optional[Mapping[str, int]] = None,
        items: Iterable[ContentItem] = (),
        subjects: Iterable[Subject] = (),
        default_age: int = 10,
    ):
        self._events: List[ResponseEvent] = list(events)
        self._ages: Dict[str, int] = dict(ages or {})
        self._profiles: Dict[str, LearningProfile] = {}
        self._items: Dict[str, ContentItem] = {item.item_id: item for item in items}
        self._subjects: Dict[str, Subject] = {s.subject_id: s for s in subjects}
        self._unavailable: Set[str] = set()
        self.default_age = default_age

    @classmethod
    def from_frames(
        cls,
        events_df: pd.DataFrame,
        items_df: Optional[pd.DataFrame] = None,
        ages: Optional[Mapping[str, int]] = None,
    ) -> "InMemoryLearningStore":
        events = events_from_frame(events_df) if events_df is not None and not events_df.empty else []
        items = items_from_frame(items_df) if items_df is not None and not items_df.empty else []
        return cls(events=events, ages=ages, items=items)

    def set_unavailable(self, *sources: str) -> None:
        self._unavailable = set(sources)

    def _check(self, source: str) -> None:
        if source in self._unavailable:
            raise DataSourceUnavailableError(source)

    def record_response(self, event: ResponseEvent) -> None:
        self._check(RESPONSE_HISTORY)
        self._events.append(event)

    def add_items(self, items: Iterable[ContentItem]) -> None:
        for item in items:
            self._items[item.item_id] = item

    def fetch_response_history(
        self,
        learner_id: str,
        subject_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 500,
    ) -> List[ResponseEvent]:
        self._check(RESPONSE_HISTORY)
        since = ensure_utc(since) if since is not None else None
        matched = [
            e
            for e in self._events
            if e.learner_id == learner_id
            and (subject_id is None or e.subject_id == subject_id)
            and (since is None or e.timestamp >= since)
        ]
        matched.sort(key=lambda e: (e.timestamp, e.question_id), reverse=True)
        return matched[:limit]

    def fetch_learner_age(self, learner_id: str) -> Optional[int]:
        self._check(LEARNERS)
        return self._ages.get(learner_id)

    def fetch_learning_profile(self, learner_id: str) -> Optional[LearningProfile]:
        self._check(LEARNING_PROFILES)
        profile = self._profiles.get(learner_id)
        return dataclasses.replace(profile) if profile is not None else None

    def upsert_learning_profile(self, profile: LearningProfile) -> None:
        self._check(LEARNING_PROFILES)
        self._profiles[profile.learner_id] = dataclasses.replace(profile)

    def fetch_age_appropriate_candidates(
        self, learner_id: str, subject_id: Optional[str] = None, limit: int = 20
    ) -> List[ContentItem]:
        self._check(CONTENT)
        age = self._ages.get(learner_id, self.default_age)
        matched = [
            item
            for item in self._items.values()
            if (subject_id is None or item.subject_id == subject_id)
            and item.age_range[0] <= age <= item.age_range[1]
        ]
        return matched[:limit]

    def fetch_known_subjects(self) -> List[Subject]:
        self._check(SUBJECTS)
        if self._subjects:
            return list(self._subjects.values())
        # Fall back to subjects referenced by items and history.
        names: Dict[str, str] = {}
        for item in self._items.values():
            names.setdefault(item.subject_id, item.subject_id)
        for event in self._events:
            if event.subject_name:
                names[event.subject_id] = event.subject_name
            else:
                names.setdefault(event.subject_id, event.subject_id)
        return [Subject(subject_id=sid, name=name) for sid, name in sorted(names.items())]
