# ABOUTME: Tests per-concept mastery aggregation and knowledge-gap derivation.
# ABOUTME: Uses synthetic response histories with a fixed clock so recency is deterministic.

from datetime import datetime, timedelta, timezone

import pytest

from src.common.schemas import ContentItem, GapKind, ResponseEvent, Subject
from src.common.sources import RESPONSE_HISTORY, InMemoryLearningStore
from src.adaptive.mastery import (
    MasteryAnalyzer,
    activity_streak_days,
    compute_concept_masteries,
    consistency_factor,
    days_since,
    derive_knowledge_gaps,
    learning_objectives,
    learning_velocity,
    next_steps,
    recency_factor,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _mk_events(learner_id, subject_id, outcomes, days_ago=0.0, response_time_s=20.0, difficulty=3, name=None):
    """`outcomes` is oldest first; events are spaced one minute apart ending `days_ago` days before NOW."""
    end = NOW - timedelta(days=days_ago)
    count = len(outcomes)
    return [
        ResponseEvent(
            learner_id=learner_id,
            question_id=f"{subject_id}-q{i}",
            subject_id=subject_id,
            difficulty=difficulty,
            correct=correct,
            timestamp=end - timedelta(minutes=count - 1 - i),
            response_time_s=response_time_s,
            subject_name=name,
        )
        for i, correct in enumerate(outcomes)
    ]


def test_days_since_rounds_up_partial_days():
    assert days_since(NOW - timedelta(hours=2), NOW) == 1
    assert days_since(NOW, NOW) == 0
    assert days_since(NOW - timedelta(days=8), NOW) == 8


def test_recency_and_consistency_factors():
    assert recency_factor(1) == 1.0
    assert recency_factor(7) == 0.9
    assert recency_factor(30) == 0.7
    assert recency_factor(31) == 0.5

    assert consistency_factor([False, False, False]) == 1.0
    assert consistency_factor([True] * 3 + [False] * 7) == 0.5
    assert consistency_factor([True] * 8 + [False] * 2) == pytest.approx(0.8)


def test_recent_perfect_subject_is_fully_mastered():
    events = _mk_events("kid", "math", [True] * 6, days_ago=0.1, name="Mathematics")
    [mastery] = compute_concept_masteries(events, NOW)

    assert mastery.concept_name == "Mathematics"
    assert mastery.mastery_level == pytest.approx(1.0)
    assert mastery.questions_attempted == 6
    assert mastery.questions_correct == 6
    assert mastery.average_response_time == pytest.approx(20.0)
    assert mastery.needs_review is False


def test_mastery_combines_accuracy_consistency_and_recency():
    # 6/10 correct, last practiced 5 days ago -> 0.6 * 0.6 * 0.9
    outcomes = [True, False] * 2 + [True, True, False, True, False, True]
    events = _mk_events("kid", "sci", outcomes, days_ago=5)
    [mastery] = compute_concept_masteries(events, NOW)

    assert mastery.mastery_level == pytest.approx(0.6 * 0.6 * 0.9)
    assert mastery.needs_review is True
    assert mastery.concept_name == "Subject sci"


def test_stale_high_accuracy_subject_needs_review():
    events = _mk_events("kid", "hist", [True] * 5, days_ago=10)
    [mastery] = compute_concept_masteries(events, NOW)
    # recency 0.7 keeps it at the review boundary
    assert mastery.mastery_level == pytest.approx(0.7)
    assert mastery.needs_review is True


def test_masteries_sorted_highest_first():
    events = (
        _mk_events("kid", "a", [True, False, False, False, False])
        + _mk_events("kid", "b", [True] * 5)
        + _mk_events("kid", "c", [True, True, True, False, False])
    )
    masteries = compute_concept_masteries(events, NOW)
    assert [m.subject_id for m in masteries] == ["b", "c", "a"]
    levels = [m.mastery_level for m in masteries]
    assert levels == sorted(levels, reverse=True)


def test_gaps_list_low_mastery_then_stale():
    events = (
        _mk_events("kid", "weak", [False] * 5, name="Fractions")
        + _mk_events("kid", "old", [True] * 5, days_ago=12, name="Geography")
        + _mk_events("kid", "fine", [True] * 5, name="Reading")
    )
    masteries = compute_concept_masteries(events, NOW)
    gaps = derive_knowledge_gaps(masteries, NOW)

    assert [(g.subject_id, g.kind) for g in gaps] == [
        ("weak", GapKind.LOW_MASTERY),
        ("old", GapKind.STALE),
    ]
    assert [g.message for g in gaps] == ["Low mastery in Fractions", "Geography needs review"]


def test_gaps_are_capped():
    events = []
    for i in range(15):
        events += _mk_events("kid", f"s{i:02d}", [False] * 5)
    gaps = derive_knowledge_gaps(compute_concept_masteries(events, NOW), NOW, limit=10)
    assert len(gaps) == 10


def test_analyzer_empty_history_returns_empty_lists():
    analyzer = MasteryAnalyzer(InMemoryLearningStore(), clock=lambda: NOW)
    assert analyzer.concept_masteries("nobody") == []
    assert analyzer.knowledge_gaps("nobody") == []


def test_analyzer_degrades_when_history_unavailable(caplog):
    store = InMemoryLearningStore(_mk_events("kid", "math", [True] * 5))
    store.set_unavailable(RESPONSE_HISTORY)
    analyzer = MasteryAnalyzer(store, clock=lambda: NOW)

    with caplog.at_level("WARNING"):
        snapshot = analyzer.snapshot("kid")

    assert snapshot.degraded is True
    assert snapshot.masteries == []
    assert "Degraded data" in caplog.text


def test_analyzer_is_idempotent():
    events = (
        _mk_events("kid", "math", [True, False, True, True, True, False, True])
        + _mk_events("kid", "art", [True, True, False, True, True], days_ago=3)
    )
    analyzer = MasteryAnalyzer(InMemoryLearningStore(events), clock=lambda: NOW)
    assert analyzer.concept_masteries("kid") == analyzer.concept_masteries("kid")


def test_analyzer_uses_catalog_names():
    store = InMemoryLearningStore(
        _mk_events("kid", "m1", [True] * 5), subjects=[Subject("m1", "Algebra")]
    )
    analyzer = MasteryAnalyzer(store, clock=lambda: NOW, catalog=store)
    assert analyzer.concept_masteries("kid")[0].concept_name == "Algebra"


def test_velocity_and_streak():
    events = (
        _mk_events("kid", "a", [True], days_ago=0)
        + _mk_events("kid", "b", [True], days_ago=1)
        + _mk_events("kid", "c", [True], days_ago=2)
        + _mk_events("kid", "d", [True], days_ago=20)
    )
    assert learning_velocity(events, NOW) == 3
    assert activity_streak_days(events, NOW) == 3


def test_analytics_summary():
    events = _mk_events("kid", "math", [True] * 6, response_time_s=30.0)
    analyzer = MasteryAnalyzer(InMemoryLearningStore(events), clock=lambda: NOW)
    analytics = analyzer.analytics("kid")

    assert analytics.time_spent_minutes == 3
    assert analytics.streak_days == 1
    assert analytics.learning_velocity == 1
    assert "Explore advanced topics in your strong subjects" in analytics.focus_topics


def test_next_steps_for_idle_learner_with_gaps():
    events = _mk_events("kid", "frac", [False] * 5, days_ago=10, name="Fractions")
    analytics = MasteryAnalyzer(InMemoryLearningStore(events), clock=lambda: NOW).analytics("kid")

    assert next_steps(analytics, ["frac"]) == [
        "Focus on addressing: Low mastery in Fractions",
        "Try to engage with learning content more regularly",
        "Start building a daily learning habit",
    ]


def test_learning_objectives_follow_mastery_and_difficulty():
    masteries = compute_concept_masteries(
        _mk_events("kid", "geo", [True] * 5, name="Geography"), NOW
    )
    items = [
        ContentItem("g1", "geo", "Capital of France?", 4),
        ContentItem("g2", "geo", "Longest river?", 5),
        ContentItem("x1", "chem", "Symbol for gold?", 2),
    ]
    assert learning_objectives(items, masteries) == [
        "Master advanced concepts in Geography",
        "Practice and reinforce this subject skills",
    ]
