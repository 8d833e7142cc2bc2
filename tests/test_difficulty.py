# ABOUTME: Tests difficulty scaling from age baselines and recent performance.
# ABOUTME: Checks the reasoning trace, the [1, 5] half-step output grid, and degraded history reads.

from datetime import datetime, timedelta, timezone
from itertools import product

import pytest

from src.common.errors import InvalidInputError
from src.common.schemas import ContentItem, PerformanceMetrics, ResponseEvent
from src.common.sources import RESPONSE_HISTORY, InMemoryLearningStore
from src.adaptive.difficulty import (
    DifficultyScaler,
    age_baseline,
    expected_response_time,
    performance_metrics,
    recommend_from_metrics,
    round_to_half,
    select_adaptive_items,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _mk_events(outcomes, subject_id="math", response_time_s=12.0, difficulty=2, learner_id="kid"):
    """`outcomes` is most recent first, one event per hour."""
    return [
        ResponseEvent(
            learner_id=learner_id,
            question_id=f"q{i}",
            subject_id=subject_id,
            difficulty=difficulty,
            correct=correct,
            timestamp=NOW - timedelta(hours=i + 1),
            response_time_s=response_time_s,
        )
        for i, correct in enumerate(outcomes)
    ]


def test_age_baselines():
    assert [age_baseline(a) for a in (4, 6, 7, 10, 11, 14, 15, 18, 30)] == [1, 1, 2, 2, 3, 3, 4, 4, 3]
    assert expected_response_time(5) == 45.0
    assert expected_response_time(8) == 30.0
    assert expected_response_time(12) == 20.0
    assert expected_response_time(16) == 15.0


def test_negative_age_rejected():
    with pytest.raises(InvalidInputError):
        age_baseline(-1)


def test_round_to_half():
    assert round_to_half(2.25) == 2.5
    assert round_to_half(2.2) == 2.0
    assert round_to_half(3.75) == 4.0


def test_young_learner_with_little_history_keeps_baseline():
    store = InMemoryLearningStore(_mk_events([True, True, False, True]))
    scaler = DifficultyScaler(store, clock=lambda: NOW)

    rec = scaler.recommend("kid", "math", age=8)

    assert rec.target_difficulty == 2
    assert rec.confidence_level == 0.5
    assert rec.adjustment_factor == 0
    assert "insufficient data" in rec.reasoning
    assert rec.reasoning.startswith("age-appropriate baseline (2)")


def test_strong_fast_learner_moves_up():
    # 12 correct in a row, 10s answers, difficulty 4 -> mastery 0.8
    store = InMemoryLearningStore(_mk_events([True] * 12, response_time_s=10.0, difficulty=4))
    rec = DifficultyScaler(store, clock=lambda: NOW).recommend("kid", "math", age=12)

    # baseline 3 + 1 accuracy + 0.5 speed + 0.5 streak + 1 mastery, clipped
    assert rec.adjustment_factor == pytest.approx(3.0)
    assert rec.target_difficulty == 5
    assert rec.confidence_level == pytest.approx(0.3 + 12 / 50)
    assert rec.adjustments == (
        "high accuracy (+1)",
        "fast responses (+0.5)",
        "long streak (+0.5)",
        "high mastery (+1)",
    )


def test_struggling_slow_learner_moves_down():
    store = InMemoryLearningStore(_mk_events([False, False, True, False, False, True], response_time_s=60.0))
    rec = DifficultyScaler(store, clock=lambda: NOW).recommend("kid", "math", age=12)

    # baseline 3 - 1 accuracy - 0.5 slow - 0.5 mastery
    assert rec.target_difficulty == 1
    assert "low accuracy (-1)" in rec.reasoning
    assert "slow responses (-0.5)" in rec.reasoning


def test_only_lookback_window_counts():
    old = [
        ResponseEvent("kid", f"old{i}", "math", 5, True, NOW - timedelta(days=20))
        for i in range(10)
    ]
    store = InMemoryLearningStore(old + _mk_events([True, False]))
    rec = DifficultyScaler(store, clock=lambda: NOW).recommend("kid", "math", age=10)
    assert "insufficient data" in rec.reasoning


def test_output_stays_on_half_step_grid_for_extremes():
    accuracies = [0.0, 0.5, 0.65, 1.0]
    totals = [0, 4, 5, 10000]
    times = [0.001, 30.0, 1e6]
    streaks = [0, 5, 10000]
    masteries = [0.0, 0.5, 1.0]
    for age in (0, 6, 9, 13, 17, 40):
        for acc, total, rt, streak, mastery in product(accuracies, totals, times, streaks, masteries):
            rec = recommend_from_metrics(
                PerformanceMetrics(acc, rt, streak, total, mastery), age
            )
            assert 1 <= rec.target_difficulty <= 5
            assert (rec.target_difficulty * 2).is_integer()
            assert 0 < rec.confidence_level <= 0.9


def _neutral(**overrides):
    # age 12 expects 20s answers; every field below sits between its cut-offs
    values = dict(accuracy=0.65, average_response_time=20.0, recent_streak=0, total_questions=10, subject_mastery=0.5)
    values.update(overrides)
    return PerformanceMetrics(**values)


@pytest.mark.parametrize(
    "overrides, adjustment, phrases",
    [
        ({}, 0.0, ()),
        ({"accuracy": 0.85}, 1.0, ("high accuracy (+1)",)),
        ({"accuracy": 0.84}, 0.5, ("good accuracy (+0.5)",)),
        ({"accuracy": 0.70}, 0.5, ("good accuracy (+0.5)",)),
        ({"accuracy": 0.69}, 0.0, ()),
        ({"accuracy": 0.61}, 0.0, ()),
        ({"accuracy": 0.60}, -0.5, ("below average accuracy (-0.5)",)),
        ({"accuracy": 0.51}, -0.5, ("below average accuracy (-0.5)",)),
        ({"accuracy": 0.50}, -1.0, ("low accuracy (-1)",)),
        ({"average_response_time": 14.0}, 0.5, ("fast responses (+0.5)",)),
        ({"average_response_time": 14.2}, 0.0, ()),
        ({"average_response_time": 29.8}, 0.0, ()),
        ({"average_response_time": 30.0}, -0.5, ("slow responses (-0.5)",)),
        ({"recent_streak": 4}, 0.0, ()),
        ({"recent_streak": 5}, 0.25, ("good streak (+0.25)",)),
        ({"recent_streak": 9}, 0.25, ("good streak (+0.25)",)),
        ({"recent_streak": 10}, 0.5, ("long streak (+0.5)",)),
        ({"subject_mastery": 0.8}, 1.0, ("high mastery (+1)",)),
        ({"subject_mastery": 0.79}, 0.5, ("good mastery (+0.5)",)),
        ({"subject_mastery": 0.6}, 0.5, ("good mastery (+0.5)",)),
        ({"subject_mastery": 0.59}, 0.0, ()),
        ({"subject_mastery": 0.31}, 0.0, ()),
        ({"subject_mastery": 0.3}, -0.5, ("low mastery (-0.5)",)),
    ],
)
def test_adjustment_bands_at_thresholds(overrides, adjustment, phrases):
    rec = recommend_from_metrics(_neutral(**overrides), age=12)

    assert rec.adjustment_factor == pytest.approx(adjustment)
    assert rec.adjustments == phrases
    assert rec.target_difficulty == round_to_half(3 + adjustment)


def test_minimum_event_count_enables_adjustments():
    assert recommend_from_metrics(_neutral(accuracy=1.0, total_questions=4), age=12).adjustments == (
        "insufficient data for performance adjustment",
    )
    assert recommend_from_metrics(_neutral(accuracy=1.0, total_questions=5), age=12).adjustments == (
        "high accuracy (+1)",
    )


class _OldestFirstHistory:
    def __init__(self, events):
        self.events = events

    def fetch_response_history(self, learner_id, subject_id=None, since=None, limit=500):
        return sorted(self.events, key=lambda e: e.timestamp)[:limit]


def test_streak_ignores_source_ordering():
    # most recent first: three correct, then a miss, then six correct
    events = _mk_events([True] * 3 + [False] + [True] * 6)
    scaler = DifficultyScaler(_OldestFirstHistory(events), clock=lambda: NOW)

    recent = scaler.recent_events("kid", "math")

    assert [e.question_id for e in recent][:4] == ["q0", "q1", "q2", "q3"]
    assert performance_metrics(recent).recent_streak == 3


def test_performance_metrics_defaults_with_no_events():
    metrics = performance_metrics([], default_response_time=30.0)
    assert metrics.accuracy == 0.5
    assert metrics.total_questions == 0
    assert metrics.average_response_time == 30.0


def test_performance_metrics_streak_counts_from_most_recent():
    metrics = performance_metrics(_mk_events([True, True, False, True]))
    assert metrics.recent_streak == 2
    assert metrics.accuracy == 0.75
    assert metrics.average_response_time == 12.0


def test_history_outage_falls_back_to_baseline(caplog):
    store = InMemoryLearningStore(_mk_events([True] * 10))
    store.set_unavailable(RESPONSE_HISTORY)
    scaler = DifficultyScaler(store, clock=lambda: NOW)

    with caplog.at_level("WARNING"):
        rec = scaler.recommend("kid", "math", age=12)

    assert rec.target_difficulty == 3
    assert "Degraded data" in caplog.text
    assert scaler.difficulty_distribution("kid", "math") is None


def test_difficulty_distribution_counts_by_level():
    events = _mk_events([True, False, True], difficulty=2) + [
        ResponseEvent("kid", "h1", "math", 4, True, NOW - timedelta(days=2))
    ]
    distribution = DifficultyScaler(InMemoryLearningStore(events), clock=lambda: NOW).difficulty_distribution(
        "kid", "math"
    )
    assert distribution[2] == {"total": 3, "correct": 2}
    assert distribution[4] == {"total": 1, "correct": 1}
    assert distribution[5] == {"total": 0, "correct": 0}


def test_select_adaptive_items_prefers_band():
    items = [ContentItem(f"i{d}", "math", f"q{d}", d) for d in (1, 2, 3, 4, 5)]
    picked = select_adaptive_items(2.5, items, limit=5)
    assert [i.difficulty for i in picked] == [2, 3]

    assert select_adaptive_items(2.5, [items[4]], limit=3) == [items[4]]
