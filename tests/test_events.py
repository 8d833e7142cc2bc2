# ABOUTME: Tests conversion between response events, content items, and pandas frames.
# ABOUTME: Writes parquet and CSV fixtures to a temp dir and seeds the in-memory store from them.

from datetime import datetime, timezone

import pandas as pd
import pytest

from src.common.errors import InvalidInputError
from src.common.events import events_from_frame, events_to_frame, items_from_frame, read_frame
from src.common.schemas import ResponseEvent
from src.common.sources import InMemoryLearningStore


def _events_df():
    return pd.DataFrame(
        {
            "learner_id": ["kid", "kid", "other"],
            "question_id": ["q1", "q2", "q3"],
            "subject_id": ["math", "math", "art"],
            "subject_name": ["Mathematics", None, "Art"],
            "difficulty": [2, 3, 1],
            "correct": [True, False, True],
            "response_time_s": [12.0, None, 30.0],
            "timestamp": ["2024-03-14T10:00:00Z", "2024-03-14T10:05:00Z", "2024-03-13T09:00:00Z"],
        }
    )


def _items_df():
    return pd.DataFrame(
        {
            "item_id": ["i1", "i2"],
            "subject_id": ["math", "math"],
            "prompt": ["2 + 2 = ?", "Solve x + 3 = 5"],
            "difficulty": [1, 3],
            "answers": ["3|4|5", None],
            "correct_answer": ["4", None],
            "age_min": [5, 12],
            "age_max": [9, 16],
        }
    )


def test_events_from_frame_parses_rows():
    events = events_from_frame(_events_df())

    assert len(events) == 3
    first = events[0]
    assert first.timestamp == datetime(2024, 3, 14, 10, 0, tzinfo=timezone.utc)
    assert first.subject_name == "Mathematics"
    assert events[1].response_time_s is None
    assert events[1].subject_name is None
    assert events[1].correct is False


def test_events_to_frame_empty_has_columns():
    df = events_to_frame([])
    assert df.empty
    assert "timestamp" in df.columns


def test_events_to_frame_uses_utc_timestamps():
    event = ResponseEvent("kid", "q1", "math", 2, True, datetime(2024, 3, 14, 10, 0))
    df = events_to_frame([event])
    assert str(df["timestamp"].dt.tz) == "UTC"


def test_events_from_frame_validates_columns_and_values():
    with pytest.raises(InvalidInputError):
        events_from_frame(_events_df().drop(columns=["difficulty"]))

    bad = _events_df()
    bad.loc[0, "difficulty"] = 9
    with pytest.raises(InvalidInputError):
        events_from_frame(bad)

    unparseable = _events_df()
    unparseable.loc[0, "timestamp"] = "not a time"
    with pytest.raises(InvalidInputError):
        events_from_frame(unparseable)


def test_items_from_frame_reads_answers_and_age_range():
    items = items_from_frame(_items_df())

    assert items[0].answers == ("3", "4", "5")
    assert items[0].correct_answer == "4"
    assert items[0].age_range == (5, 9)
    assert items[1].answers == ()
    assert items[1].correct_answer is None


def test_store_from_parquet_and_csv(tmp_path):
    events_path = tmp_path / "events.parquet"
    items_path = tmp_path / "items.csv"
    _events_df().to_parquet(events_path, index=False)
    _items_df().to_csv(items_path, index=False)

    store = InMemoryLearningStore.from_frames(read_frame(events_path), read_frame(items_path), ages={"kid": 7})

    history = store.fetch_response_history("kid")
    assert [e.question_id for e in history] == ["q2", "q1"]
    candidates = store.fetch_age_appropriate_candidates("kid", "math")
    assert [c.item_id for c in candidates] == ["i1"]


def test_read_frame_rejects_unknown_suffix(tmp_path):
    with pytest.raises(InvalidInputError):
        read_frame(tmp_path / "events.json")
