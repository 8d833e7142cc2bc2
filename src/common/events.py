# ABOUTME: Converts between graded response events, content items, and pandas frames.
# ABOUTME: Reads parquet or CSV exports so history stores can be seeded from files.

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

import pandas as pd

from .errors import InvalidInputError
from .schemas import ContentItem, ResponseEvent

EVENT_COLUMNS = [
    "learner_id",
    "question_id",
    "subject_id",
    "subject_name",
    "difficulty",
    "correct",
    "response_time_s",
    "timestamp",
]

ITEM_COLUMNS = ["item_id", "subject_id", "prompt", "difficulty"]


def events_to_frame(events: Iterable[ResponseEvent]) -> pd.DataFrame:
    """
    Convert response events into a frame with a UTC `timestamp` column.

    Rows keep the input order; callers sort as needed.
    """

    rows = [
        {
            "learner_id": event.learner_id,
            "question_id": event.question_id,
            "subject_id": event.subject_id,
            "subject_name": event.subject_name,
            "difficulty": event.difficulty,
            "correct": bool(event.correct),
            "response_time_s": event.response_time_s,
            "timestamp": event.timestamp,
        }
        for event in events
    ]
    if not rows:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    df = pd.DataFrame(rows, columns=EVENT_COLUMNS)
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df["response_time_s"] = pd.to_numeric(df["response_time_s"], errors="coerce")
    return df


def events_from_frame(df: pd.DataFrame) -> List[ResponseEvent]:
    missing = [c for c in ("learner_id", "question_id", "subject_id", "difficulty", "correct", "timestamp") if c not in df.columns]
    if missing:
        raise InvalidInputError(f"Events frame is missing columns: {', '.join(missing)}")

    frame = df.copy()
    frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True, errors="coerce")
    if frame["timestamp"].isna().any():
        raise InvalidInputError("Events frame contains unparseable timestamps")

    events: List[ResponseEvent] = []
    for _, row in frame.iterrows():
        latency = row.get("response_time_s")
        name = row.get("subject_name")
        events.append(
            ResponseEvent(
                learner_id=str(row["learner_id"]),
                question_id=str(row["question_id"]),
                subject_id=str(row["subject_id"]),
                difficulty=int(row["difficulty"]),
                correct=bool(row["correct"]),
                timestamp=row["timestamp"].to_pydatetime(),
                response_time_s=None if latency is None or pd.isna(latency) else float(latency),
                subject_name=None if name is None or pd.isna(name) else str(name),
            )
        )
    return events


def items_from_frame(df: pd.DataFrame) -> List[ContentItem]:
    missing = [c for c in ITEM_COLUMNS if c not in df.columns]
    if missing:
        raise InvalidInputError(f"Items frame is missing columns: {', '.join(missing)}")

    items: List[ContentItem] = []
    for _, row in df.iterrows():
        answers = row.get("answers")
        if isinstance(answers, str):
            answers = tuple(a.strip() for a in answers.split("|") if a.strip())
        elif answers is None or (isinstance(answers, float) and pd.isna(answers)):
            answers = ()
        else:
            # parquet list columns come back as numpy arrays
            answers = tuple(str(a) for a in answers)
        age_min = row.get("age_min", 3)
        age_max = row.get("age_max", 18)
        base_reward = row.get("base_reward", 0)
        items.append(
            ContentItem(
                item_id=str(row["item_id"]),
                subject_id=str(row["subject_id"]),
                prompt=str(row["prompt"]),
                difficulty=int(row["difficulty"]),
                answers=answers,
                correct_answer=None if pd.isna(row.get("correct_answer")) else str(row.get("correct_answer")),
                base_reward=0 if pd.isna(base_reward) else int(base_reward),
                age_range=(
                    3 if pd.isna(age_min) else int(age_min),
                    18 if pd.isna(age_max) else int(age_max),
                ),
            )
        )
    return items


def read_frame(path: Path) -> pd.DataFrame:
    """Read a parquet or CSV file into a frame."""
    path = Path(path)
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    if path.suffix == ".csv":
        return pd.read_csv(path)
    raise InvalidInputError(f"Unsupported file type for {path}; expected .parquet or .csv")
