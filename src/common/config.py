# ABOUTME: Loads engine configuration from YAML into frozen dataclasses.
# ABOUTME: Holds lookback windows, history limits, retry budgets, and topic prerequisites.

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from .errors import InvalidInputError

DEFAULT_CONFIG_PATH = Path("configs/engine.yaml")


@dataclass(frozen=True)
class MasteryConfig:
    history_limit: int = 500
    max_gaps: int = 10


@dataclass(frozen=True)
class DifficultyConfig:
    lookback_days: int = 7
    history_limit: int = 50
    min_events: int = 5
    default_response_time: float = 30.0


@dataclass(frozen=True)
class RecommendationConfig:
    max_items: int = 20
    max_topics: int = 5
    scored_topics: int = 3
    avoid_recent_days: int = 7
    minutes_per_item: float = 2.0
    topic_prerequisites: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class ProgressionConfig:
    points_per_level: int = 3
    max_award_retries: int = 3


@dataclass(frozen=True)
class EngineConfig:
    mastery: MasteryConfig = field(default_factory=MasteryConfig)
    difficulty: DifficultyConfig = field(default_factory=DifficultyConfig)
    recommendation: RecommendationConfig = field(default_factory=RecommendationConfig)
    progression: ProgressionConfig = field(default_factory=ProgressionConfig)
    default_age: int = 10
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, cfg: Optional[Mapping[str, Any]]) -> "EngineConfig":
        cfg = dict(cfg or {})
        _reject_unknown(cls, cfg, "engine")
        sections = {
            "mastery": MasteryConfig,
            "difficulty": DifficultyConfig,
            "recommendation": RecommendationConfig,
            "progression": ProgressionConfig,
        }
        kwargs: Dict[str, Any] = {}
        for name, section_cls in sections.items():
            raw = dict(cfg.get(name) or {})
            _reject_unknown(section_cls, raw, name)
            if name == "recommendation" and "topic_prerequisites" in raw:
                raw["topic_prerequisites"] = {
                    str(topic): tuple(prereqs or ())
                    for topic, prereqs in (raw["topic_prerequisites"] or {}).items()
                }
            kwargs[name] = section_cls(**raw)
        if "default_age" in cfg:
            kwargs["default_age"] = int(cfg["default_age"])
        if "log_level" in cfg:
            kwargs["log_level"] = str(cfg["log_level"]).upper()
        return cls(**kwargs)


def _reject_unknown(section_cls, raw: Mapping[str, Any], name: str) -> None:
    known = {f.name for f in fields(section_cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise InvalidInputError(f"Unknown key(s) in '{name}' config section: {', '.join(unknown)}")


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """
    Load an EngineConfig from YAML.

    With no path the default `configs/engine.yaml` is used when present;
    otherwise built-in defaults apply.
    """

    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return EngineConfig()
        path = DEFAULT_CONFIG_PATH
    with Path(path).open("r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    if cfg is not None and not isinstance(cfg, dict):
        raise InvalidInputError(f"Config at {path} must be a mapping")
    return EngineConfig.from_dict(cfg)
