# ABOUTME: Defines character attributes, specialization overlays, and subject-to-attribute links.
# ABOUTME: Every lookup is a closed enum mapping so unknown cases fail loudly instead of falling through.

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from src.common.errors import InvalidInputError


class Attribute(str, Enum):
    INTELLIGENCE = "intelligence"
    VITALITY = "vitality"
    WISDOM = "wisdom"
    CHARISMA = "charisma"
    DEXTERITY = "dexterity"
    CREATIVITY = "creativity"


class Specialization(str, Enum):
    SCHOLAR = "scholar"
    EXPLORER = "explorer"
    GUARDIAN = "guardian"
    ARTIST = "artist"
    DIPLOMAT = "diplomat"
    INVENTOR = "inventor"


@dataclass(frozen=True)
class SubjectAttributes:
    primary: Attribute
    secondary: Attribute


SUBJECT_ATTRIBUTES: Dict[str, SubjectAttributes] = {
    "Mathematics": SubjectAttributes(Attribute.INTELLIGENCE, Attribute.WISDOM),
    "Biology": SubjectAttributes(Attribute.VITALITY, Attribute.INTELLIGENCE),
    "History": SubjectAttributes(Attribute.WISDOM, Attribute.CHARISMA),
    "Language Arts": SubjectAttributes(Attribute.CHARISMA, Attribute.CREATIVITY),
    "Science": SubjectAttributes(Attribute.DEXTERITY, Attribute.INTELLIGENCE),
    "Art": SubjectAttributes(Attribute.CREATIVITY, Attribute.CHARISMA),
    "Physical Education": SubjectAttributes(Attribute.VITALITY, Attribute.DEXTERITY),
    "Music": SubjectAttributes(Attribute.CREATIVITY, Attribute.DEXTERITY),
    "Geography": SubjectAttributes(Attribute.WISDOM, Attribute.INTELLIGENCE),
    "Computer Science": SubjectAttributes(Attribute.INTELLIGENCE, Attribute.DEXTERITY),
}


def specialization_bonuses(specialization: Specialization) -> Dict[Attribute, int]:
    try:
        specialization = Specialization(specialization)
    except ValueError as exc:
        raise InvalidInputError(f"Unknown specialization {specialization!r}") from exc

    if specialization is Specialization.SCHOLAR:
        return {Attribute.INTELLIGENCE: 2, Attribute.WISDOM: 1}
    if specialization is Specialization.EXPLORER:
        return {Attribute.DEXTERITY: 2, Attribute.VITALITY: 1}
    if specialization is Specialization.GUARDIAN:
        return {Attribute.VITALITY: 2, Attribute.CHARISMA: 1}
    if specialization is Specialization.ARTIST:
        return {Attribute.CREATIVITY: 2, Attribute.CHARISMA: 1}
    if specialization is Specialization.DIPLOMAT:
        return {Attribute.CHARISMA: 2, Attribute.WISDOM: 1}
    if specialization is Specialization.INVENTOR:
        return {Attribute.INTELLIGENCE: 1, Attribute.CREATIVITY: 1, Attribute.DEXTERITY: 1}
    raise InvalidInputError(f"Unhandled specialization {specialization!r}")


def base_attributes(value: int = 10) -> Dict[Attribute, int]:
    return {attribute: value for attribute in Attribute}


def apply_specialization(
    base: Mapping[Attribute, int], specialization: Optional[Specialization] = None
) -> Dict[Attribute, int]:
    """Return a new attribute set with the specialization's bonuses added."""
    effective = {Attribute(k): int(v) for k, v in base.items()}
    if specialization is None:
        return effective
    for attribute, bonus in specialization_bonuses(specialization).items():
        effective[attribute] = effective.get(attribute, 0) + bonus
    return effective


def subject_attributes(subject_name: str) -> Optional[SubjectAttributes]:
    return SUBJECT_ATTRIBUTES.get(subject_name)


def performance_multiplier(recent_accuracy: float, streak: int = 0) -> float:
    multiplier = 1.0
    if recent_accuracy >= 0.9:
        multiplier += 0.3
    elif recent_accuracy >= 0.8:
        multiplier += 0.2
    elif recent_accuracy >= 0.7:
        multiplier += 0.1

    if streak >= 10:
        multiplier += 0.2
    elif streak >= 5:
        multiplier += 0.1

    return min(multiplier, 2.0)


def attribute_gains(
    subject_name: str, xp_earned: int, multiplier: float = 1.0
) -> Dict[Attribute, int]:
    """Attribute increases earned by practicing a subject; empty for unmapped subjects."""
    mapping = subject_attributes(subject_name)
    if mapping is None:
        return {}

    base_increase = max(1, xp_earned // 50)
    primary = math.floor(base_increase * multiplier)
    secondary = math.floor(base_increase * multiplier / 2)

    gains: Dict[Attribute, int] = {}
    if primary > 0:
        gains[mapping.primary] = primary
    if secondary > 0:
        gains[mapping.secondary] = gains.get(mapping.secondary, 0) + secondary
    return gains
