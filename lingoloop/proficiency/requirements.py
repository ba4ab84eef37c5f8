"""
Level Requirement Model

Static per-level graduation criteria. Loaded once at import, never
mutated.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple

from lingoloop.domain.models import Level

SKILLS = ("grammar", "vocabulary", "conjugation", "comprehension")


@dataclass(frozen=True)
class LevelRequirement:
    """
    Attributes:
        min_score: Recent average needed to leave this level
        required_topics: Topic keys that must be covered before leaving
        exercises_per_topic: Practice target per topic at this level
        skill_thresholds: Minimum per-skill score for this level
        coverage_threshold: Per-topic score that counts a required topic as met
    """
    min_score: float
    required_topics: Tuple[str, ...]
    exercises_per_topic: int
    skill_thresholds: Mapping[str, float]
    coverage_threshold: float


LEVEL_REQUIREMENTS: Mapping[Level, LevelRequirement] = MappingProxyType({
    Level.A1: LevelRequirement(
        min_score=70,
        required_topics=("ser_estar", "present_tense", "articles", "basic_vocabulary"),
        exercises_per_topic=15,
        skill_thresholds=MappingProxyType({"grammar": 70, "vocabulary": 75, "conjugation": 65, "comprehension": 70}),
        coverage_threshold=70,
    ),
    Level.A2: LevelRequirement(
        min_score=75,
        required_topics=("past_tense", "future_tense", "irregular_verbs", "comparatives"),
        exercises_per_topic=20,
        skill_thresholds=MappingProxyType({"grammar": 75, "vocabulary": 80, "conjugation": 75, "comprehension": 75}),
        coverage_threshold=75,
    ),
    Level.B1: LevelRequirement(
        min_score=80,
        required_topics=("subjunctive", "conditional", "complex_sentences", "advanced_vocabulary"),
        exercises_per_topic=25,
        skill_thresholds=MappingProxyType({"grammar": 80, "vocabulary": 85, "conjugation": 80, "comprehension": 80}),
        coverage_threshold=80,
    ),
})


def next_level(level: Level, requirements: Mapping[Level, LevelRequirement] = LEVEL_REQUIREMENTS) -> Level:
    """
    The level a learner at ``level`` is working towards.

    At the highest level that has requirements, the learner keeps working
    towards mastering that same level.
    """
    candidate = level.next
    if candidate != level and candidate in requirements:
        return candidate
    return level
