"""
Proficiency Analyzer

Rule-based estimate of a learner's level from completed exercises.

Scores are weighted by difficulty (easy 1.0, medium 1.5, hard 2.0) and
averaged per topic and per skill. The level is raised one gate at a
time: a learner only reaches B1 after clearing the A1 gate and then
the A2 gate, each gate requiring the recent average to reach the
level's minimum score and every required topic of that level to reach
its coverage threshold.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np

from lingoloop.common.config import ProficiencyConfig
from lingoloop.common.logger import app_logger, log_execution_time
from lingoloop.domain.models import (
    SUPPORTED_LEVELS,
    Difficulty,
    Level,
    LevelProgressSnapshot,
    PerformanceRecord,
    ProficiencyAnalysis,
    ProficiencyDetail,
)
from lingoloop.domain.repository import PerformanceRepository
from lingoloop.proficiency.requirements import LEVEL_REQUIREMENTS, LevelRequirement, next_level

logger = app_logger.getChild("proficiency.analyzer")

DIFFICULTY_WEIGHTS: Dict[str, float] = {
    Difficulty.EASY.value: 1.0,
    Difficulty.MEDIUM.value: 1.5,
    Difficulty.HARD.value: 2.0,
}
UNKNOWN_DIFFICULTY_WEIGHT = 1.0

MAX_CONFIDENCE = 95.0
SNAPSHOT_CONFIDENCE = 25.0
RECOMMENDATION_PROGRESS = 80.0
PROGRESSION_SCORE = 70.0
INSUFFICIENT_DATA = "Insufficient data"

MIN_EXERCISES = 10
MAX_EXERCISES = 50
DEFAULT_EXERCISES = 20


def difficulty_weight(difficulty: Optional[str]) -> float:
    """Weight for a tier; a missing tier counts as medium, an unknown one as 1.0."""
    if not difficulty:
        return DIFFICULTY_WEIGHTS[Difficulty.MEDIUM.value]
    return DIFFICULTY_WEIGHTS.get(difficulty.lower(), UNKNOWN_DIFFICULTY_WEIGHT)


def group_means(pairs: Iterable[tuple]) -> Dict[str, float]:
    groups: Dict[str, List[float]] = defaultdict(list)
    for key, value in pairs:
        groups[key].append(value)
    return {key: float(np.mean(values)) for key, values in groups.items()}


def consistency_score(scores: Sequence[float]) -> float:
    """``max(0, 100 - population variance)``, kept within [0, 100]."""
    if len(scores) == 0:
        return 0.0
    variance = float(np.var(np.asarray(scores, dtype=float)))
    return float(min(100.0, max(0.0, 100.0 - variance)))


def has_difficulty_progression(records: Iterable[PerformanceRecord]) -> bool:
    """True when at least two tiers contain a score of 70 or more."""
    tiers = {
        (record.difficulty or Difficulty.MEDIUM.value).lower()
        for record in records
        if record.score >= PROGRESSION_SCORE
    }
    return len(tiers & set(DIFFICULTY_WEIGHTS)) >= 2


def progress_towards(
    requirement: Optional[LevelRequirement],
    topic_scores: Mapping[str, float],
    skill_scores: Mapping[str, float],
) -> float:
    """
    Mean ratio-to-target over every topic and skill criterion of a level.

    Each ratio is capped at 100; missing scores count as 0. For a learner
    at the highest defined level (B1) the requirement passed in is that
    level's own, so the result measures mastery of B1 rather than
    readiness for a level above it.
    """
    if requirement is None:
        return 0.0

    ratios: List[float] = []
    for topic in requirement.required_topics:
        score = topic_scores.get(topic, 0.0)
        ratios.append(min(100.0, score / requirement.min_score * 100))
    for skill, threshold in requirement.skill_thresholds.items():
        score = skill_scores.get(skill, 0.0)
        ratios.append(min(100.0, score / threshold * 100))

    if not ratios:
        return 0.0
    return float(max(0.0, min(100.0, np.mean(ratios))))


def no_data_analysis() -> ProficiencyAnalysis:
    return ProficiencyAnalysis(
        current_level=Level.A1,
        confidence_score=0.0,
        strengths=[],
        weaknesses=[INSUFFICIENT_DATA],
        recommended_level=Level.A1,
        progress_to_next_level=0.0,
        exercises_needed=MAX_EXERCISES,
        source="none",
    )


class ProficiencyAnalyzer:
    """Computes a ProficiencyAnalysis from stored performance."""

    def __init__(
        self,
        repository: PerformanceRepository,
        config: Optional[ProficiencyConfig] = None,
        requirements: Mapping[Level, LevelRequirement] = LEVEL_REQUIREMENTS,
    ):
        self.repository = repository
        self.config = config or ProficiencyConfig()
        self.requirements = requirements

    @log_execution_time(logger)
    async def analyze(self, learner_id: str) -> ProficiencyAnalysis:
        """
        Analyze a learner.

        Uses up to ``record_limit`` most recent records. Without records,
        falls back to level-progress snapshots; without those, returns a
        zero-confidence "no data" analysis.
        """
        records = await self.repository.recent_records(learner_id, self.config.record_limit)
        if records:
            return self.analyze_records(records)

        snapshots = await self.repository.level_progress(learner_id)
        if snapshots:
            logger.info(f"No performance records for {learner_id}; using level progress snapshots")
            return self.analyze_snapshots(snapshots)

        logger.info(f"No performance data for {learner_id}")
        return no_data_analysis()

    def determine_level(self, recent_average: float, topic_scores: Mapping[str, float]) -> Level:
        """Climb the gates in order, stopping at the first one not cleared."""
        level = SUPPORTED_LEVELS[0]
        while True:
            requirement = self.requirements.get(level)
            target = next_level(level, self.requirements)
            if requirement is None or target == level:
                return level
            if recent_average < requirement.min_score:
                return level
            covered = all(
                topic_scores.get(topic, 0.0) >= requirement.coverage_threshold
                for topic in requirement.required_topics
            )
            if not covered:
                return level
            level = target

    def estimate_exercises(self, level: Level, weaknesses: List[str], topic_scores: Mapping[str, float]) -> int:
        requirement = self.requirements.get(level)
        if requirement is None:
            return DEFAULT_EXERCISES
        uncovered = sum(1 for topic in requirement.required_topics if topic not in topic_scores)
        estimate = requirement.exercises_per_topic + 5 * len(weaknesses) + 10 * uncovered
        return int(max(MIN_EXERCISES, min(MAX_EXERCISES, estimate)))

    def analyze_records(self, records: Sequence[PerformanceRecord]) -> ProficiencyAnalysis:
        """
        Analysis over records ordered newest first.
        """
        topic_scores = group_means(
            (r.topic_name, r.score * difficulty_weight(r.difficulty)) for r in records
        )
        skill_scores = group_means(
            (r.exercise_type, r.score * difficulty_weight(r.difficulty)) for r in records
        )

        recent = records[:self.config.recent_window]
        recent_average = float(np.mean([r.score for r in recent]))

        current_level = self.determine_level(recent_average, topic_scores)
        # Confidence only builds once a gate has been cleared
        confidence = 0.0
        if current_level != SUPPORTED_LEVELS[0]:
            confidence = max(0.0, min(MAX_CONFIDENCE, recent_average))

        strengths = [
            topic for topic, score in sorted(topic_scores.items(), key=lambda kv: (-kv[1], kv[0]))
            if score >= self.config.strength_threshold
        ]
        weaknesses = [
            topic for topic, score in sorted(topic_scores.items(), key=lambda kv: (kv[1], kv[0]))
            if score < self.config.weakness_threshold
        ]

        target_level = next_level(current_level, self.requirements)
        progress = progress_towards(self.requirements.get(target_level), topic_scores, skill_scores)
        recommended = target_level if progress > RECOMMENDATION_PROGRESS else current_level

        analysis = ProficiencyAnalysis(
            current_level=current_level,
            confidence_score=round(confidence, 1),
            strengths=strengths,
            weaknesses=weaknesses,
            recommended_level=recommended,
            progress_to_next_level=progress,
            exercises_needed=self.estimate_exercises(current_level, weaknesses, topic_scores),
            detail=ProficiencyDetail(
                topic_scores={k: round(v, 2) for k, v in topic_scores.items()},
                skill_scores={k: round(v, 2) for k, v in skill_scores.items()},
                difficulty_progression=has_difficulty_progression(records),
                consistency_score=round(consistency_score([r.score for r in records]), 2),
            ),
            source="records",
        )
        logger.debug(
            f"Analyzed {len(records)} records: level {current_level.value}, "
            f"confidence {analysis.confidence_score}, progress {analysis.progress_to_next_level}"
        )
        return analysis

    def analyze_snapshots(self, snapshots: Sequence[LevelProgressSnapshot]) -> ProficiencyAnalysis:
        """
        Degraded analysis from aggregate level progress.

        The furthest level with a snapshot is taken as current; a completed
        snapshot moves the learner on to the next level with no progress yet.
        """
        furthest = max(snapshots, key=lambda s: list(Level).index(s.level))
        current_level = furthest.level
        progress = max(0.0, min(100.0, furthest.progress_percentage))

        if furthest.is_complete:
            advanced = next_level(current_level, self.requirements)
            if advanced != current_level:
                current_level, progress = advanced, 0.0
            else:
                progress = 100.0

        target_level = next_level(current_level, self.requirements)
        recommended = target_level if progress > RECOMMENDATION_PROGRESS else current_level

        return ProficiencyAnalysis(
            current_level=current_level,
            confidence_score=SNAPSHOT_CONFIDENCE,
            strengths=[],
            weaknesses=[],
            recommended_level=recommended,
            progress_to_next_level=round(progress, 1),
            exercises_needed=self.estimate_exercises(current_level, [], {}),
            source="level_progress",
        )
