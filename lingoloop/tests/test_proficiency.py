"""
Tests for the proficiency analyzer.

Covers:
1. Scoring helpers (difficulty weights, consistency, progress)
2. Level gating and the analysis fields
3. Snapshot fallback and the no-data answer
"""

from datetime import datetime, timedelta, timezone

import pytest

from lingoloop.domain.memory_repository import MemoryPerformanceRepository
from lingoloop.domain.models import Difficulty, Level, LevelProgressSnapshot, PerformanceRecord
from lingoloop.proficiency.analyzer import (
    ProficiencyAnalyzer,
    consistency_score,
    difficulty_weight,
    has_difficulty_progression,
    progress_towards,
)
from lingoloop.proficiency.recommendations import recommend_exercises
from lingoloop.proficiency.requirements import LEVEL_REQUIREMENTS, next_level

START = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)
A1_TOPICS = ("ser_estar", "present_tense", "articles", "basic_vocabulary")
A2_TOPICS = ("past_tense", "future_tense", "irregular_verbs", "comparatives")


def records_for(scores, learner_id="learner-1", exercise_type="grammar", difficulty="easy"):
    """One record per (topic, score) pair, oldest first."""
    return [
        PerformanceRecord(
            learner_id=learner_id,
            topic_name=topic,
            exercise_type=exercise_type,
            difficulty=difficulty,
            score=score,
            completed_at=START + timedelta(hours=i),
        )
        for i, (topic, score) in enumerate(scores)
    ]


def analyzer_with(records=(), snapshots=()):
    return ProficiencyAnalyzer(MemoryPerformanceRepository(records, snapshots))


def test_difficulty_weights():
    assert difficulty_weight("easy") == 1.0
    assert difficulty_weight("MEDIUM") == 1.5
    assert difficulty_weight("hard") == 2.0
    assert difficulty_weight(None) == 1.5
    assert difficulty_weight("expert") == 1.0


def test_consistency_is_bounded_and_falls_with_variance():
    assert consistency_score([]) == 0.0
    assert consistency_score([80, 80, 80]) == 100.0
    assert consistency_score([0, 100]) == 0.0

    narrow = consistency_score([78, 80, 82])
    wide = consistency_score([70, 80, 90])
    assert 0 <= wide < narrow <= 100


def test_difficulty_progression_needs_two_tiers():
    easy_only = records_for([("articles", 90), ("articles", 95)])
    assert not has_difficulty_progression(easy_only)

    mixed = easy_only + records_for([("articles", 72)], difficulty="medium")
    assert has_difficulty_progression(mixed)

    weak_medium = easy_only + records_for([("articles", 60)], difficulty="medium")
    assert not has_difficulty_progression(weak_medium)


def test_progress_is_100_only_when_every_criterion_is_met():
    requirement = LEVEL_REQUIREMENTS[Level.B1]
    topics = {topic: 80.0 for topic in requirement.required_topics}
    skills = {"grammar": 80.0, "vocabulary": 85.0, "conjugation": 80.0, "comprehension": 80.0}

    assert progress_towards(requirement, topics, skills) == 100.0

    skills["vocabulary"] = 84.9
    assert progress_towards(requirement, topics, skills) < 100.0

    assert progress_towards(requirement, {}, {}) == 0.0
    assert progress_towards(None, topics, skills) == 0.0


def test_progress_caps_each_ratio():
    requirement = LEVEL_REQUIREMENTS[Level.A1]
    topics = {topic: 200.0 for topic in requirement.required_topics}

    progress = progress_towards(requirement, topics, {})

    assert progress == pytest.approx(50.0)


def test_next_level_stops_at_highest_defined_level():
    assert next_level(Level.A1) == Level.A2
    assert next_level(Level.A2) == Level.B1
    assert next_level(Level.B1) == Level.B1


@pytest.mark.asyncio
async def test_no_data_returns_a1_with_zero_confidence():
    analysis = await analyzer_with().analyze("nobody")

    assert analysis.current_level == Level.A1
    assert analysis.confidence_score == 0
    assert analysis.progress_to_next_level == 0
    assert analysis.weaknesses == ["Insufficient data"]
    assert analysis.exercises_needed == 50
    assert analysis.source == "none"


@pytest.mark.asyncio
async def test_clearing_a1_gate_moves_learner_to_a2():
    analyzer = analyzer_with(records_for([(topic, 90) for topic in A1_TOPICS]))

    analysis = await analyzer.analyze("learner-1")

    assert analysis.current_level == Level.A2
    assert analysis.confidence_score == 90.0
    assert analysis.strengths == sorted(A1_TOPICS)
    assert analysis.weaknesses == []
    # grammar at 90 clears its B1 threshold; the other seven criteria are at 0
    assert analysis.progress_to_next_level == pytest.approx(12.5)
    assert analysis.recommended_level == Level.A2
    assert analysis.exercises_needed == 50
    assert analysis.source == "records"


@pytest.mark.asyncio
async def test_higher_gates_require_lower_ones():
    analyzer = analyzer_with(records_for([(topic, 95) for topic in A2_TOPICS]))

    analysis = await analyzer.analyze("learner-1")

    assert analysis.current_level == Level.A1


@pytest.mark.asyncio
async def test_reaching_b1_measures_progress_against_b1():
    scores = [(topic, 90) for topic in A1_TOPICS + A2_TOPICS]
    analyzer = analyzer_with(records_for(scores))

    analysis = await analyzer.analyze("learner-1")

    assert analysis.current_level == Level.B1
    assert analysis.recommended_level == Level.B1
    assert 0 <= analysis.progress_to_next_level <= 100


@pytest.mark.asyncio
async def test_low_recent_average_blocks_gate():
    old = records_for([(topic, 90) for topic in A1_TOPICS])
    recent = [
        PerformanceRecord("learner-1", "articles", "grammar", "easy", 30, START + timedelta(days=2, minutes=i))
        for i in range(20)
    ]
    analysis = await analyzer_with(old + recent).analyze("learner-1")

    assert analysis.current_level == Level.A1
    assert analysis.confidence_score == 0


@pytest.mark.asyncio
async def test_strengths_and_weaknesses_are_ordered():
    scores = [("ser_estar", 40), ("articles", 60), ("present_tense", 50), ("basic_vocabulary", 95),
              ("comparatives", 88)]
    analysis = await analyzer_with(records_for(scores)).analyze("learner-1")

    assert analysis.weaknesses == ["ser_estar", "present_tense", "articles"]
    assert analysis.strengths == ["basic_vocabulary", "comparatives"]


@pytest.mark.asyncio
async def test_confidence_is_capped():
    analysis = await analyzer_with(records_for([(t, 100) for t in A1_TOPICS])).analyze("learner-1")
    assert analysis.confidence_score == 95.0


@pytest.mark.asyncio
async def test_detail_fields_are_reported():
    records = records_for([("articles", 75)], difficulty="hard") + records_for(
        [("articles", 80)], exercise_type="vocabulary", difficulty="medium")
    analysis = await analyzer_with(records).analyze("learner-1")

    detail = analysis.to_dict()["detailed_analysis"]
    assert detail["topic_scores"]["articles"] == pytest.approx((150 + 120) / 2)
    assert detail["skill_scores"] == {"grammar": 150.0, "vocabulary": 120.0}
    assert detail["difficulty_progression"] is True
    assert 0 <= detail["consistency_score"] <= 100


@pytest.mark.asyncio
async def test_snapshot_fallback_uses_furthest_level():
    snapshots = [
        LevelProgressSnapshot("learner-1", Level.A1, 100, START, START + timedelta(days=30)),
        LevelProgressSnapshot("learner-1", Level.A2, 40, START + timedelta(days=30)),
    ]
    analysis = await analyzer_with(snapshots=snapshots).analyze("learner-1")

    assert analysis.current_level == Level.A2
    assert analysis.progress_to_next_level == 40.0
    assert analysis.confidence_score == 25
    assert analysis.recommended_level == Level.A2
    assert analysis.source == "level_progress"


@pytest.mark.asyncio
async def test_completed_snapshot_advances_one_level():
    snapshots = [LevelProgressSnapshot("learner-1", Level.A1, 100, START, START + timedelta(days=30))]
    analysis = await analyzer_with(snapshots=snapshots).analyze("learner-1")

    assert analysis.current_level == Level.A2
    assert analysis.progress_to_next_level == 0.0


@pytest.mark.asyncio
async def test_completed_top_level_snapshot_is_full_progress():
    snapshots = [LevelProgressSnapshot("learner-1", Level.B1, 100, START, START + timedelta(days=90))]
    analysis = await analyzer_with(snapshots=snapshots).analyze("learner-1")

    assert analysis.current_level == Level.B1
    assert analysis.progress_to_next_level == 100.0
    assert analysis.recommended_level == Level.B1


@pytest.mark.asyncio
async def test_records_take_precedence_over_snapshots():
    snapshots = [LevelProgressSnapshot("learner-1", Level.B1, 50)]
    analyzer = analyzer_with(records_for([("articles", 60)]), snapshots)

    analysis = await analyzer.analyze("learner-1")

    assert analysis.source == "records"
    assert analysis.current_level == Level.A1


@pytest.mark.asyncio
async def test_confidence_stays_zero_until_a_gate_is_cleared():
    records = records_for([("travel_phrases", 90)] * 10, difficulty="hard")
    analysis = await analyzer_with(records).analyze("learner-1")

    assert analysis.current_level == Level.A1
    assert analysis.confidence_score == 0
    assert recommend_exercises(analysis).difficulty == Difficulty.EASY


@pytest.mark.asyncio
async def test_b1_progress_measures_mastery_of_b1():
    b1 = LEVEL_REQUIREMENTS[Level.B1]
    scores = [(topic, 90) for topic in A1_TOPICS + A2_TOPICS + b1.required_topics]
    records = records_for(scores, difficulty="easy")
    for skill in ("vocabulary", "conjugation", "comprehension"):
        records += records_for([("subjunctive", 90)], exercise_type=skill)

    analysis = await analyzer_with(records).analyze("learner-1")

    assert analysis.current_level == Level.B1
    assert analysis.progress_to_next_level == 100.0
    assert analysis.recommended_level == Level.B1
