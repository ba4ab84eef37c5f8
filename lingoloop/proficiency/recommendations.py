"""
Adaptive exercise recommendations derived from a proficiency analysis.
"""

from typing import Dict, List, Mapping

from lingoloop.domain.models import (
    EXERCISE_TYPE_SKILLS,
    Difficulty,
    ExerciseRecommendations,
    ExerciseType,
    Level,
    ProficiencyAnalysis,
)
from lingoloop.proficiency.analyzer import INSUFFICIENT_DATA, ProficiencyAnalyzer
from lingoloop.proficiency.requirements import LEVEL_REQUIREMENTS, LevelRequirement

MAX_TOPICS = 3
MAX_TYPES = 2
MAX_FOCUS_AREAS = 3
WEAK_SKILL_SCORE = 75.0
EASY_BELOW_CONFIDENCE = 60.0
HARD_ABOVE_CONFIDENCE = 85.0
CONSISTENCY_FOCUS_BELOW = 70.0
ADVANCEMENT_FOCUS_ABOVE = 80.0

DEFAULT_TYPES = [ExerciseType.MULTIPLE_CHOICE.value, ExerciseType.FILL_BLANK.value]

# First exercise type that trains each stored skill
SKILL_TO_TYPE: Dict[str, str] = {}
for _type, _skill in EXERCISE_TYPE_SKILLS.items():
    SKILL_TO_TYPE.setdefault(_skill, _type.value)
SKILL_TO_TYPE.setdefault("comprehension", ExerciseType.TRANSLATION.value)


def recommend_exercises(
    analysis: ProficiencyAnalysis,
    requirements: Mapping[Level, LevelRequirement] = LEVEL_REQUIREMENTS,
) -> ExerciseRecommendations:
    """
    Pick topics, a difficulty tier, exercise types and focus areas.

    Weak topics come first; without any, the current level's required
    topics are suggested.
    """
    weaknesses = [w for w in analysis.weaknesses if w != INSUFFICIENT_DATA]

    if weaknesses:
        topics = weaknesses[:MAX_TOPICS]
    else:
        requirement = requirements.get(analysis.current_level)
        topics = list(requirement.required_topics[:MAX_TOPICS]) if requirement else []

    if analysis.confidence_score < EASY_BELOW_CONFIDENCE:
        difficulty = Difficulty.EASY
    elif analysis.confidence_score > HARD_ABOVE_CONFIDENCE and analysis.detail.difficulty_progression:
        difficulty = Difficulty.HARD
    else:
        difficulty = Difficulty.MEDIUM

    types: List[str] = []
    weak_skills = sorted(
        (score, skill) for skill, score in analysis.detail.skill_scores.items()
        if score < WEAK_SKILL_SCORE
    )
    for _, skill in weak_skills:
        exercise_type = SKILL_TO_TYPE.get(skill)
        if exercise_type and exercise_type not in types:
            types.append(exercise_type)
    if not types:
        types = list(DEFAULT_TYPES)

    focus = list(weaknesses)
    if analysis.detail.consistency_score < CONSISTENCY_FOCUS_BELOW:
        focus.append("Consistency improvement")
    if analysis.progress_to_next_level > ADVANCEMENT_FOCUS_ABOVE:
        focus.append("Level advancement preparation")

    return ExerciseRecommendations(
        topics=topics,
        difficulty=difficulty,
        exercise_types=types[:MAX_TYPES],
        focus_areas=focus[:MAX_FOCUS_AREAS],
    )


async def generate_recommendations(analyzer: ProficiencyAnalyzer, learner_id: str) -> ExerciseRecommendations:
    """Analyze ``learner_id`` and recommend the next exercises."""
    analysis = await analyzer.analyze(learner_id)
    return recommend_exercises(analysis, analyzer.requirements)
