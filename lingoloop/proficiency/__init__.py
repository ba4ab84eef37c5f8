"""
Learner proficiency analysis and adaptive recommendations.
"""

from .analyzer import ProficiencyAnalyzer
from .recommendations import generate_recommendations, recommend_exercises
from .requirements import LEVEL_REQUIREMENTS, LevelRequirement

__all__ = [
    'ProficiencyAnalyzer',
    'generate_recommendations',
    'recommend_exercises',
    'LEVEL_REQUIREMENTS',
    'LevelRequirement',
]
