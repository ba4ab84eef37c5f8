"""
Proficiency API
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from lingoloop.api import APIResponse
from lingoloop.dependencies import get_analyzer
from lingoloop.proficiency.analyzer import ProficiencyAnalyzer
from lingoloop.proficiency.recommendations import recommend_exercises

router = APIRouter()


@router.get("/{learner_id}")
async def get_proficiency(
    learner_id: str,
    recommendations: bool = Query(False, description="Include adaptive exercise recommendations"),
    analyzer: ProficiencyAnalyzer = Depends(get_analyzer),
) -> Dict[str, Any]:
    """Current level, confidence, strengths and progress for a learner."""
    analysis = await analyzer.analyze(learner_id)
    data = analysis.to_dict()
    if recommendations:
        data["recommendations"] = recommend_exercises(analysis, analyzer.requirements).to_dict()
    return APIResponse.success(data)
