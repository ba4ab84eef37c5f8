"""
Content Validator

Structural checks applied to every generated item before it may enter a
deliverable. Validation never raises: a rejected item is logged with its
reason and dropped.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from lingoloop.common.logger import app_logger
from lingoloop.domain.models import ExerciseType, GeneratedItem
from lingoloop.generation.prompts import BLANK_MARKER, MAX_BLANK_ANSWER_WORDS

logger = app_logger.getChild("generation.validator")

# A run of underscores ("_", "___") is one gap
BLANK_PATTERN = re.compile(re.escape(BLANK_MARKER) + "+")


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def count_blanks(prompt: str) -> int:
    return len(BLANK_PATTERN.findall(prompt))


def word_count(text: str) -> int:
    return len(text.split())


class ContentValidator:
    """Validates generated items against universal and per-type rules."""

    def rejection_reason(self, item: GeneratedItem, exercise_type: ExerciseType) -> Optional[str]:
        """Return why ``item`` is invalid, or None if it is acceptable."""
        if _is_blank(item.prompt):
            return "empty prompt"

        answer = item.answer
        if isinstance(answer, list):
            if not answer:
                return "empty answer list"
            if any(_is_blank(entry) for entry in answer):
                return "answer list contains an empty entry"
        elif _is_blank(answer):
            return "empty or non-text answer"

        if _is_blank(item.explanation):
            return "empty explanation"

        if exercise_type == ExerciseType.FILL_BLANK:
            return self._fill_blank_reason(item)
        if exercise_type == ExerciseType.MULTIPLE_CHOICE:
            return self._multiple_choice_reason(item)
        return None

    def _fill_blank_reason(self, item: GeneratedItem) -> Optional[str]:
        blanks = count_blanks(item.prompt)
        if blanks != 1:
            return f"fill-in-the-blank prompt has {blanks} blank markers, expected exactly 1"
        if not isinstance(item.answer, str):
            return "fill-in-the-blank answer must be a single phrase"
        words = word_count(item.answer)
        if words > MAX_BLANK_ANSWER_WORDS:
            return f"fill-in-the-blank answer has {words} words, at most {MAX_BLANK_ANSWER_WORDS} allowed"
        return None

    def _multiple_choice_reason(self, item: GeneratedItem) -> Optional[str]:
        options = [o for o in (item.options or []) if isinstance(o, str) and o.strip()]
        if len(options) < 2:
            return "multiple-choice item needs at least two options"
        normalized = {o.strip().casefold() for o in options}
        answers = item.answer if isinstance(item.answer, list) else [item.answer]
        if not any(a.strip().casefold() in normalized for a in answers):
            return "multiple-choice answer is not among the options"
        return None

    def validate(self, item: GeneratedItem, exercise_type: ExerciseType) -> bool:
        """
        Check one item.

        Args:
            item: Generated item
            exercise_type: Type the item was generated for

        Returns:
            True when the item may be used
        """
        try:
            reason = self.rejection_reason(item, exercise_type)
        except Exception as e:
            reason = f"unreadable item ({type(e).__name__}: {e})"

        if reason is None:
            return True
        logger.info(
            f"Rejected item {getattr(item, 'item_id', '?')}: {reason}",
            extra={"data": {"exercise_type": exercise_type.value, "reason": reason}}
        )
        return False

    def filter_valid(self, items: Iterable[GeneratedItem], exercise_type: ExerciseType) -> List[GeneratedItem]:
        return [item for item in items if self.validate(item, exercise_type)]


@dataclass
class QualityReport:
    score: int
    feedback: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "score": self.score,
            "feedback": list(self.feedback),
            "recommendations": list(self.recommendations),
        }


def score_quality(items: List[GeneratedItem], exercise_types: Optional[List[str]] = None) -> QualityReport:
    """
    Heuristic quality score for a batch of accepted items.

    Informational only; it never rejects content. ``exercise_types`` lists
    the type of each item when a batch mixes types.
    """
    score = 100
    feedback: List[str] = []
    recommendations: List[str] = []

    if not items:
        return QualityReport(score=0, feedback=["No items to score"])

    distinct_types = set(exercise_types or [])
    if len(distinct_types) <= 1 and len(items) > 5:
        score -= 10
        feedback.append("All items share a single exercise type")
        recommendations.append("Mix exercise types for broader coverage")

    tiers = [item.difficulty for item in items]
    has_progression = any(a != b for a, b in zip(tiers, tiers[1:]))
    if not has_progression and len(items) > 4:
        score -= 15
        feedback.append("No difficulty progression between items")
        recommendations.append("Order items from easier to harder")

    mean_explanation = sum(len(item.explanation or "") for item in items) / len(items)
    if mean_explanation < 50:
        score -= 20
        feedback.append("Explanations are short")
        recommendations.append("Give fuller explanations of the grammar involved")

    return QualityReport(score=max(0, score), feedback=feedback, recommendations=recommendations)
