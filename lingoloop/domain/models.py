"""
Lingoloop Domain Model

Core entities shared by the content-generation pipeline and the
proficiency analyzer.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Level(str, enum.Enum):
    """CEFR levels in ascending order."""
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"

    @property
    def next(self) -> 'Level':
        """The next CEFR level, or this level when already at the top."""
        members = list(Level)
        index = members.index(self)
        return members[min(index + 1, len(members) - 1)]


# Levels the generator and the requirement table support
SUPPORTED_LEVELS = (Level.A1, Level.A2, Level.B1)


class Difficulty(str, enum.Enum):
    """
    Difficulty tier of a generated item or a completed exercise.

    Declaration order is the canonical tier order used for tie-breaks.
    """
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ExerciseType(str, enum.Enum):
    """Kinds of exercise the generator can produce."""
    MULTIPLE_CHOICE = "multiple_choice"
    FILL_BLANK = "fill_blank"
    TRANSLATION = "translation"
    CONJUGATION = "conjugation"
    SENTENCE_STRUCTURE = "sentence_structure"

    @property
    def skill(self) -> str:
        """Skill category stored on deliverables of this type."""
        return EXERCISE_TYPE_SKILLS[self]

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


EXERCISE_TYPE_SKILLS: Dict[ExerciseType, str] = {
    ExerciseType.MULTIPLE_CHOICE: "grammar",
    ExerciseType.FILL_BLANK: "grammar",
    ExerciseType.TRANSLATION: "vocabulary",
    ExerciseType.CONJUGATION: "conjugation",
    ExerciseType.SENTENCE_STRUCTURE: "sentence_structure",
}


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"


Answer = Union[str, List[str]]


@dataclass(frozen=True)
class PerformanceRecord:
    """
    One completed exercise attempt, as written by the exercise player.

    Attributes:
        learner_id: Learner who completed the exercise
        topic_name: Topic key the exercise belongs to
        exercise_type: Skill category of the exercise
        difficulty: Tier of the exercise, None when unknown
        score: Percentage score, 0-100
        completed_at: Completion time
        questions_correct: Correctly answered items
        total_questions: Items in the exercise
    """
    learner_id: str
    topic_name: str
    exercise_type: str
    difficulty: Optional[str]
    score: float
    completed_at: datetime
    questions_correct: int = 0
    total_questions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'learner_id': self.learner_id,
            'topic_name': self.topic_name,
            'exercise_type': self.exercise_type,
            'difficulty': self.difficulty,
            'score': self.score,
            'completed_at': self.completed_at.isoformat(),
            'questions_correct': self.questions_correct,
            'total_questions': self.total_questions,
        }


@dataclass(frozen=True)
class LevelProgressSnapshot:
    """Aggregate per-level progress kept alongside the raw records."""
    learner_id: str
    level: Level
    progress_percentage: float
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None or self.progress_percentage >= 100


@dataclass
class Topic:
    topic_id: str
    name: str
    level: Level
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'topic_id': self.topic_id,
            'name': self.name,
            'level': self.level.value,
            'description': self.description,
        }


@dataclass
class GeneratedItem:
    """
    One AI-produced question.

    ``answer`` is either a single string or a non-empty list of accepted
    strings. ``options`` is only meaningful for multiple-choice items.
    """
    item_id: str
    prompt: str
    answer: Any
    explanation: str
    difficulty: Difficulty
    options: Optional[List[str]] = None
    proficiency_indicator: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': self.item_id,
            'question': self.prompt,
            'correct_answer': self.answer,
            'explanation': self.explanation,
            'difficulty_level': self.difficulty.value,
        }
        if self.options is not None:
            data['options'] = list(self.options)
        if self.proficiency_indicator:
            data['proficiency_indicator'] = self.proficiency_indicator
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GeneratedItem':
        return cls(
            item_id=data['id'],
            prompt=data['question'],
            answer=data['correct_answer'],
            explanation=data.get('explanation', ''),
            difficulty=Difficulty(data.get('difficulty_level', Difficulty.MEDIUM.value)),
            options=data.get('options'),
            proficiency_indicator=data.get('proficiency_indicator'),
        )


@dataclass
class GenerationRequest:
    """Input to one per-tier generation attempt."""
    topic: Topic
    exercise_type: ExerciseType
    difficulty: Difficulty
    item_count: int
    avoid_questions: List[str] = field(default_factory=list)
    level: Optional[Level] = None

    @property
    def effective_level(self) -> Level:
        return self.level or self.topic.level


@dataclass
class Deliverable:
    """
    A packaged group of generated items (an "exercise").

    Topic fields are filled in by the bulk service after distribution.
    """
    items: List[GeneratedItem]
    difficulty: Difficulty
    number: int = 1
    total: int = 1
    deliverable_id: Optional[str] = None
    topic_id: Optional[str] = None
    level: Optional[Level] = None
    exercise_type: Optional[ExerciseType] = None
    title: str = ""
    description: str = ""
    instructions: str = ""
    ai_generated: bool = True
    created_at: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def skill(self) -> Optional[str]:
        return self.exercise_type.skill if self.exercise_type else None

    @property
    def question_texts(self) -> List[str]:
        return [item.prompt for item in self.items]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'deliverable_id': self.deliverable_id,
            'topic_id': self.topic_id,
            'level': self.level.value if self.level else None,
            'exercise_type': self.exercise_type.value if self.exercise_type else None,
            'skill': self.skill,
            'difficulty': self.difficulty.value,
            'number': self.number,
            'total': self.total,
            'title': self.title,
            'description': self.description,
            'instructions': self.instructions,
            'ai_generated': self.ai_generated,
            'created_at': self.created_at.isoformat(),
            'metadata': dict(self.metadata),
            'items': [item.to_dict() for item in self.items],
        }


@dataclass
class GenerationJob:
    """One (topic, exercise type) unit of pipeline work."""
    topic: Topic
    exercise_type: ExerciseType
    requested_count: int
    job_id: str = ""
    generated_count: int = 0
    status: JobStatus = JobStatus.PENDING
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.job_id:
            self.job_id = f"{self.topic.topic_id}-{self.exercise_type.value}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.job_id,
            'topic_id': self.topic.topic_id,
            'topic': self.topic.name,
            'level': self.topic.level.value,
            'exercise_type': self.exercise_type.value,
            'requested_count': self.requested_count,
            'generated_count': self.generated_count,
            'status': self.status.value,
            'error_message': self.error_message,
            'error_code': self.error_code,
        }


@dataclass
class ProficiencyDetail:
    topic_scores: Dict[str, float] = field(default_factory=dict)
    skill_scores: Dict[str, float] = field(default_factory=dict)
    difficulty_progression: bool = False
    consistency_score: float = 0.0


@dataclass
class ProficiencyAnalysis:
    """Derived per request, never persisted."""
    current_level: Level
    confidence_score: float
    strengths: List[str]
    weaknesses: List[str]
    recommended_level: Level
    progress_to_next_level: float
    exercises_needed: int
    detail: ProficiencyDetail = field(default_factory=ProficiencyDetail)
    source: str = "records"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current_level': self.current_level.value,
            'confidence_score': self.confidence_score,
            'strengths': list(self.strengths),
            'weaknesses': list(self.weaknesses),
            'recommended_level': self.recommended_level.value,
            'progress_to_next_level': self.progress_to_next_level,
            'exercises_needed': self.exercises_needed,
            'source': self.source,
            'detailed_analysis': {
                'topic_scores': dict(self.detail.topic_scores),
                'skill_scores': dict(self.detail.skill_scores),
                'difficulty_progression': self.detail.difficulty_progression,
                'consistency_score': self.detail.consistency_score,
            },
        }


@dataclass
class ExerciseRecommendations:
    topics: List[str]
    difficulty: Difficulty
    exercise_types: List[str]
    focus_areas: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'recommended_topics': list(self.topics),
            'recommended_difficulty': self.difficulty.value,
            'exercise_types': list(self.exercise_types),
            'focus_areas': list(self.focus_areas),
        }


def new_request_id() -> str:
    return str(uuid.uuid4())
