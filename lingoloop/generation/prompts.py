"""
Prompt construction for exercise generation.

Learners are Danish speakers studying Spanish: instructions and
explanations are requested in Danish, exercise content in Spanish.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence

from lingoloop.domain.models import Difficulty, ExerciseType, GenerationRequest, Level

BLANK_MARKER = "_"
MAX_BLANK_ANSWER_WORDS = 3
MULTIPLE_CHOICE_OPTIONS = 4

DIFFICULTY_GUIDANCE: Dict[Level, Dict[Difficulty, str]] = {
    Level.A1: {
        Difficulty.EASY: "Basic vocabulary and simple structures; short sentences built on 'ser' and 'estar'.",
        Difficulty.MEDIUM: "Common everyday expressions and the basic grammatical patterns.",
        Difficulty.HARD: "First contact with more complex structures while staying inside A1.",
    },
    Level.A2: {
        Difficulty.EASY: "Familiar situations and topics; simple past and future.",
        Difficulty.MEDIUM: "Less predictable situations, irregular verbs and comparatives.",
        Difficulty.HARD: "The most demanding A2 structures, preparing for B1.",
    },
    Level.B1: {
        Difficulty.EASY: "Common complex structures and the subjunctive in its simplest uses.",
        Difficulty.MEDIUM: "Advanced grammar and the different uses of the subjunctive.",
        Difficulty.HARD: "Complex structures that need a deep understanding of Spanish grammar.",
    },
}


@dataclass(frozen=True)
class TypeGuidance:
    structure: str
    assessment: str
    tips: str


EXERCISE_TYPE_GUIDANCE: Dict[ExerciseType, TypeGuidance] = {
    ExerciseType.MULTIPLE_CHOICE: TypeGuidance(
        structure=f"Multiple choice with {MULTIPLE_CHOICE_OPTIONS} options and exactly one correct answer.",
        assessment="Checks understanding of grammar rules and vocabulary in context.",
        tips="Distractors must be plausible yet clearly wrong. The correct answer must appear verbatim among the options.",
    ),
    ExerciseType.FILL_BLANK: TypeGuidance(
        structure="A sentence with a gap to fill with the right word or inflection.",
        assessment="Checks active use of grammar and vocabulary.",
        tips=(
            f"Mark the gap with a single '{BLANK_MARKER}', exactly once per question. "
            f"The answer is one unambiguous phrase of at most {MAX_BLANK_ANSWER_WORDS} words."
        ),
    ),
    ExerciseType.TRANSLATION: TypeGuidance(
        structure="Translate from Danish to Spanish or the other way round.",
        assessment="Checks understanding of both languages and their cultural nuances.",
        tips="Use natural sentences that could occur in real situations.",
    ),
    ExerciseType.CONJUGATION: TypeGuidance(
        structure="A verb to conjugate into the form the context calls for.",
        assessment="Checks command of verb forms and the choice of tense and mood.",
        tips="Give enough context to make the intended tense and mood unambiguous.",
    ),
    ExerciseType.SENTENCE_STRUCTURE: TypeGuidance(
        structure="Reorder or restructure a sentence.",
        assessment="Checks understanding of Spanish syntax and word order.",
        tips="Focus on the mistakes Danish learners typically make.",
    ),
}

PROFICIENCY_INDICATORS: Dict[Level, List[str]] = {
    Level.A1: [
        "Understands and uses basic expressions",
        "Introduces themselves and others",
        "Asks and answers questions about personal details",
        "Distinguishes 'ser' from 'estar'",
        "Uses basic nouns and adjectives",
    ],
    Level.A2: [
        "Communicates about routine tasks",
        "Describes their background and surroundings",
        "Uses past and future tenses",
        "Handles irregular verbs",
        "Uses comparatives and superlatives",
    ],
    Level.B1: [
        "Handles most situations while travelling",
        "Expresses opinions and justifies them",
        "Uses the subjunctive in common contexts",
        "Builds complex sentences with subordinate clauses",
        "Narrates events in several past tenses",
    ],
}

RESPONSE_FORMAT = """Respond with a single JSON object and nothing else:
{
  "instructions": "<short instruction in Danish>",
  "questions": [
    {
      "id": "q1",
      "question": "<Danish instruction followed by the Spanish exercise>",
      "options": ["<only for multiple_choice>"],
      "correct_answer": "<answer, or a list of accepted answers>",
      "explanation": "<Danish explanation>",
      "difficulty_level": "<easy|medium|hard>"
    }
  ]
}"""


def build_system_prompt(request: GenerationRequest, item_count: int) -> str:
    level = request.effective_level
    guidance = EXERCISE_TYPE_GUIDANCE[request.exercise_type]
    indicators = "\n".join(f"- {indicator}" for indicator in PROFICIENCY_INDICATORS.get(level, []))

    return f"""You are an expert in Spanish grammar and language teaching who writes valid proficiency exercises for Danish learners.

TASK: write {item_count} {request.exercise_type.value} questions at level {level.value} about "{request.topic.name}" with {request.difficulty.value} difficulty.

LEVEL GUIDANCE ({level.value}):
{DIFFICULTY_GUIDANCE[level][request.difficulty]}

EXERCISE TYPE ({request.exercise_type.value}):
- Structure: {guidance.structure}
- Assessment: {guidance.assessment}
- Tips: {guidance.tips}

PROFICIENCY TARGETS ({level.value}):
{indicators}

QUALITY RULES:
1. All instructions and explanations in Danish.
2. Exercise sentences in pure Spanish; never mix Danish and Spanish in one sentence.
3. Vary contexts and situations and keep examples culturally relevant.
4. Progress gradually within the {request.difficulty.value} tier.
5. Every question needs a non-empty answer and a non-empty explanation.

{RESPONSE_FORMAT}"""


def build_avoid_block(avoid_questions: Sequence[str], limit: int) -> str:
    selected = [q for q in avoid_questions if q][:limit]
    if not selected:
        return ""
    lines = "\n".join(f'- "{q}"' for q in selected)
    return f"\n\nDo not repeat any of these existing questions:\n{lines}"


def build_user_prompt(request: GenerationRequest, item_count: int, avoid_limit: int) -> str:
    description = request.topic.description or request.topic.name
    return (
        f'Write EXACTLY {item_count} {request.exercise_type.value} questions about '
        f'"{request.topic.name}" ({description}).\n\n'
        f"Level: {request.effective_level.value}\n"
        f"Difficulty: {request.difficulty.value}"
        f"{build_avoid_block(request.avoid_questions, avoid_limit)}"
    )
