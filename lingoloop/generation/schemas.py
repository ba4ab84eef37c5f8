"""
Decoding of provider output into generated items.

The envelope is validated strictly: anything that is not a JSON object
with a ``questions`` list raises ``MalformedResponseError``. Individual
questions are decoded one by one so a single bad entry does not sink
the whole batch.
"""

import json
import re
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from lingoloop.common.error_handling import MalformedResponseError
from lingoloop.domain.models import Difficulty, GeneratedItem

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class ItemPayload(BaseModel):
    """One question as returned by the model."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    question: str = Field(validation_alias=AliasChoices("question", "question_da", "prompt"))
    correct_answer: Union[str, List[str]] = Field(validation_alias=AliasChoices("correct_answer", "answer"))
    explanation: str = Field(default="", validation_alias=AliasChoices("explanation", "explanation_da"))
    options: Optional[List[str]] = None
    difficulty_level: Optional[str] = None
    proficiency_indicator: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v):
        return None if v is None else str(v)

    @field_validator("options", mode="before")
    @classmethod
    def stringify_options(cls, v):
        if isinstance(v, list):
            return [str(option) for option in v]
        return v


class GenerationEnvelope(BaseModel):
    """Top-level JSON document expected from the model."""
    model_config = ConfigDict(extra="ignore")

    instructions: Optional[str] = None
    questions: List[Dict[str, Any]]


def strip_fences(content: str) -> str:
    return _FENCE.sub("", content.strip()).strip()


def decode_envelope(content: str) -> GenerationEnvelope:
    """
    Parse raw completion text.

    Raises:
        MalformedResponseError: the text is not the expected JSON document
    """
    try:
        data = json.loads(strip_fences(content))
    except json.JSONDecodeError as e:
        raise MalformedResponseError("Response is not valid JSON", cause=e) from e

    try:
        return GenerationEnvelope.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(
            "Response does not match the expected shape",
            details={"errors": e.errors(include_url=False, include_input=False, include_context=False)},
            cause=e
        ) from e


def decode_item(raw: Dict[str, Any], index: int, tier: Difficulty) -> GeneratedItem:
    """
    Decode a single question.

    Missing ids become ``q{index+1}``. Items are tagged with the tier they
    were requested for, whatever level the model claims.

    Raises:
        pydantic.ValidationError: required fields are missing or mistyped
    """
    payload = ItemPayload.model_validate(raw)
    return GeneratedItem(
        item_id=payload.id or f"q{index + 1}",
        prompt=payload.question,
        answer=payload.correct_answer,
        explanation=payload.explanation,
        difficulty=tier,
        options=payload.options,
        proficiency_indicator=payload.proficiency_indicator,
    )
