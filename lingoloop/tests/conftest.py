"""
Shared fixtures for the Lingoloop test suite.

``FakeAIService`` stands in for the OpenAI backend: by default it answers
every request with exactly ``item_count`` items that pass validation for
any exercise type, and it can be scripted with explicit responses or
exceptions per call.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from lingoloop.common.config import AIConfig, GenerationConfig, PipelineConfig
from lingoloop.domain.memory_repository import MemoryDeliverableRepository, MemoryPerformanceRepository
from lingoloop.domain.models import Level, Topic
from lingoloop.generation.ai_client import AIGenerationService, CompletionRequest, CompletionResponse
from lingoloop.generation.orchestrator import GenerationOrchestrator
from lingoloop.generation.service import BulkGenerationService

LONG_EXPLANATION = (
    "Verbet 'ir' bøjes uregelmæssigt i præsens; første person ental hedder 'voy'."
)


def build_items(count: int, start: int = 0) -> List[Dict[str, Any]]:
    """Raw question dicts valid for every exercise type."""
    return [
        {
            "id": f"q{start + i + 1}",
            "question": f"Udfyld ({start + i + 1}): Yo ___ a la escuela.",
            "options": ["voy", "vas", "va", "vamos"],
            "correct_answer": "voy",
            "explanation": LONG_EXPLANATION,
            "difficulty_level": "medium",
        }
        for i in range(count)
    ]


def json_response(questions: List[Dict[str, Any]], instructions: str = "Vælg det rigtige svar.") -> CompletionResponse:
    return CompletionResponse(
        content=json.dumps({"instructions": instructions, "questions": questions}),
        finish_reason="stop",
    )


class FakeAIService(AIGenerationService):
    """Scriptable generation backend."""

    def __init__(self, responses: Optional[List[Any]] = None,
                 handler: Optional[Callable[[CompletionRequest], Any]] = None):
        self.responses = list(responses or [])
        self.handler = handler
        self.requests: List[CompletionRequest] = []
        self._produced = 0

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        if self.responses:
            outcome = self.responses.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        if self.handler is not None:
            outcome = self.handler(request)
            if hasattr(outcome, "__await__"):
                outcome = await outcome
            return outcome

        questions = build_items(request.item_count, self._produced)
        self._produced += request.item_count
        return json_response(questions)


@pytest.fixture
def fake_service_cls():
    return FakeAIService


@pytest.fixture
def items_builder():
    return build_items


@pytest.fixture
def response_builder():
    return json_response


@pytest.fixture
def ai_config():
    return AIConfig(api_key="test-key", model_name="gpt-4o")


@pytest.fixture
def generation_config():
    return GenerationConfig(base_delay_ms=0, jitter_ms=0)


@pytest.fixture
def pipeline_config():
    return PipelineConfig(base_delay_ms=0, delay_step_ms=0, max_delay_ms=0)


@pytest.fixture
def topic():
    return Topic(topic_id="present-tense", name="Presente", level=Level.A1,
                 description="Regular and irregular verbs in the present tense")


@pytest.fixture
def deliverable_repository():
    return MemoryDeliverableRepository()


@pytest.fixture
def performance_repository():
    return MemoryPerformanceRepository()


@pytest.fixture
def orchestrator_factory(ai_config, generation_config):
    def factory(service: AIGenerationService, config: Optional[GenerationConfig] = None,
                ai: Optional[AIConfig] = None) -> GenerationOrchestrator:
        return GenerationOrchestrator(service, ai or ai_config, config or generation_config)
    return factory


@pytest.fixture
def bulk_service_factory(orchestrator_factory, generation_config, deliverable_repository):
    def factory(service: AIGenerationService, repository=None,
                config: Optional[GenerationConfig] = None) -> BulkGenerationService:
        config = config or generation_config
        return BulkGenerationService(
            repository or deliverable_repository,
            orchestrator_factory(service, config),
            config,
        )
    return factory
