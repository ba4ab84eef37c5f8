"""
Tests for the bulk generation service.

Covers:
1. Pre-condition checks and count capping
2. The end-to-end happy path
3. Generation window, avoid list and cancellation
"""

from datetime import timedelta

import pytest

from lingoloop.common.cancellation import CancellationToken
from lingoloop.common.error_handling import GenerationCancelledError, RateLimitedError, ValidationError
from lingoloop.domain.memory_repository import MemoryDeliverableRepository
from lingoloop.domain.models import Deliverable, Difficulty, ExerciseType, GeneratedItem, Level, utcnow
from lingoloop.generation.ai_client import CompletionResponse
from lingoloop.generation.service import BulkGenerationRequest


def bulk_request(**overrides):
    data = {
        "topic_id": "present-tense",
        "topic_name": "Presente",
        "topic_description": "Regular and irregular verbs",
        "level": "A1",
        "exercise_type": "fill_blank",
        "count": 3,
    }
    data.update(overrides)
    return BulkGenerationRequest(**data)


@pytest.mark.asyncio
async def test_generates_and_stores_deliverables(fake_service_cls, bulk_service_factory, deliverable_repository):
    service = fake_service_cls()
    bulk = bulk_service_factory(service)

    result = await bulk.generate(bulk_request())

    assert result.deliverables_created == 3
    assert result.items_created == 12
    assert deliverable_repository.count() == 3

    first = result.deliverables[0]
    assert first.deliverable_id
    assert first.topic_id == "present-tense"
    assert first.level == Level.A1
    assert first.exercise_type == ExerciseType.FILL_BLANK
    assert first.skill == "grammar"
    assert first.title == "Presente - fill blank (MEDIUM) #1"
    assert first.instructions == "Vælg det rigtige svar."
    assert first.metadata["ai_generated"] is True
    assert first.metadata["total_exercises"] == 3

    data = result.to_dict()
    assert data["deliverables_created"] == 3
    assert set(data["timing"]) == {"generation_ms", "persistence_ms", "total_ms"}
    assert data["message"] == "Created 3 exercises with 12 questions"


@pytest.mark.asyncio
async def test_difficulty_distribution_shapes_deliverables(fake_service_cls, bulk_service_factory):
    bulk = bulk_service_factory(fake_service_cls())

    result = await bulk.generate(bulk_request(
        count=5, difficulty_distribution={"easy": 40, "medium": 40, "hard": 20}
    ))

    assert [d.difficulty for d in result.deliverables] == [
        Difficulty.EASY, Difficulty.EASY, Difficulty.MEDIUM, Difficulty.MEDIUM, Difficulty.HARD,
    ]
    assert [t["requested_items"] for t in result.to_dict()["tiers"]] == [8, 8, 4]


@pytest.mark.asyncio
async def test_invalid_request_makes_no_remote_call(fake_service_cls, bulk_service_factory):
    service = fake_service_cls()
    bulk = bulk_service_factory(service)

    with pytest.raises(ValidationError) as exc_info:
        await bulk.generate(bulk_request(topic_id=" ", exercise_type="essay", level="C1", count=0))

    assert set(exc_info.value.errors) == {"topic_id", "exercise_type", "level", "count"}
    assert service.calls == 0


@pytest.mark.asyncio
async def test_invalid_distribution_is_rejected(fake_service_cls, bulk_service_factory):
    bulk = bulk_service_factory(fake_service_cls())

    with pytest.raises(ValidationError) as exc_info:
        await bulk.generate(bulk_request(difficulty_distribution={"extreme": 100}))

    assert "difficulty_distribution" in exc_info.value.errors


def test_count_is_capped(fake_service_cls, bulk_service_factory):
    bulk = bulk_service_factory(fake_service_cls())

    plan = bulk.plan(bulk_request(count=20))

    assert plan.requested_count == 20
    assert plan.count == 8


@pytest.mark.asyncio
async def test_second_request_inside_window_is_refused(fake_service_cls, bulk_service_factory):
    service = fake_service_cls()
    bulk = bulk_service_factory(service)

    await bulk.generate(bulk_request(count=1))
    calls = service.calls

    with pytest.raises(RateLimitedError) as exc_info:
        await bulk.generate(bulk_request(count=1))

    assert exc_info.value.retry_after > 0
    assert service.calls == calls


@pytest.mark.asyncio
async def test_prior_questions_are_sent_as_avoid_list(fake_service_cls, bulk_service_factory):
    earlier = Deliverable(
        items=[GeneratedItem("old1", "Yo ___ (ser) estudiante.", "soy", "Forklaring", Difficulty.EASY)],
        difficulty=Difficulty.EASY,
        topic_id="present-tense",
        exercise_type=ExerciseType.FILL_BLANK,
        created_at=utcnow() - timedelta(hours=1),
    )
    repository = MemoryDeliverableRepository([earlier])
    service = fake_service_cls()
    bulk = bulk_service_factory(service, repository=repository)

    await bulk.generate(bulk_request(count=1))

    assert "Yo ___ (ser) estudiante." in service.requests[0].user_prompt


@pytest.mark.asyncio
async def test_small_pool_yields_fewer_deliverables(fake_service_cls, bulk_service_factory,
                                                    items_builder, response_builder):
    service = fake_service_cls([response_builder(items_builder(5)), CompletionResponse(content="{}")])
    bulk = bulk_service_factory(service)

    result = await bulk.generate(bulk_request(count=3))

    assert result.deliverables_created == 1
    assert result.items_created == 5


@pytest.mark.asyncio
async def test_stopped_session_stores_nothing(fake_service_cls, bulk_service_factory, deliverable_repository):
    token = CancellationToken()
    token.cancel()
    bulk = bulk_service_factory(fake_service_cls())

    with pytest.raises(GenerationCancelledError):
        await bulk.generate(bulk_request(), token)

    assert deliverable_repository.count() == 0
