"""
Tests for the generation orchestrator.

Covers:
1. Difficulty splitting
2. Batching and reasoning reduction
3. Skipping malformed or invalid output
4. Typed failures per tier and for the whole job
"""

import asyncio

import pytest

from lingoloop.common.cancellation import CancellationToken
from lingoloop.common.config import AIConfig, GenerationConfig
from lingoloop.common.error_handling import (
    ContentPolicyRefusalError,
    GenerationCancelledError,
    NoContentGeneratedError,
    ProviderError,
    RateLimitedError,
    ReasoningExhaustedError,
)
from lingoloop.domain.models import Difficulty, ExerciseType, GenerationRequest
from lingoloop.generation.ai_client import CompletionResponse
from lingoloop.generation.orchestrator import TierOutcome, split_by_difficulty


def tier_request(topic, difficulty=Difficulty.MEDIUM, item_count=4, exercise_type=ExerciseType.FILL_BLANK,
                 avoid=None):
    return GenerationRequest(topic=topic, exercise_type=exercise_type, difficulty=difficulty,
                             item_count=item_count, avoid_questions=avoid or [])


def test_split_rounds_each_tier_up():
    counts = split_by_difficulty(5, {Difficulty.EASY: 40, Difficulty.MEDIUM: 40, Difficulty.HARD: 20})
    assert counts == {Difficulty.EASY: 2, Difficulty.MEDIUM: 2, Difficulty.HARD: 1}


def test_split_skips_zero_tiers_and_keeps_order():
    counts = split_by_difficulty(3, {Difficulty.HARD: 50, Difficulty.EASY: 50, Difficulty.MEDIUM: 0})
    assert list(counts) == [Difficulty.EASY, Difficulty.HARD]
    assert counts[Difficulty.EASY] == 2


@pytest.mark.asyncio
async def test_generate_batches_large_tiers(fake_service_cls, orchestrator_factory, topic):
    service = fake_service_cls()
    orchestrator = orchestrator_factory(service)

    items = await orchestrator.generate(tier_request(topic, item_count=20))

    assert len(items) == 20
    assert [r.item_count for r in service.requests] == [8, 8, 4]
    assert all(item.difficulty == Difficulty.MEDIUM for item in items)


@pytest.mark.asyncio
async def test_items_keep_requested_tier(fake_service_cls, orchestrator_factory, topic,
                                         items_builder, response_builder):
    raw = items_builder(2)
    for entry in raw:
        entry["difficulty_level"] = "hard"
    service = fake_service_cls([response_builder(raw)])

    items = await orchestrator_factory(service).generate(tier_request(topic, Difficulty.EASY, 2))

    assert {item.difficulty for item in items} == {Difficulty.EASY}


@pytest.mark.asyncio
async def test_avoid_list_is_limited_in_prompt(fake_service_cls, orchestrator_factory, topic):
    service = fake_service_cls()
    avoid = [f"Eksisterende spørgsmål {i}" for i in range(15)]

    await orchestrator_factory(service).generate(tier_request(topic, avoid=avoid))

    prompt = service.requests[0].user_prompt
    assert "Eksisterende spørgsmål 9" in prompt
    assert "Eksisterende spørgsmål 10" not in prompt


@pytest.mark.asyncio
async def test_invalid_items_are_dropped(fake_service_cls, orchestrator_factory, topic,
                                         items_builder, response_builder):
    raw = items_builder(4)
    raw[1]["explanation"] = ""
    raw[2] = {"question": "Mangler svar"}
    service = fake_service_cls([response_builder(raw)])
    outcome = TierOutcome(Difficulty.MEDIUM, 1, 4)

    items = await orchestrator_factory(service).generate(tier_request(topic), outcome=outcome)

    assert [item.item_id for item in items] == ["q1", "q4"]
    assert outcome.returned_items == 4
    assert outcome.rejected_items == 2
    assert outcome.status == "completed"


@pytest.mark.asyncio
async def test_malformed_batch_is_skipped(fake_service_cls, orchestrator_factory, topic):
    service = fake_service_cls([
        CompletionResponse(content="dette er ikke json"),
    ])
    outcome = TierOutcome(Difficulty.MEDIUM, 3, 12)

    items = await orchestrator_factory(service).generate(tier_request(topic, item_count=12), outcome=outcome)

    assert len(items) == 4
    assert outcome.skipped_batches == 1
    assert service.calls == 2


@pytest.mark.asyncio
async def test_fenced_json_is_accepted(fake_service_cls, orchestrator_factory, topic,
                                       items_builder, response_builder):
    fenced = "```json\n" + response_builder(items_builder(2)).content + "\n```"
    service = fake_service_cls([CompletionResponse(content=fenced)])

    items = await orchestrator_factory(service).generate(tier_request(topic, item_count=2))

    assert len(items) == 2


@pytest.mark.asyncio
async def test_reasoning_exhaustion_halves_the_batch(fake_service_cls, orchestrator_factory, topic,
                                                     items_builder, response_builder):
    empty = CompletionResponse(content="", finish_reason="length", reasoning_tokens=4000)
    service = fake_service_cls([empty, empty, response_builder(items_builder(2))])
    reasoning_ai = AIConfig(model_name="gpt-5")

    items = await orchestrator_factory(service, ai=reasoning_ai).generate(tier_request(topic, item_count=8))

    assert [r.item_count for r in service.requests] == [8, 4, 2]
    assert len(items) == 2
    assert service.requests[0].max_tokens == 4000
    assert service.requests[0].temperature == 1.0


@pytest.mark.asyncio
async def test_reasoning_exhaustion_raises_after_reductions(fake_service_cls, orchestrator_factory, topic):
    empty = CompletionResponse(content=None, reasoning_tokens=3000)
    service = fake_service_cls(handler=lambda request: empty)
    config = GenerationConfig(base_delay_ms=0, jitter_ms=0, max_question_reductions=2)

    with pytest.raises(ReasoningExhaustedError):
        await orchestrator_factory(service, config).generate(tier_request(topic, item_count=8))

    assert service.calls == 3


@pytest.mark.asyncio
async def test_refusal_stops_the_tier(fake_service_cls, orchestrator_factory, topic):
    service = fake_service_cls([CompletionResponse(content=None, refusal="I can't help with that")])
    outcome = TierOutcome(Difficulty.MEDIUM, 4, 16)

    with pytest.raises(ContentPolicyRefusalError):
        await orchestrator_factory(service).generate(tier_request(topic, item_count=16), outcome=outcome)

    assert service.calls == 1
    assert outcome.status == "failed"
    assert outcome.error_code == "content_policy_refusal"


@pytest.mark.asyncio
async def test_exhausted_rate_limit_surfaces_as_rate_limited(fake_service_cls, orchestrator_factory, topic):
    class TooManyRequests(Exception):
        status_code = 429

    def rate_limited(request):
        raise TooManyRequests("slow down")

    service = fake_service_cls(handler=rate_limited)
    config = GenerationConfig(base_delay_ms=0, jitter_ms=0, max_retries=2)

    with pytest.raises(RateLimitedError):
        await orchestrator_factory(service, config).generate(tier_request(topic))

    assert service.calls == 3


@pytest.mark.asyncio
async def test_generate_all_pools_tiers(fake_service_cls, orchestrator_factory, topic):
    service = fake_service_cls()
    distribution = {Difficulty.EASY: 40, Difficulty.MEDIUM: 40, Difficulty.HARD: 20}

    result = await orchestrator_factory(service).generate_all(tier_request(topic), 5, distribution)

    assert [t.difficulty for t in result.tiers] == [Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD]
    assert [t.requested_items for t in result.tiers] == [8, 8, 4]
    assert len(result.items) == 20
    assert result.instructions == "Vælg det rigtige svar."


@pytest.mark.asyncio
async def test_generate_all_tolerates_one_failed_tier(fake_service_cls, orchestrator_factory, topic,
                                                     items_builder, response_builder):
    service = fake_service_cls([
        response_builder(items_builder(4)),
        ProviderError("upstream 500"),
    ])
    distribution = {Difficulty.EASY: 50, Difficulty.HARD: 50}

    result = await orchestrator_factory(service).generate_all(tier_request(topic), 2, distribution)

    assert len(result.items) == 4
    assert [t.status for t in result.tiers] == ["completed", "failed"]
    assert result.tiers[1].error_code == "provider_error"


@pytest.mark.asyncio
async def test_generate_all_raises_typed_failure_when_empty(fake_service_cls, orchestrator_factory, topic):
    service = fake_service_cls(handler=lambda request: CompletionResponse(content=None, refusal="no"))

    with pytest.raises(ContentPolicyRefusalError):
        await orchestrator_factory(service).generate_all(tier_request(topic), 2, {Difficulty.MEDIUM: 100})


@pytest.mark.asyncio
async def test_generate_all_raises_no_content_when_nothing_is_valid(fake_service_cls, orchestrator_factory,
                                                                    topic, response_builder):
    service = fake_service_cls(handler=lambda request: response_builder([{"question": "", "answer": ""}]))

    with pytest.raises(NoContentGeneratedError):
        await orchestrator_factory(service).generate_all(tier_request(topic), 1, {Difficulty.MEDIUM: 100})


@pytest.mark.asyncio
async def test_cancelled_token_aborts_generation(fake_service_cls, orchestrator_factory, topic):
    async def never_answers(request):
        await asyncio.sleep(30)

    service = fake_service_cls(handler=never_answers)
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.05, token.cancel)

    with pytest.raises(GenerationCancelledError):
        await orchestrator_factory(service).generate_all(tier_request(topic), 1, {Difficulty.MEDIUM: 100}, token)
