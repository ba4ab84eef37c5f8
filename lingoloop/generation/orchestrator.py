"""
Generation Orchestrator

Drives the AI service tier by tier for one job:

1. Split the requested deliverables across difficulty tiers.
2. Ask the service for each tier's items in batches, every call going
   through the backoff controller.
3. Decode each response strictly and validate every item.
4. Pool the valid items of all tiers.

Empty, malformed or fully invalid batches are skipped. Typed provider
failures (rate limit after retries, content-policy refusal, reasoning
exhaustion, provider error) are recorded per tier and only raised when
the job ends with nothing to show for it.
"""

import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError as SchemaError

from lingoloop.common.backoff import BackoffController, backoff_from_config
from lingoloop.common.cancellation import CancellationToken
from lingoloop.common.config import AIConfig, GenerationConfig
from lingoloop.common.error_handling import (
    ContentPolicyRefusalError,
    GenerationCancelledError,
    GenerationError,
    LingoloopError,
    MalformedResponseError,
    NoContentGeneratedError,
    RateLimitedError,
    ReasoningExhaustedError,
)
from lingoloop.common.logger import LoggerAdapter, app_logger
from lingoloop.domain.models import Difficulty, GeneratedItem, GenerationRequest
from lingoloop.generation.ai_client import AIGenerationService, CompletionRequest, CompletionResponse
from lingoloop.generation.prompts import build_system_prompt, build_user_prompt
from lingoloop.generation.schemas import decode_envelope, decode_item
from lingoloop.generation.validator import ContentValidator

logger = app_logger.getChild("generation.orchestrator")

REFUSAL_FINISH_REASONS = frozenset({"content_filter"})


def split_by_difficulty(total: int, distribution: Mapping[Difficulty, float]) -> Dict[Difficulty, int]:
    """
    Per-tier counts for ``total`` under a percentage distribution.

    Each tier gets ``ceil(total * pct / 100)``; tiers that come out at zero
    are left out. Tiers are returned in canonical order.
    """
    counts: Dict[Difficulty, int] = {}
    for tier in Difficulty:
        pct = distribution.get(tier, 0) or 0
        count = math.ceil(Fraction(total) * Fraction(str(pct)) / 100)
        if count > 0:
            counts[tier] = count
    return counts


@dataclass
class TierOutcome:
    """What happened to one difficulty tier of a job."""
    difficulty: Difficulty
    requested_deliverables: int
    requested_items: int
    returned_items: int = 0
    valid_items: int = 0
    rejected_items: int = 0
    skipped_batches: int = 0
    status: str = "pending"
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    instructions: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "difficulty": self.difficulty.value,
            "requested_deliverables": self.requested_deliverables,
            "requested_items": self.requested_items,
            "returned_items": self.returned_items,
            "valid_items": self.valid_items,
            "rejected_items": self.rejected_items,
            "skipped_batches": self.skipped_batches,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


@dataclass
class GenerationResult:
    items: List[GeneratedItem] = field(default_factory=list)
    tiers: List[TierOutcome] = field(default_factory=list)
    instructions: Optional[str] = None


class GenerationOrchestrator:
    """Turns generation requests into validated items."""

    def __init__(
        self,
        service: AIGenerationService,
        ai_config: AIConfig,
        config: GenerationConfig,
        validator: Optional[ContentValidator] = None,
    ):
        self.service = service
        self.ai_config = ai_config
        self.config = config
        self.validator = validator or ContentValidator()

    def _completion_request(self, request: GenerationRequest, item_count: int) -> CompletionRequest:
        model = self.ai_config.model_name
        reasoning = self.ai_config.is_reasoning_model(model)
        return CompletionRequest(
            system_prompt=build_system_prompt(request, item_count),
            user_prompt=build_user_prompt(request, item_count, self.config.avoid_list_limit),
            item_count=item_count,
            model=model,
            temperature=self.ai_config.reasoning_temperature if reasoning else self.ai_config.temperature,
            max_tokens=self.ai_config.reasoning_max_tokens if reasoning else self.ai_config.max_tokens,
        )

    async def _call(self, backoff: BackoffController, request: GenerationRequest, item_count: int) -> CompletionResponse:
        completion_request = self._completion_request(request, item_count)
        response = await backoff.execute(
            lambda: self.service.complete(completion_request),
            description=f"{request.difficulty.value} {request.exercise_type.value} batch"
        )
        if response.refusal or response.finish_reason in REFUSAL_FINISH_REASONS:
            raise ContentPolicyRefusalError(
                "The provider declined to generate this content",
                details={"refusal": response.refusal, "finish_reason": response.finish_reason}
            )
        return response

    async def _generate_batch(
        self,
        request: GenerationRequest,
        item_count: int,
        backoff: BackoffController,
        log: LoggerAdapter,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        One provider round trip, shrinking the batch if the model keeps
        burning its budget on reasoning.
        """
        reductions = 0
        while True:
            response = await self._call(backoff, request, item_count)
            if not response.is_empty:
                envelope = decode_envelope(response.content)
                if not envelope.questions:
                    raise MalformedResponseError("Response contained zero questions")
                return envelope.questions, envelope.instructions

            if response.reasoning_tokens <= 0:
                raise MalformedResponseError("Response was empty")

            if reductions >= self.config.max_question_reductions:
                raise ReasoningExhaustedError(
                    "The model used its whole budget on reasoning and returned no content",
                    details={"reasoning_tokens": response.reasoning_tokens, "reductions": reductions}
                )
            reductions += 1
            reduced = max(1, item_count // 2)
            log.warning(
                f"Reasoning consumed {response.reasoning_tokens} tokens with no content; "
                f"retrying with {reduced} instead of {item_count} items ({reductions}/"
                f"{self.config.max_question_reductions})"
            )
            item_count = reduced

    async def generate(
        self,
        request: GenerationRequest,
        token: Optional[CancellationToken] = None,
        outcome: Optional[TierOutcome] = None,
    ) -> List[GeneratedItem]:
        """
        Produce valid items for a single difficulty tier.

        Args:
            request: Tier request; ``item_count`` is the number of items wanted
            token: Session cancellation token
            outcome: Optional tier record updated in place

        Returns:
            Valid items, possibly fewer than requested, possibly none

        Raises:
            GenerationCancelledError: the session was stopped
            GenerationError, RateLimitedError: a typed failure left the tier empty
        """
        outcome = outcome or TierOutcome(request.difficulty, 0, request.item_count)
        log = LoggerAdapter(logger, {
            "topic_id": request.topic.topic_id,
            "exercise_type": request.exercise_type.value,
            "difficulty": request.difficulty.value,
        })
        backoff = backoff_from_config(self.config, token)

        valid: List[GeneratedItem] = []
        first_failure: Optional[LingoloopError] = None
        remaining = request.item_count
        offset = 0

        while remaining > 0:
            batch = min(self.config.batch_size, remaining)
            remaining -= batch
            try:
                raw_items, instructions = await self._generate_batch(request, batch, backoff, log)
            except GenerationCancelledError:
                raise
            except MalformedResponseError as e:
                outcome.skipped_batches += 1
                log.warning(f"Skipping batch of {batch}: {e.message}")
                continue
            except (GenerationError, RateLimitedError) as e:
                outcome.skipped_batches += 1
                first_failure = first_failure or e
                log.warning(f"Batch of {batch} failed: {e}")
                if isinstance(e, (ContentPolicyRefusalError, RateLimitedError)):
                    break
                continue

            if instructions and outcome.instructions is None:
                outcome.instructions = instructions

            for position, raw in enumerate(raw_items):
                outcome.returned_items += 1
                try:
                    item = decode_item(raw, offset + position, request.difficulty)
                except SchemaError as e:
                    outcome.rejected_items += 1
                    log.info(f"Rejected item {offset + position + 1}: does not decode ({e.error_count()} errors)")
                    continue
                if self.validator.validate(item, request.exercise_type):
                    valid.append(item)
                else:
                    outcome.rejected_items += 1
            offset += len(raw_items)

        outcome.valid_items = len(valid)
        if valid:
            outcome.status = "completed"
            if first_failure is not None:
                outcome.error_code = first_failure.code.value
                outcome.error_message = first_failure.message
            return valid

        if first_failure is not None:
            outcome.status = "failed"
            outcome.error_code = first_failure.code.value
            outcome.error_message = first_failure.message
            raise first_failure

        outcome.status = "skipped"
        outcome.error_message = "no valid items"
        log.warning(f"Tier produced no valid items out of {outcome.returned_items} returned")
        return []

    async def generate_all(
        self,
        base: GenerationRequest,
        deliverable_count: int,
        distribution: Mapping[Difficulty, float],
        token: Optional[CancellationToken] = None,
    ) -> GenerationResult:
        """
        Generate every tier of a job and pool the valid items.

        Raises:
            GenerationCancelledError: the session was stopped
            GenerationError, RateLimitedError: the pool is empty and a tier failed with a typed error
            NoContentGeneratedError: the pool is empty and no typed failure explains it
        """
        result = GenerationResult()
        failures: List[LingoloopError] = []

        for tier, tier_deliverables in split_by_difficulty(deliverable_count, distribution).items():
            items_needed = tier_deliverables * self.config.questions_per_deliverable
            outcome = TierOutcome(tier, tier_deliverables, items_needed)
            result.tiers.append(outcome)
            request = GenerationRequest(
                topic=base.topic,
                exercise_type=base.exercise_type,
                difficulty=tier,
                item_count=items_needed,
                avoid_questions=base.avoid_questions,
                level=base.level,
            )
            logger.info(
                f"Generating {items_needed} {tier.value} items for "
                f"{tier_deliverables} deliverables of {base.topic.name}/{base.exercise_type.value}"
            )
            try:
                items = await self.generate(request, token, outcome)
            except GenerationCancelledError:
                raise
            except (GenerationError, RateLimitedError) as e:
                failures.append(e)
                continue

            result.items.extend(items)
            if result.instructions is None:
                result.instructions = outcome.instructions

        if not result.items:
            if failures:
                raise failures[0]
            raise NoContentGeneratedError(
                "No valid items were generated for any difficulty tier",
                details={"tiers": [t.to_dict() for t in result.tiers]}
            )
        return result
