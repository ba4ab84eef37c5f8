"""
Bulk Generation Service

Single entry point for "generate N exercises for this topic and type":
pre-condition checks, the generation window, the avoid list, tiered
generation, distribution into deliverables and persistence.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from lingoloop.common.cancellation import CancellationToken
from lingoloop.common.config import GenerationConfig
from lingoloop.common.error_handling import ValidationError
from lingoloop.common.logger import app_logger, log_execution_time, with_context
from lingoloop.domain.models import (
    SUPPORTED_LEVELS,
    Deliverable,
    Difficulty,
    ExerciseType,
    GenerationRequest,
    Level,
    Topic,
    new_request_id,
)
from lingoloop.domain.repository import DeliverableRepository
from lingoloop.generation.dedup import DeduplicationFilter
from lingoloop.generation.distributor import QuestionDistributor
from lingoloop.generation.orchestrator import GenerationOrchestrator, TierOutcome
from lingoloop.generation.rate_window import RateWindowGuard
from lingoloop.generation.validator import score_quality

logger = app_logger.getChild("generation.service")

DEFAULT_INSTRUCTIONS = "Besvar spørgsmålene nedenfor."


class BulkGenerationRequest(BaseModel):
    """Raw bulk request as received from a caller."""
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None
    topic_description: Optional[str] = None
    level: Optional[str] = None
    exercise_type: Optional[str] = None
    count: Optional[int] = None
    difficulty: Optional[str] = None
    difficulty_distribution: Optional[Dict[str, float]] = Field(
        default=None,
        description="Percentage per tier, e.g. {'easy': 40, 'medium': 40, 'hard': 20}"
    )


@dataclass
class BulkPlan:
    topic: Topic
    exercise_type: ExerciseType
    requested_count: int
    count: int
    distribution: Dict[Difficulty, float]


@dataclass
class BulkGenerationResult:
    request_id: str
    topic_id: str
    exercise_type: ExerciseType
    requested_count: int
    deliverables: List[Deliverable] = field(default_factory=list)
    tiers: List[TierOutcome] = field(default_factory=list)
    timing: Dict[str, float] = field(default_factory=dict)
    quality: Dict[str, Any] = field(default_factory=dict)

    @property
    def deliverables_created(self) -> int:
        return len(self.deliverables)

    @property
    def items_created(self) -> int:
        return sum(len(d.items) for d in self.deliverables)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "topic_id": self.topic_id,
            "exercise_type": self.exercise_type.value,
            "requested_count": self.requested_count,
            "deliverables_created": self.deliverables_created,
            "items_created": self.items_created,
            "deliverable_ids": [d.deliverable_id for d in self.deliverables],
            "tiers": [t.to_dict() for t in self.tiers],
            "timing": dict(self.timing),
            "quality": dict(self.quality),
            "message": (
                f"Created {self.deliverables_created} exercises with "
                f"{self.items_created} questions"
            ),
        }


def parse_distribution(
    raw: Optional[Dict[str, float]],
    default_tier: Difficulty,
    errors: Dict[str, str]
) -> Dict[Difficulty, float]:
    if not raw:
        return {default_tier: 100}

    distribution: Dict[Difficulty, float] = {}
    for key, value in raw.items():
        try:
            tier = Difficulty(key)
        except ValueError:
            errors["difficulty_distribution"] = (
                f"Unknown difficulty '{key}'. Must be one of {[d.value for d in Difficulty]}"
            )
            continue
        if value is None or value < 0:
            errors["difficulty_distribution"] = f"Percentage for '{key}' must not be negative"
            continue
        distribution[tier] = value

    if not errors.get("difficulty_distribution") and sum(distribution.values()) <= 0:
        errors["difficulty_distribution"] = "At least one difficulty needs a positive percentage"
    return distribution


class BulkGenerationService:
    """Coordinates one bulk generation request end to end."""

    def __init__(
        self,
        repository: DeliverableRepository,
        orchestrator: GenerationOrchestrator,
        config: GenerationConfig,
        window_guard: Optional[RateWindowGuard] = None,
        dedup: Optional[DeduplicationFilter] = None,
        distributor: Optional[QuestionDistributor] = None,
    ):
        self.repository = repository
        self.orchestrator = orchestrator
        self.config = config
        self.window_guard = window_guard or RateWindowGuard(repository, config.rate_window_seconds)
        self.dedup = dedup or DeduplicationFilter(repository)
        self.distributor = distributor or QuestionDistributor()

    def plan(self, request: BulkGenerationRequest) -> BulkPlan:
        """
        Check pre-conditions and normalise the request.

        Raises:
            ValidationError: with one message per offending field
        """
        errors: Dict[str, str] = {}

        if not (request.topic_id or "").strip():
            errors["topic_id"] = "Topic id is required"
        if not (request.topic_name or "").strip():
            errors["topic_name"] = "Topic name is required"

        exercise_type: Optional[ExerciseType] = None
        try:
            exercise_type = ExerciseType(request.exercise_type)
        except ValueError:
            errors["exercise_type"] = (
                f"Invalid exercise type. Must be one of {[t.value for t in ExerciseType]}"
            )

        level: Optional[Level] = None
        try:
            level = Level(request.level)
        except ValueError:
            pass
        if level not in SUPPORTED_LEVELS:
            errors["level"] = f"Invalid level. Must be one of {[lv.value for lv in SUPPORTED_LEVELS]}"

        if request.count is None or request.count <= 0:
            errors["count"] = "Count must be a positive number"

        default_tier = Difficulty.MEDIUM
        if request.difficulty is not None:
            try:
                default_tier = Difficulty(request.difficulty)
            except ValueError:
                errors["difficulty"] = f"Invalid difficulty. Must be one of {[d.value for d in Difficulty]}"
        distribution = parse_distribution(request.difficulty_distribution, default_tier, errors)

        if errors:
            raise ValidationError("Invalid bulk generation request", errors=errors)

        total = sum(distribution.values())
        if abs(total - 100) > 0.01:
            logger.warning(f"Difficulty distribution sums to {total}, not 100")

        count = request.count
        cap = self.config.max_deliverables_per_request
        if count > cap:
            logger.info(f"Capping requested exercise count {count} at {cap}")
            count = cap

        return BulkPlan(
            topic=Topic(
                topic_id=request.topic_id.strip(),
                name=request.topic_name.strip(),
                level=level,
                description=(request.topic_description or "").strip(),
            ),
            exercise_type=exercise_type,
            requested_count=request.count,
            count=count,
            distribution=distribution,
        )

    def _label(self, deliverables: List[Deliverable], plan: BulkPlan, request_id: str,
               instructions: Optional[str]) -> None:
        generated_at = datetime.now(timezone.utc)
        for deliverable in deliverables:
            tier = deliverable.difficulty.value
            deliverable.topic_id = plan.topic.topic_id
            deliverable.level = plan.topic.level
            deliverable.exercise_type = plan.exercise_type
            deliverable.title = (
                f"{plan.topic.name} - {plan.exercise_type.label} ({tier.upper()}) #{deliverable.number}"
            )
            deliverable.description = (
                f"AI-generated {tier} exercise about {plan.topic.name} "
                f"with {len(deliverable.items)} questions"
            )
            deliverable.instructions = instructions or DEFAULT_INSTRUCTIONS
            deliverable.created_at = generated_at
            deliverable.metadata = {
                "difficulty": tier,
                "generated_at": generated_at.isoformat(),
                "ai_generated": True,
                "request_id": request_id,
                "exercise_number": deliverable.number,
                "total_exercises": deliverable.total,
            }

    @log_execution_time(logger)
    async def generate(
        self,
        request: BulkGenerationRequest,
        token: Optional[CancellationToken] = None,
    ) -> BulkGenerationResult:
        """
        Generate, distribute and store exercises for one (topic, type) pair.

        Raises:
            ValidationError: a pre-condition failed; nothing was called
            RateLimitedError: the pair is inside its generation window
            GenerationCancelledError: the session was stopped
            GenerationError: no usable content was produced
        """
        plan = self.plan(request)
        request_id = new_request_id()
        log = with_context(
            "generation.service",
            request_id=request_id,
            topic_id=plan.topic.topic_id,
            exercise_type=plan.exercise_type.value,
        )

        await self.window_guard.acquire(plan.topic.topic_id, plan.exercise_type)
        avoid = await self.dedup.collect_prior_questions(plan.topic.topic_id, plan.exercise_type)

        log.info(f"Generating {plan.count} {plan.exercise_type.value} exercises for {plan.topic.name}")
        started = time.perf_counter()
        result = await self.orchestrator.generate_all(
            GenerationRequest(
                topic=plan.topic,
                exercise_type=plan.exercise_type,
                difficulty=Difficulty.MEDIUM,
                item_count=0,
                avoid_questions=avoid,
                level=plan.topic.level,
            ),
            plan.count,
            plan.distribution,
            token,
        )
        generation_ms = (time.perf_counter() - started) * 1000

        pool = result.items
        target = max(1, min(plan.count, len(pool) // self.config.min_items_per_deliverable))
        deliverables = self.distributor.distribute(pool, target)
        self._label(deliverables, plan, request_id, result.instructions)

        if token is not None:
            token.raise_if_cancelled()

        persisted_at = time.perf_counter()
        stored = await self.repository.insert_many(deliverables)
        persistence_ms = (time.perf_counter() - persisted_at) * 1000

        quality = score_quality(pool)
        log.info(
            f"Stored {len(stored)} exercises with {len(pool)} questions "
            f"(quality score {quality.score})"
        )

        return BulkGenerationResult(
            request_id=request_id,
            topic_id=plan.topic.topic_id,
            exercise_type=plan.exercise_type,
            requested_count=plan.requested_count,
            deliverables=stored,
            tiers=result.tiers,
            timing={
                "generation_ms": round(generation_ms, 1),
                "persistence_ms": round(persistence_ms, 1),
                "total_ms": round(generation_ms + persistence_ms, 1),
            },
            quality=quality.to_dict(),
        )
