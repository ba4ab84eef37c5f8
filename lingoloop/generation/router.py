"""
Generation API

Bulk generation for one (topic, exercise type) pair, and background
pipelines that walk many topics with pause, resume and stop controls.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from lingoloop.api import APIResponse
from lingoloop.common.config import AppConfig
from lingoloop.common.error_handling import ValidationError
from lingoloop.common.logger import app_logger
from lingoloop.dependencies import get_app_config, get_bulk_service, get_pipeline_registry
from lingoloop.domain.models import SUPPORTED_LEVELS, Difficulty, Level, Topic
from lingoloop.generation.pipeline import BulkJobRunner, JobPipeline, PipelineRegistry, build_jobs
from lingoloop.generation.service import BulkGenerationRequest, BulkGenerationService, parse_distribution

logger = app_logger.getChild("generation.router")

router = APIRouter()


class TopicPayload(BaseModel):
    topic_id: str
    name: str
    level: str
    description: str = ""


class PipelineStartRequest(BaseModel):
    """Body for starting a multi-topic generation pipeline."""
    topics: List[TopicPayload]
    total_per_topic: int = Field(..., description="Exercises to spread over the types of each topic")
    type_weights: Optional[Dict[str, float]] = None
    difficulty_distribution: Optional[Dict[str, float]] = None


def _topics(payloads: List[TopicPayload]) -> List[Topic]:
    errors: Dict[str, str] = {}
    topics: List[Topic] = []
    for index, payload in enumerate(payloads):
        try:
            level = Level(payload.level)
        except ValueError:
            level = None
        if level not in SUPPORTED_LEVELS or not payload.topic_id.strip() or not payload.name.strip():
            errors[f"topics[{index}]"] = (
                f"Topic needs an id, a name and a level in {[lv.value for lv in SUPPORTED_LEVELS]}"
            )
            continue
        topics.append(Topic(payload.topic_id.strip(), payload.name.strip(), level, payload.description))
    if not payloads:
        errors["topics"] = "At least one topic is required"
    if errors:
        raise ValidationError("Invalid pipeline request", errors=errors)
    return topics


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
async def generate_bulk(
    request: BulkGenerationRequest,
    service: BulkGenerationService = Depends(get_bulk_service),
) -> Dict[str, Any]:
    """Generate and store exercises for one topic and exercise type."""
    result = await service.generate(request)
    data = result.to_dict()
    return APIResponse.success(data, message=data["message"])


@router.post("/pipelines", status_code=status.HTTP_202_ACCEPTED)
async def start_pipeline(
    request: PipelineStartRequest,
    config: AppConfig = Depends(get_app_config),
    service: BulkGenerationService = Depends(get_bulk_service),
    registry: PipelineRegistry = Depends(get_pipeline_registry),
) -> Dict[str, Any]:
    """Start a background pipeline; poll its status with the returned id."""
    topics = _topics(request.topics)
    if request.total_per_topic <= 0:
        raise ValidationError("Invalid pipeline request",
                              errors={"total_per_topic": "Must be a positive number"})

    try:
        jobs = build_jobs(topics, request.total_per_topic, request.type_weights or config.pipeline.type_weights)
    except ValueError as e:
        raise ValidationError("Invalid pipeline request", errors={"type_weights": str(e)}) from e

    errors: Dict[str, str] = {}
    distribution = parse_distribution(
        request.difficulty_distribution or config.pipeline.difficulty_distribution,
        Difficulty.MEDIUM,
        errors,
    )
    if errors:
        raise ValidationError("Invalid pipeline request", errors=errors)

    pipeline = JobPipeline(BulkJobRunner(service, distribution), config.pipeline)
    registry.start(pipeline, jobs)
    logger.info(f"Started pipeline {pipeline.pipeline_id} with {len(jobs)} jobs")
    return APIResponse.success(pipeline.summary().to_dict(), message="Pipeline started")


@router.get("/pipelines/{pipeline_id}")
async def get_pipeline(
    pipeline_id: str,
    registry: PipelineRegistry = Depends(get_pipeline_registry),
) -> Dict[str, Any]:
    pipeline = registry.get(pipeline_id)
    return APIResponse.success(pipeline.summary().to_dict())


@router.post("/pipelines/{pipeline_id}/pause")
async def pause_pipeline(
    pipeline_id: str,
    registry: PipelineRegistry = Depends(get_pipeline_registry),
) -> Dict[str, Any]:
    pipeline = registry.get(pipeline_id)
    pipeline.pause()
    return APIResponse.success(pipeline.summary().to_dict(), message="Pipeline paused")


@router.post("/pipelines/{pipeline_id}/resume")
async def resume_pipeline(
    pipeline_id: str,
    registry: PipelineRegistry = Depends(get_pipeline_registry),
) -> Dict[str, Any]:
    pipeline = registry.get(pipeline_id)
    pipeline.resume()
    return APIResponse.success(pipeline.summary().to_dict(), message="Pipeline resumed")


@router.post("/pipelines/{pipeline_id}/stop")
async def stop_pipeline(
    pipeline_id: str,
    registry: PipelineRegistry = Depends(get_pipeline_registry),
) -> Dict[str, Any]:
    """Stop the pipeline; the in-flight job is aborted and the rest skipped."""
    pipeline = registry.get(pipeline_id)
    pipeline.stop()
    return APIResponse.success(pipeline.summary().to_dict(), message="Pipeline stopped")
