"""
Application components and FastAPI dependency providers.

``build_components`` wires the repositories, generation stack and
proficiency analyzer once at startup; the result is stored on
``app.state.components`` and handed to route handlers through the
``get_*`` providers below.
"""

from typing import Any, Dict, Optional

from fastapi import Request

from lingoloop.common.config import AppConfig
from lingoloop.common.logger import app_logger
from lingoloop.domain.repository import DeliverableRepository, PerformanceRepository
from lingoloop.generation.ai_client import AIGenerationService, create_generation_service
from lingoloop.generation.dedup import DeduplicationFilter
from lingoloop.generation.distributor import QuestionDistributor
from lingoloop.generation.orchestrator import GenerationOrchestrator
from lingoloop.generation.pipeline import PipelineRegistry
from lingoloop.generation.rate_window import RateWindowGuard
from lingoloop.generation.service import BulkGenerationService
from lingoloop.generation.validator import ContentValidator
from lingoloop.proficiency.analyzer import ProficiencyAnalyzer

logger = app_logger.getChild("dependencies")


def build_components(
    config: AppConfig,
    deliverables: DeliverableRepository,
    performance: PerformanceRepository,
    generation_service: Optional[AIGenerationService] = None,
) -> Dict[str, Any]:
    """
    Wire every service the routes need.

    Args:
        config: Loaded application configuration
        deliverables: Deliverable store
        performance: Performance record store
        generation_service: AI backend, created from ``config.ai`` when omitted

    Returns:
        Component dictionary keyed by name
    """
    service = generation_service or create_generation_service(config.ai)
    orchestrator = GenerationOrchestrator(service, config.ai, config.generation, ContentValidator())
    bulk_service = BulkGenerationService(
        repository=deliverables,
        orchestrator=orchestrator,
        config=config.generation,
        window_guard=RateWindowGuard(deliverables, config.generation.rate_window_seconds),
        dedup=DeduplicationFilter(deliverables),
        distributor=QuestionDistributor(),
    )

    logger.info(f"Components ready (model {config.ai.model_name})")
    return {
        "config": config,
        "deliverables": deliverables,
        "performance": performance,
        "bulk_service": bulk_service,
        "pipelines": PipelineRegistry(config.pipeline.retention_seconds),
        "analyzer": ProficiencyAnalyzer(performance, config.proficiency),
    }


def _component(request: Request, name: str) -> Any:
    components = getattr(request.app.state, "components", None)
    if not components or name not in components:
        raise RuntimeError(f"Component '{name}' is not initialized")
    return components[name]


def get_app_config(request: Request) -> AppConfig:
    return _component(request, "config")


def get_bulk_service(request: Request) -> BulkGenerationService:
    return _component(request, "bulk_service")


def get_pipeline_registry(request: Request) -> PipelineRegistry:
    return _component(request, "pipelines")


def get_analyzer(request: Request) -> ProficiencyAnalyzer:
    return _component(request, "analyzer")
