"""
AI-backed bulk generation of practice exercises.
"""

from .distributor import QuestionDistributor
from .orchestrator import GenerationOrchestrator, split_by_difficulty
from .pipeline import JobPipeline, PipelineState, build_jobs
from .rate_window import RateWindowGuard
from .service import BulkGenerationRequest, BulkGenerationService
from .validator import ContentValidator

__all__ = [
    'QuestionDistributor',
    'GenerationOrchestrator',
    'split_by_difficulty',
    'JobPipeline',
    'PipelineState',
    'build_jobs',
    'RateWindowGuard',
    'BulkGenerationRequest',
    'BulkGenerationService',
    'ContentValidator',
]
