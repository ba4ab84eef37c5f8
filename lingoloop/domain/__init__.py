"""
Domain entities and storage contracts.
"""

from .models import (
    Deliverable,
    Difficulty,
    ExerciseType,
    GeneratedItem,
    GenerationJob,
    GenerationRequest,
    JobStatus,
    Level,
    LevelProgressSnapshot,
    PerformanceRecord,
    ProficiencyAnalysis,
    Topic,
)
from .repository import DeliverableRepository, PerformanceRepository
from .memory_repository import MemoryDeliverableRepository, MemoryPerformanceRepository

__all__ = [
    'Deliverable',
    'Difficulty',
    'ExerciseType',
    'GeneratedItem',
    'GenerationJob',
    'GenerationRequest',
    'JobStatus',
    'Level',
    'LevelProgressSnapshot',
    'PerformanceRecord',
    'ProficiencyAnalysis',
    'Topic',
    'DeliverableRepository',
    'PerformanceRepository',
    'MemoryDeliverableRepository',
    'MemoryPerformanceRepository',
]
