"""
Relational storage for deliverables and learner performance.
"""

from .base import Base, ModelBase
from .models import DeliverableModel, LevelProgressModel, PerformanceRecordModel
from .repository import SQLDeliverableRepository, SQLPerformanceRepository

__all__ = [
    'Base',
    'ModelBase',
    'DeliverableModel',
    'LevelProgressModel',
    'PerformanceRecordModel',
    'SQLDeliverableRepository',
    'SQLPerformanceRepository',
]
