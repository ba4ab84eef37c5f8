"""
Repository Interfaces

Storage contracts the engine depends on. The deliverable store is read
for history (window checks, avoid lists) and written with new
deliverables; the performance store is read-only from here.
"""

import abc
from datetime import datetime
from typing import List, Optional

from lingoloop.domain.models import (
    Deliverable,
    ExerciseType,
    LevelProgressSnapshot,
    PerformanceRecord,
)


class DeliverableRepository(abc.ABC):
    """Contract for persisting and querying generated deliverables."""

    @abc.abstractmethod
    async def insert_many(self, deliverables: List[Deliverable]) -> List[Deliverable]:
        """
        Persist deliverables.

        Args:
            deliverables: Deliverables to store

        Returns:
            The stored deliverables with ``deliverable_id`` assigned
        """
        pass

    @abc.abstractmethod
    async def find_by_topic_and_type(
        self,
        topic_id: str,
        exercise_type: ExerciseType
    ) -> List[Deliverable]:
        """
        All deliverables previously stored for a (topic, exercise type) pair.

        Args:
            topic_id: Topic identifier
            exercise_type: Exercise type

        Returns:
            Matching deliverables, oldest first
        """
        pass

    @abc.abstractmethod
    async def latest_created_at(
        self,
        topic_id: str,
        exercise_type: ExerciseType
    ) -> Optional[datetime]:
        """
        Creation time of the newest deliverable for a (topic, exercise type) pair.

        Returns:
            The timestamp, or None when nothing was generated yet
        """
        pass


class PerformanceRepository(abc.ABC):
    """Contract for reading learner performance history."""

    @abc.abstractmethod
    async def recent_records(self, learner_id: str, limit: int = 100) -> List[PerformanceRecord]:
        """
        Most recent completed records for a learner, newest first.

        Args:
            learner_id: Learner identifier
            limit: Maximum number of records

        Returns:
            Up to ``limit`` records
        """
        pass

    @abc.abstractmethod
    async def level_progress(self, learner_id: str) -> List[LevelProgressSnapshot]:
        """Aggregate level-progress snapshots for a learner, any order."""
        pass
