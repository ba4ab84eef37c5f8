"""
In-memory repositories for development and tests.
"""

import asyncio
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from lingoloop.common.logger import app_logger
from lingoloop.domain.models import (
    Deliverable,
    ExerciseType,
    LevelProgressSnapshot,
    PerformanceRecord,
)
from lingoloop.domain.repository import DeliverableRepository, PerformanceRepository

logger = app_logger.getChild("repository.memory")


class MemoryDeliverableRepository(DeliverableRepository):
    """
    Deliverables kept in a dict keyed by (topic id, exercise type).

    Intended for development and testing only.
    """

    def __init__(self, initial_data: Optional[Iterable[Deliverable]] = None):
        self._by_pair: Dict[Tuple[str, ExerciseType], List[Deliverable]] = defaultdict(list)
        self._lock = asyncio.Lock()
        for deliverable in initial_data or []:
            self._store(deliverable)

    def _store(self, deliverable: Deliverable) -> Deliverable:
        if not deliverable.deliverable_id:
            deliverable.deliverable_id = str(uuid.uuid4())
        self._by_pair[(deliverable.topic_id or "", deliverable.exercise_type)].append(deliverable)
        return deliverable

    async def insert_many(self, deliverables: List[Deliverable]) -> List[Deliverable]:
        async with self._lock:
            stored = [self._store(d) for d in deliverables]
        logger.debug(f"Stored {len(stored)} deliverables in memory")
        return stored

    async def find_by_topic_and_type(self, topic_id: str, exercise_type: ExerciseType) -> List[Deliverable]:
        return list(self._by_pair.get((topic_id, exercise_type), []))

    async def latest_created_at(self, topic_id: str, exercise_type: ExerciseType) -> Optional[datetime]:
        deliverables = self._by_pair.get((topic_id, exercise_type))
        if not deliverables:
            return None
        return max(d.created_at for d in deliverables)

    def count(self) -> int:
        return sum(len(v) for v in self._by_pair.values())


class MemoryPerformanceRepository(PerformanceRepository):
    """Performance records and level snapshots held in memory."""

    def __init__(
        self,
        records: Optional[Iterable[PerformanceRecord]] = None,
        snapshots: Optional[Iterable[LevelProgressSnapshot]] = None
    ):
        self._records: Dict[str, List[PerformanceRecord]] = defaultdict(list)
        self._snapshots: Dict[str, List[LevelProgressSnapshot]] = defaultdict(list)
        for record in records or []:
            self.add_record(record)
        for snapshot in snapshots or []:
            self.add_snapshot(snapshot)

    def add_record(self, record: PerformanceRecord) -> None:
        self._records[record.learner_id].append(record)

    def add_snapshot(self, snapshot: LevelProgressSnapshot) -> None:
        self._snapshots[snapshot.learner_id].append(snapshot)

    async def recent_records(self, learner_id: str, limit: int = 100) -> List[PerformanceRecord]:
        records = sorted(self._records.get(learner_id, []), key=lambda r: r.completed_at, reverse=True)
        return records[:limit]

    async def level_progress(self, learner_id: str) -> List[LevelProgressSnapshot]:
        return list(self._snapshots.get(learner_id, []))
