"""
SQLAlchemy implementations of the repository contracts.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from lingoloop.common.error_handling import DatabaseError
from lingoloop.common.logger import app_logger
from lingoloop.database.models import DeliverableModel, LevelProgressModel, PerformanceRecordModel
from lingoloop.domain.models import (
    Deliverable,
    Difficulty,
    ExerciseType,
    GeneratedItem,
    Level,
    LevelProgressSnapshot,
    PerformanceRecord,
)
from lingoloop.domain.repository import DeliverableRepository, PerformanceRepository

logger = app_logger.getChild("database.repository")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_model(deliverable: Deliverable) -> DeliverableModel:
    return DeliverableModel(
        id=deliverable.deliverable_id or str(uuid.uuid4()),
        topic_id=deliverable.topic_id,
        level=deliverable.level.value if deliverable.level else None,
        exercise_type=deliverable.exercise_type.value,
        skill=deliverable.skill,
        difficulty=deliverable.difficulty.value,
        number=deliverable.number,
        total=deliverable.total,
        title=deliverable.title,
        description=deliverable.description,
        instructions=deliverable.instructions,
        ai_generated=deliverable.ai_generated,
        created_at=deliverable.created_at,
        items=[item.to_dict() for item in deliverable.items],
        extra=dict(deliverable.metadata),
    )


def _to_domain(row: DeliverableModel) -> Deliverable:
    return Deliverable(
        items=[GeneratedItem.from_dict(item) for item in row.items or []],
        difficulty=Difficulty(row.difficulty),
        number=row.number,
        total=row.total,
        deliverable_id=row.id,
        topic_id=row.topic_id,
        level=Level(row.level) if row.level else None,
        exercise_type=ExerciseType(row.exercise_type),
        title=row.title,
        description=row.description,
        instructions=row.instructions,
        ai_generated=row.ai_generated,
        created_at=as_utc(row.created_at),
        metadata=dict(row.extra or {}),
    )


class SQLDeliverableRepository(DeliverableRepository):
    """Deliverable store backed by the ``deliverables`` table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def insert_many(self, deliverables: List[Deliverable]) -> List[Deliverable]:
        rows = [_to_model(d) for d in deliverables]
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add_all(rows)
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to store deliverables", cause=e) from e

        for deliverable, row in zip(deliverables, rows):
            deliverable.deliverable_id = row.id
        logger.debug(f"Stored {len(rows)} deliverables")
        return deliverables

    async def find_by_topic_and_type(self, topic_id: str, exercise_type: ExerciseType) -> List[Deliverable]:
        stmt = (
            select(DeliverableModel)
            .where(
                DeliverableModel.topic_id == topic_id,
                DeliverableModel.exercise_type == exercise_type.value,
            )
            .order_by(DeliverableModel.created_at)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to query deliverables", cause=e) from e
        return [_to_domain(row) for row in rows]

    async def latest_created_at(self, topic_id: str, exercise_type: ExerciseType) -> Optional[datetime]:
        stmt = select(func.max(DeliverableModel.created_at)).where(
            DeliverableModel.topic_id == topic_id,
            DeliverableModel.exercise_type == exercise_type.value,
        )
        try:
            async with self._session_factory() as session:
                latest = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to query latest deliverable", cause=e) from e
        return as_utc(latest)


class SQLPerformanceRepository(PerformanceRepository):
    """Read access to ``performance_records`` and ``level_progress``."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def recent_records(self, learner_id: str, limit: int = 100) -> List[PerformanceRecord]:
        stmt = (
            select(PerformanceRecordModel)
            .where(PerformanceRecordModel.learner_id == learner_id)
            .order_by(PerformanceRecordModel.completed_at.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to load performance records", cause=e) from e

        return [
            PerformanceRecord(
                learner_id=row.learner_id,
                topic_name=row.topic_name,
                exercise_type=row.exercise_type,
                difficulty=row.difficulty,
                score=row.score,
                completed_at=as_utc(row.completed_at),
                questions_correct=row.questions_correct,
                total_questions=row.total_questions,
            )
            for row in rows
        ]

    async def level_progress(self, learner_id: str) -> List[LevelProgressSnapshot]:
        stmt = select(LevelProgressModel).where(LevelProgressModel.learner_id == learner_id)
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to load level progress", cause=e) from e

        snapshots = []
        for row in rows:
            try:
                level = Level(row.level)
            except ValueError:
                logger.warning(f"Ignoring level progress with unknown level {row.level!r}")
                continue
            snapshots.append(LevelProgressSnapshot(
                learner_id=row.learner_id,
                level=level,
                progress_percentage=row.progress_percentage,
                started_at=as_utc(row.started_at),
                completed_at=as_utc(row.completed_at),
            ))
        return snapshots
