"""
Database Models

Tables backing the deliverable and performance repositories.
"""

from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, JSON, String, Text

from lingoloop.database.base import ModelBase


class DeliverableModel(ModelBase):
    """A stored exercise and its generated items."""

    __tablename__ = "deliverables"

    id = Column(String(36), primary_key=True)
    topic_id = Column(String(64), nullable=False)
    level = Column(String(4), nullable=True)
    exercise_type = Column(String(32), nullable=False)
    skill = Column(String(32), nullable=True)
    difficulty = Column(String(16), nullable=False)
    number = Column(Integer, nullable=False, default=1)
    total = Column(Integer, nullable=False, default=1)
    title = Column(String(255), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    instructions = Column(Text, nullable=False, default="")
    ai_generated = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    items = Column(JSON, nullable=False)
    extra = Column("metadata", JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_deliverables_topic_type_created", "topic_id", "exercise_type", "created_at"),
    )


class PerformanceRecordModel(ModelBase):
    """One completed exercise attempt."""

    __tablename__ = "performance_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    learner_id = Column(String(64), nullable=False, index=True)
    topic_name = Column(String(128), nullable=False)
    exercise_type = Column(String(32), nullable=False)
    difficulty = Column(String(16), nullable=True)
    score = Column(Float, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False)
    questions_correct = Column(Integer, nullable=False, default=0)
    total_questions = Column(Integer, nullable=False, default=0)


class LevelProgressModel(ModelBase):
    """Aggregate progress per learner and level."""

    __tablename__ = "level_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    learner_id = Column(String(64), nullable=False, index=True)
    level = Column(String(4), nullable=False)
    progress_percentage = Column(Float, nullable=False, default=0.0)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
