"""
Deduplication Filter

Collects question texts already generated for a (topic, exercise type)
pair. The list is handed to the prompt as an "avoid these" hint; nothing
downstream enforces it.
"""

from typing import List

from lingoloop.common.logger import app_logger
from lingoloop.domain.models import ExerciseType
from lingoloop.domain.repository import DeliverableRepository

logger = app_logger.getChild("generation.dedup")


class DeduplicationFilter:

    def __init__(self, repository: DeliverableRepository):
        self.repository = repository

    async def collect_prior_questions(self, topic_id: str, exercise_type: ExerciseType) -> List[str]:
        """Flatten the question texts of every stored deliverable for the pair."""
        deliverables = await self.repository.find_by_topic_and_type(topic_id, exercise_type)
        questions = [
            text
            for deliverable in deliverables
            for text in deliverable.question_texts
            if text
        ]
        logger.debug(
            f"Found {len(questions)} prior questions in {len(deliverables)} deliverables "
            f"for {topic_id}/{exercise_type.value}"
        )
        return questions
