"""
Question Distributor

Packs a pool of validated items into a fixed number of deliverables.
"""

from collections import Counter
from typing import List, Sequence

from lingoloop.common.error_handling import InsufficientItemsError
from lingoloop.common.logger import app_logger
from lingoloop.domain.models import Deliverable, Difficulty, GeneratedItem

logger = app_logger.getChild("generation.distributor")


def dominant_difficulty(items: Sequence[GeneratedItem]) -> Difficulty:
    """
    Tier with the most items in ``items``.

    Ties go to the tier that comes first in canonical order
    (easy, medium, hard).
    """
    counts = Counter(item.difficulty for item in items)
    best = Difficulty.EASY
    best_count = -1
    for tier in Difficulty:
        if counts[tier] > best_count:
            best, best_count = tier, counts[tier]
    return best


class QuestionDistributor:
    """Splits a pool into equally sized groups, spreading the remainder."""

    def distribute(self, pool: Sequence[GeneratedItem], target_count: int) -> List[Deliverable]:
        """
        Split ``pool`` into exactly ``target_count`` deliverables.

        Group size is ``len(pool) // target_count``; the first
        ``len(pool) % target_count`` groups get one extra item. Pool order
        is preserved, nothing is dropped and no group is empty.

        Raises:
            InsufficientItemsError: ``target_count`` exceeds the pool size
            ValueError: ``target_count`` is not positive
        """
        if target_count <= 0:
            raise ValueError(f"target_count must be positive, got {target_count}")
        if target_count > len(pool):
            raise InsufficientItemsError(available=len(pool), requested=target_count)

        base, remainder = divmod(len(pool), target_count)
        deliverables: List[Deliverable] = []
        start = 0
        for index in range(target_count):
            size = base + (1 if index < remainder else 0)
            group = list(pool[start:start + size])
            start += size
            deliverables.append(Deliverable(
                items=group,
                difficulty=dominant_difficulty(group),
                number=index + 1,
                total=target_count,
            ))

        logger.debug(
            f"Distributed {len(pool)} items into {target_count} deliverables "
            f"({base} each, {remainder} with one extra)"
        )
        return deliverables
