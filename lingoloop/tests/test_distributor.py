"""
Tests for packing items into deliverables.
"""

import pytest

from lingoloop.common.error_handling import InsufficientItemsError
from lingoloop.domain.models import Difficulty, GeneratedItem
from lingoloop.generation.distributor import QuestionDistributor, dominant_difficulty


def pool_of(*tiers):
    return [
        GeneratedItem(item_id=f"q{i + 1}", prompt=f"Spørgsmål {i + 1}", answer="sí",
                      explanation="Forklaring", difficulty=tier)
        for i, tier in enumerate(tiers)
    ]


@pytest.fixture
def distributor():
    return QuestionDistributor()


def test_remainder_goes_to_first_groups(distributor):
    pool = pool_of(*([Difficulty.MEDIUM] * 10))

    deliverables = distributor.distribute(pool, 3)

    assert [len(d.items) for d in deliverables] == [4, 3, 3]
    assert [d.number for d in deliverables] == [1, 2, 3]
    assert all(d.total == 3 for d in deliverables)


def test_order_is_preserved_and_nothing_dropped(distributor):
    pool = pool_of(*([Difficulty.EASY] * 7))

    deliverables = distributor.distribute(pool, 2)

    flattened = [item.item_id for d in deliverables for item in d.items]
    assert flattened == [item.item_id for item in pool]


def test_one_item_per_deliverable(distributor):
    deliverables = distributor.distribute(pool_of(Difficulty.EASY, Difficulty.HARD), 2)
    assert [d.difficulty for d in deliverables] == [Difficulty.EASY, Difficulty.HARD]


def test_target_larger_than_pool_is_refused(distributor):
    with pytest.raises(InsufficientItemsError) as exc_info:
        distributor.distribute(pool_of(Difficulty.EASY, Difficulty.EASY), 3)
    assert exc_info.value.available == 2
    assert exc_info.value.requested == 3


def test_non_positive_target_is_refused(distributor):
    with pytest.raises(ValueError):
        distributor.distribute(pool_of(Difficulty.EASY), 0)


def test_dominant_difficulty_majority():
    items = pool_of(Difficulty.EASY, Difficulty.HARD, Difficulty.HARD)
    assert dominant_difficulty(items) == Difficulty.HARD


def test_dominant_difficulty_tie_prefers_easier_tier():
    assert dominant_difficulty(pool_of(Difficulty.HARD, Difficulty.MEDIUM)) == Difficulty.MEDIUM
    assert dominant_difficulty(pool_of(Difficulty.HARD, Difficulty.EASY)) == Difficulty.EASY
