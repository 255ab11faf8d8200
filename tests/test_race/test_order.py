"""
Race order tests
"""

import random
from dataclasses import dataclass

import pytest

from bullrace.race.enums import ApprovalStatus
from bullrace.race.errors import AlreadyLocked, EmptyRace
from bullrace.race.order import LockedEntry, RaceOrder


@dataclass
class _Candidate:
    id: int
    registration_sequence: int
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED


@pytest.fixture(name="order")
def _order():
    return RaceOrder(
        [
            _Candidate(10, 3),
            _Candidate(11, 1),
            _Candidate(12, 2, ApprovalStatus.PENDING),
            _Candidate(13, 4),
            _Candidate(14, 5, ApprovalStatus.REJECTED),
            _Candidate(15, 2),
        ]
    )


def test_initial_order(order: RaceOrder):
    """
    Only approved pairs are ordered, by registration
    """
    assert order.pair_ids == (11, 15, 10, 13)
    assert len(order) == 4
    assert not order.locked


def test_move(order: RaceOrder):
    """
    Moving a pair shifts the pairs between the two positions
    """
    order.move(3, 0)
    assert order.pair_ids == (13, 11, 15, 10)

    order.move(0, 2)
    assert order.pair_ids == (11, 15, 13, 10)

    with pytest.raises(IndexError):
        order.move(0, 4)


def test_reorder(order: RaceOrder):
    """
    Only a permutation of the approved pairs is accepted
    """
    order.reorder([13, 10, 15, 11])
    assert order.pair_ids == (13, 10, 15, 11)

    with pytest.raises(ValueError):
        order.reorder([13, 10, 15])

    with pytest.raises(ValueError):
        order.reorder([13, 10, 15, 12])

    with pytest.raises(ValueError):
        order.reorder([13, 13, 15, 11])

    assert order.pair_ids == (13, 10, 15, 11)


def test_shuffle(order: RaceOrder):
    """
    Shuffling keeps every pair and is repeatable with a seeded source
    """
    order.shuffle(random.Random(42))
    first = order.pair_ids

    repeat = RaceOrder(
        [
            _Candidate(pair_id, index)
            for index, pair_id in enumerate((11, 15, 10, 13))
        ]
    )
    repeat.shuffle(random.Random(42))

    assert sorted(first) == [10, 11, 13, 15]
    assert repeat.pair_ids == first


def test_lock(order: RaceOrder):
    """
    Locking assigns 1-based positions and freezes the order
    """
    entries = order.lock()

    assert entries == [
        LockedEntry(11, 1),
        LockedEntry(15, 2),
        LockedEntry(10, 3),
        LockedEntry(13, 4),
    ]
    assert order.locked

    with pytest.raises(AlreadyLocked):
        order.lock()

    with pytest.raises(AlreadyLocked):
        order.move(0, 1)

    with pytest.raises(AlreadyLocked):
        order.shuffle()

    with pytest.raises(AlreadyLocked):
        order.reorder([13, 10, 15, 11])


def test_lock_empty():
    """
    A race needs at least one approved pair
    """
    order = RaceOrder([_Candidate(1, 1, ApprovalStatus.PENDING)])

    with pytest.raises(EmptyRace):
        order.lock()

    assert not order.locked
