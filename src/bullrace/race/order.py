"""
Race order management prior to a race starting
"""

import logging
import random
from collections.abc import Iterable, Sequence
from typing import NamedTuple, Protocol

from bullrace.race.enums import ApprovalStatus
from bullrace.race.errors import AlreadyLocked, EmptyRace

logger = logging.getLogger(__name__)


class OrderCandidate(Protocol):
    """
    The attributes of a registered pair the order is built from
    """

    # pylint: disable=R0903

    id: int
    registration_sequence: int
    approval_status: ApprovalStatus


class LockedEntry(NamedTuple):
    """
    A pair's fixed position in a locked race
    """

    pair_id: int
    sequence_index: int


class RaceOrder:
    """
    The running order of the approved pairs of a category.

    The order starts in registration order and can be rearranged freely
    until it is locked. Locking is one-way.
    """

    def __init__(self, pairs: Iterable[OrderCandidate]) -> None:
        approved = [
            pair for pair in pairs if pair.approval_status == ApprovalStatus.APPROVED
        ]
        approved.sort(key=lambda pair: pair.registration_sequence)

        self._pair_ids: list[int] = [pair.id for pair in approved]
        self._locked = False

    def __len__(self) -> int:
        return len(self._pair_ids)

    @property
    def pair_ids(self) -> tuple[int, ...]:
        """The current order"""
        return tuple(self._pair_ids)

    @property
    def locked(self) -> bool:
        """Whether the order is locked"""
        return self._locked

    def _check_unlocked(self) -> None:
        if self._locked:
            raise AlreadyLocked("Race order is already locked")

    def move(self, from_index: int, to_index: int) -> None:
        """
        Move a single pair to a new position, shifting the others

        :param from_index: The current 0-based position of the pair
        :param to_index: The 0-based position to move the pair to
        :raises AlreadyLocked: The order is locked
        :raises IndexError: Either position is out of range
        """
        self._check_unlocked()

        size = len(self._pair_ids)
        if not (0 <= from_index < size and 0 <= to_index < size):
            raise IndexError("Race order position out of range")

        pair_id = self._pair_ids.pop(from_index)
        self._pair_ids.insert(to_index, pair_id)

    def reorder(self, pair_ids: Sequence[int]) -> None:
        """
        Replace the order with a permutation of the current pairs

        :param pair_ids: The new order
        :raises AlreadyLocked: The order is locked
        :raises ValueError: The ids are not a permutation of the current pairs
        """
        self._check_unlocked()

        if len(pair_ids) != len(self._pair_ids) or sorted(pair_ids) != sorted(
            self._pair_ids
        ):
            raise ValueError("Race order must contain every approved pair once")

        self._pair_ids = list(pair_ids)

    def shuffle(self, rng: random.Random | None = None) -> None:
        """
        Randomise the order with a Fisher-Yates shuffle

        :param rng: The random source, defaults to the module generator
        :raises AlreadyLocked: The order is locked
        """
        self._check_unlocked()

        randbelow = random.randrange if rng is None else rng.randrange
        ids = self._pair_ids
        for i in range(len(ids) - 1, 0, -1):
            j = randbelow(i + 1)
            ids[i], ids[j] = ids[j], ids[i]

    def lock(self) -> list[LockedEntry]:
        """
        Fix the order

        :raises EmptyRace: There are no approved pairs
        :raises AlreadyLocked: The order was already locked
        :return: The pairs with their 1-based positions
        """
        self._check_unlocked()

        if not self._pair_ids:
            raise EmptyRace("No approved pairs to race")

        self._locked = True
        logger.info("Race order locked with %d pairs", len(self._pair_ids))

        return [
            LockedEntry(pair_id, index)
            for index, pair_id in enumerate(self._pair_ids, start=1)
        ]
