"""
Race management
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from bullrace.race.entrant import EntrantRunMachine, RunRules
from bullrace.race.enums import RACE_TRANSITIONS, RaceStatus, RunStatus
from bullrace.race.errors import InvalidTransition
from bullrace.utils.time import utc_now

logger = logging.getLogger(__name__)


class RaceStateManager:
    """
    Manager for conducting the race of a category. Acts as a finite
    state machine over the race and walks the locked order one entrant
    at a time.
    """

    # pylint: disable=R0913

    def __init__(
        self,
        race_id: int,
        rules: RunRules,
        runs: Iterable[EntrantRunMachine] = (),
        *,
        status: RaceStatus = RaceStatus.UPCOMING,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
    ) -> None:
        self.race_id = race_id
        self.rules = rules
        self.started_at = started_at
        self.completed_at = completed_at

        self._status = status
        self._runs: list[EntrantRunMachine] = sorted(
            runs, key=lambda run: run.sequence_index
        )
        self._index = self._initial_index()

    def __repr__(self) -> str:
        return f"<Race {self.race_id} {self._status}>"

    def _initial_index(self) -> int:
        for index, run in enumerate(self._runs):
            if run.status != RunStatus.COMPLETED:
                return index

        return max(0, len(self._runs) - 1)

    @property
    def status(self) -> RaceStatus:
        """The current status of the race"""
        return self._status

    @property
    def runs(self) -> tuple[EntrantRunMachine, ...]:
        """Every run in race order"""
        return tuple(self._runs)

    @property
    def current_index(self) -> int:
        """0-based position of the current entrant"""
        return self._index

    @property
    def current(self) -> EntrantRunMachine | None:
        """The entrant that is up, None for a race without entrants"""
        if not self._runs:
            return None

        return self._runs[self._index]

    @property
    def racing(self) -> EntrantRunMachine | None:
        """The entrant whose clock is running"""
        for run in self._runs:
            if run.status == RunStatus.RACING:
                return run

        return None

    @property
    def progress(self) -> tuple[int, int]:
        """The number of completed runs and the total number of runs"""
        completed = sum(1 for run in self._runs if run.status == RunStatus.COMPLETED)
        return completed, len(self._runs)

    def get_run(self, run_id: int) -> EntrantRunMachine | None:
        """
        Find a run by its id

        :param run_id: The id of the run
        :return: The run, if it belongs to the race
        """
        for run in self._runs:
            if run.run_id == run_id:
                return run

        return None

    def _set_status(self, status: RaceStatus) -> None:
        """
        Set the current status of the race

        :param status: The status to move to
        :raises InvalidTransition: The transition is not allowed
        """
        if status not in RACE_TRANSITIONS[self._status]:
            logger.warning(
                "Rejected race %s transition from %s to %s",
                self.race_id,
                self._status,
                status,
            )
            raise InvalidTransition(
                f"Race {self.race_id} can not move from {self._status} to {status}"
            )

        self._status = status
        logger.info("Race %s is now %s", self.race_id, status)

    def start(self) -> None:
        """
        Put the race in progress once its order has been locked
        """
        self._set_status(RaceStatus.IN_PROGRESS)
        self.started_at = utc_now()

    def _require_in_progress(self) -> EntrantRunMachine:
        if self._status != RaceStatus.IN_PROGRESS:
            raise InvalidTransition(f"Race {self.race_id} is {self._status}")

        current = self.current
        if current is None:
            raise InvalidTransition(f"Race {self.race_id} has no entrants")

        return current

    def begin_current(self) -> EntrantRunMachine:
        """
        Start the clock of the current entrant

        :raises InvalidTransition: The race is not in progress or
        another entrant is already racing
        :return: The started run
        """
        current = self._require_in_progress()

        racing = self.racing
        if racing is not None and racing is not current:
            raise InvalidTransition(
                f"Pair {racing.pair_id} is still racing in race {self.race_id}"
            )

        current.begin()
        return current

    def advance(self) -> EntrantRunMachine | None:
        """
        Move to the next waiting entrant. The race completes when
        there are none left.

        :raises InvalidTransition: The current entrant has not completed
        :return: The next entrant, or None when the race completed
        """
        current = self._require_in_progress()

        if current.status != RunStatus.COMPLETED:
            raise InvalidTransition(
                f"Pair {current.pair_id} has not completed its run"
            )

        for index in range(self._index + 1, len(self._runs)):
            if self._runs[index].status == RunStatus.WAITING:
                self._index = index
                logger.info(
                    "Race %s advanced to entrant %d", self.race_id, index + 1
                )
                return self._runs[index]

        self.complete()
        return None

    def complete(self) -> None:
        """
        Close the race

        :raises InvalidTransition: The race is not in progress or an
        entrant is still racing
        """
        if self.racing is not None:
            raise InvalidTransition(
                f"Race {self.race_id} can not complete while a pair is racing"
            )

        self._set_status(RaceStatus.COMPLETED)
        self.completed_at = utc_now()
