"""
State machine for one pair's run within a race
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Self

from bullrace.race.clock import RaceClock
from bullrace.race.enums import RUN_TRANSITIONS, FinishMode, RunStatus
from bullrace.race.errors import InvalidTransition
from bullrace.race.ledger import DistanceOverride, LapLedger, LapRecord
from bullrace.utils.time import (
    datetime_to_epoch_ms,
    epoch_ms_to_datetime,
    format_race_time,
    get_current_epoch_ms,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunRules:
    """
    The category limits a run is held to
    """

    lap_distance_meters: int
    """Distance credited for a full lap"""
    max_duration_ms: int
    """The time limit of a run"""


@dataclass(frozen=True)
class PendingFinalLap:
    """
    A final lap waiting for the operator to enter its measured distance
    """

    lap_index: int
    lap_elapsed_ms: int
    total_elapsed_ms: int


FinishListener = Callable[["EntrantRunMachine", FinishMode], None]


class EntrantRunMachine:
    """
    Drives a single run through `waiting` -> `racing` -> `completed`.

    The machine owns the run's clock and lap ledger. Every action checks
    the current state before mutating anything, so a rejected action
    leaves the run exactly as it was.

    A run can end two ways. An operator finish freezes the clock and
    stages the partial lap until its distance has been measured and
    confirmed. Running out of time completes the run immediately with
    the category time limit and the default lap distance.
    """

    # pylint: disable=R0902,R0913

    def __init__(
        self,
        rules: RunRules,
        *,
        run_id: int | None = None,
        pair_id: int | None = None,
        sequence_index: int = 1,
        tick_interval_ms: int | None = None,
        time_source: Callable[[], float] = get_current_epoch_ms,
    ) -> None:
        self.rules = rules
        self.run_id = run_id
        self.pair_id = pair_id
        self.sequence_index = sequence_index

        self._status = RunStatus.WAITING
        self._time_source = time_source
        self._tick_interval_ms = tick_interval_ms

        self.started_at: datetime | None = None
        self.ended_at: datetime | None = None
        self.total_elapsed_ms: int | None = None
        self.finish_mode: FinishMode | None = None

        self.ledger = LapLedger(rules.lap_distance_meters)
        self.clock = self._new_clock()
        self._pending: PendingFinalLap | None = None
        self._finish_listeners: list[FinishListener] = []

    def __repr__(self) -> str:
        return f"<EntrantRun {self.run_id} pair={self.pair_id} {self._status}>"

    @classmethod
    def rehydrate(
        cls,
        rules: RunRules,
        *,
        status: RunStatus,
        laps: Iterable[LapRecord] = (),
        started_at: datetime | None = None,
        ended_at: datetime | None = None,
        total_elapsed_ms: int | None = None,
        run_id: int | None = None,
        pair_id: int | None = None,
        sequence_index: int = 1,
        tick_interval_ms: int | None = None,
        time_source: Callable[[], float] = get_current_epoch_ms,
    ) -> Self:
        """
        Rebuild a run from its persisted record and laps.

        A racing run gets a clock counting from its persisted start
        time; nothing cached in memory is trusted. A racing run whose
        time ran out while nobody was watching is completed on the
        spot through the time limit path.

        :raises ValueError: The persisted data is inconsistent
        :return: The rebuilt run
        """
        machine = cls(
            rules,
            run_id=run_id,
            pair_id=pair_id,
            sequence_index=sequence_index,
            tick_interval_ms=tick_interval_ms,
            time_source=time_source,
        )
        laps = tuple(laps)

        if status == RunStatus.WAITING:
            if laps:
                raise ValueError("A waiting run can not have laps")

        elif status == RunStatus.RACING:
            if started_at is None:
                raise ValueError("A racing run requires a start time")

            machine.ledger = LapLedger.from_records(
                rules.lap_distance_meters, laps, open_=True
            )
            last_lap = machine.ledger.last_lap
            machine.clock = RaceClock.resume(
                datetime_to_epoch_ms(started_at),
                rules.max_duration_ms,
                last_split_ms=0 if last_lap is None else last_lap.cumulative_elapsed_ms,
                tick_interval_ms=tick_interval_ms,
                time_source=time_source,
            )
            machine.clock.on_time_limit = machine._handle_time_limit
            machine.started_at = started_at

        else:
            machine.ledger = LapLedger.from_records(
                rules.lap_distance_meters, laps, sealed=True
            )
            machine.started_at = started_at
            machine.ended_at = ended_at
            if total_elapsed_ms is None:
                total_elapsed_ms = machine.ledger.cumulative_lap_time()
            machine.total_elapsed_ms = total_elapsed_ms

        machine._status = status

        if status == RunStatus.RACING:
            # Time may have run out while the process was down
            machine.clock.tick()

        return machine

    @property
    def status(self) -> RunStatus:
        """The current status of the run"""
        return self._status

    @property
    def pending_final_lap(self) -> PendingFinalLap | None:
        """The final lap awaiting a measured distance"""
        return self._pending

    @property
    def elapsed_ms(self) -> int:
        """The live elapsed time, or the final time once completed"""
        if self.total_elapsed_ms is not None:
            return self.total_elapsed_ms

        return self.clock.elapsed_ms

    @property
    def total_distance_meters(self) -> float:
        """The credited distance so far"""
        return self.ledger.cumulative_distance()

    @property
    def laps(self) -> tuple[LapRecord, ...]:
        """The recorded laps"""
        return self.ledger.laps

    def add_finish_listener(self, listener: FinishListener) -> None:
        """
        Register a callable to run once the run completes

        :param listener: Called with the machine and how it finished
        """
        self._finish_listeners.append(listener)

    def _new_clock(self) -> RaceClock:
        clock = RaceClock(
            self.rules.max_duration_ms,
            tick_interval_ms=self._tick_interval_ms,
            time_source=self._time_source,
        )
        clock.on_time_limit = self._handle_time_limit
        return clock

    def _check_transition(self, target: RunStatus) -> None:
        if target not in RUN_TRANSITIONS[self._status]:
            raise InvalidTransition(
                f"Run {self.run_id} can not move from {self._status} to {target}"
            )

    def _require_racing(self, action: str) -> None:
        if self._status != RunStatus.RACING:
            raise InvalidTransition(
                f"Can not {action} run {self.run_id} while {self._status}"
            )

        if self._pending is not None:
            raise InvalidTransition(
                f"Can not {action} run {self.run_id} with a final lap pending"
            )

    def _build_override(
        self, meters: int, feet: int, inches: int, *, terminating: bool
    ) -> DistanceOverride | None:
        override = DistanceOverride(meters, feet, inches)

        if (
            terminating
            or meters != self.rules.lap_distance_meters
            or feet > 0
            or inches > 0
        ):
            return override

        return None

    def begin(self) -> None:
        """
        Start the run's clock

        :raises InvalidTransition: The run is not waiting
        """
        self._check_transition(RunStatus.RACING)

        self.clock.start()
        assert self.clock.origin_ms is not None
        self.started_at = epoch_ms_to_datetime(self.clock.origin_ms)
        self.ledger.open()
        self._status = RunStatus.RACING

        logger.info("Run %s started", self.run_id)

    def record_lap(self) -> LapRecord:
        """
        Record a full lap at the current clock time

        :raises InvalidTransition: The run is not racing or the time ran out
        :return: The recorded lap
        """
        self._require_racing("record a lap for")

        split = self.clock.record_split()
        record = self.ledger.append(split.lap_elapsed_ms, split.cumulative_elapsed_ms)

        logger.info(
            "Run %s lap %d recorded in %d ms",
            self.run_id,
            record.lap_index,
            record.lap_elapsed_ms,
        )
        return record

    def record_corrected_lap(
        self, meters: int, feet: int = 0, inches: int = 0
    ) -> LapRecord:
        """
        Record a lap at the current clock time with an operator
        measured distance. The run keeps racing.

        :raises ValueError: The measured distance is out of range
        :raises InvalidTransition: The run is not racing or the time ran out
        :return: The recorded lap
        """
        self._require_racing("record a lap for")
        override = self._build_override(meters, feet, inches, terminating=False)

        split = self.clock.record_split()
        record = self.ledger.append(
            split.lap_elapsed_ms,
            split.cumulative_elapsed_ms,
            distance_meters=meters,
            override=override,
        )

        logger.info(
            "Run %s lap %d recorded with %d m", self.run_id, record.lap_index, meters
        )
        return record

    def finish(
        self,
        mode: FinishMode = FinishMode.OPERATOR,
        elapsed_at_call: int | None = None,
    ) -> PendingFinalLap | LapRecord:
        """
        End the run.

        An operator finish freezes the clock and returns the partial
        lap to be measured. If the time limit has already been reached
        when the finish is evaluated, the time limit path wins and the
        run completes immediately.

        :param mode: What ended the run
        :param elapsed_at_call: The elapsed time the operator saw
        :raises InvalidTransition: The run is not racing or a final lap
        is already pending
        :return: The pending final lap, or the final lap when completed
        immediately
        """
        self._require_racing("finish")

        if mode == FinishMode.TIME_LIMIT:
            return self._complete_at_limit()

        stop = self.clock.terminate(elapsed_at_call)
        if stop.forced:
            return self._complete_at_limit()

        lap_elapsed = max(0, stop.elapsed_ms - self.ledger.cumulative_lap_time())
        self._pending = PendingFinalLap(
            lap_index=self.ledger.lap_count + 1,
            lap_elapsed_ms=lap_elapsed,
            total_elapsed_ms=stop.elapsed_ms,
        )

        logger.info(
            "Run %s stopped at %d ms, waiting for final lap distance",
            self.run_id,
            stop.elapsed_ms,
        )
        return self._pending

    def confirm_final_lap(
        self, meters: int, feet: int = 0, inches: int = 0
    ) -> LapRecord:
        """
        Record the measured distance of the pending final lap and
        complete the run

        :raises ValueError: The measured distance is out of range
        :raises InvalidTransition: There is no pending final lap
        :return: The final lap
        """
        if self._status != RunStatus.RACING or self._pending is None:
            raise InvalidTransition(f"Run {self.run_id} has no pending final lap")

        self._check_transition(RunStatus.COMPLETED)
        override = self._build_override(meters, feet, inches, terminating=True)

        pending = self._pending
        record = self.ledger.seal(
            pending.lap_elapsed_ms,
            pending.total_elapsed_ms,
            distance_meters=meters,
            override=override,
        )
        self._complete(pending.total_elapsed_ms, FinishMode.OPERATOR)
        return record

    def _complete_at_limit(self) -> LapRecord:
        self._check_transition(RunStatus.COMPLETED)
        self.clock.terminate()

        total = self.rules.max_duration_ms
        lap_elapsed = max(0, total - self.ledger.cumulative_lap_time())
        record = self.ledger.seal(lap_elapsed, total)
        self._complete(total, FinishMode.TIME_LIMIT)
        return record

    def _complete(self, total_elapsed_ms: int, mode: FinishMode) -> None:
        self.total_elapsed_ms = total_elapsed_ms
        self.ended_at = epoch_ms_to_datetime(self._time_source())
        self.finish_mode = mode
        self._pending = None
        self._status = RunStatus.COMPLETED

        logger.info(
            "Run %s completed (%s) in %s over %d laps",
            self.run_id,
            mode,
            format_race_time(total_elapsed_ms),
            self.ledger.lap_count,
        )

        for listener in tuple(self._finish_listeners):
            listener(self, mode)

    def _handle_time_limit(self, _elapsed_ms: int) -> None:
        if self._status == RunStatus.RACING and self._pending is None:
            self.finish(FinishMode.TIME_LIMIT)
