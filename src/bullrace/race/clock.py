"""
Race clock
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Self

from bullrace import ctx
from bullrace.race.errors import InvalidTransition
from bullrace.utils.time import get_current_epoch_ms

logger = logging.getLogger(__name__)

ClockObserver = Callable[[int], None]


@dataclass(frozen=True)
class Split:
    """
    The result of marking a lap on the clock
    """

    lap_elapsed_ms: int
    """Time since the previous split"""
    cumulative_elapsed_ms: int
    """Time since the clock started"""


@dataclass(frozen=True)
class ClockStop:
    """
    The result of stopping the clock
    """

    elapsed_ms: int
    """The frozen elapsed time"""
    forced: bool
    """True when the clock stopped because the ceiling was reached"""


class RaceClock:
    """
    Wall-clock based stopwatch for a single run.

    Elapsed time is always derived from the origin instant rather than
    accumulated from ticks, so a clock rebuilt from a persisted start
    time reports the same elapsed value as the one it replaces. While
    running, the clock samples itself every `tick_interval_ms` on the
    event loop and reports the elapsed value to its observers. Once the
    ceiling is reached it freezes at exactly the ceiling and calls
    `on_time_limit`.
    """

    def __init__(
        self,
        max_elapsed_ms: int | None = None,
        *,
        tick_interval_ms: int | None = None,
        time_source: Callable[[], float] = get_current_epoch_ms,
    ) -> None:
        """
        Class initializer

        :param max_elapsed_ms: The ceiling of the clock, None for no ceiling
        :param tick_interval_ms: The sampling interval, defaults to the
        configured race tick interval
        :param time_source: Callable returning the current epoch time in milliseconds
        """
        if tick_interval_ms is None:
            tick_interval_ms = ctx.config_ctx.get().race.tick_interval_ms

        self.max_elapsed_ms = max_elapsed_ms
        self._tick_interval = tick_interval_ms / 1000
        self._time_source = time_source

        self._origin_ms: float | None = None
        self._frozen_ms: int | None = None
        self._last_split_ms = 0
        self._limit_reached = False
        self._handle: asyncio.TimerHandle | None = None
        self._observers: list[ClockObserver] = []

        self.on_time_limit: Callable[[int], None] | None = None
        """Called once with the ceiling value when the clock runs out"""

    @classmethod
    def resume(
        cls,
        started_at_ms: float,
        max_elapsed_ms: int | None = None,
        *,
        last_split_ms: int = 0,
        tick_interval_ms: int | None = None,
        time_source: Callable[[], float] = get_current_epoch_ms,
    ) -> Self:
        """
        Rebuild a running clock from a persisted start time

        :param started_at_ms: The epoch time the run started at
        :param max_elapsed_ms: The ceiling of the clock
        :param last_split_ms: The cumulative time of the last recorded lap
        :return: The running clock
        """
        clock = cls(
            max_elapsed_ms,
            tick_interval_ms=tick_interval_ms,
            time_source=time_source,
        )
        clock._last_split_ms = last_split_ms
        clock.start(started_at_ms)
        return clock

    @property
    def origin_ms(self) -> float | None:
        """The epoch time the clock counts from"""
        return self._origin_ms

    @property
    def started(self) -> bool:
        """Whether the clock has been started"""
        return self._origin_ms is not None

    @property
    def running(self) -> bool:
        """Whether the clock is started and not frozen"""
        return self._origin_ms is not None and self._frozen_ms is None

    @property
    def limit_reached(self) -> bool:
        """Whether the clock stopped on its ceiling"""
        return self._limit_reached

    @property
    def last_split_ms(self) -> int:
        """The cumulative time of the last split"""
        return self._last_split_ms

    @property
    def elapsed_ms(self) -> int:
        """
        The current elapsed time, clamped to the ceiling
        """
        if self._frozen_ms is not None:
            return self._frozen_ms

        if self._origin_ms is None:
            return 0

        return self._clamp(self._raw_elapsed())

    @property
    def remaining_ms(self) -> int | None:
        """Time left before the ceiling, None without a ceiling"""
        if self.max_elapsed_ms is None:
            return None

        return max(0, self.max_elapsed_ms - self.elapsed_ms)

    def _raw_elapsed(self) -> int:
        assert self._origin_ms is not None
        return max(0, int(self._time_source() - self._origin_ms))

    def _clamp(self, elapsed: int) -> int:
        if self.max_elapsed_ms is not None and elapsed >= self.max_elapsed_ms:
            return self.max_elapsed_ms
        return elapsed

    def _at_ceiling(self, elapsed: int) -> bool:
        return self.max_elapsed_ms is not None and elapsed >= self.max_elapsed_ms

    def subscribe(self, observer: ClockObserver) -> None:
        """
        Register an observer for sampled elapsed values

        :param observer: Called with the elapsed time on every tick
        """
        self._observers.append(observer)

    def unsubscribe(self, observer: ClockObserver) -> None:
        """
        Remove an observer

        :param observer: The observer to remove
        """
        self._observers.remove(observer)

    def start(self, origin_ms: float | None = None) -> None:
        """
        Record the origin instant and begin sampling

        :param origin_ms: The epoch time to count from, defaults to now
        :raises InvalidTransition: The clock was already started
        """
        if self.started:
            raise InvalidTransition("Clock already started")

        self._origin_ms = self._time_source() if origin_ms is None else origin_ms
        self._schedule_tick()

    def tick(self) -> int:
        """
        Sample the clock, notify observers and enforce the ceiling

        :return: The sampled elapsed time
        """
        if not self.running:
            return self.elapsed_ms

        elapsed = self._raw_elapsed()

        if self._at_ceiling(elapsed):
            assert self.max_elapsed_ms is not None
            self._freeze(self.max_elapsed_ms)
            self._limit_reached = True
            self._notify(self.max_elapsed_ms)

            logger.info("Clock reached its limit of %d ms", self.max_elapsed_ms)
            if self.on_time_limit is not None:
                self.on_time_limit(self.max_elapsed_ms)

            return self.max_elapsed_ms

        self._notify(elapsed)
        return elapsed

    def record_split(self) -> Split:
        """
        Mark a lap at the current elapsed time

        :raises InvalidTransition: The clock is not running, or ran out
        while the split was being taken
        :return: The lap and cumulative times
        """
        if not self.running:
            raise InvalidTransition("Clock is not running")

        elapsed = self.tick()
        if not self.running:
            raise InvalidTransition("Clock reached its limit")

        split = Split(elapsed - self._last_split_ms, elapsed)
        self._last_split_ms = elapsed
        return split

    def terminate(self, elapsed_at_call: int | None = None) -> ClockStop:
        """
        Freeze the clock and report the final elapsed time. A clock
        that has already reached its ceiling reports a forced stop.

        :param elapsed_at_call: The elapsed time observed by the caller,
        defaults to the current elapsed time. Kept between the last split
        and the current elapsed time.
        :raises InvalidTransition: The clock was never started
        :return: The final elapsed time
        """
        if not self.started:
            raise InvalidTransition("Clock was never started")

        if self._frozen_ms is not None:
            return ClockStop(self._frozen_ms, self._limit_reached)

        raw = self._raw_elapsed()

        # The ceiling wins over any time observed by the caller
        if self._at_ceiling(raw):
            assert self.max_elapsed_ms is not None
            self._freeze(self.max_elapsed_ms)
            self._limit_reached = True
            return ClockStop(self.max_elapsed_ms, True)

        elapsed = raw if elapsed_at_call is None else min(elapsed_at_call, raw)
        self._freeze(max(elapsed, self._last_split_ms))
        assert self._frozen_ms is not None
        return ClockStop(self._frozen_ms, False)

    def stop_ticking(self) -> None:
        """
        Stop sampling without freezing the clock
        """
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _freeze(self, elapsed: int) -> None:
        self._frozen_ms = elapsed
        self.stop_ticking()

    def _notify(self, elapsed: int) -> None:
        for observer in tuple(self._observers):
            observer(elapsed)

    def _schedule_tick(self) -> None:
        loop = ctx.loop_ctx.get(None)
        if loop is None:
            logger.debug("No event loop in context, clock will only be polled")
            return

        self._handle = loop.call_later(self._tick_interval, self._run_tick)

    def _run_tick(self) -> None:
        self._handle = None
        self.tick()

        if self.running:
            self._schedule_tick()
