"""
Lap ledger for a single run
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Self

from bullrace.race.errors import InvalidTransition

FEET_TO_METERS = 0.3048
INCHES_TO_METERS = 0.0254

MAX_OVERRIDE_FEET = 100
MAX_OVERRIDE_INCHES = 11


@dataclass(frozen=True)
class DistanceOverride:
    """
    An operator measured lap distance. The three components are kept
    separately so the displayed breakdown can always be reproduced.
    """

    meters: int
    feet: int = 0
    inches: int = 0

    def __post_init__(self) -> None:
        if self.meters < 0:
            raise ValueError("Override meters must not be negative")

        if not 0 <= self.feet <= MAX_OVERRIDE_FEET:
            raise ValueError(f"Override feet must be within 0-{MAX_OVERRIDE_FEET}")

        if not 0 <= self.inches <= MAX_OVERRIDE_INCHES:
            raise ValueError(
                f"Override inches must be within 0-{MAX_OVERRIDE_INCHES}"
            )

    @property
    def total_meters(self) -> float:
        """The compound distance shown to the operator"""
        return (
            self.meters + self.feet * FEET_TO_METERS + self.inches * INCHES_TO_METERS
        )


@dataclass(frozen=True)
class LapRecord:
    """
    An immutable lap entry. Corrections are recorded as new laps.
    """

    lap_index: int
    """1-based position of the lap in the run"""
    lap_elapsed_ms: int
    """Duration of this lap alone"""
    cumulative_elapsed_ms: int
    """Time since the run started"""
    distance_meters: int
    """Distance credited to the lap; the whole meters of an override"""
    override: DistanceOverride | None = None
    """The operator measured distance, when one was entered"""

    @property
    def display_distance_meters(self) -> float:
        """The distance including the feet and inches of an override"""
        if self.override is not None:
            return self.override.total_meters

        return float(self.distance_meters)


class LapLedger:
    """
    Append-only sequence of laps for a run.

    The ledger only accepts laps while open. `seal` accepts exactly one
    final lap and closes the ledger permanently.
    """

    def __init__(self, default_distance_meters: int) -> None:
        """
        Class initializer

        :param default_distance_meters: The category distance of a full lap
        """
        self.default_distance_meters = default_distance_meters
        self._laps: list[LapRecord] = []
        self._open = False
        self._sealed = False

    @classmethod
    def from_records(
        cls,
        default_distance_meters: int,
        records: Iterable[LapRecord],
        *,
        open_: bool = False,
        sealed: bool = False,
    ) -> Self:
        """
        Rebuild a ledger from persisted laps

        :param default_distance_meters: The category distance of a full lap
        :param records: The persisted laps
        :param open_: Whether the ledger should accept further laps
        :param sealed: Whether the final lap has already been recorded
        :raises ValueError: The laps are not contiguous or go back in time
        :return: The rebuilt ledger
        """
        ledger = cls(default_distance_meters)

        for expected, record in enumerate(
            sorted(records, key=lambda lap: lap.lap_index), start=1
        ):
            if record.lap_index != expected:
                raise ValueError(
                    f"Lap {expected} missing from persisted laps, found {record.lap_index}"
                )
            ledger._check_cumulative(record.cumulative_elapsed_ms)
            ledger._laps.append(record)

        ledger._sealed = sealed
        ledger._open = open_ and not sealed
        return ledger

    def __len__(self) -> int:
        return len(self._laps)

    def __iter__(self) -> Iterator[LapRecord]:
        return iter(self._laps)

    @property
    def laps(self) -> tuple[LapRecord, ...]:
        """All laps in order"""
        return tuple(self._laps)

    @property
    def lap_count(self) -> int:
        """Number of recorded laps"""
        return len(self._laps)

    @property
    def last_lap(self) -> LapRecord | None:
        """The most recent lap, if any"""
        return self._laps[-1] if self._laps else None

    @property
    def is_open(self) -> bool:
        """Whether the ledger accepts laps"""
        return self._open

    @property
    def is_sealed(self) -> bool:
        """Whether the final lap has been recorded"""
        return self._sealed

    def open(self) -> None:
        """
        Start accepting laps

        :raises InvalidTransition: The ledger has been sealed
        """
        if self._sealed:
            raise InvalidTransition("Ledger already sealed")

        self._open = True

    def append(
        self,
        lap_elapsed_ms: int,
        cumulative_elapsed_ms: int,
        distance_meters: int | None = None,
        override: DistanceOverride | None = None,
    ) -> LapRecord:
        """
        Record a lap

        :param lap_elapsed_ms: Duration of the lap
        :param cumulative_elapsed_ms: Time since the run started
        :param distance_meters: Distance to credit, defaults to the
        override meters or the category distance
        :param override: The operator measured distance
        :raises InvalidTransition: The ledger is not accepting laps
        :return: The stored lap
        """
        if not self._open:
            raise InvalidTransition("Ledger is not accepting laps")

        return self._add(lap_elapsed_ms, cumulative_elapsed_ms, distance_meters, override)

    def seal(
        self,
        lap_elapsed_ms: int,
        cumulative_elapsed_ms: int,
        distance_meters: int | None = None,
        override: DistanceOverride | None = None,
    ) -> LapRecord:
        """
        Record the final lap and close the ledger

        :raises InvalidTransition: The ledger is not accepting laps
        :return: The stored lap
        """
        record = self.append(
            lap_elapsed_ms, cumulative_elapsed_ms, distance_meters, override
        )
        self._open = False
        self._sealed = True
        return record

    def _check_cumulative(self, cumulative_elapsed_ms: int) -> None:
        if self._laps and cumulative_elapsed_ms < self._laps[-1].cumulative_elapsed_ms:
            raise ValueError("Cumulative lap time must not decrease")

    def _add(
        self,
        lap_elapsed_ms: int,
        cumulative_elapsed_ms: int,
        distance_meters: int | None,
        override: DistanceOverride | None,
    ) -> LapRecord:
        if lap_elapsed_ms < 0:
            raise ValueError("Lap time must not be negative")

        self._check_cumulative(cumulative_elapsed_ms)

        if distance_meters is None:
            if override is not None:
                distance_meters = override.meters
            else:
                distance_meters = self.default_distance_meters

        record = LapRecord(
            lap_index=len(self._laps) + 1,
            lap_elapsed_ms=lap_elapsed_ms,
            cumulative_elapsed_ms=cumulative_elapsed_ms,
            distance_meters=distance_meters,
            override=override,
        )
        self._laps.append(record)
        return record

    def cumulative_distance(self) -> float:
        """
        Total credited distance. Only the whole meters of an override
        count towards the total.
        """
        return float(sum(lap.distance_meters for lap in self._laps))

    def cumulative_display_distance(self) -> float:
        """
        Total distance including the feet and inches of overrides
        """
        return sum(lap.display_distance_meters for lap in self._laps)

    def cumulative_lap_time(self) -> int:
        """Sum of all recorded lap times"""
        return sum(lap.lap_elapsed_ms for lap in self._laps)
