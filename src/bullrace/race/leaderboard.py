"""
Leaderboard ranking
"""

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cmp_to_key

from pydantic import BaseModel, TypeAdapter
from tortoise.exceptions import DBConnectionError, OperationalError

from bullrace import ctx
from bullrace.database import EntrantRun, Lap, Pair, Race
from bullrace.race.enums import RaceStatus, RunStatus
from bullrace.race.ledger import LapRecord

logger = logging.getLogger(__name__)

_READ_ERRORS = (OperationalError, DBConnectionError)


@dataclass(frozen=True)
class RankingEntry:
    """
    A run with everything needed to rank it
    """

    # pylint: disable=R0902

    run_id: int
    pair_id: int
    display_name: str
    owners: str
    category_id: int
    status: RunStatus
    total_elapsed_ms: int | None = None
    """The stored final time, only trusted for completed runs"""
    laps: tuple[LapRecord, ...] = field(default_factory=tuple)

    @property
    def ranking_time_ms(self) -> int:
        """The stored total of a completed run, otherwise the lap time sum"""
        if self.status == RunStatus.COMPLETED and self.total_elapsed_ms:
            return self.total_elapsed_ms

        return sum(lap.lap_elapsed_ms for lap in self.laps)

    @property
    def ranking_distance_meters(self) -> float:
        """The sum of the credited lap distances"""
        return float(sum(lap.distance_meters for lap in self.laps))


class LeaderboardLap(BaseModel):
    """
    A lap as shown with a leaderboard row
    """

    lap_index: int
    lap_elapsed_ms: int
    cumulative_elapsed_ms: int
    distance_meters: int
    display_distance_meters: float


class LeaderboardRow(BaseModel):
    """
    A ranked leaderboard entry
    """

    rank: int
    pair_id: int
    display_name: str
    owners: str
    category_id: int
    total_elapsed_ms: int
    lap_count: int
    total_distance_meters: float
    is_currently_racing: bool
    laps: list[LeaderboardLap]


LEADERBOARD_ADAPTER = TypeAdapter(list[LeaderboardRow])


def _compare(
    first: RankingEntry, second: RankingEntry, tolerance: float
) -> int:
    distance_delta = (
        second.ranking_distance_meters - first.ranking_distance_meters
    )
    if abs(distance_delta) > tolerance:
        return 1 if distance_delta > 0 else -1

    return first.ranking_time_ms - second.ranking_time_ms


def rank_entries(
    entries: Iterable[RankingEntry], *, tolerance: float | None = None
) -> list[LeaderboardRow]:
    """
    Rank runs by distance covered, then by time.

    Distances within the tolerance of each other are treated as equal
    and ordered by the faster time. Ranks run from 1 with no ties.

    :param entries: The runs to rank
    :param tolerance: The distance tolerance in meters, defaults to
    the configured value
    :return: The ranked rows
    """
    if tolerance is None:
        tolerance = ctx.config_ctx.get().race.distance_tolerance_m

    ordered = sorted(
        entries, key=cmp_to_key(lambda a, b: _compare(a, b, tolerance))
    )

    return [
        LeaderboardRow(
            rank=rank,
            pair_id=entry.pair_id,
            display_name=entry.display_name,
            owners=entry.owners,
            category_id=entry.category_id,
            total_elapsed_ms=entry.ranking_time_ms,
            lap_count=len(entry.laps),
            total_distance_meters=entry.ranking_distance_meters,
            is_currently_racing=entry.status == RunStatus.RACING,
            laps=[
                LeaderboardLap(
                    lap_index=lap.lap_index,
                    lap_elapsed_ms=lap.lap_elapsed_ms,
                    cumulative_elapsed_ms=lap.cumulative_elapsed_ms,
                    distance_meters=lap.distance_meters,
                    display_distance_meters=lap.display_distance_meters,
                )
                for lap in entry.laps
            ],
        )
        for rank, entry in enumerate(ordered, start=1)
    ]


async def _build_entry(run: EntrantRun) -> RankingEntry | None:
    """
    Read the pair and laps of a run

    :param run: The stored run
    :return: The ranking entry, or None when the pair no longer exists
    """
    if run.pair_id is None:
        logger.warning("Run %s has no pair, skipping", run.id)
        return None

    pair, laps = await asyncio.gather(
        Pair.get_by_id(run.pair_id),
        Lap.filter(run_id=run.id).order_by("lap_index"),
    )

    if pair is None:
        logger.warning("Pair %s of run %s not found, skipping", run.pair_id, run.id)
        return None

    return RankingEntry(
        run_id=run.id,
        pair_id=pair.id,
        display_name=pair.display_name,
        owners=pair.owners,
        category_id=pair.category_id,  # type: ignore[attr-defined]
        status=run.status,
        total_elapsed_ms=run.total_elapsed_ms,
        laps=tuple(lap.to_record() for lap in laps),
    )


async def _rank_runs(runs: Sequence[EntrantRun]) -> list[LeaderboardRow]:
    entries = await asyncio.gather(*(_build_entry(run) for run in runs))
    return rank_entries(entry for entry in entries if entry is not None)


async def get_live_leaderboard(category_id: int | None = None) -> list[LeaderboardRow]:
    """
    Rank every run, optionally limited to a single category

    :param category_id: The category to limit the leaderboard to
    :return: The ranked rows, empty when storage can not be read
    """
    try:
        query = EntrantRun.all()
        if category_id is not None:
            query = query.filter(pair__category_id=category_id)

        return await _rank_runs(await query)

    except _READ_ERRORS:
        logger.exception("Failed to read the live leaderboard")
        return []


async def get_historical_leaderboard(
    year: int, category_id: int | None = None
) -> list[LeaderboardRow]:
    """
    Rank the runs of the races completed during a year

    :param year: The calendar year the races completed in
    :param category_id: The category to limit the results to
    :return: The ranked rows, empty when storage can not be read
    """
    try:
        query = Race.filter(
            status=RaceStatus.COMPLETED,
            completed_at__gte=datetime(year, 1, 1, tzinfo=timezone.utc),
            completed_at__lt=datetime(year + 1, 1, 1, tzinfo=timezone.utc),
        )
        if category_id is not None:
            query = query.filter(category_id=category_id)

        race_ids = await query.values_list("id", flat=True)
        if not race_ids:
            return []

        runs = await EntrantRun.filter(race_id__in=race_ids)
        return await _rank_runs(runs)

    except _READ_ERRORS:
        logger.exception("Failed to read historical results for %d", year)
        return []
