"""
Leaderboard ranking tests
"""

from datetime import date, datetime, timezone

import pytest
from tortoise.exceptions import DBConnectionError, OperationalError

from bullrace.database import Category, EntrantRun, Lap, Pair, Race
from bullrace.race.enums import RaceStatus, RunStatus
from bullrace.race.leaderboard import (
    RankingEntry,
    get_historical_leaderboard,
    get_live_leaderboard,
    rank_entries,
)
from bullrace.race.ledger import DistanceOverride, LapRecord


def _entry(run_id: int, laps: list[tuple[int, int]], **kwargs) -> RankingEntry:
    records = []
    cumulative = 0
    for index, (elapsed, meters) in enumerate(laps, start=1):
        cumulative += elapsed
        records.append(LapRecord(index, elapsed, cumulative, meters))

    kwargs.setdefault("status", RunStatus.COMPLETED)
    kwargs.setdefault("total_elapsed_ms", cumulative)

    return RankingEntry(
        run_id=run_id,
        pair_id=run_id,
        display_name=f"Pair {run_id}",
        owners="owner",
        category_id=1,
        laps=tuple(records),
        **kwargs,
    )


def test_distance_first():
    """
    Covering more distance beats being faster
    """
    slow_far = _entry(1, [(100000, 100), (100000, 100), (100000, 100)])
    fast_short = _entry(2, [(50000, 100), (50000, 100)])

    rows = rank_entries([fast_short, slow_far], tolerance=0.01)

    assert [row.pair_id for row in rows] == [1, 2]
    assert [row.rank for row in rows] == [1, 2]


def test_time_breaks_ties():
    """
    Equal distances rank by the faster time
    """
    first = _entry(1, [(125000, 150), (125000, 150)])
    second = _entry(2, [(120000, 150), (120000, 150)])

    rows = rank_entries([first, second], tolerance=0.01)

    assert [row.pair_id for row in rows] == [2, 1]
    assert rows[0].total_elapsed_ms == 240000
    assert rows[0].total_distance_meters == 300
    assert rows[1].total_elapsed_ms == 250000


def test_distance_tolerance():
    """
    Distances within the tolerance are treated as equal
    """
    first = _entry(1, [(100000, 300)])
    second = _entry(2, [(90000, 299)])

    assert [row.pair_id for row in rank_entries([first, second], tolerance=1)] == [2, 1]
    assert [row.pair_id for row in rank_entries([first, second], tolerance=0.5)] == [
        1,
        2,
    ]


def test_stored_meters_rank():
    """
    Feet and inches are shown but only whole meters are ranked
    """
    record = LapRecord(1, 1000, 1000, 5, DistanceOverride(5, 2, 6))
    entry = RankingEntry(
        run_id=1,
        pair_id=1,
        display_name="Pair",
        owners="owner",
        category_id=1,
        status=RunStatus.COMPLETED,
        total_elapsed_ms=1000,
        laps=(record,),
    )

    (row,) = rank_entries([entry], tolerance=0.01)

    assert row.total_distance_meters == 5
    assert row.laps[0].display_distance_meters == pytest.approx(5.762)


def test_racing_entry():
    """
    A run still racing is ranked on its recorded laps
    """
    racing = _entry(1, [(60000, 100)], status=RunStatus.RACING, total_elapsed_ms=None)
    waiting = _entry(2, [], status=RunStatus.WAITING, total_elapsed_ms=None)

    rows = rank_entries([waiting, racing], tolerance=0.01)

    assert [row.pair_id for row in rows] == [1, 2]
    assert rows[0].is_currently_racing
    assert rows[0].total_elapsed_ms == 60000
    assert rows[1].lap_count == 0
    assert not rows[1].is_currently_racing


def test_empty():
    """
    Nothing to rank
    """
    assert not rank_entries([], tolerance=0.01)


async def _store_run(
    race: Race,
    pair: Pair,
    sequence: int,
    laps: list[tuple[int, int]],
    status: RunStatus = RunStatus.COMPLETED,
) -> EntrantRun:
    run = await EntrantRun.create(
        race=race, pair=pair, sequence_index=sequence, status=status
    )
    cumulative = 0
    for index, (elapsed, meters) in enumerate(laps, start=1):
        cumulative += elapsed
        await Lap.create(
            run=run,
            lap_index=index,
            lap_elapsed_ms=elapsed,
            cumulative_elapsed_ms=cumulative,
            distance_meters=meters,
        )

    if status == RunStatus.COMPLETED:
        run.total_elapsed_ms = cumulative
        await run.save()

    return run


@pytest.mark.asyncio
async def test_live_leaderboard(basic_category: Category, basic_pairs: list[Pair]):
    """
    The live leaderboard ranks every stored run
    """
    race = await Race.create(category=basic_category, status=RaceStatus.IN_PROGRESS)
    first, second, third = basic_pairs

    await _store_run(race, first, 1, [(125000, 150), (125000, 150)])
    await _store_run(race, second, 2, [(120000, 150), (120000, 150)])
    await _store_run(race, third, 3, [(50000, 100)], RunStatus.RACING)

    rows = await get_live_leaderboard()

    assert [row.pair_id for row in rows] == [second.id, first.id, third.id]
    assert rows[0].display_name == "Lightning"
    assert rows[0].owners == "Lightning owner"
    assert rows[2].is_currently_racing


@pytest.mark.asyncio
async def test_live_category_filter(
    basic_category: Category, basic_pairs: list[Pair], register_pair
):
    """
    The live leaderboard can be limited to a category
    """
    other = await Category.create(
        type="Juniors",
        race_date=date(2025, 1, 16),
        max_duration_sec=300,
        lap_distance_meters=100,
    )
    junior = await register_pair(other, "Calf")

    race = await Race.create(category=basic_category)
    other_race = await Race.create(category=other)
    await _store_run(race, basic_pairs[0], 1, [(60000, 100)])
    await _store_run(other_race, junior, 1, [(60000, 100), (60000, 100)])

    rows = await get_live_leaderboard(other.id)
    assert [row.pair_id for row in rows] == [junior.id]

    rows = await get_live_leaderboard()
    assert [row.pair_id for row in rows] == [junior.id, basic_pairs[0].id]


@pytest.mark.asyncio
async def test_live_skips_removed_pair(
    basic_category: Category, basic_pairs: list[Pair]
):
    """
    Runs whose pair was removed are left off the leaderboard
    """
    race = await Race.create(category=basic_category)
    await _store_run(race, basic_pairs[0], 1, [(60000, 100)])
    await _store_run(race, basic_pairs[1], 2, [(60000, 100)])

    await basic_pairs[1].delete()

    rows = await get_live_leaderboard()
    assert [row.pair_id for row in rows] == [basic_pairs[0].id]


@pytest.mark.asyncio
async def test_historical_leaderboard(
    basic_category: Category, basic_pairs: list[Pair]
):
    """
    Only races completed during the year are included
    """
    race = await Race.create(
        category=basic_category,
        status=RaceStatus.COMPLETED,
        completed_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )
    await _store_run(race, basic_pairs[0], 1, [(60000, 100)])
    await _store_run(race, basic_pairs[1], 2, [(60000, 100), (60000, 100)])

    rows = await get_historical_leaderboard(2024)
    assert [row.pair_id for row in rows] == [basic_pairs[1].id, basic_pairs[0].id]

    assert not await get_historical_leaderboard(2025)
    assert not await get_historical_leaderboard(2024, basic_category.id + 1)

    rows = await get_historical_leaderboard(2024, basic_category.id)
    assert len(rows) == 2


@pytest.mark.asyncio
async def test_historical_requires_completed(
    basic_category: Category, basic_pairs: list[Pair]
):
    """
    A race still in progress is not part of the history
    """
    race = await Race.create(
        category=basic_category,
        status=RaceStatus.IN_PROGRESS,
        completed_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )
    await _store_run(race, basic_pairs[0], 1, [(60000, 100)])

    assert not await get_historical_leaderboard(2024)


@pytest.mark.asyncio
async def test_unreadable_storage(
    basic_category: Category, basic_pairs: list[Pair], monkeypatch
):
    """
    Both leaderboards are empty when storage can not be read
    """
    race = await Race.create(
        category=basic_category,
        status=RaceStatus.COMPLETED,
        completed_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )
    await _store_run(race, basic_pairs[0], 1, [(60000, 100)])
    assert await get_live_leaderboard()

    def _closed(*_args, **_kwargs):
        raise DBConnectionError("connection closed")

    def _locked(*_args, **_kwargs):
        raise OperationalError("database is locked")

    monkeypatch.setattr(EntrantRun, "all", _closed)
    monkeypatch.setattr(Race, "filter", _locked)

    assert await get_live_leaderboard() == []
    assert await get_live_leaderboard(basic_category.id) == []
    assert await get_historical_leaderboard(2024) == []
