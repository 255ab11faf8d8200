"""
Test the race, run and lap databases
"""

import pytest
import pytest_asyncio
from tortoise.exceptions import IntegrityError

from bullrace.database import Category, EntrantRun, Lap, Pair, Race
from bullrace.race.enums import RaceStatus, RunStatus
from bullrace.race.ledger import DistanceOverride, LapRecord


@pytest_asyncio.fixture(name="basic_run")
async def _basic_run(basic_category: Category, basic_pairs: list[Pair]):
    race = await Race.create(category=basic_category)
    return await EntrantRun.create(race=race, pair=basic_pairs[0], sequence_index=1)


@pytest.mark.asyncio
async def test_run_defaults(basic_run: EntrantRun):
    """
    Races and runs start out waiting
    """
    await basic_run.fetch_related("race")

    assert basic_run.status == RunStatus.WAITING
    assert basic_run.total_elapsed_ms is None
    assert basic_run.race.status == RaceStatus.UPCOMING
    assert not basic_run.race.order_locked


@pytest.mark.asyncio
async def test_unique_sequence(basic_run: EntrantRun, basic_pairs: list[Pair]):
    """
    A race order position is used once
    """
    with pytest.raises(IntegrityError):
        await EntrantRun.create(
            race_id=basic_run.race_id,  # type: ignore[attr-defined]
            pair=basic_pairs[1],
            sequence_index=1,
        )


@pytest.mark.asyncio
async def test_lap_round_trip(basic_run: EntrantRun):
    """
    Stored laps convert back to the ledger laps they came from
    """
    records = [
        LapRecord(1, 60000, 60000, 100),
        LapRecord(2, 30000, 90000, 5, DistanceOverride(5, 2, 6)),
        LapRecord(3, 10000, 100000, 40, DistanceOverride(40)),
    ]
    for record in records:
        await Lap.create(run=basic_run, **Lap.fields_from_record(record))

    laps = await basic_run.laps.all()

    assert [lap.to_record() for lap in laps] == records


@pytest.mark.asyncio
async def test_override_fields(basic_run: EntrantRun):
    """
    Feet and inches are only stored when provided
    """
    fields_ = Lap.fields_from_record(LapRecord(1, 1000, 1000, 40, DistanceOverride(40)))

    assert fields_["override_meters"] == 40
    assert fields_["override_feet"] is None
    assert fields_["override_inches"] is None

    fields_ = Lap.fields_from_record(LapRecord(1, 1000, 1000, 100))
    assert fields_["override_meters"] is None

    lap = await Lap.create(
        run=basic_run,
        **Lap.fields_from_record(LapRecord(1, 1000, 1000, 5, DistanceOverride(5, 0, 4))),
    )
    assert lap.override_feet is None
    assert lap.override_inches == 4


@pytest.mark.asyncio
async def test_unique_lap(basic_run: EntrantRun):
    """
    A lap index is used once per run
    """
    await Lap.create(run=basic_run, **Lap.fields_from_record(LapRecord(1, 1, 1, 100)))

    with pytest.raises(IntegrityError):
        await Lap.create(
            run=basic_run, **Lap.fields_from_record(LapRecord(1, 2, 2, 100))
        )


@pytest.mark.asyncio
async def test_pair_removal(basic_run: EntrantRun, basic_pairs: list[Pair]):
    """
    Removing a pair keeps its run
    """
    await basic_pairs[0].delete()

    run = await EntrantRun.get(id=basic_run.id)
    assert run.pair_id is None  # type: ignore[attr-defined]
