"""
Race control service. Applies operator actions to the live race
state and mirrors the results to storage.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Sequence
from datetime import datetime
from functools import partial
from typing import TypeVar

from pydantic import BaseModel
from tortoise.exceptions import DBConnectionError, IntegrityError, OperationalError
from tortoise.transactions import in_transaction

from bullrace import ctx
from bullrace.database import Category, EntrantRun, Lap, Pair, Race
from bullrace.database.category import CategoryModel
from bullrace.database.entrant import EntrantRunModel
from bullrace.database.lap import LapModel
from bullrace.database.pair import PairModel
from bullrace.database.race import RaceModel
from bullrace.events import RaceSequenceEvt
from bullrace.race.entrant import EntrantRunMachine, PendingFinalLap
from bullrace.race.enums import FinishMode, RaceStatus, RunStatus
from bullrace.race.errors import AlreadyLocked, MissingReference, StorageError
from bullrace.race.leaderboard import LeaderboardLap
from bullrace.race.ledger import LapRecord
from bullrace.race.order import RaceOrder
from bullrace.race.state import RaceStateManager
from bullrace.utils import background

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_STORAGE_ERRORS = (OperationalError, DBConnectionError)


class PendingFinalLapModel(BaseModel):
    """
    External pending final lap model
    """

    lap_index: int
    lap_elapsed_ms: int
    total_elapsed_ms: int


class RunSnapshot(BaseModel):
    """
    The live state of a run
    """

    run_id: int
    pair_id: int | None
    sequence_index: int
    status: RunStatus
    elapsed_ms: int
    remaining_ms: int | None
    total_elapsed_ms: int | None
    lap_count: int
    total_distance_meters: float
    display_distance_meters: float
    pending_final_lap: PendingFinalLapModel | None
    laps: list[LeaderboardLap]

    @classmethod
    def from_machine(cls, machine: EntrantRunMachine) -> "RunSnapshot":
        """
        Capture the state of a run

        :param machine: The run
        :return: The snapshot
        """
        assert machine.run_id is not None
        pending = machine.pending_final_lap

        return cls(
            run_id=machine.run_id,
            pair_id=machine.pair_id,
            sequence_index=machine.sequence_index,
            status=machine.status,
            elapsed_ms=machine.elapsed_ms,
            remaining_ms=machine.clock.remaining_ms,
            total_elapsed_ms=machine.total_elapsed_ms,
            lap_count=machine.ledger.lap_count,
            total_distance_meters=machine.total_distance_meters,
            display_distance_meters=machine.ledger.cumulative_display_distance(),
            pending_final_lap=(
                None
                if pending is None
                else PendingFinalLapModel(
                    lap_index=pending.lap_index,
                    lap_elapsed_ms=pending.lap_elapsed_ms,
                    total_elapsed_ms=pending.total_elapsed_ms,
                )
            ),
            laps=[_lap_model(lap) for lap in machine.laps],
        )


class RaceSnapshot(BaseModel):
    """
    The live state of a race
    """

    race_id: int
    status: RaceStatus
    started_at: datetime | None
    completed_at: datetime | None
    current_index: int
    completed_runs: int
    total_runs: int
    current: RunSnapshot | None

    @classmethod
    def from_controller(cls, controller: RaceStateManager) -> "RaceSnapshot":
        """
        Capture the state of a race

        :param controller: The race
        :return: The snapshot
        """
        completed, total = controller.progress
        current = controller.current

        return cls(
            race_id=controller.race_id,
            status=controller.status,
            started_at=controller.started_at,
            completed_at=controller.completed_at,
            current_index=controller.current_index,
            completed_runs=completed,
            total_runs=total,
            current=None if current is None else RunSnapshot.from_machine(current),
        )


class EntrantDetails(BaseModel):
    """
    A run with its pair and laps
    """

    run: EntrantRunModel
    pair: PairModel | None
    laps: list[LapModel]


class RaceDetails(BaseModel):
    """
    A race with its category and entrants
    """

    race: RaceModel
    category: CategoryModel
    entrants: list[EntrantDetails]
    live: RaceSnapshot | None = None


def _lap_model(lap: LapRecord) -> LeaderboardLap:
    return LeaderboardLap(
        lap_index=lap.lap_index,
        lap_elapsed_ms=lap.lap_elapsed_ms,
        cumulative_elapsed_ms=lap.cumulative_elapsed_ms,
        distance_meters=lap.distance_meters,
        display_distance_meters=lap.display_distance_meters,
    )


def _run_event_data(race_id: int, machine: EntrantRunMachine) -> dict:
    return {
        "race_id": race_id,
        "run_id": machine.run_id,
        "pair_id": machine.pair_id,
        "sequence_index": machine.sequence_index,
        "status": str(machine.status),
        "elapsed_ms": machine.elapsed_ms,
        "lap_count": machine.ledger.lap_count,
        "total_distance_meters": machine.total_distance_meters,
    }


class RaceControlManager:
    """
    Owns the live state of every race and keeps storage in step with it.

    Each race is guarded by its own lock, so actions on a race are
    applied one at a time in the order they arrive. Races are rebuilt
    from storage the first time they are accessed.
    """

    def __init__(self, *, time_source: Callable[[], float] | None = None) -> None:
        """
        Class initializer

        :param time_source: Clock source for new runs, defaults to the
        wall clock
        """
        self._controllers: dict[int, RaceStateManager] = {}
        self._locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._lock_race_lock = asyncio.Lock()
        self._time_source = time_source

    def _machine_kwargs(self) -> dict:
        if self._time_source is None:
            return {}

        return {"time_source": self._time_source}

    def shutdown(self) -> None:
        """
        Stop the clocks of all live races
        """
        for controller in self._controllers.values():
            for run in controller.runs:
                run.clock.stop_ticking()

        self._controllers.clear()

    def _attach(self, race_id: int, machine: EntrantRunMachine) -> EntrantRunMachine:
        machine.add_finish_listener(partial(self._on_run_finished, race_id))
        machine.clock.subscribe(partial(self._on_clock_tick, race_id, machine))
        return machine

    def _on_clock_tick(
        self, race_id: int, machine: EntrantRunMachine, elapsed_ms: int
    ) -> None:
        broker = ctx.event_broker_ctx.get(None)
        if broker is None or not broker.subscriber_count:
            return

        broker.publish(
            RaceSequenceEvt.CLOCK_TICK,
            {"race_id": race_id, "run_id": machine.run_id, "elapsed_ms": elapsed_ms},
        )

    def _on_run_finished(
        self, race_id: int, machine: EntrantRunMachine, mode: FinishMode
    ) -> None:
        if mode != FinishMode.TIME_LIMIT:
            return

        logger.info("Run %s of race %s reached the time limit", machine.run_id, race_id)
        self._trigger(RaceSequenceEvt.ENTRANT_TIME_LIMIT, _run_event_data(race_id, machine))

        if ctx.loop_ctx.get(None) is not None:
            background.add_background_task(self._mirror_run, race_id, machine)

    def _trigger(self, event: RaceSequenceEvt, data: dict) -> None:
        broker = ctx.event_broker_ctx.get(None)
        if broker is not None:
            broker.trigger(event, data)

    async def _mirror_run(self, race_id: int, machine: EntrantRunMachine) -> None:
        async with self._locks[race_id]:
            await self._sync_run(machine)

    async def _sync_run(self, machine: EntrantRunMachine) -> None:
        """
        Write the state of a run and any laps not yet stored. Laps are
        append only, so the stored laps are always a prefix of the
        ledger.

        :param machine: The run to store
        :raises StorageError: The write failed
        """
        try:
            await EntrantRun.filter(id=machine.run_id).update(
                status=machine.status,
                started_at=machine.started_at,
                ended_at=machine.ended_at,
                total_elapsed_ms=machine.total_elapsed_ms,
            )

            stored = await Lap.filter(run_id=machine.run_id).count()
            for record in machine.laps[stored:]:
                await Lap.create(run_id=machine.run_id, **Lap.fields_from_record(record))

        except _STORAGE_ERRORS as ex:
            logger.error("Failed to store run %s", machine.run_id)
            raise StorageError(f"Failed to store run {machine.run_id}") from ex

    async def _sync_race(self, controller: RaceStateManager) -> None:
        try:
            await Race.filter(id=controller.race_id).update(
                status=controller.status,
                started_at=controller.started_at,
                completed_at=controller.completed_at,
            )
        except _STORAGE_ERRORS as ex:
            logger.error("Failed to store race %s", controller.race_id)
            raise StorageError(f"Failed to store race {controller.race_id}") from ex

    async def lock_race(
        self,
        category_id: int,
        ordered_pair_ids: Sequence[int] | None = None,
        *,
        shuffle: bool = False,
    ) -> RaceStateManager:
        """
        Fix the running order of a category and create its race

        :param category_id: The category to race
        :param ordered_pair_ids: The running order, defaults to
        registration order
        :param shuffle: Randomise the running order
        :raises MissingReference: The category does not exist
        :raises AlreadyLocked: The category already has a race
        :raises EmptyRace: The category has no approved pairs
        :raises ValueError: The order is not a permutation of the
        approved pairs
        :raises StorageError: The race could not be stored
        :return: The live race
        """
        async with self._lock_race_lock:
            category = await Category.get_by_id(category_id)
            if category is None:
                raise MissingReference(f"Category {category_id} not found")

            if await Race.exists(category_id=category_id):
                raise AlreadyLocked(f"Category {category_id} already has a race")

            order = RaceOrder(await Pair.filter(category_id=category_id))
            if ordered_pair_ids is not None:
                order.reorder(ordered_pair_ids)
            if shuffle:
                order.shuffle()
            entries = order.lock()

            controller = await self._create_race(category, entries)

        self._trigger(
            RaceSequenceEvt.RACE_LOCK,
            {
                "race_id": controller.race_id,
                "category_id": category_id,
                "pair_ids": [entry.pair_id for entry in entries],
            },
        )
        return controller

    async def _create_race(self, category: Category, entries) -> RaceStateManager:
        rules = category.rules

        try:
            async with in_transaction() as conn:
                race = await Race.create(
                    category=category, order_locked=True, using_db=conn
                )
                runs: list[EntrantRun] = []
                for entry in entries:
                    await Pair.filter(id=entry.pair_id).using_db(conn).update(
                        race_sequence=entry.sequence_index
                    )
                    runs.append(
                        await EntrantRun.create(
                            race=race,
                            pair_id=entry.pair_id,
                            sequence_index=entry.sequence_index,
                            using_db=conn,
                        )
                    )

        except IntegrityError as ex:
            raise AlreadyLocked(f"Category {category.id} already has a race") from ex

        except _STORAGE_ERRORS as ex:
            logger.error("Failed to create race for category %s", category.id)
            raise StorageError("Failed to create race") from ex

        machines = [
            self._attach(
                race.id,
                EntrantRunMachine(
                    rules,
                    run_id=run.id,
                    pair_id=entry.pair_id,
                    sequence_index=entry.sequence_index,
                    **self._machine_kwargs(),
                ),
            )
            for run, entry in zip(runs, entries)
        ]

        controller = RaceStateManager(race.id, rules, machines)
        controller.start()
        await self._sync_race(controller)

        self._controllers[race.id] = controller
        logger.info(
            "Race %s created for category %s with %d pairs",
            race.id,
            category.id,
            len(machines),
        )
        return controller

    async def get_controller(self, race_id: int) -> RaceStateManager:
        """
        Get the live state of a race, rebuilding it from storage when
        it is not loaded

        :param race_id: The race id
        :raises MissingReference: The race does not exist
        :return: The live race
        """
        async with self._locks[race_id]:
            return await self._get_controller(race_id)

    async def _get_controller(self, race_id: int) -> RaceStateManager:
        if (controller := self._controllers.get(race_id)) is not None:
            return controller

        race = await Race.get_by_id(race_id)
        if race is None:
            raise MissingReference(f"Race {race_id} not found")

        category = await Category.get_by_id(race.category_id)  # type: ignore[attr-defined]
        if category is None:
            raise MissingReference(f"Category of race {race_id} not found")

        runs = await EntrantRun.filter(race_id=race_id).order_by("sequence_index")
        laps = await asyncio.gather(
            *(Lap.filter(run_id=run.id).order_by("lap_index") for run in runs)
        )

        rules = category.rules
        machines: list[EntrantRunMachine] = []
        for run, run_laps in zip(runs, laps):
            machine = EntrantRunMachine.rehydrate(
                rules,
                status=run.status,
                laps=(lap.to_record() for lap in run_laps),
                started_at=run.started_at,
                ended_at=run.ended_at,
                total_elapsed_ms=run.total_elapsed_ms,
                run_id=run.id,
                pair_id=run.pair_id,  # type: ignore[attr-defined]
                sequence_index=run.sequence_index,
                **self._machine_kwargs(),
            )
            if machine.status != run.status:
                await self._sync_run(machine)

            machines.append(self._attach(race_id, machine))

        controller = RaceStateManager(
            race_id,
            rules,
            machines,
            status=race.status,
            started_at=race.started_at,
            completed_at=race.completed_at,
        )
        self._controllers[race_id] = controller

        logger.info("Race %s restored from storage", race_id)
        return controller

    async def _apply(
        self, race_id: int, action: Callable[[RaceStateManager], _T]
    ) -> tuple[RaceStateManager, _T]:
        """
        Apply an action to a race and store the affected records

        :param race_id: The race id
        :param action: Mutates the live race
        :return: The live race and the action's result
        """
        async with self._locks[race_id]:
            controller = await self._get_controller(race_id)
            current = controller.current

            try:
                result = action(controller)
            finally:
                if current is not None:
                    await self._sync_run(current)
                await self._sync_race(controller)

            return controller, result

    @staticmethod
    def _racing(controller: RaceStateManager) -> EntrantRunMachine:
        # The current run is the only one that can be racing
        assert controller.current is not None
        return controller.current

    async def begin(self, race_id: int) -> EntrantRunMachine:
        """
        Start the clock of the current entrant

        :param race_id: The race id
        :return: The started run
        """
        _, machine = await self._apply(race_id, lambda race: race.begin_current())

        self._trigger(RaceSequenceEvt.ENTRANT_BEGIN, _run_event_data(race_id, machine))
        return machine

    async def record_lap(self, race_id: int) -> LapRecord:
        """
        Record a full lap for the racing entrant

        :param race_id: The race id
        :return: The recorded lap
        """
        controller, record = await self._apply(
            race_id, lambda race: self._racing(race).record_lap()
        )

        data = _run_event_data(race_id, self._racing(controller))
        data["lap"] = _lap_model(record).model_dump()
        self._trigger(RaceSequenceEvt.ENTRANT_LAP, data)
        return record

    async def record_corrected_lap(
        self, race_id: int, meters: int, feet: int = 0, inches: int = 0
    ) -> LapRecord:
        """
        Record a lap with a measured distance for the racing entrant

        :param race_id: The race id
        :return: The recorded lap
        """
        controller, record = await self._apply(
            race_id,
            lambda race: self._racing(race).record_corrected_lap(meters, feet, inches),
        )

        data = _run_event_data(race_id, self._racing(controller))
        data["lap"] = _lap_model(record).model_dump()
        self._trigger(RaceSequenceEvt.ENTRANT_LAP, data)
        return record

    async def finish(
        self, race_id: int, elapsed_at_call: int | None = None
    ) -> PendingFinalLap | LapRecord:
        """
        Stop the racing entrant's clock

        :param race_id: The race id
        :param elapsed_at_call: The elapsed time the operator saw
        :return: The pending final lap, or the final lap when the time
        limit was already reached
        """
        controller, result = await self._apply(
            race_id,
            lambda race: self._racing(race).finish(
                FinishMode.OPERATOR, elapsed_at_call
            ),
        )

        if isinstance(result, PendingFinalLap):
            data = _run_event_data(race_id, self._racing(controller))
            data["pending_final_lap"] = {
                "lap_index": result.lap_index,
                "lap_elapsed_ms": result.lap_elapsed_ms,
                "total_elapsed_ms": result.total_elapsed_ms,
            }
            self._trigger(RaceSequenceEvt.ENTRANT_FINAL_LAP_PENDING, data)

        return result

    async def confirm_final_lap(
        self, race_id: int, meters: int, feet: int = 0, inches: int = 0
    ) -> LapRecord:
        """
        Record the measured final lap and complete the racing entrant

        :param race_id: The race id
        :return: The final lap
        """
        controller, record = await self._apply(
            race_id,
            lambda race: self._racing(race).confirm_final_lap(meters, feet, inches),
        )

        data = _run_event_data(race_id, self._racing(controller))
        data["lap"] = _lap_model(record).model_dump()
        self._trigger(RaceSequenceEvt.ENTRANT_FINISH, data)
        return record

    async def advance(self, race_id: int) -> RaceStateManager:
        """
        Move the race to the next waiting entrant, completing the race
        when none remain

        :param race_id: The race id
        :return: The live race
        """
        controller, next_run = await self._apply(race_id, lambda race: race.advance())

        if next_run is None:
            self._trigger(RaceSequenceEvt.RACE_COMPLETE, {"race_id": race_id})
        else:
            self._trigger(
                RaceSequenceEvt.ENTRANT_ADVANCE, _run_event_data(race_id, next_run)
            )

        return controller

    async def complete_race(self, race_id: int) -> RaceStateManager:
        """
        Close a race

        :param race_id: The race id
        :return: The live race
        """
        controller, _ = await self._apply(race_id, lambda race: race.complete())

        self._trigger(RaceSequenceEvt.RACE_COMPLETE, {"race_id": race_id})
        return controller

    async def get_race_details(self, race_id: int) -> RaceDetails:
        """
        Collect a race with its category, entrants, pairs and laps

        :param race_id: The race id
        :raises MissingReference: The race or its category does not exist
        :return: The race details, without entrants when they can not be read
        """
        controller = await self.get_controller(race_id)

        race = await Race.get_by_id(race_id)
        if race is None:
            raise MissingReference(f"Race {race_id} not found")

        category = await Category.get_by_id(race.category_id)  # type: ignore[attr-defined]
        if category is None:
            raise MissingReference(f"Category of race {race_id} not found")

        async def _details(run: EntrantRun) -> EntrantDetails:
            pair_id = run.pair_id  # type: ignore[attr-defined]
            pair, laps = await asyncio.gather(
                Pair.get_by_id(pair_id) if pair_id is not None else _none(),
                Lap.filter(run_id=run.id).order_by("lap_index"),
            )
            return EntrantDetails(
                run=EntrantRunModel.model_validate(run, from_attributes=True),
                pair=(
                    None
                    if pair is None
                    else PairModel.model_validate(pair, from_attributes=True)
                ),
                laps=[LapModel.model_validate(lap, from_attributes=True) for lap in laps],
            )

        try:
            runs = await EntrantRun.filter(race_id=race_id).order_by("sequence_index")
            entrants = list(await asyncio.gather(*(_details(run) for run in runs)))
        except _STORAGE_ERRORS:
            logger.exception("Failed to read the entrants of race %s", race_id)
            entrants = []

        return RaceDetails(
            race=RaceModel.model_validate(race, from_attributes=True),
            category=CategoryModel.model_validate(category, from_attributes=True),
            entrants=entrants,
            live=RaceSnapshot.from_controller(controller),
        )


async def _none() -> None:
    return None

