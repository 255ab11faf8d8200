"""
HTTP Rest API Routes
"""

import logging

from starlette.routing import Route

from bullrace import ctx
from bullrace.database import Category, EntrantRun, Lap, Pair, Race
from bullrace.database.category import (
    CATEGORY_ADAPTER,
    CATEGORY_LIST_ADAPTER,
    CategoryCreateModel,
    CategoryUpdateModel,
)
from bullrace.database.lap import LAP_LIST_ADAPTER
from bullrace.database.pair import (
    PAIR_ADAPTER,
    PAIR_LIST_ADAPTER,
    PairCreateModel,
    PairStatusModel,
)
from bullrace.database.race import RACE_LIST_ADAPTER
from bullrace.events import EventSetupEvt
from bullrace.race.errors import InvalidTransition, MissingReference
from bullrace.race.leaderboard import (
    LEADERBOARD_ADAPTER,
    LeaderboardRow,
    get_historical_leaderboard,
    get_live_leaderboard,
)
from bullrace.race.manager import RaceDetails, RaceSnapshot, RunSnapshot
from bullrace.race.order import RaceOrder
from bullrace.webserver._wrapper import endpoint
from bullrace.webserver.validation import (
    CategoryFilterParams,
    DistanceRequest,
    FinishRequest,
    HistoryParams,
    LockRaceRequest,
    LookupParams,
)

logger = logging.getLogger(__name__)


async def _get_category(id_: int) -> Category:
    category = await Category.get_by_id(id_)
    if category is None:
        raise MissingReference(f"Category {id_} not found")

    return category


async def _get_pair(id_: int) -> Pair:
    pair = await Pair.get_by_id(id_)
    if pair is None:
        raise MissingReference(f"Pair {id_} not found")

    return pair


@endpoint(response_model=CATEGORY_LIST_ADAPTER, empty_on_read_error=True)
async def get_categories() -> list[Category]:
    """
    Get all categories ordered by race date
    """
    return await Category.all()


@endpoint(path_model=LookupParams, response_model=CATEGORY_ADAPTER)
async def get_category(path: LookupParams) -> Category:
    """
    Get the category by id
    """
    return await _get_category(path.id)


@endpoint(
    request_model=CategoryCreateModel, response_model=CATEGORY_ADAPTER, status_code=201
)
async def create_category(request: CategoryCreateModel) -> Category:
    """
    Create a category
    """
    category = await Category.create(**request.model_dump())

    logger.info("Category %s created", category.id)
    ctx.event_broker_ctx.get().trigger(
        EventSetupEvt.CATEGORY_ADD, {"category_id": category.id}
    )
    return category


@endpoint(
    path_model=LookupParams,
    request_model=CategoryUpdateModel,
    response_model=CATEGORY_ADAPTER,
)
async def update_category(path: LookupParams, request: CategoryUpdateModel) -> Category:
    """
    Update the provided fields of a category. The limits of a category
    can not change once its race has been locked.
    """
    category = await _get_category(path.id)
    changes = request.model_dump(exclude_unset=True)

    limits = {"max_duration_sec", "lap_distance_meters"}
    if limits.intersection(changes) and await Race.exists(category_id=category.id):
        raise InvalidTransition(
            f"Category {category.id} already has a race, its limits are fixed"
        )

    category.update_from_dict(changes)
    await category.save()

    ctx.event_broker_ctx.get().trigger(
        EventSetupEvt.CATEGORY_ALTER, {"category_id": category.id}
    )
    return category


@endpoint(path_model=LookupParams, status_code=204)
async def delete_category(path: LookupParams) -> None:
    """
    Delete a category along with its registrations

    A category that has been raced keeps its results and can not be deleted
    """
    category = await _get_category(path.id)

    if await Race.exists(category_id=category.id):
        raise InvalidTransition(f"Category {category.id} has race results")

    await category.delete()

    logger.info("Category %s deleted", path.id)
    ctx.event_broker_ctx.get().trigger(
        EventSetupEvt.CATEGORY_DELETE, {"category_id": path.id}
    )


@endpoint(
    path_model=LookupParams, response_model=PAIR_LIST_ADAPTER, empty_on_read_error=True
)
async def get_category_order(path: LookupParams) -> list[Pair]:
    """
    Get the approved pairs of a category in their default running order
    """
    await _get_category(path.id)
    pairs = await Pair.filter(category_id=path.id)

    by_id = {pair.id: pair for pair in pairs}
    return [by_id[pair_id] for pair_id in RaceOrder(pairs).pair_ids]


@endpoint(
    query_model=CategoryFilterParams,
    response_model=PAIR_LIST_ADAPTER,
    empty_on_read_error=True,
)
async def get_pairs(query: CategoryFilterParams) -> list[Pair]:
    """
    Get registered pairs, optionally limited to a category
    """
    if query.category_id is None:
        return await Pair.all().order_by("category_id", "registration_sequence")

    return await Pair.filter(category_id=query.category_id)


@endpoint(path_model=LookupParams, response_model=PAIR_ADAPTER)
async def get_pair(path: LookupParams) -> Pair:
    """
    Get the pair by id
    """
    return await _get_pair(path.id)


@endpoint(request_model=PairCreateModel, response_model=PAIR_ADAPTER, status_code=201)
async def create_pair(request: PairCreateModel) -> Pair:
    """
    Register a pair to a category
    """
    category = await _get_category(request.category_id)

    async with Pair.lock:
        sequence = await category.get_next_registration_sequence()
        pair = await Pair.create(
            **request.model_dump(exclude={"category_id"}),
            category=category,
            registration_sequence=sequence,
        )

    logger.info("Pair %s registered to category %s", pair.id, category.id)
    ctx.event_broker_ctx.get().trigger(
        EventSetupEvt.PAIR_ADD, {"pair_id": pair.id, "category_id": category.id}
    )
    return pair


@endpoint(
    path_model=LookupParams, request_model=PairStatusModel, response_model=PAIR_ADAPTER
)
async def set_pair_status(path: LookupParams, request: PairStatusModel) -> Pair:
    """
    Approve or reject a registration
    """
    pair = await _get_pair(path.id)
    pair.approval_status = request.approval_status
    await pair.save(update_fields=["approval_status", "modified_at"])

    logger.info("Pair %s is now %s", pair.id, pair.approval_status)
    ctx.event_broker_ctx.get().trigger(
        EventSetupEvt.PAIR_STATUS,
        {"pair_id": pair.id, "approval_status": str(pair.approval_status)},
    )
    return pair


@endpoint(response_model=RACE_LIST_ADAPTER, empty_on_read_error=True)
async def get_races() -> list[Race]:
    """
    Get all races, most recent first
    """
    return await Race.all()


@endpoint(request_model=LockRaceRequest, response_model=RaceSnapshot, status_code=201)
async def lock_race(request: LockRaceRequest) -> RaceSnapshot:
    """
    Fix the running order of a category and start its race
    """
    controller = await ctx.race_control_ctx.get().lock_race(
        request.category_id, request.pair_ids, shuffle=request.shuffle
    )
    return RaceSnapshot.from_controller(controller)


@endpoint(path_model=LookupParams, response_model=RaceSnapshot)
async def get_race(path: LookupParams) -> RaceSnapshot:
    """
    Get the live state of a race
    """
    controller = await ctx.race_control_ctx.get().get_controller(path.id)
    return RaceSnapshot.from_controller(controller)


@endpoint(path_model=LookupParams, response_model=RaceDetails)
async def get_race_details(path: LookupParams) -> RaceDetails:
    """
    Get a race with its category, entrants, pairs and laps
    """
    return await ctx.race_control_ctx.get().get_race_details(path.id)


async def _current_run(race_id: int) -> RunSnapshot:
    controller = await ctx.race_control_ctx.get().get_controller(race_id)

    current = controller.current
    if current is None:
        raise InvalidTransition(f"Race {race_id} has no entrants")

    return RunSnapshot.from_machine(current)


@endpoint(path_model=LookupParams, response_model=RunSnapshot)
async def begin_run(path: LookupParams) -> RunSnapshot:
    """
    Start the clock of the current entrant
    """
    await ctx.race_control_ctx.get().begin(path.id)
    return await _current_run(path.id)


@endpoint(path_model=LookupParams, response_model=RunSnapshot)
async def record_lap(path: LookupParams) -> RunSnapshot:
    """
    Record a full lap for the racing entrant
    """
    await ctx.race_control_ctx.get().record_lap(path.id)
    return await _current_run(path.id)


@endpoint(
    path_model=LookupParams, request_model=DistanceRequest, response_model=RunSnapshot
)
async def record_corrected_lap(path: LookupParams, request: DistanceRequest) -> RunSnapshot:
    """
    Record a lap with a measured distance for the racing entrant
    """
    await ctx.race_control_ctx.get().record_corrected_lap(
        path.id, request.meters, request.feet, request.inches
    )
    return await _current_run(path.id)


@endpoint(
    path_model=LookupParams, request_model=FinishRequest, response_model=RunSnapshot
)
async def finish_run(path: LookupParams, request: FinishRequest) -> RunSnapshot:
    """
    Stop the racing entrant's clock
    """
    await ctx.race_control_ctx.get().finish(path.id, request.elapsed_ms)
    return await _current_run(path.id)


@endpoint(
    path_model=LookupParams, request_model=DistanceRequest, response_model=RunSnapshot
)
async def confirm_final_lap(path: LookupParams, request: DistanceRequest) -> RunSnapshot:
    """
    Record the measured final lap and complete the racing entrant
    """
    await ctx.race_control_ctx.get().confirm_final_lap(
        path.id, request.meters, request.feet, request.inches
    )
    return await _current_run(path.id)


@endpoint(path_model=LookupParams, response_model=RaceSnapshot)
async def advance_race(path: LookupParams) -> RaceSnapshot:
    """
    Move the race to the next waiting entrant
    """
    controller = await ctx.race_control_ctx.get().advance(path.id)
    return RaceSnapshot.from_controller(controller)


@endpoint(path_model=LookupParams, response_model=RaceSnapshot)
async def complete_race(path: LookupParams) -> RaceSnapshot:
    """
    Close a race
    """
    controller = await ctx.race_control_ctx.get().complete_race(path.id)
    return RaceSnapshot.from_controller(controller)


@endpoint(
    path_model=LookupParams, response_model=LAP_LIST_ADAPTER, empty_on_read_error=True
)
async def get_run_laps(path: LookupParams) -> list[Lap]:
    """
    Get the stored laps of a run
    """
    if not await EntrantRun.exists(id=path.id):
        raise MissingReference(f"Run {path.id} not found")

    return await Lap.filter(run_id=path.id)


@endpoint(query_model=CategoryFilterParams, response_model=LEADERBOARD_ADAPTER)
async def get_leaderboard(query: CategoryFilterParams) -> list[LeaderboardRow]:
    """
    Get the live leaderboard
    """
    return await get_live_leaderboard(query.category_id)


@endpoint(query_model=HistoryParams, response_model=LEADERBOARD_ADAPTER)
async def get_history(query: HistoryParams) -> list[LeaderboardRow]:
    """
    Get the results of the races completed in a year
    """
    return await get_historical_leaderboard(query.year, query.category_id)


ROUTES = [
    Route("/categories", endpoint=get_categories, methods=["GET"]),
    Route("/categories", endpoint=create_category, methods=["POST"]),
    Route("/categories/{id:int}", endpoint=get_category, methods=["GET"]),
    Route("/categories/{id:int}", endpoint=update_category, methods=["PATCH"]),
    Route("/categories/{id:int}", endpoint=delete_category, methods=["DELETE"]),
    Route("/categories/{id:int}/order", endpoint=get_category_order, methods=["GET"]),
    Route("/pairs", endpoint=get_pairs, methods=["GET"]),
    Route("/pairs", endpoint=create_pair, methods=["POST"]),
    Route("/pairs/{id:int}", endpoint=get_pair, methods=["GET"]),
    Route("/pairs/{id:int}/status", endpoint=set_pair_status, methods=["PATCH"]),
    Route("/races", endpoint=get_races, methods=["GET"]),
    Route("/races", endpoint=lock_race, methods=["POST"]),
    Route("/races/{id:int}", endpoint=get_race, methods=["GET"]),
    Route("/races/{id:int}/details", endpoint=get_race_details, methods=["GET"]),
    Route("/races/{id:int}/begin", endpoint=begin_run, methods=["POST"]),
    Route("/races/{id:int}/lap", endpoint=record_lap, methods=["POST"]),
    Route(
        "/races/{id:int}/corrected-lap", endpoint=record_corrected_lap, methods=["POST"]
    ),
    Route("/races/{id:int}/finish", endpoint=finish_run, methods=["POST"]),
    Route("/races/{id:int}/confirm", endpoint=confirm_final_lap, methods=["POST"]),
    Route("/races/{id:int}/advance", endpoint=advance_race, methods=["POST"]),
    Route("/races/{id:int}/complete", endpoint=complete_race, methods=["POST"]),
    Route("/runs/{id:int}/laps", endpoint=get_run_laps, methods=["GET"]),
    Route("/leaderboard", endpoint=get_leaderboard, methods=["GET"]),
    Route("/history", endpoint=get_history, methods=["GET"]),
]
