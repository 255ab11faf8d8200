"""
Pytest default fixtures
"""

import asyncio
from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from tortoise import Tortoise, connections

from bullrace import ctx
from bullrace.database import Category, Pair
from bullrace.events.broker import EventBroker
from bullrace.race.enums import ApprovalStatus
from bullrace.race.manager import RaceControlManager
from bullrace.utils import background
from bullrace.webserver import generate_application


class FakeTime:
    """
    Controllable epoch millisecond time source
    """

    def __init__(self, start: float = 1_700_000_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, milliseconds: float) -> None:
        """
        Move time forward
        """
        self.now += milliseconds


@pytest.fixture(name="fake_time")
def _fake_time():
    return FakeTime()


@pytest_asyncio.fixture(name="race_control")
async def _race_control(fake_time: FakeTime):
    """
    Race control service driven by the fake time source
    """
    manager = RaceControlManager(time_source=fake_time)
    token = ctx.race_control_ctx.set(manager)

    yield manager

    manager.shutdown()
    ctx.race_control_ctx.reset(token)


@pytest_asyncio.fixture(autouse=True)
async def context_and_cleanup():
    """
    Setup and tear down the application context
    """

    ctx.loop_ctx.set(asyncio.get_running_loop())
    ctx.event_broker_ctx.set(EventBroker())
    ctx.race_control_ctx.set(RaceControlManager())

    yield

    await background.shutdown(5)


@pytest_asyncio.fixture(autouse=True)
async def database_init():
    """
    Establish the test database connection
    """

    await Tortoise.init(
        {
            "connections": {
                "race_db": {
                    "engine": "tortoise.backends.sqlite",
                    "credentials": {"file_path": ":memory:"},
                },
            },
            "apps": {
                "race": {
                    "models": ["bullrace.database"],
                    "default_connection": "race_db",
                },
            },
        }
    )
    await Tortoise.generate_schemas()

    yield

    await connections.close_all()


@pytest_asyncio.fixture(name="client")
async def _client(race_control: RaceControlManager):
    """
    Generate a client for the REST api
    """
    # pylint: disable=W0613

    transport = ASGITransport(app=generate_application(lifespan_enabled=False))
    async with AsyncClient(
        transport=transport, base_url="http://localhost/api"
    ) as client_:
        yield client_


@pytest_asyncio.fixture(name="basic_category")
async def _basic_category():
    return await Category.create(
        type="Seniors",
        race_date=date(2025, 1, 15),
        max_duration_sec=300,
        lap_distance_meters=100,
    )


async def _register(
    category: Category,
    name: str,
    *,
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED,
) -> Pair:
    """
    Register a pair to a category the way the api does
    """
    async with Pair.lock:
        sequence = await category.get_next_registration_sequence()
        return await Pair.create(
            display_name=name,
            owner1=f"{name} owner",
            contact="555-0100",
            category=category,
            approval_status=approval_status,
            registration_sequence=sequence,
        )


@pytest.fixture(name="register_pair")
def _register_pair():
    return _register


@pytest_asyncio.fixture(name="basic_pairs")
async def _basic_pairs(basic_category: Category):
    return [
        await _register(basic_category, "Thunder"),
        await _register(basic_category, "Lightning"),
        await _register(basic_category, "Storm"),
    ]
