"""
Webserver Components
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable, Coroutine
from typing import TypedDict

from hypercorn.asyncio import serve
from hypercorn.config import Config
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.routing import Mount
from tortoise import Tortoise, connections

from bullrace import ctx
from bullrace.events import EventBroker, SpecialEvt
from bullrace.race.manager import RaceControlManager
from bullrace.utils import background
from bullrace.utils.config import DEFAULT_CONFIG_FILE
from bullrace.webserver._wrapper import error_response
from bullrace.webserver.routes import ROUTES as http_routes
from bullrace.webserver.websockets import ROUTES as ws_routes

logger = logging.getLogger(__name__)

DATABASE_MODELS = ["bullrace.database"]


class ContextState(TypedDict):
    """
    Context payload
    """

    loop: asyncio.AbstractEventLoop
    event: EventBroker
    race_control: RaceControlManager


class ContextMiddleware:
    """
    Middleware for propagating context into the application
    """

    # pylint: disable=R0903

    def __init__(self, app) -> None:
        self.app = app

    async def __call__(self, scope, receive, send) -> None:
        state = scope.get("state")
        if scope["type"] not in ("http", "websocket") or not state:
            # Without a lifespan state the caller provides the context
            return await self.app(scope, receive, send)

        loop_token = ctx.loop_ctx.set(state["loop"])
        event_token = ctx.event_broker_ctx.set(state["event"])
        race_control_token = ctx.race_control_ctx.set(state["race_control"])

        try:
            await self.app(scope, receive, send)

        finally:
            ctx.loop_ctx.reset(loop_token)
            ctx.event_broker_ctx.reset(event_token)
            ctx.race_control_ctx.reset(race_control_token)


async def _http_exception(_request: Request, ex: Exception):
    assert isinstance(ex, HTTPException)
    return error_response(ex.status_code, ex.detail)


async def _server_error(request: Request, ex: Exception):
    logger.error("Unhandled error for %s", request.url.path, exc_info=ex)
    return error_response(500, "Internal server error")


def generate_application(*, lifespan_enabled: bool = True) -> Starlette:
    """
    Generates the BullRace application. The REST api is mounted to
    `/api` and the event websocket to `/ws/events`

    :param lifespan_enabled: Whether the application manages its own
    startup and shutdown
    :return: The starlette application object
    """
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "PATCH", "DELETE"],
            allow_headers=["*"],
        ),
        Middleware(ContextMiddleware),
    ]

    routes = [
        Mount(path="/api", routes=http_routes, name="api"),
        *ws_routes,
    ]

    return Starlette(
        routes=routes,
        lifespan=lifespan if lifespan_enabled else None,
        middleware=middleware,
        exception_handlers={
            HTTPException: _http_exception,
            Exception: _server_error,
        },
    )


def generate_webserver_coroutine(
    app: Starlette, shutdown_trigger: Callable | None = None
) -> Coroutine[None, None, None]:
    """
    An awaitable task for the application deployed with a hypercorn ASGI server.

    This task is configured by reading parameters from the bullrace config file

    :param app: Application to use for the webserver
    :return: Webserver coroutine
    """
    configs = ctx.config_ctx.get()
    webserver_config = Config()

    host = configs.webserver.host
    port = configs.webserver.http_port
    webserver_config.bind = [f"{host}:{port}"]

    return serve(app, webserver_config, shutdown_trigger=shutdown_trigger)  # type: ignore


@contextlib.asynccontextmanager
async def lifespan(_app: Starlette):
    """
    Startup and shutdown procedures for the webserver

    :param _app: The application
    """

    logger.info("Starting BullRace...")

    state = ContextState(
        loop=asyncio.get_running_loop(),
        event=EventBroker(),
        race_control=RaceControlManager(),
    )

    await server_startup_workflow(state)
    logger.info("BullRace startup completed...")

    yield state

    logger.info("Stopping BullRace...")
    await server_shutdown_workflow(state)
    logger.info("BullRace shutdown completed...")


async def server_startup_workflow(state: ContextState) -> None:
    """
    Startup workflow
    """
    if not DEFAULT_CONFIG_FILE.exists():
        logger.info("Writing default config to %s", DEFAULT_CONFIG_FILE)
        await ctx.config_ctx.get().write_config_to_file_async(DEFAULT_CONFIG_FILE)

    await database_startup()

    loop_token = ctx.loop_ctx.set(state["loop"])
    try:
        state["event"].trigger(SpecialEvt.STARTUP, {})
    finally:
        ctx.loop_ctx.reset(loop_token)


async def server_shutdown_workflow(state: ContextState) -> None:
    """
    Shutdown workflow
    """
    loop_token = ctx.loop_ctx.set(state["loop"])
    try:
        state["event"].trigger(SpecialEvt.SHUTDOWN, {})
        state["race_control"].shutdown()
        await background.shutdown(5)
    finally:
        ctx.loop_ctx.reset(loop_token)

    await database_shutdown()


async def database_startup() -> None:
    """
    Initialize the database
    """
    await Tortoise.init(
        {
            "connections": {"race_db": ctx.config_ctx.get().database.model_dump()},
            "apps": {
                "race": {
                    "models": DATABASE_MODELS,
                    "default_connection": "race_db",
                },
            },
        }
    )

    await Tortoise.generate_schemas(True)

    logger.debug("Database started, %s", json.dumps(tuple(Tortoise.apps)))


async def database_shutdown() -> None:
    """
    Shutdown the database
    """
    await connections.close_all()

    logger.debug("Database shutdown")
