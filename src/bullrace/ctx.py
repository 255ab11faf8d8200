"""
Application context managment
"""

from __future__ import annotations

from asyncio import AbstractEventLoop
from contextvars import ContextVar
from typing import TYPE_CHECKING

from starlette.requests import Request
from starlette.websockets import WebSocket

from bullrace.utils.config import DEFAULT_CONFIG_FILE, BullRaceConfig

if TYPE_CHECKING:
    from bullrace.events.broker import EventBroker
    from bullrace.race.manager import RaceControlManager


loop_ctx: ContextVar[AbstractEventLoop] = ContextVar("loop_ctx")
config_ctx: ContextVar[BullRaceConfig] = ContextVar(
    "config_ctx", default=BullRaceConfig.from_file(DEFAULT_CONFIG_FILE)
)

event_broker_ctx: ContextVar[EventBroker] = ContextVar("event_broker_ctx")
race_control_ctx: ContextVar[RaceControlManager] = ContextVar("race_control_ctx")

request_ctx: ContextVar[Request] = ContextVar("request_ctx")
websocket_ctx: ContextVar[WebSocket] = ContextVar("websocket_ctx")
