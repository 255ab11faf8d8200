"""
Webserver Websocket Connections
"""

import asyncio
import logging

from pydantic import UUID4, BaseModel, ValidationError
from starlette.routing import WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from bullrace import ctx
from bullrace.events import SpecialEvt

logger = logging.getLogger(__name__)


class WSEventData(BaseModel):
    """
    Class for validating websocket data
    """

    id: UUID4
    event_id: str
    data: dict


async def server_event_ws(websocket: WebSocket):
    """
    Stream server events to a client. Clients may send heartbeats,
    which are echoed back to every subscriber.
    """
    await websocket.accept()
    ctx.websocket_ctx.set(websocket)

    try:
        async with asyncio.TaskGroup() as tg:
            tg.create_task(_recieve_data())
            tg.create_task(_write_data())
    except* WebSocketDisconnect:
        logger.debug("Websocket client disconnected")
    finally:
        await websocket.close()


async def _recieve_data() -> None:
    """
    Handles recieved data over the websocket
    """
    websocket = ctx.websocket_ctx.get()
    while True:
        data = await websocket.receive_json()

        try:
            model = WSEventData.model_validate(data)
        except ValidationError:
            logger.debug("Error validating websocket data: %s", data)
            continue

        if model.event_id == SpecialEvt.HEARTBEAT.id:
            ctx.event_broker_ctx.get().publish(
                SpecialEvt.HEARTBEAT, model.data, uuid_=model.id
            )
        else:
            logger.debug("Route not available for websocket data")


async def _write_data() -> None:
    """
    Handles writing event data over the websocket
    """
    websocket = ctx.websocket_ctx.get()

    async for event in ctx.event_broker_ctx.get().subscribe():
        evt_data = WSEventData(id=event.uuid, event_id=event.evt.id, data=event.data)
        await websocket.send_text(evt_data.model_dump_json())


ROUTES = [
    WebSocketRoute("/ws/events", endpoint=server_event_ws),
]
