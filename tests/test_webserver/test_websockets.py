"""
Test websocket access
"""

import asyncio
import uuid

import httpx_ws
import pytest
from httpx import AsyncClient
from httpx_ws.transport import ASGIWebSocketTransport

from bullrace.database import Category, Pair
from bullrace.events import RaceSequenceEvt, SpecialEvt
from bullrace.race.manager import RaceControlManager
from bullrace.webserver import generate_application
from bullrace.webserver.websockets import WSEventData


@pytest.mark.asyncio
async def test_server_websocket_heartbeat():
    """
    Heartbeats sent by a client are echoed back
    """
    payload = WSEventData(
        id=uuid.uuid4(), event_id=SpecialEvt.HEARTBEAT.id, data={"foo": "bar"}
    )

    transport = ASGIWebSocketTransport(app=generate_application(lifespan_enabled=False))
    async with AsyncClient(transport=transport, base_url="http://localhost") as client:
        async with httpx_ws.aconnect_ws("/ws/events", client) as ws:  # type: ignore
            await ws.send_text(payload.model_dump_json())

            async with asyncio.timeout(2):
                recieved = await ws.receive_json()
                assert isinstance(recieved, dict)

            assert WSEventData.model_validate(recieved) == payload


@pytest.mark.asyncio
async def test_server_websocket_race_events(
    race_control: RaceControlManager,
    basic_category: Category,
    basic_pairs: list[Pair],
):
    """
    Race actions are pushed to connected clients
    """
    # pylint: disable=W0613

    transport = ASGIWebSocketTransport(app=generate_application(lifespan_enabled=False))
    async with AsyncClient(transport=transport, base_url="http://localhost") as client:
        async with httpx_ws.aconnect_ws("/ws/events", client) as ws:  # type: ignore
            await asyncio.sleep(0.1)

            response = await client.post(
                "/api/races", json={"category_id": basic_category.id}
            )
            assert response.status_code == 201

            async with asyncio.timeout(2):
                recieved = WSEventData.model_validate(await ws.receive_json())

            assert recieved.event_id == RaceSequenceEvt.RACE_LOCK.id
            assert recieved.data["category_id"] == basic_category.id
            assert recieved.data["pair_ids"] == [pair.id for pair in basic_pairs]
