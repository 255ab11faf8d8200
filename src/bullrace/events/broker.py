"""
System event distribution to clients
"""

import asyncio
import bisect
import copy
import itertools
import logging
import uuid
from collections import defaultdict
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass, field
from functools import partial
from typing import Any, NamedTuple, Self

from bullrace.events.enums import EvtPriority, _ApplicationEvt
from bullrace.utils import background
from bullrace.utils.asyncio import ensure_async

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _QueuedEvtData:
    _counter = itertools.count()

    evt: _ApplicationEvt
    uuid: uuid.UUID
    data: dict

    _id: int = field(default_factory=partial(next, _counter))

    def __lt__(self, other: Self):
        return (self.evt.priority, self._id) < (other.evt.priority, other._id)


class _Callback(NamedTuple):
    priority: EvtPriority
    order: int
    callback: Callable
    default_kwargs: dict[str, Any]


class EventBroker:
    """
    Manages distributing server side events to connected clients and
    triggering server side event callbacks.
    """

    def __init__(self) -> None:
        self._connections: set[asyncio.PriorityQueue[_QueuedEvtData]] = set()
        self._callbacks: dict[str, list[_Callback]] = defaultdict(list)
        self._order = itertools.count()

    @property
    def subscriber_count(self) -> int:
        """The number of clients currently subscribed"""
        return len(self._connections)

    def publish(
        self,
        event: _ApplicationEvt,
        data: dict[str, Any],
        *,
        uuid_: uuid.UUID | None = None,
    ) -> None:
        """
        Push the event data to all subscribed clients

        :param event: Event type
        :param data: Event data
        :param uuid_: Message uuid, defaults to None
        """
        uid = uuid.uuid4() if uuid_ is None else uuid_

        payload = _QueuedEvtData(event, uid, data)
        for connection in self._connections:
            connection.put_nowait(payload)

    def trigger(
        self,
        event: _ApplicationEvt,
        data: dict[str, Any],
        *,
        uuid_: uuid.UUID | None = None,
    ) -> None:
        """
        Publishes data to all subscribed clients and schedules
        all registered callbacks for the event

        :param event: Event type
        :param data: Event data
        :param uuid_: Message uuid, defaults to None
        """
        self.publish(event, data, uuid_=uuid_)

        callbacks = copy.copy(self._callbacks[event.id])
        if callbacks:
            background.add_background_task(self._callback_runner, callbacks, data)

    async def _callback_runner(self, callbacks: list[_Callback], data: dict) -> None:
        """
        Run all provided callbacks sequentially

        :param callbacks: The list of callbacks to run
        :param data: The additional data to provide for each callback
        """
        for callback in callbacks:
            kwargs = callback.default_kwargs | data
            await ensure_async(callback.callback, **kwargs)

    def register_event_callback(
        self,
        event: _ApplicationEvt,
        callback: Callable,
        *,
        priority: EvtPriority = EvtPriority.LOWEST,
        default_kwargs: dict[str, Any] | None = None,
    ) -> None:
        """
        Register a callback to run when an event is triggered

        :param event: The event to register the callback against
        :param callback: The callback to run
        :param priority: The order in which the callback runs relative
        to other callbacks of the same event
        :param default_kwargs: Default key word arguments to use and/or include
        when the event is triggered
        """
        default_kwargs_ = {} if default_kwargs is None else default_kwargs

        bisect.insort_right(
            self._callbacks[event.id],
            _Callback(priority, next(self._order), callback, default_kwargs_),
        )

    def unregister_event_callback(
        self, event: _ApplicationEvt, callback: Callable
    ) -> None:
        """
        Unregister an event callback

        :param event: The event the callback was registered against
        :param callback: The callback to remove
        :raises RuntimeError: The callback was not registered
        """
        callbacks = self._callbacks[event.id]
        for callback_ in callbacks:
            if callback is callback_.callback:
                callbacks.remove(callback_)
                break
        else:
            raise RuntimeError("Callback not registered in system")

    async def subscribe(
        self,
    ) -> AsyncGenerator[_QueuedEvtData, None]:
        """
        Subscribe to recieve server events. Typically used for client connections

        :yield: Event data
        """
        connection: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self._connections.add(connection)
        logger.debug("Event subscriber added")
        try:
            while True:
                yield await connection.get()
        finally:
            self._connections.remove(connection)
            logger.debug("Event subscriber removed")
