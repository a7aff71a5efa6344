"""In-process channels used by execution and debug sessions.

Commands travel into a session through a :class:`CommandChannel` (many
producers, one consumer). Events travel out through an
:class:`EventBroadcaster` (one producer, many consumers). The two are separate
so a slow observer never holds up command delivery.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Generic, List, Optional, Tuple, Type, TypeVar, Union

from .errors import ChannelClosedError
from .events import Event

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=Event)

_CLOSED = object()


def _kind(event: Event) -> str:
    return getattr(event, "type", type(event).__name__)


class CommandChannel(Generic[T]):
    """Ordered queue with a single consumer."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, item: T) -> None:
        """Enqueue ``item``. Never blocks."""
        if self._closed:
            raise ChannelClosedError("Command channel is closed")
        self._queue.put_nowait(item)

    async def receive(self) -> T:
        """Wait for the next item."""
        return await self._queue.get()

    def try_receive(self) -> Optional[T]:
        """Return the next item if one is already queued."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close(self) -> None:
        self._closed = True


class EventSubscription:
    """A single observer's view of an :class:`EventBroadcaster`."""

    def __init__(self, broadcaster: "EventBroadcaster", maxsize: int = 0) -> None:
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._finished = False

    def _offer(self, item: object) -> bool:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            return False
        return True

    def _finish(self) -> None:
        if self._queue.full():
            # make room for the end marker; the oldest event is lost
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Event]:
        while True:
            event = await self.next()
            if event is None:
                return
            yield event

    async def next(self) -> Optional[Event]:
        """Return the next event, or ``None`` once the stream has ended."""
        if self._finished:
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            return None
        return item

    async def wait_for(
        self,
        kind: Union[Type[E], Tuple[Type[Event], ...]],
        timeout: Optional[float] = None,
    ) -> E:
        """Consume events until one of type ``kind`` arrives.

        Raises:
            asyncio.TimeoutError: ``timeout`` elapsed first.
            ChannelClosedError: the stream ended first.
        """

        async def _scan() -> E:
            while True:
                event = await self.next()
                if event is None:
                    raise ChannelClosedError("Event stream closed")
                if isinstance(event, kind):
                    return event

        return await asyncio.wait_for(_scan(), timeout)

    async def collect(self) -> List[Event]:
        """Drain the stream until it is closed."""
        return [event async for event in self]

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)


class EventBroadcaster:
    """Fan-out of events to every current subscriber.

    Publishing never blocks and never raises: an event with no listener, or
    one that does not fit a subscriber's bounded buffer, is dropped and logged.
    """

    def __init__(self, buffer_size: int = 0) -> None:
        self._buffer_size = buffer_size
        self._subscribers: List[EventSubscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> EventSubscription:
        subscription = EventSubscription(self, maxsize=self._buffer_size)
        if self._closed:
            subscription._finish()
        else:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: EventSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            subscription._finish()

    def publish(self, event: Event) -> None:
        if self._closed:
            logger.debug(f"Dropping {_kind(event)} event: broadcaster closed")
            return
        if not self._subscribers:
            logger.debug(f"Dropping {_kind(event)} event: no listeners")
            return
        for subscription in list(self._subscribers):
            if not subscription._offer(event):
                logger.warning(f"Dropping {_kind(event)} event: subscriber buffer full")

    def close(self) -> None:
        """End every subscription. Later events are dropped."""
        self._closed = True
        subscribers, self._subscribers = self._subscribers, []
        for subscription in subscribers:
            subscription._finish()
