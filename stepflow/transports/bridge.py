"""Expose a debug session over a transport.

The session side runs a :class:`SessionBridge`; a remote operator publishes
command envelopes with :func:`send_command` and reads event envelopes with
:func:`watch_events`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

from pydantic import ValidationError

from ..channels import EventSubscription
from ..debugger import DebugController
from ..errors import ChannelClosedError
from ..events import Command, Event, SessionEnded
from .base import BaseTransport, Envelope, command_topic, event_topic

logger = logging.getLogger(__name__)


class SessionBridge:
    """Feed remote commands into a controller and forward its events out."""

    def __init__(self, controller: DebugController, transport: BaseTransport) -> None:
        self._controller = controller
        self._transport = transport

    @property
    def session_id(self) -> str:
        return self._controller.session.id

    async def serve_commands(self, lifespan: Optional[float] = None) -> None:
        """Deliver remote commands until the session ends or ``lifespan`` elapses."""
        topic = command_topic(self.session_id)
        async for raw, envelope in self._transport.subscribe(topic, lifespan=lifespan):
            await self._transport.ack(raw)
            if envelope.kind != "command" or envelope.session_id != self.session_id:
                logger.warning(f"Ignoring unexpected {envelope.kind} envelope on {topic}")
                continue
            try:
                command = envelope.command()
            except ValidationError as e:
                logger.warning(f"Ignoring invalid command for session {self.session_id}: {e}")
                continue
            try:
                self._controller.send(command)
            except ChannelClosedError:
                logger.info(f"Session {self.session_id} has ended; stop serving commands")
                return

    async def forward_events(self, subscription: Optional[EventSubscription] = None) -> None:
        """Publish every session event until the event stream closes."""
        topic = event_topic(self.session_id)
        async for event in subscription or self._controller.subscribe():
            await self._transport.publish(topic, Envelope.for_event(self.session_id, event))

    async def run(self, lifespan: Optional[float] = None) -> None:
        """Serve commands and forward events until the session ends."""
        # subscribe before yielding to the loop so no early event is missed
        forwarder = asyncio.create_task(self.forward_events(self._controller.subscribe()))
        server = asyncio.create_task(self.serve_commands(lifespan=lifespan))
        try:
            await forwarder
        finally:
            server.cancel()
            try:
                await server
            except asyncio.CancelledError:
                pass


async def send_command(transport: BaseTransport, session_id: str, command: Command) -> None:
    await transport.publish(command_topic(session_id), Envelope.for_command(session_id, command))


async def watch_events(
    transport: BaseTransport, session_id: str, lifespan: Optional[float] = None
) -> AsyncIterator[Event]:
    """Yield a remote session's events, ending after ``session_ended``."""
    async for raw, envelope in transport.subscribe(event_topic(session_id), lifespan=lifespan):
        await transport.ack(raw)
        try:
            event = envelope.event()
        except ValidationError as e:
            logger.warning(f"Ignoring invalid event for session {session_id}: {e}")
            continue
        yield event
        if isinstance(event, SessionEnded):
            return
