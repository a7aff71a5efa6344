"""Base transport interface for carrying debug traffic between processes."""

from __future__ import annotations

import abc
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Generic, Literal, Optional, Tuple, TypeVar

from pydantic import BaseModel, Field

from ..constants import COMMANDS_TOPIC, EVENTS_TOPIC
from ..events import Command, Event, parse_command, parse_event

RawMessageT = TypeVar("RawMessageT")


def command_topic(session_id: str) -> str:
    return f"{session_id}.{COMMANDS_TOPIC}"


def event_topic(session_id: str) -> str:
    return f"{session_id}.{EVENTS_TOPIC}"


class Envelope(BaseModel):
    """Wire wrapper around one debug command or event."""

    session_id: str
    kind: Literal["command", "event"]
    body: Dict[str, Any]
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def for_command(cls, session_id: str, command: Command) -> "Envelope":
        return cls(session_id=session_id, kind="command", body=command.model_dump(mode="json"))

    @classmethod
    def for_event(cls, session_id: str, event: Event) -> "Envelope":
        return cls(session_id=session_id, kind="event", body=event.model_dump(mode="json"))

    def command(self) -> Command:
        return parse_command(self.body)

    def event(self) -> Event:
        return parse_event(self.body)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "Envelope":
        return cls.model_validate_json(data)


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Abstract base transport for message brokers."""

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    @abc.abstractmethod
    async def publish(self, topic: str, envelope: Envelope) -> None:
        """Send an envelope to a topic/queue."""
        raise NotImplementedError

    @abc.abstractmethod
    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, Envelope]]:
        """Yield raw transport message and envelope pairs.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep listening. If None, runs indefinitely.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Acknowledge successful processing."""
        raise NotImplementedError
