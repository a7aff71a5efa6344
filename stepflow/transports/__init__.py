"""Transport factory and initialization."""

from __future__ import annotations

from typing import Optional

from ..config import StepflowConfig
from .base import BaseTransport, Envelope, command_topic, event_topic
from .inmemory import InMemoryTransport


def get_transport(
    backend: Optional[str] = None, config: Optional[StepflowConfig] = None
) -> BaseTransport:
    """Build the transport named by ``backend`` or by ``config``."""

    config = config or StepflowConfig()
    backend = (backend or config.transport.backend).lower()

    if backend == "inmemory":
        return InMemoryTransport()
    elif backend == "redis":
        from .redis import RedisTransport

        redis_conf = config.transport.redis
        return RedisTransport(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
        )
    else:
        raise ValueError(f"Unsupported transport backend: {backend}")


__all__ = [
    "BaseTransport",
    "Envelope",
    "InMemoryTransport",
    "command_topic",
    "event_topic",
    "get_transport",
]
