"""Redis transport for cross-process debug sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError

from ..constants import TOPIC_PREFIX
from .base import BaseTransport, Envelope

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport[str]):
    """Redis lists used as per-topic queues."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = None

    @staticmethod
    def queue_name(topic: str) -> str:
        return f"{TOPIC_PREFIX}:{topic}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, envelope: Envelope) -> None:
        """Push envelope onto the topic's Redis list."""
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self.queue_name(topic), envelope.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, Envelope]]:
        if not self._redis:
            await self.connect()

        queue_name = self.queue_name(topic)
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while lifespan is None or loop.time() - start_time < lifespan:
            result = await self._redis.brpop(queue_name, timeout=1)
            if not result:
                continue
            _, raw = result
            try:
                envelope = Envelope.from_json(raw)
            except ValidationError as e:
                logger.warning(f"Discarding invalid message on {queue_name}: {e}")
                continue
            yield raw, envelope

    async def ack(self, raw_message: str) -> None:
        """No-op acknowledgment for Redis transport (message already consumed)."""
        pass
