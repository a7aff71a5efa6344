"""In-memory transport for tests and single-process use."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from .base import BaseTransport, Envelope

POLL_INTERVAL = 0.01


class InMemoryTransport(BaseTransport[str]):
    """Simple in-process queues keyed by topic."""

    def __init__(self) -> None:
        self._queues: Dict[str, Deque[str]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def publish(self, topic: str, envelope: Envelope) -> None:
        """Publish envelope to in-memory queue."""
        async with self._lock:
            self._queues[topic].append(envelope.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, Envelope]]:
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while lifespan is None or loop.time() - start_time < lifespan:
            async with self._lock:
                raw = self._queues[topic].popleft() if self._queues[topic] else None
            if raw is None:
                await asyncio.sleep(POLL_INTERVAL)
                continue
            yield raw, Envelope.from_json(raw)

    async def ack(self, raw_message: str) -> None:
        """No-op acknowledgment for in-memory transport."""
        pass

    def pending(self, topic: str) -> int:
        return len(self._queues[topic])
