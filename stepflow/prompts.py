"""Human-input bridge for agent prompt steps.

Every request is identified by a correlation id. The executor opens the
prompt, announces it with a ``prompt_requested`` event and then waits; the
operator side answers with :meth:`PromptBridge.respond` exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from .errors import DuplicatePromptResponseError, PromptTimeoutError, UnknownPromptError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingPrompt:
    prompt_id: str
    message: str


class PromptBridge:
    def __init__(self) -> None:
        self._futures: Dict[str, asyncio.Future] = {}
        self._messages: Dict[str, str] = {}
        self._answered: Set[str] = set()

    def open(self, prompt_id: str, message: str) -> None:
        """Register a prompt so that a response can be accepted for it."""
        if prompt_id in self._futures or prompt_id in self._answered:
            raise ValueError(f"Prompt id {prompt_id} is already in use")
        self._futures[prompt_id] = asyncio.get_running_loop().create_future()
        self._messages[prompt_id] = message

    async def wait(self, prompt_id: str, *, timeout: Optional[float]) -> str:
        """Wait for the response to an opened prompt.

        ``timeout`` must always be given; ``None`` waits without bound.

        Raises:
            UnknownPromptError: the prompt was never opened.
            PromptTimeoutError: no response arrived within ``timeout`` seconds.
        """
        future = self._futures.get(prompt_id)
        if future is None:
            raise UnknownPromptError(prompt_id)
        try:
            if timeout is None:
                return await future
            return await asyncio.wait_for(asyncio.shield(future), timeout)
        except asyncio.TimeoutError:
            raise PromptTimeoutError(prompt_id, timeout) from None
        finally:
            # the id is finished with; later responses are unknown
            self._futures.pop(prompt_id, None)
            self._messages.pop(prompt_id, None)
            self._answered.discard(prompt_id)

    async def ask(self, prompt_id: str, message: str, *, timeout: Optional[float]) -> str:
        self.open(prompt_id, message)
        return await self.wait(prompt_id, timeout=timeout)

    def respond(self, prompt_id: str, text: str) -> None:
        """Deliver the single response for ``prompt_id``.

        Raises:
            DuplicatePromptResponseError: the prompt was already answered and
                its waiter has not picked the answer up yet.
            UnknownPromptError: no prompt with this id is open.
        """
        if prompt_id in self._answered:
            raise DuplicatePromptResponseError(prompt_id)
        future = self._futures.get(prompt_id)
        if future is None or future.done():
            raise UnknownPromptError(prompt_id)
        self._answered.add(prompt_id)
        future.set_result(text)
        logger.info(f"Received response for prompt {prompt_id}")

    def pending(self) -> List[PendingPrompt]:
        return [
            PendingPrompt(prompt_id=prompt_id, message=self._messages.get(prompt_id, ""))
            for prompt_id, future in self._futures.items()
            if not future.done()
        ]
