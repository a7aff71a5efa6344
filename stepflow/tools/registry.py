"""Tool registry shared by tool-call steps and AI agents."""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic_ai import Tool
from pydantic_ai.messages import ToolCallPart

from ..errors import ToolInvocationError, ToolNotFoundError

logger = logging.getLogger(__name__)


class ToolInvoker(Protocol):
    """Contract used by the executor to run a named tool."""

    async def invoke(self, tool_name: str, arguments: Dict[str, Any]) -> str:
        """Run ``tool_name`` with ``arguments`` and return its textual result."""


def _as_text(result: Any) -> str:
    if isinstance(result, str):
        return result
    if result is None:
        return ""
    return json.dumps(result, default=str)


class ToolRegistry:
    """Name to tool mapping backed by :class:`pydantic_ai.Tool` objects.

    The same registry can be handed to a pydantic-ai agent through
    :meth:`as_pydantic_ai_tools`, so workflow steps and AI conversations see
    one tool set.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def add(self, tool: Tool) -> Tool:
        if tool.takes_ctx:
            raise ValueError(
                f"Tool '{tool.name}' requires a RunContext and cannot run from a workflow"
            )
        if tool.name in self._tools:
            logger.warning(f"Replacing registered tool '{tool.name}'")
        self._tools[tool.name] = tool
        return tool

    def register(
        self,
        function: Optional[Callable[..., Any]] = None,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Any:
        """Register ``function`` as a tool. Usable as a decorator."""

        def _register(func: Callable[..., Any]) -> Callable[..., Any]:
            self.add(Tool(func, takes_ctx=False, name=name, description=description))
            return func

        if function is None:
            return _register
        return _register(function)

    def get(self, tool_name: str) -> Optional[Tool]:
        return self._tools.get(tool_name)

    def names(self) -> List[str]:
        return sorted(self._tools)

    def as_pydantic_ai_tools(self) -> List[Tool]:
        return list(self._tools.values())

    async def invoke(self, tool_name: str, arguments: Dict[str, Any]) -> str:
        tool = self._tools.get(tool_name)
        if tool is None:
            raise ToolNotFoundError(tool_name)

        logger.info(f"Invoking tool '{tool_name}'")
        try:
            result = tool.function(**arguments)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise ToolInvocationError(tool_name, str(e)) from e
        return _as_text(result)

    async def invoke_call(self, call: ToolCallPart) -> str:
        """Run a finalized tool call produced by an AI provider."""
        return await self.invoke(call.tool_name, call.args_as_dict())
