"""Assembly of streamed tool calls.

AI providers stream a tool call as a series of partial updates keyed by the
call's position in the response: the call id and tool name usually arrive
first, the JSON arguments arrive as text fragments. Fragments are only
appended while streaming; the arguments are parsed once, when the provider
signals that the calls are complete.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic_ai.messages import ToolCallPart

from ..errors import ToolCallAssemblyError


@dataclass
class PendingToolCall:
    index: int
    call_id: Optional[str] = None
    name: str = ""
    arguments_text: str = ""


class ToolCallAssembler:
    """Accumulate tool-call deltas and finalize them into tool call parts."""

    def __init__(self) -> None:
        self._calls: Dict[int, PendingToolCall] = {}
        self._finalized = False

    def apply_delta(
        self,
        index: int,
        *,
        call_id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Optional[str] = None,
    ) -> PendingToolCall:
        if self._finalized:
            raise ToolCallAssemblyError("Tool calls were already finalized")
        call = self._calls.setdefault(index, PendingToolCall(index=index))
        if call_id:
            call.call_id = call_id
        if name:
            call.name += name
        if arguments:
            call.arguments_text += arguments
        return call

    @property
    def pending(self) -> List[PendingToolCall]:
        return [self._calls[i] for i in sorted(self._calls)]

    def finalize(self) -> List[ToolCallPart]:
        """Parse every accumulated call, in stream order."""
        self._finalized = True
        parts = []
        for call in self.pending:
            if not call.name:
                raise ToolCallAssemblyError(f"Tool call at index {call.index} has no name")
            text = call.arguments_text.strip() or "{}"
            try:
                arguments = json.loads(text)
            except json.JSONDecodeError as e:
                raise ToolCallAssemblyError(
                    f"Tool call '{call.name}' has invalid arguments: {e}"
                ) from e
            if not isinstance(arguments, dict):
                raise ToolCallAssemblyError(
                    f"Tool call '{call.name}' arguments must be a JSON object"
                )
            if call.call_id:
                parts.append(
                    ToolCallPart(tool_name=call.name, args=arguments, tool_call_id=call.call_id)
                )
            else:
                parts.append(ToolCallPart(tool_name=call.name, args=arguments))
        return parts
