from .assembly import PendingToolCall, ToolCallAssembler
from .registry import ToolInvoker, ToolRegistry

__all__ = [
    "PendingToolCall",
    "ToolCallAssembler",
    "ToolInvoker",
    "ToolRegistry",
]
