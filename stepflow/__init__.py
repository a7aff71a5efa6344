"""Stepflow: declarative workflow execution with an interactive debugger."""

from .channels import CommandChannel, EventBroadcaster
from .config import StepflowConfig, load_config
from .debugger import DebugController, DebugManager, DebugSession, ExecutionState
from .executor import ExecutionOutcome, StepExecution, StepStatus, WorkflowExecutor
from .library import WorkflowLibrary
from .models import Workflow, WorkflowArgument
from .persistence import get_repository
from .plugins import InMemoryPluginHost
from .prompts import PromptBridge
from .resolver import resolve_structured, resolve_text
from .tools import ToolCallAssembler, ToolRegistry
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "CommandChannel",
    "DebugController",
    "DebugManager",
    "DebugSession",
    "EventBroadcaster",
    "ExecutionOutcome",
    "ExecutionState",
    "InMemoryPluginHost",
    "PromptBridge",
    "StepExecution",
    "StepStatus",
    "StepflowConfig",
    "ToolCallAssembler",
    "ToolRegistry",
    "Workflow",
    "WorkflowArgument",
    "WorkflowExecutor",
    "WorkflowLibrary",
    "get_repository",
    "get_transport",
    "load_config",
    "resolve_structured",
    "resolve_text",
]
