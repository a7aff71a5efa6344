"""Lifecycle events, debug events and debug commands.

All three sets are plain pydantic models tagged by ``type`` so they can cross
an in-process call, a local channel or a network boundary unchanged.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Event(BaseModel):
    """Base class for everything emitted by the executor or a debug session."""

    timestamp: datetime = Field(default_factory=_now)

    def to_json(self) -> str:
        return self.model_dump_json()


# ----------------------------------------------------------------------
# Executor lifecycle events


class WorkflowStarted(Event):
    type: Literal["workflow_started"] = "workflow_started"
    run_id: str
    workflow_id: str
    name: str
    parent_run_id: Optional[str] = None


class StepStarted(Event):
    type: Literal["step_started"] = "step_started"
    run_id: str
    workflow_id: str
    step_index: int
    step_id: str
    name: str


class StepSkipped(Event):
    type: Literal["step_skipped"] = "step_skipped"
    run_id: str
    workflow_id: str
    step_index: int
    step_id: str
    name: str
    condition: Optional[str] = None


class StepCompleted(Event):
    type: Literal["step_completed"] = "step_completed"
    run_id: str
    workflow_id: str
    step_index: int
    step_id: str
    name: str
    output: str


class StepFailed(Event):
    type: Literal["step_failed"] = "step_failed"
    run_id: str
    workflow_id: str
    step_index: int
    step_id: str
    name: str
    error: str


class PromptRequested(Event):
    type: Literal["prompt_requested"] = "prompt_requested"
    run_id: str
    workflow_id: str
    step_id: str
    prompt_id: str
    message: str


class WorkflowCompleted(Event):
    type: Literal["workflow_completed"] = "workflow_completed"
    run_id: str
    workflow_id: str
    name: str
    success: bool
    error: Optional[str] = None


class EngineErrorEvent(Event):
    type: Literal["engine_error"] = "engine_error"
    run_id: Optional[str] = None
    message: str


# ----------------------------------------------------------------------
# Debug session events


class SessionStarted(Event):
    type: Literal["session_started"] = "session_started"
    session_id: str
    workflow_name: str


class BreakpointHit(Event):
    type: Literal["breakpoint_hit"] = "breakpoint_hit"
    session_id: str
    step_index: int
    variables: Dict[str, Any] = Field(default_factory=dict)


class ExecutionPaused(Event):
    type: Literal["execution_paused"] = "execution_paused"
    session_id: str
    step_index: int


class ExecutionResumed(Event):
    type: Literal["execution_resumed"] = "execution_resumed"
    session_id: str
    step_index: int
    mode: Literal["continue", "step"] = "continue"


class VariableUpdated(Event):
    type: Literal["variable_updated"] = "variable_updated"
    session_id: str
    name: str
    value: Any = None


class BreakpointsChanged(Event):
    type: Literal["breakpoints_changed"] = "breakpoints_changed"
    session_id: str
    breakpoints: List[int] = Field(default_factory=list)


class SessionRestarted(Event):
    type: Literal["session_restarted"] = "session_restarted"
    session_id: str


class ExecutionCompleted(Event):
    type: Literal["execution_completed"] = "execution_completed"
    session_id: str


class ExecutionFailed(Event):
    type: Literal["execution_failed"] = "execution_failed"
    session_id: str
    step_index: int
    error: str


class SessionEnded(Event):
    type: Literal["session_ended"] = "session_ended"
    session_id: str
    state: str


AnyEvent = Annotated[
    Union[
        WorkflowStarted,
        StepStarted,
        StepSkipped,
        StepCompleted,
        StepFailed,
        PromptRequested,
        WorkflowCompleted,
        EngineErrorEvent,
        SessionStarted,
        BreakpointHit,
        ExecutionPaused,
        ExecutionResumed,
        VariableUpdated,
        BreakpointsChanged,
        SessionRestarted,
        ExecutionCompleted,
        ExecutionFailed,
        SessionEnded,
    ],
    Field(discriminator="type"),
]

EVENT_ADAPTER: TypeAdapter[AnyEvent] = TypeAdapter(AnyEvent)


def parse_event(data: Dict[str, Any] | str) -> Event:
    """Rebuild an event from its JSON text or dumped mapping."""
    if isinstance(data, str):
        return EVENT_ADAPTER.validate_json(data)
    return EVENT_ADAPTER.validate_python(data)


# ----------------------------------------------------------------------
# Debug commands


class Command(BaseModel):
    """Base class for operator commands sent into a debug session."""

    def to_json(self) -> str:
        return self.model_dump_json()


class StartCommand(Command):
    type: Literal["start"] = "start"


class PauseCommand(Command):
    type: Literal["pause"] = "pause"


class ResumeCommand(Command):
    type: Literal["resume"] = "resume"


class StepOverCommand(Command):
    type: Literal["step_over"] = "step_over"


class StepIntoCommand(Command):
    """Reserved for sub-workflow depth control; behaves like step over."""

    type: Literal["step_into"] = "step_into"


class StepOutCommand(Command):
    """Reserved for sub-workflow depth control; behaves like step over."""

    type: Literal["step_out"] = "step_out"


class StopCommand(Command):
    type: Literal["stop"] = "stop"


class SetBreakpointCommand(Command):
    type: Literal["set_breakpoint"] = "set_breakpoint"
    index: int = Field(ge=0)


class RemoveBreakpointCommand(Command):
    type: Literal["remove_breakpoint"] = "remove_breakpoint"
    index: int = Field(ge=0)


class SetVariableCommand(Command):
    type: Literal["set_variable"] = "set_variable"
    name: str
    value: Any = None


class RestartCommand(Command):
    type: Literal["restart"] = "restart"


STEP_COMMANDS = (StepOverCommand, StepIntoCommand, StepOutCommand)

AnyCommand = Annotated[
    Union[
        StartCommand,
        PauseCommand,
        ResumeCommand,
        StepOverCommand,
        StepIntoCommand,
        StepOutCommand,
        StopCommand,
        SetBreakpointCommand,
        RemoveBreakpointCommand,
        SetVariableCommand,
        RestartCommand,
    ],
    Field(discriminator="type"),
]

COMMAND_ADAPTER: TypeAdapter[AnyCommand] = TypeAdapter(AnyCommand)


def parse_command(data: Dict[str, Any] | str) -> Command:
    """Rebuild a command from its JSON text or dumped mapping."""
    if isinstance(data, str):
        return COMMAND_ADAPTER.validate_json(data)
    return COMMAND_ADAPTER.validate_python(data)
