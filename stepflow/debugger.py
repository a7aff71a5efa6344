"""Interactive debugging of workflow runs.

A :class:`DebugController` wraps one run in a command/event loop: operator
commands arrive on a :class:`~stepflow.channels.CommandChannel`, and the
executor's lifecycle events plus the debug events are fanned out on the
controller's :class:`~stepflow.channels.EventBroadcaster`. Commands are only
looked at between steps, so a step that has started always runs to its end.

:class:`DebugManager` keeps the registry of live sessions.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from .channels import CommandChannel, EventBroadcaster, EventSubscription
from .config import DebuggerConfig
from .errors import ChannelClosedError, EngineError, SessionNotFoundError
from .events import (
    STEP_COMMANDS,
    BreakpointHit,
    BreakpointsChanged,
    Command,
    EngineErrorEvent,
    Event,
    ExecutionCompleted,
    ExecutionFailed,
    ExecutionPaused,
    ExecutionResumed,
    PauseCommand,
    RemoveBreakpointCommand,
    RestartCommand,
    ResumeCommand,
    SessionEnded,
    SessionRestarted,
    SessionStarted,
    SetBreakpointCommand,
    SetVariableCommand,
    StartCommand,
    StepIntoCommand,
    StepOutCommand,
    StepOverCommand,
    StopCommand,
    VariableUpdated,
)
from .executor import StepExecution, StepStatus, WorkflowExecutor
from .models import Workflow

logger = logging.getLogger(__name__)


class ExecutionState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    PAUSED = "paused"
    STEP_BREAKPOINT = "step_breakpoint"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


SUSPENDED_STATES = (ExecutionState.PAUSED, ExecutionState.STEP_BREAKPOINT)


class DebugSession(BaseModel):
    """State of one debugged run.

    ``variables`` is the live context of the run; the executor mutates it in
    place while steps execute.
    """

    id: str
    workflow: Workflow
    arguments: Dict[str, Any] = Field(default_factory=dict)
    current_step: int = 0
    execution_state: ExecutionState = ExecutionState.NOT_STARTED
    failure_reason: Optional[str] = None
    breakpoints: Set[int] = Field(default_factory=set)
    variables: Dict[str, Any] = Field(default_factory=dict)
    initial_variables: Dict[str, Any] = Field(default_factory=dict)
    step_history: List[StepExecution] = Field(default_factory=list)
    breakpoint_snapshot: Optional[Dict[str, Any]] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def summary(self) -> str:
        completed = sum(1 for r in self.step_history if r.status is StepStatus.COMPLETED)
        failed = sum(1 for r in self.step_history if r.status is StepStatus.FAILED)
        return (
            f"Workflow: {self.workflow.name} | "
            f"Steps: {completed}/{len(self.workflow.steps)} | "
            f"Failed: {failed} | "
            f"State: {self.execution_state.value}"
        )

    def reset(self) -> None:
        """Return to the state before Start, keeping breakpoints."""
        self.current_step = 0
        self.execution_state = ExecutionState.NOT_STARTED
        self.failure_reason = None
        self.variables = copy.deepcopy(self.initial_variables)
        self.step_history = []
        self.breakpoint_snapshot = None
        self.start_time = None
        self.end_time = None


class DebugController:
    """Command/event loop driving a single :class:`DebugSession`."""

    def __init__(
        self,
        session: DebugSession,
        executor: WorkflowExecutor,
        buffer_size: int = 0,
    ) -> None:
        self.session = session
        self.commands: CommandChannel[Command] = CommandChannel()
        self.events = EventBroadcaster(buffer_size)
        self._executor = executor.bind(self.events)
        self._task: Optional[asyncio.Task] = None
        # step index allowed to run past its breakpoint once
        self._released: Optional[int] = None
        self._single_step = False

    @property
    def state(self) -> ExecutionState:
        return self.session.execution_state

    def launch(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self._loop(), name=f"debug-{self.session.id}")
        return self._task

    def send(self, command: Command) -> None:
        """Queue ``command`` for the loop.

        Raises:
            ChannelClosedError: the session has ended.
        """
        self.commands.send(command)

    def subscribe(self) -> EventSubscription:
        return self.events.subscribe()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def _emit(self, event: Event) -> None:
        self.events.publish(event)

    # ------------------------------------------------------------------
    # Loop

    async def _loop(self) -> None:
        session = self.session
        logger.info(f"Debug session {session.id} started for '{session.workflow.name}'")
        self._emit(SessionStarted(session_id=session.id, workflow_name=session.workflow.name))
        try:
            while session.execution_state is not ExecutionState.STOPPED:
                if session.execution_state is ExecutionState.RUNNING:
                    self._drain_commands()
                    if session.execution_state is ExecutionState.RUNNING:
                        await self._advance()
                else:
                    self._handle(await self.commands.receive())
        except Exception as e:
            logger.exception(f"Debug session {session.id} crashed")
            self._emit(EngineErrorEvent(run_id=session.id, message=str(e)))
            raise
        finally:
            self._finish()

    def _drain_commands(self) -> None:
        while self.session.execution_state is ExecutionState.RUNNING:
            command = self.commands.try_receive()
            if command is None:
                return
            self._handle(command)

    async def _advance(self) -> None:
        session = self.session
        index = session.current_step
        if index >= len(session.workflow.steps):
            session.execution_state = ExecutionState.COMPLETED
            session.end_time = datetime.now(timezone.utc)
            logger.info(f"Debug session {session.id} completed")
            self._emit(ExecutionCompleted(session_id=session.id))
            return

        if (index in session.breakpoints or self._single_step) and self._released != index:
            self._single_step = False
            session.execution_state = ExecutionState.STEP_BREAKPOINT
            session.breakpoint_snapshot = copy.deepcopy(session.variables)
            logger.info(f"Debug session {session.id} suspended before step {index}")
            self._emit(
                BreakpointHit(
                    session_id=session.id,
                    step_index=index,
                    variables=session.breakpoint_snapshot,
                )
            )
            return

        self._released = None
        try:
            record = await self._executor.run_step(
                session.workflow, index, session.variables, run_id=session.id
            )
        except EngineError as e:
            logger.error(f"Engine error in debug session {session.id}: {e}")
            self._emit(EngineErrorEvent(run_id=session.id, message=str(e)))
            self._fail(index, str(e))
            return

        session.step_history.append(record)
        if record.status is StepStatus.FAILED:
            self._fail(index, record.error or "step failed")
            return
        session.current_step = index + 1

    def _fail(self, index: int, reason: str) -> None:
        session = self.session
        session.execution_state = ExecutionState.FAILED
        session.failure_reason = reason
        session.end_time = datetime.now(timezone.utc)
        self._emit(ExecutionFailed(session_id=session.id, step_index=index, error=reason))

    def _finish(self) -> None:
        session = self.session
        session.execution_state = ExecutionState.STOPPED
        if session.end_time is None:
            session.end_time = datetime.now(timezone.utc)
        self.commands.close()
        logger.info(f"Debug session {session.id} ended")
        self._emit(SessionEnded(session_id=session.id, state=session.execution_state.value))
        self.events.close()

    # ------------------------------------------------------------------
    # Commands

    def _handle(self, command: Command) -> None:
        session = self.session
        state = session.execution_state

        if isinstance(command, StopCommand):
            session.execution_state = ExecutionState.STOPPED
        elif isinstance(command, StartCommand):
            if state is ExecutionState.NOT_STARTED:
                session.execution_state = ExecutionState.RUNNING
                session.start_time = datetime.now(timezone.utc)
            else:
                self._ignore(command)
        elif isinstance(command, PauseCommand):
            if state is ExecutionState.RUNNING:
                session.execution_state = ExecutionState.PAUSED
                self._emit(ExecutionPaused(session_id=session.id, step_index=session.current_step))
            else:
                self._ignore(command)
        elif isinstance(command, ResumeCommand):
            if state in SUSPENDED_STATES:
                self._resume(released=state is ExecutionState.STEP_BREAKPOINT, single_step=False)
            else:
                self._ignore(command)
        elif isinstance(command, STEP_COMMANDS):
            if state is ExecutionState.NOT_STARTED:
                session.start_time = datetime.now(timezone.utc)
                # a breakpoint on the first step still suspends before it
                self._resume(
                    released=session.current_step not in session.breakpoints, single_step=True
                )
            elif state in SUSPENDED_STATES:
                self._resume(released=True, single_step=True)
            else:
                self._ignore(command)
        elif isinstance(command, SetBreakpointCommand):
            if command.index >= len(session.workflow.steps):
                logger.warning(
                    f"Ignoring breakpoint at {command.index}: "
                    f"workflow has {len(session.workflow.steps)} steps"
                )
                return
            session.breakpoints.add(command.index)
            self._emit(
                BreakpointsChanged(session_id=session.id, breakpoints=sorted(session.breakpoints))
            )
        elif isinstance(command, RemoveBreakpointCommand):
            session.breakpoints.discard(command.index)
            self._emit(
                BreakpointsChanged(session_id=session.id, breakpoints=sorted(session.breakpoints))
            )
        elif isinstance(command, SetVariableCommand):
            session.variables[command.name] = command.value
            self._emit(
                VariableUpdated(session_id=session.id, name=command.name, value=command.value)
            )
        elif isinstance(command, RestartCommand):
            session.reset()
            self._released = None
            self._single_step = False
            logger.info(f"Debug session {session.id} restarted")
            self._emit(SessionRestarted(session_id=session.id))
        else:
            self._ignore(command)

    def _resume(self, *, released: bool, single_step: bool) -> None:
        session = self.session
        if released:
            self._released = session.current_step
        self._single_step = single_step
        session.execution_state = ExecutionState.RUNNING
        self._emit(
            ExecutionResumed(
                session_id=session.id,
                step_index=session.current_step,
                mode="step" if single_step else "continue",
            )
        )

    def _ignore(self, command: Command) -> None:
        logger.debug(
            f"Ignoring {getattr(command, 'type', type(command).__name__)} command "
            f"in state {self.session.execution_state.value}"
        )


class DebugManager:
    """Registry of debug sessions.

    The registry lock guards only structural operations; each session's loop
    owns its own state.
    """

    def __init__(
        self, executor: WorkflowExecutor, config: Optional[DebuggerConfig] = None
    ) -> None:
        self._executor = executor
        self._config = config or DebuggerConfig()
        self._controllers: Dict[str, DebugController] = {}
        self._lock = asyncio.Lock()
        self._active: Optional[str] = None
        self.events = EventBroadcaster()

    @property
    def active_session_id(self) -> Optional[str]:
        return self._active

    async def create_session(
        self,
        workflow: Workflow,
        arguments: Optional[Dict[str, Any]] = None,
        *,
        breakpoints: Optional[Set[int]] = None,
        session_id: Optional[str] = None,
    ) -> DebugSession:
        """Create a session and launch its loop, which waits for Start.

        Raises:
            WorkflowValidationError: the arguments are invalid.
        """
        variables = self._executor.build_context(workflow, arguments)
        session = DebugSession(
            id=session_id or str(uuid.uuid4()),
            workflow=workflow.model_copy(deep=True),
            arguments=dict(arguments or {}),
            breakpoints=set(breakpoints or ()),
            variables=variables,
            initial_variables=copy.deepcopy(variables),
        )
        controller = DebugController(
            session, self._executor, buffer_size=self._config.event_buffer_size
        )
        async with self._lock:
            if session.id in self._controllers:
                raise ValueError(f"Session {session.id} already exists")
            self._controllers[session.id] = controller
            self._active = session.id
        controller.launch()
        logger.info(f"Created debug session {session.id} for '{workflow.name}'")
        return session

    async def get_controller(self, session_id: str) -> DebugController:
        """Look up a session's controller.

        Raises:
            SessionNotFoundError: no session has this id. An ``engine_error``
                event is published on :attr:`events` as well.
        """
        async with self._lock:
            controller = self._controllers.get(session_id)
        if controller is None:
            error = SessionNotFoundError(session_id)
            logger.error(str(error))
            self.events.publish(EngineErrorEvent(run_id=session_id, message=str(error)))
            raise error
        return controller

    async def get_session(self, session_id: str) -> DebugSession:
        return (await self.get_controller(session_id)).session

    async def subscribe(self, session_id: str) -> EventSubscription:
        return (await self.get_controller(session_id)).subscribe()

    async def send_command(self, session_id: str, command: Command) -> None:
        controller = await self.get_controller(session_id)
        try:
            controller.send(command)
        except ChannelClosedError as e:
            self.events.publish(EngineErrorEvent(run_id=session_id, message=str(e)))
            raise

    async def start(self, session_id: str) -> None:
        await self.send_command(session_id, StartCommand())

    async def pause(self, session_id: str) -> None:
        await self.send_command(session_id, PauseCommand())

    async def resume(self, session_id: str) -> None:
        await self.send_command(session_id, ResumeCommand())

    async def step_over(self, session_id: str) -> None:
        await self.send_command(session_id, StepOverCommand())

    async def step_into(self, session_id: str) -> None:
        await self.send_command(session_id, StepIntoCommand())

    async def step_out(self, session_id: str) -> None:
        await self.send_command(session_id, StepOutCommand())

    async def stop(self, session_id: str) -> None:
        await self.send_command(session_id, StopCommand())

    async def set_breakpoint(self, session_id: str, index: int) -> None:
        await self.send_command(session_id, SetBreakpointCommand(index=index))

    async def remove_breakpoint(self, session_id: str, index: int) -> None:
        await self.send_command(session_id, RemoveBreakpointCommand(index=index))

    async def set_variable(self, session_id: str, name: str, value: Any) -> None:
        await self.send_command(session_id, SetVariableCommand(name=name, value=value))

    async def restart(self, session_id: str) -> None:
        await self.send_command(session_id, RestartCommand())

    async def drop_session(self, session_id: str) -> None:
        """Stop a session, wait for its loop to end and forget it."""
        controller = await self.get_controller(session_id)
        async with self._lock:
            self._controllers.pop(session_id, None)
            if self._active == session_id:
                self._active = None
        if not controller.commands.closed:
            controller.send(StopCommand())
        await controller.wait_closed()
        logger.info(f"Dropped debug session {session_id}")

    async def list_sessions(self) -> List[DebugSession]:
        async with self._lock:
            return [controller.session for controller in self._controllers.values()]

    async def get_step_history(self, session_id: str) -> List[StepExecution]:
        return list((await self.get_session(session_id)).step_history)

    async def get_variables(self, session_id: str) -> Dict[str, Any]:
        return dict((await self.get_session(session_id)).variables)

    async def get_execution_summary(self, session_id: str) -> str:
        return (await self.get_session(session_id)).summary()
