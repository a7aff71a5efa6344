"""Step execution engine.

A run processes the steps of one workflow strictly in declaration order and
stops at the first failing step. Every processed step produces a
:class:`StepExecution` record holding a snapshot of the variables as they
were before the step ran.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import re
import shlex
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .channels import EventBroadcaster
from .config import ExecutorConfig
from .errors import (
    ArgumentError,
    CommandFailedError,
    EngineError,
    OutputFormatError,
    StepError,
    StepTimeoutError,
    SubWorkflowError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from .events import (
    EngineErrorEvent,
    Event,
    PromptRequested,
    StepCompleted,
    StepFailed,
    StepSkipped,
    StepStarted,
    WorkflowCompleted,
    WorkflowStarted,
)
from .library import WorkflowLibrary
from .models import (
    AgentPromptStep,
    CommandStep,
    OutputFormat,
    PluginActionStep,
    SubWorkflowStep,
    ToolCallStep,
    Workflow,
    WorkflowStep,
)
from .persistence import RunRepository
from .plugins import InMemoryPluginHost, PluginHost
from .process import AsyncioProcessRunner, ProcessRunner, collect_output
from .prompts import PromptBridge
from .resolver import evaluate_condition, resolve_mapping, resolve_structured, resolve_text
from .tools import ToolInvoker, ToolRegistry
from .utils.retry import schedule_retry

logger = logging.getLogger(__name__)

Context = Dict[str, Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepExecution(BaseModel):
    """What happened to one step, plus the variables it started from."""

    step_index: int
    step_id: str
    step_name: str
    start_time: datetime = Field(default_factory=_now)
    end_time: Optional[datetime] = None
    status: StepStatus = StepStatus.PENDING
    output: Optional[str] = None
    error: Optional[str] = None
    variables_snapshot: Dict[str, Any] = Field(default_factory=dict)


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ExecutionOutcome(BaseModel):
    run_id: str
    workflow_id: str
    status: RunStatus
    variables: Dict[str, Any] = Field(default_factory=dict)
    history: List[StepExecution] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.SUCCEEDED


class WorkflowExecutor:
    """Runs workflows against a set of external collaborators.

    The executor itself is stateless between runs: each run owns its own
    variable context, so one executor can serve many concurrent runs.
    """

    def __init__(
        self,
        *,
        config: Optional[ExecutorConfig] = None,
        process_runner: Optional[ProcessRunner] = None,
        tools: Optional[ToolInvoker] = None,
        prompts: Optional[PromptBridge] = None,
        plugins: Optional[PluginHost] = None,
        library: Optional[WorkflowLibrary] = None,
        events: Optional[EventBroadcaster] = None,
        repository: Optional[RunRepository] = None,
    ) -> None:
        self._config = config or ExecutorConfig()
        self._runner = process_runner or AsyncioProcessRunner()
        self._tools = tools or ToolRegistry()
        self._prompts = prompts or PromptBridge()
        self._plugins = plugins or InMemoryPluginHost()
        self._library = library or WorkflowLibrary()
        self._events = events or EventBroadcaster()
        self._repository = repository

    @property
    def events(self) -> EventBroadcaster:
        return self._events

    @property
    def prompts(self) -> PromptBridge:
        return self._prompts

    @property
    def library(self) -> WorkflowLibrary:
        return self._library

    def bind(self, events: EventBroadcaster) -> "WorkflowExecutor":
        """Return a copy that publishes to ``events`` and persists nothing.

        Debug sessions use this to get an executor of their own.
        """
        bound = copy.copy(self)
        bound._events = events
        bound._repository = None
        return bound

    def _emit(self, event: Event) -> None:
        self._events.publish(event)

    # ------------------------------------------------------------------
    # Context

    def build_context(
        self, workflow: Workflow, arguments: Optional[Dict[str, Any]] = None
    ) -> Context:
        """Seed the variables of a run from argument defaults and supplied values.

        Raises:
            ArgumentError: a required argument has no value, or a value does
                not fit its declared type.
        """
        supplied = dict(arguments or {})
        context: Context = {}
        for argument in workflow.arguments:
            if argument.name in supplied:
                value = argument.coerce(supplied.pop(argument.name))
            elif argument.default_value is not None:
                value = argument.coerce(argument.default_value)
            elif argument.required:
                raise ArgumentError(argument.name, "a value is required")
            else:
                continue
            context[argument.name] = value
        # undeclared values pass through untouched
        context.update(supplied)
        return context

    # ------------------------------------------------------------------
    # Runs

    async def run(
        self,
        workflow: Workflow,
        arguments: Optional[Dict[str, Any]] = None,
        *,
        run_id: Optional[str] = None,
        parent_run_id: Optional[str] = None,
        depth: int = 0,
    ) -> ExecutionOutcome:
        """Run ``workflow`` to completion or to its first failing step.

        Raises:
            WorkflowValidationError: the arguments are invalid; nothing ran.
        """
        context = self.build_context(workflow, arguments)
        run_id = run_id or str(uuid.uuid4())
        deadline = self.deadline_for(workflow)

        logger.info(f"Starting workflow '{workflow.name}' (run {run_id})")
        self._emit(
            WorkflowStarted(
                run_id=run_id,
                workflow_id=workflow.id,
                name=workflow.name,
                parent_run_id=parent_run_id,
            )
        )

        history: List[StepExecution] = []
        error: Optional[str] = None
        try:
            if self._repository is not None:
                await self._repository.create_run(
                    run_id, workflow.id, workflow.name, context, parent_run_id
                )
            for index in range(len(workflow.steps)):
                record = await self.run_step(
                    workflow, index, context, run_id=run_id, deadline=deadline, depth=depth
                )
                history.append(record)
                if record.status is StepStatus.FAILED:
                    error = record.error
                    break

            status = RunStatus.FAILED if error is not None else RunStatus.SUCCEEDED
            if self._repository is not None:
                await self._repository.update_variables(run_id, context)
                await self._repository.mark_run_completed(run_id, status.value, error)
        except Exception as e:
            logger.exception(f"Engine failure in run {run_id}")
            self._emit(EngineErrorEvent(run_id=run_id, message=str(e)))
            raise

        if status is RunStatus.SUCCEEDED:
            logger.info(f"Workflow '{workflow.name}' succeeded (run {run_id})")
        else:
            logger.info(f"Workflow '{workflow.name}' failed (run {run_id}): {error}")
        self._emit(
            WorkflowCompleted(
                run_id=run_id,
                workflow_id=workflow.id,
                name=workflow.name,
                success=status is RunStatus.SUCCEEDED,
                error=error,
            )
        )
        return ExecutionOutcome(
            run_id=run_id,
            workflow_id=workflow.id,
            status=status,
            variables=dict(context),
            history=history,
            error=error,
        )

    def deadline_for(self, workflow: Workflow) -> Optional[float]:
        """Event-loop time by which ``workflow`` must finish, if it has a timeout."""
        if workflow.timeout is None:
            return None
        return asyncio.get_running_loop().time() + workflow.timeout

    async def run_step(
        self,
        workflow: Workflow,
        index: int,
        context: Context,
        *,
        run_id: str,
        deadline: Optional[float] = None,
        depth: int = 0,
    ) -> StepExecution:
        """Process step ``index`` against ``context`` and return its record.

        Step failures are reported in the record and as a ``step_failed``
        event. Only engine errors propagate.
        """
        step = workflow.steps[index]
        record = StepExecution(
            step_index=index,
            step_id=step.id,
            step_name=step.name,
            status=StepStatus.RUNNING,
            variables_snapshot=copy.deepcopy(context),
        )
        identity = dict(
            run_id=run_id,
            workflow_id=workflow.id,
            step_index=index,
            step_id=step.id,
            name=step.name,
        )

        logger.info(f"Step {index} '{step.name}' started (run {run_id})")
        self._emit(StepStarted(**identity))
        if self._repository is not None:
            await self._repository.mark_step_started(run_id, index, step.id, step.name)

        try:
            if not evaluate_condition(step.condition, context):
                record.status = StepStatus.SKIPPED
            else:
                record.output = await self._execute_with_retries(
                    workflow, step, context, run_id=run_id, deadline=deadline, depth=depth
                )
                record.status = StepStatus.COMPLETED
        except StepError as e:
            record.status = StepStatus.FAILED
            record.error = str(e)
        except EngineError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in step '{step.name}'")
            record.status = StepStatus.FAILED
            record.error = f"{type(e).__name__}: {e}"
        record.end_time = _now()

        if record.status is StepStatus.SKIPPED:
            logger.info(
                f"Step {index} '{step.name}' skipped: condition '{step.condition}' is false"
            )
            self._emit(StepSkipped(condition=step.condition, **identity))
        elif record.status is StepStatus.COMPLETED:
            logger.info(f"Step {index} '{step.name}' completed")
            self._emit(StepCompleted(output=record.output or "", **identity))
        else:
            logger.info(f"Step {index} '{step.name}' failed: {record.error}")
            self._emit(StepFailed(error=record.error or "", **identity))

        if self._repository is not None:
            await self._repository.mark_step_completed(
                run_id, index, record.status.value, output=record.output, error=record.error
            )
        return record

    # ------------------------------------------------------------------
    # Dispatch

    async def _execute_with_retries(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        context: Context,
        *,
        run_id: str,
        deadline: Optional[float],
        depth: int,
    ) -> str:
        attempts = step.retry_count + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self._execute_once(
                    workflow, step, context, run_id=run_id, deadline=deadline, depth=depth
                )
            except StepError as e:
                if attempt >= attempts:
                    raise
                logger.warning(
                    f"Step '{step.name}' failed: {e}; retrying ({attempt}/{step.retry_count})"
                )
                await schedule_retry(
                    attempt, self._config.retry_backoff_base, self._config.retry_backoff_jitter
                )
        raise AssertionError("unreachable")

    def _step_timeout(
        self, workflow: Workflow, step: WorkflowStep, deadline: Optional[float]
    ) -> Optional[float]:
        timeout = step.timeout
        if timeout is None and isinstance(step, AgentPromptStep):
            timeout = self._config.prompt_timeout
        if deadline is None:
            return timeout
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise StepTimeoutError(step.name, workflow.timeout or 0)
        return remaining if timeout is None else min(timeout, remaining)

    async def _execute_once(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        context: Context,
        *,
        run_id: str,
        deadline: Optional[float],
        depth: int,
    ) -> str:
        timeout = self._step_timeout(workflow, step, deadline)
        if isinstance(step, AgentPromptStep):
            output = await self._run_prompt(workflow, step, context, run_id, timeout)
        else:
            dispatch = self._dispatch(workflow, step, context, run_id, depth)
            if timeout is None:
                output = await dispatch
            else:
                try:
                    output = await asyncio.wait_for(dispatch, timeout)
                except asyncio.TimeoutError:
                    raise StepTimeoutError(step.name, timeout) from None
        self._apply_output(step, output, context)
        return output

    async def _dispatch(
        self, workflow: Workflow, step: WorkflowStep, context: Context, run_id: str, depth: int
    ) -> str:
        if isinstance(step, CommandStep):
            return await self._run_command(workflow, step, context)
        if isinstance(step, ToolCallStep):
            arguments = resolve_structured(step.arguments, context)
            return await self._tools.invoke(step.tool_name, arguments)
        if isinstance(step, PluginActionStep):
            arguments = resolve_structured(step.arguments, context)
            return await self._plugins.run_action(step.plugin_name, step.action_name, arguments)
        if isinstance(step, SubWorkflowStep):
            return await self._run_sub_workflow(step, context, run_id, depth)
        raise StepError(f"Unsupported step type: {type(step).__name__}")

    async def _run_command(self, workflow: Workflow, step: CommandStep, context: Context) -> str:
        command = resolve_text(step.command, context)
        args = [resolve_text(arg, context) for arg in step.args]
        # args keep their boundaries; only the command text is shell syntax
        command_line = " ".join([command, *(shlex.quote(arg) for arg in args)])
        working_directory = (
            resolve_text(step.working_directory, context) if step.working_directory else None
        )
        environment = resolve_mapping(workflow.environment, context)
        environment.update(resolve_mapping(step.environment, context))

        logger.debug(f"Running command: {command_line}")
        output, exit_code = await collect_output(
            self._runner.submit(
                self._config.shell, ["-c", command_line], working_directory, environment
            )
        )
        if exit_code != 0:
            raise CommandFailedError(command_line, exit_code, output)
        return output

    async def _run_prompt(
        self,
        workflow: Workflow,
        step: AgentPromptStep,
        context: Context,
        run_id: str,
        timeout: Optional[float],
    ) -> str:
        message = resolve_text(step.message, context)
        prompt_id = str(uuid.uuid4())
        self._prompts.open(prompt_id, message)
        self._emit(
            PromptRequested(
                run_id=run_id,
                workflow_id=workflow.id,
                step_id=step.id,
                prompt_id=prompt_id,
                message=message,
            )
        )
        response = await self._prompts.wait(prompt_id, timeout=timeout)
        if step.input_variable:
            context[step.input_variable] = response
        return response

    def _sub_workflow_arguments(self, step: SubWorkflowStep, context: Context) -> Dict[str, Any]:
        arguments: Dict[str, Any] = {}
        position = 0
        for raw in step.args:
            name, sep, value = raw.partition("=")
            if sep and name.strip().isidentifier():
                arguments[name.strip()] = resolve_text(value, context)
            else:
                arguments[f"arg{position}"] = resolve_text(raw, context)
                position += 1
        arguments.update(resolve_structured(step.arguments, context))
        return arguments

    async def _run_sub_workflow(
        self, step: SubWorkflowStep, context: Context, run_id: str, depth: int
    ) -> str:
        limit = self._config.max_subworkflow_depth
        if depth >= limit:
            raise SubWorkflowError(step.workflow_name, f"nesting deeper than {limit} levels")
        try:
            nested = self._library.get(step.workflow_name)
        except WorkflowNotFoundError as e:
            raise SubWorkflowError(step.workflow_name, str(e)) from e

        arguments = self._sub_workflow_arguments(step, context)
        try:
            outcome = await self.run(nested, arguments, parent_run_id=run_id, depth=depth + 1)
        except WorkflowValidationError as e:
            raise SubWorkflowError(step.workflow_name, str(e)) from e
        if not outcome.succeeded:
            raise SubWorkflowError(step.workflow_name, outcome.error or "run failed")

        completed = [r for r in outcome.history if r.status is StepStatus.COMPLETED]
        return (completed[-1].output or "") if completed else ""

    # ------------------------------------------------------------------
    # Output handling

    def _apply_output(self, step: WorkflowStep, output: str, context: Context) -> None:
        if step.output_format is OutputFormat.JSON:
            try:
                value: Any = json.loads(output)
            except json.JSONDecodeError as e:
                raise OutputFormatError(f"Step '{step.name}' output is not valid JSON: {e}") from e
        elif step.output_format is OutputFormat.REGEX:
            match = re.search(step.output_pattern or "", output)
            if match is None:
                raise OutputFormatError(
                    f"Step '{step.name}' output does not match pattern '{step.output_pattern}'"
                )
            value = match.group(1)
            if value is None:
                raise OutputFormatError(
                    f"Step '{step.name}' pattern matched without its capture group"
                )
        else:
            value = output

        if step.output_variable:
            context[step.output_variable] = value
