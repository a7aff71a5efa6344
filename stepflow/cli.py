"""Command line interface for running and debugging stepflow workflows."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

import typer

from .channels import EventBroadcaster, EventSubscription
from .config import StepflowConfig, load_config, setup_logging
from .debugger import DebugController, DebugManager, ExecutionState
from .errors import DuplicatePromptResponseError, UnknownPromptError, WorkflowValidationError
from .events import (
    BreakpointHit,
    BreakpointsChanged,
    Command,
    EngineErrorEvent,
    Event,
    ExecutionCompleted,
    ExecutionFailed,
    PromptRequested,
    RemoveBreakpointCommand,
    RestartCommand,
    ResumeCommand,
    SessionEnded,
    SessionRestarted,
    SetBreakpointCommand,
    SetVariableCommand,
    StartCommand,
    StepCompleted,
    StepFailed,
    StepOverCommand,
    StepSkipped,
    StopCommand,
    VariableUpdated,
    WorkflowCompleted,
    WorkflowStarted,
)
from .executor import ExecutionOutcome, WorkflowExecutor
from .library import WorkflowLibrary
from .models import Workflow
from .persistence import RunRepository, get_repository
from .prompts import PromptBridge

app = typer.Typer(help="CLI for stepflow workflows")

# Command groups
runs_app = typer.Typer(help="Commands for inspecting past runs")
workflows_app = typer.Typer(help="Commands for browsing a workflow directory")

app.add_typer(runs_app, name="runs")
app.add_typer(workflows_app, name="workflows")

SETTLED_EVENTS = (BreakpointHit, ExecutionCompleted, ExecutionFailed, SessionEnded)

DEBUG_HELP = """Commands:
  continue (c)        start or resume execution
  step (s)            run exactly one step
  vars (v)            show variables
  set NAME VALUE      set a variable (VALUE is parsed as JSON when possible)
  break N / clear N   set or remove a breakpoint before step N
  history (h)         show executed steps
  restart (r)         reset the session to its initial state
  quit (q)            stop the session"""


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", help="Path to stepflow.yaml"),
) -> None:
    """Stepflow CLI entry point."""
    settings = load_config(str(config) if config else None)
    setup_logging(settings)
    ctx.obj = settings


# ----------------------------------------------------------------------
# Helpers


def _settings(ctx: typer.Context) -> StepflowConfig:
    return ctx.obj if isinstance(ctx.obj, StepflowConfig) else load_config()


def _parse_args(values: Optional[List[str]]) -> Dict[str, str]:
    arguments: Dict[str, str] = {}
    for item in values or []:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Expected name=value, got '{item}'", param_hint="--arg")
        arguments[name.strip()] = value
    return arguments


def _parse_value(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _load_workflow(path: Path) -> Workflow:
    try:
        return Workflow.from_file(path)
    except OSError as exc:
        typer.secho(f"Cannot read {path}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except WorkflowValidationError as exc:
        typer.secho(f"Invalid workflow {path}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _load_library(settings: StepflowConfig, directory: Optional[Path]) -> WorkflowLibrary:
    library = WorkflowLibrary()
    source = directory or (Path(settings.workflows_dir) if settings.workflows_dir else None)
    if source is not None:
        for failed in library.load_directory(source):
            typer.secho(f"Skipping invalid workflow file {failed}", fg=typer.colors.YELLOW)
    return library


async def _answer_prompt(event: PromptRequested, prompts: PromptBridge) -> None:
    answer = await asyncio.to_thread(typer.prompt, event.message)
    try:
        prompts.respond(event.prompt_id, answer)
    except (UnknownPromptError, DuplicatePromptResponseError) as exc:
        typer.secho(str(exc), fg=typer.colors.YELLOW)


async def _render_event(event: Event, prompts: PromptBridge) -> None:
    if isinstance(event, WorkflowStarted):
        typer.echo(f"Running workflow '{event.name}' (run {event.run_id})")
    elif isinstance(event, StepCompleted):
        typer.echo(f"[{event.step_index}] {event.name}: completed")
        if event.output.strip():
            for line in event.output.rstrip("\n").splitlines():
                typer.echo(f"    {line}")
    elif isinstance(event, StepSkipped):
        typer.echo(f"[{event.step_index}] {event.name}: skipped")
    elif isinstance(event, StepFailed):
        typer.secho(
            f"[{event.step_index}] {event.name}: failed - {event.error}", fg=typer.colors.RED
        )
    elif isinstance(event, PromptRequested):
        await _answer_prompt(event, prompts)
    elif isinstance(event, WorkflowCompleted):
        if event.success:
            typer.secho(f"Workflow '{event.name}' succeeded", fg=typer.colors.GREEN)
        else:
            typer.secho(f"Workflow '{event.name}' failed: {event.error}", fg=typer.colors.RED)
    elif isinstance(event, BreakpointHit):
        typer.secho(f"Suspended before step {event.step_index}", fg=typer.colors.YELLOW)
    elif isinstance(event, ExecutionCompleted):
        typer.secho("Execution completed", fg=typer.colors.GREEN)
    elif isinstance(event, ExecutionFailed):
        typer.secho(
            f"Execution failed at step {event.step_index}: {event.error}",
            fg=typer.colors.RED,
        )
    elif isinstance(event, EngineErrorEvent):
        typer.secho(f"Engine error: {event.message}", fg=typer.colors.RED)


async def _follow(subscription: EventSubscription, prompts: PromptBridge) -> None:
    async for event in subscription:
        await _render_event(event, prompts)


# ----------------------------------------------------------------------
# run / validate


async def _run(
    settings: StepflowConfig,
    workflow: Workflow,
    arguments: Dict[str, str],
    library: WorkflowLibrary,
) -> ExecutionOutcome:
    events = EventBroadcaster()
    executor = WorkflowExecutor(
        config=settings.executor,
        library=library,
        events=events,
        repository=get_repository(config=settings),
    )
    follower = asyncio.create_task(_follow(events.subscribe(), executor.prompts))
    try:
        return await executor.run(workflow, arguments)
    finally:
        events.close()
        await follower


@app.command("run")
def run_workflow(
    ctx: typer.Context,
    workflow_file: Path,
    arg: Optional[List[str]] = typer.Option(None, "--arg", "-a", help="Argument as name=value"),
    library: Optional[Path] = typer.Option(
        None, help="Directory of workflows for sub-workflow steps"
    ),
) -> None:
    """
    Run a workflow file.

    Prints step progress as it happens and asks for input when a step needs
    it. Exits with code 1 when a step fails.

    Example:
        stepflow run cleanup.yaml --arg name=world
    """
    settings = _settings(ctx)
    workflow = _load_workflow(workflow_file)
    arguments = _parse_args(arg)
    try:
        outcome = asyncio.run(
            _run(settings, workflow, arguments, _load_library(settings, library))
        )
    except WorkflowValidationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Run ID: {outcome.run_id}")
    if not outcome.succeeded:
        raise typer.Exit(code=1)


@app.command("validate")
def validate(workflow_file: Path) -> None:
    """Check that a workflow file loads and passes validation."""
    workflow = _load_workflow(workflow_file)
    typer.secho(
        f"Workflow '{workflow.name}' is valid ({len(workflow.steps)} steps)",
        fg=typer.colors.GREEN,
    )
    undeclared = [p for p in workflow.extract_placeholders() if workflow.get_argument(p) is None]
    if undeclared:
        typer.echo(f"Placeholders not declared as arguments: {', '.join(undeclared)}")


# ----------------------------------------------------------------------
# debug


async def _exchange(
    controller: DebugController,
    subscription: EventSubscription,
    prompts: PromptBridge,
    command: Command,
    until: Tuple[Type[Event], ...],
) -> Optional[Event]:
    """Send ``command`` and render events until one of ``until`` arrives."""
    controller.send(command)
    while True:
        event = await subscription.next()
        if event is None:
            return None
        await _render_event(event, prompts)
        if isinstance(event, until):
            return event


async def _debug(
    settings: StepflowConfig,
    workflow: Workflow,
    arguments: Dict[str, str],
    breakpoints: List[int],
    library: WorkflowLibrary,
) -> None:
    executor = WorkflowExecutor(config=settings.executor, library=library)
    manager = DebugManager(executor, settings.debugger)
    session = await manager.create_session(workflow, arguments, breakpoints=set(breakpoints))
    controller = await manager.get_controller(session.id)
    subscription = controller.subscribe()
    prompts = executor.prompts

    typer.echo(f"Debugging '{workflow.name}' (session {session.id})")
    typer.echo(DEBUG_HELP)
    while not controller.done:
        line = await asyncio.to_thread(
            typer.prompt, "(stepflow)", default="", show_default=False
        )
        line = line.strip()
        if not line:
            continue
        verb, _, rest = line.partition(" ")
        state = session.execution_state

        if verb in ("c", "continue", "s", "step"):
            if state in (ExecutionState.COMPLETED, ExecutionState.FAILED):
                typer.echo("Execution has finished; use restart or quit")
                continue
            if verb in ("s", "step"):
                command: Command = StepOverCommand()
            elif state is ExecutionState.NOT_STARTED:
                command = StartCommand()
            else:
                command = ResumeCommand()
            await _exchange(controller, subscription, prompts, command, SETTLED_EVENTS)
        elif verb in ("v", "vars"):
            typer.echo(json.dumps(session.variables, indent=2, default=str))
        elif verb == "set":
            name, _, value = rest.strip().partition(" ")
            if not name:
                typer.echo("Usage: set NAME VALUE")
                continue
            command = SetVariableCommand(name=name, value=_parse_value(value))
            await _exchange(controller, subscription, prompts, command, (VariableUpdated,))
            typer.echo(f"{name} = {session.variables.get(name)!r}")
        elif verb in ("break", "clear"):
            try:
                index = int(rest)
            except ValueError:
                typer.echo(f"Usage: {verb} N")
                continue
            if not 0 <= index < len(session.workflow.steps):
                typer.echo(f"Step index must be between 0 and {len(session.workflow.steps) - 1}")
                continue
            if verb == "break":
                command = SetBreakpointCommand(index=index)
            else:
                command = RemoveBreakpointCommand(index=index)
            await _exchange(controller, subscription, prompts, command, (BreakpointsChanged,))
            typer.echo(f"Breakpoints: {sorted(session.breakpoints)}")
        elif verb in ("h", "history"):
            for record in session.step_history:
                typer.echo(f"[{record.step_index}] {record.step_name}: {record.status.value}")
        elif verb in ("r", "restart"):
            await _exchange(
                controller, subscription, prompts, RestartCommand(), (SessionRestarted,)
            )
            typer.echo("Session restarted")
        elif verb in ("q", "quit"):
            await _exchange(controller, subscription, prompts, StopCommand(), (SessionEnded,))
            break
        else:
            typer.echo(DEBUG_HELP)
        typer.echo(session.summary())

    await manager.drop_session(session.id)


@app.command("debug")
def debug(
    ctx: typer.Context,
    workflow_file: Path,
    arg: Optional[List[str]] = typer.Option(None, "--arg", "-a", help="Argument as name=value"),
    breakpoint: Optional[List[int]] = typer.Option(
        None, "--break", "-b", help="Suspend before this step index"
    ),
    library: Optional[Path] = typer.Option(
        None, help="Directory of workflows for sub-workflow steps"
    ),
) -> None:
    """
    Debug a workflow interactively.

    Example:
        stepflow debug release.yaml --break 2 --arg version=1.4.0
    """
    settings = _settings(ctx)
    workflow = _load_workflow(workflow_file)
    arguments = _parse_args(arg)
    try:
        asyncio.run(
            _debug(
                settings, workflow, arguments, breakpoint or [], _load_library(settings, library)
            )
        )
    except WorkflowValidationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


# ----------------------------------------------------------------------
# runs


def _history_repository(settings: StepflowConfig) -> RunRepository:
    if not settings.database_url:
        typer.secho(
            "No database_url configured: runs are only kept in memory for the command "
            "that made them. Set database_url to sqlite://PATH or STEPFLOW_DATABASE_URL.",
            fg=typer.colors.YELLOW,
        )
    return get_repository(config=settings)


@runs_app.command("list")
def runs_list(ctx: typer.Context) -> None:
    """List persisted runs with their status.

    Needs a `sqlite://` database_url (or STEPFLOW_DATABASE_URL); without one
    history only lives as long as a single command.
    """
    repo = _history_repository(_settings(ctx))
    runs = asyncio.run(repo.list_runs())
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run.run_id}\t{run.workflow_name}\t{run.status}")


@runs_app.command("show")
def runs_show(ctx: typer.Context, run_id: str) -> None:
    """Show a persisted run and its step history."""
    repo = _history_repository(_settings(ctx))
    run = asyncio.run(repo.get_run(run_id))
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Run {run.run_id} ({run.workflow_name}): {run.status}")
    if run.error:
        typer.echo(f"Error: {run.error}")
    if run.variables:
        typer.echo(f"Variables: {json.dumps(run.variables, default=str)}")
    for step in run.steps:
        typer.echo(
            f"- [{step.step_index}] {step.step_name}: {step.status}"
            + (f" ({step.error})" if step.error else "")
        )


# ----------------------------------------------------------------------
# workflows


def _directory(settings: StepflowConfig, directory: Optional[Path]) -> Path:
    path = directory or (Path(settings.workflows_dir) if settings.workflows_dir else Path.cwd())
    path = path.expanduser()
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return path


@workflows_app.command("list")
def workflows_list(
    ctx: typer.Context,
    directory: Optional[Path] = typer.Option(None, "--dir", help="Workflow directory"),
) -> None:
    """List the workflows found in a directory."""
    settings = _settings(ctx)
    library = _load_library(settings, _directory(settings, directory))
    if not len(library):
        typer.echo("No workflows found")
        return
    for workflow in library.list():
        typer.echo(f"{workflow.id}\t{workflow.name}\t{workflow.category.value}")


@workflows_app.command("search")
def workflows_search(
    ctx: typer.Context,
    query: str,
    directory: Optional[Path] = typer.Option(None, "--dir", help="Workflow directory"),
) -> None:
    """Search workflows by name, tags, description, commands and author."""
    settings = _settings(ctx)
    library = _load_library(settings, _directory(settings, directory))
    results = library.search(query)
    if not results:
        typer.echo("No matching workflows")
        return
    for workflow, score in results:
        typer.echo(f"{score:g}\t{workflow.id}\t{workflow.name}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
