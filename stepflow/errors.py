"""Exception hierarchy for stepflow.

Three families are kept apart:

* :class:`WorkflowValidationError` is raised before a run starts and prevents
  it from starting at all.
* :class:`StepError` subclasses are caught per step by the executor and turned
  into step failure events; they never escape a run.
* :class:`EngineError` subclasses are engine-fatal and surface as a separate
  ``engine_error`` event carrying the run identifier.
"""

from __future__ import annotations

from typing import Optional


class StepflowError(Exception):
    """Base class for all stepflow errors."""


class WorkflowValidationError(StepflowError):
    """A workflow definition or its arguments failed validation."""


class ArgumentError(WorkflowValidationError):
    """A workflow argument is missing or has an invalid value."""

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(f"Argument '{name}': {message}")


class WorkflowNotFoundError(StepflowError):
    """A named workflow is not present in the library."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Workflow not found: {name}")


# ----------------------------------------------------------------------
# Step-level failures


class StepError(StepflowError):
    """A single step failed. Reported as a step failure, never fatal."""


class PlaceholderError(StepError):
    """A ``{{name}}`` token could not be substituted."""

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(message)


class MissingVariableError(PlaceholderError):
    def __init__(self, name: str):
        super().__init__(name, f"Missing context variable for placeholder: {name}")


class UnsupportedValueTypeError(PlaceholderError):
    def __init__(self, name: str, type_name: str):
        self.type_name = type_name
        super().__init__(
            name, f"Unsupported value type '{type_name}' for placeholder '{name}'"
        )


class CommandFailedError(StepError):
    """A command exited with a non-zero status."""

    def __init__(self, command: str, exit_code: int, output: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"Command '{command}' failed with exit code: {exit_code}")


class ProcessLaunchError(StepError):
    """The process runner could not start the executable."""


class StepTimeoutError(StepError):
    def __init__(self, step_name: str, timeout: float):
        self.step_name = step_name
        self.timeout = timeout
        super().__init__(f"Step '{step_name}' timed out after {timeout:g}s")


class ToolNotFoundError(StepError):
    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' not found.")


class ToolInvocationError(StepError):
    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' failed: {message}")


class ToolCallAssemblyError(StepflowError):
    """Streamed tool-call fragments did not form a valid call."""


class PluginNotFoundError(StepError):
    def __init__(self, plugin_name: str, action_name: str):
        self.plugin_name = plugin_name
        self.action_name = action_name
        super().__init__(f"Plugin action '{plugin_name}.{action_name}' not found.")


class PluginActionError(StepError):
    def __init__(self, plugin_name: str, action_name: str, message: str):
        self.plugin_name = plugin_name
        self.action_name = action_name
        super().__init__(f"Plugin action '{plugin_name}.{action_name}' failed: {message}")


class OutputFormatError(StepError):
    """Captured output did not satisfy the step's output format."""


class PromptError(StepError):
    """Base class for human-input bridge failures."""


class PromptTimeoutError(PromptError):
    def __init__(self, prompt_id: str, timeout: float):
        self.prompt_id = prompt_id
        self.timeout = timeout
        super().__init__(f"No response for prompt {prompt_id} within {timeout:g}s")


class UnknownPromptError(PromptError):
    def __init__(self, prompt_id: str):
        self.prompt_id = prompt_id
        super().__init__(f"No pending prompt with id {prompt_id}")


class DuplicatePromptResponseError(PromptError):
    def __init__(self, prompt_id: str):
        self.prompt_id = prompt_id
        super().__init__(f"Prompt {prompt_id} has already been answered")


class SubWorkflowError(StepError):
    def __init__(self, workflow_name: str, message: str):
        self.workflow_name = workflow_name
        super().__init__(f"Sub-workflow '{workflow_name}' failed: {message}")


# ----------------------------------------------------------------------
# Engine-fatal errors


class EngineError(StepflowError):
    """An engine-level fault, reported separately from step failures."""

    def __init__(self, message: str, run_id: Optional[str] = None):
        self.run_id = run_id
        super().__init__(message)


class SessionNotFoundError(EngineError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}", run_id=session_id)


class ChannelClosedError(EngineError):
    """A command was sent to a channel whose consumer has finished."""
