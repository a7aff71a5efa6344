"""Workflow definition models.

A workflow is loaded from YAML (or any mapping) into these models and treated
as read-only once it is handed to the executor.
"""

from __future__ import annotations

import math
import re
import shlex
import uuid
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ArgumentError, WorkflowValidationError
from .resolver import extract_placeholders


class Shell(str, Enum):
    ZSH = "zsh"
    BASH = "bash"
    FISH = "fish"


class ArgumentType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    PATH = "path"
    URL = "url"
    EMAIL = "email"
    ENUM = "enum"


class OutputFormat(str, Enum):
    PLAIN_TEXT = "plain_text"
    JSON = "json"
    REGEX = "regex"


class WorkflowCategory(str, Enum):
    GIT = "Git"
    DOCKER = "Docker"
    KUBERNETES = "Kubernetes"
    AWS = "AWS"
    DATABASE = "Database"
    NETWORK = "Network"
    FILE_SYSTEM = "File System"
    SYSTEM = "System"
    OTHER = "Other"


_CATEGORY_TAGS = {
    "git": WorkflowCategory.GIT,
    "docker": WorkflowCategory.DOCKER,
    "kubernetes": WorkflowCategory.KUBERNETES,
    "k8s": WorkflowCategory.KUBERNETES,
    "aws": WorkflowCategory.AWS,
    "database": WorkflowCategory.DATABASE,
    "db": WorkflowCategory.DATABASE,
    "network": WorkflowCategory.NETWORK,
    "file": WorkflowCategory.FILE_SYSTEM,
    "filesystem": WorkflowCategory.FILE_SYSTEM,
    "system": WorkflowCategory.SYSTEM,
}

_TRUE_WORDS = {"true", "yes", "y", "1", "on"}
_FALSE_WORDS = {"false", "no", "n", "0", "off"}


def _require_text(value: str, message: str) -> str:
    if not value or not value.strip():
        raise ValueError(message)
    return value


class WorkflowArgument(BaseModel):
    """A named parameter of a workflow."""

    name: str
    description: Optional[str] = None
    default_value: Optional[Any] = None
    arg_type: ArgumentType = ArgumentType.STRING
    required: bool = False
    options: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def _ensure_name(cls, v: str) -> str:
        return _require_text(v, "Argument name is required")

    @model_validator(mode="after")
    def _ensure_enum_options(self) -> "WorkflowArgument":
        if self.arg_type is ArgumentType.ENUM and not self.options:
            raise ValueError(f"Enum argument '{self.name}' must have options")
        return self

    def coerce(self, value: Any) -> Any:
        """Convert ``value`` to this argument's declared type.

        Raises:
            ArgumentError: the value cannot represent the declared type.
        """
        if self.arg_type is ArgumentType.NUMBER:
            if isinstance(value, bool):
                raise ArgumentError(self.name, f"expected a number, got {value!r}")
            if isinstance(value, (int, float)):
                return value
            text = str(value).strip()
            try:
                return int(text)
            except ValueError:
                pass
            try:
                number = float(text)
            except ValueError:
                raise ArgumentError(self.name, f"expected a number, got {value!r}") from None
            if not math.isfinite(number):
                raise ArgumentError(self.name, f"expected a finite number, got {value!r}")
            return number

        if self.arg_type is ArgumentType.BOOLEAN:
            if isinstance(value, bool):
                return value
            word = str(value).strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
            raise ArgumentError(self.name, f"expected a boolean, got {value!r}")

        text = value if isinstance(value, str) else str(value)
        if self.arg_type is ArgumentType.ENUM and text not in (self.options or []):
            raise ArgumentError(
                self.name, f"{text!r} is not one of {', '.join(self.options or [])}"
            )
        return text


class BaseStep(BaseModel):
    """Fields shared by every step kind."""

    id: str
    name: str
    description: Optional[str] = None
    environment: Dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = Field(default=None, gt=0)
    retry_count: int = Field(default=0, ge=0)
    condition: Optional[str] = None
    output_format: OutputFormat = OutputFormat.PLAIN_TEXT
    output_pattern: Optional[str] = None
    output_variable: Optional[str] = None

    @field_validator("id")
    @classmethod
    def _ensure_id(cls, v: str) -> str:
        return _require_text(v, "Step is missing an ID")

    @field_validator("name")
    @classmethod
    def _ensure_name(cls, v: str) -> str:
        return _require_text(v, "Step is missing a name")

    @model_validator(mode="after")
    def _ensure_output_pattern(self) -> "BaseStep":
        if self.output_format is not OutputFormat.REGEX:
            return self
        if not self.output_pattern:
            raise ValueError(f"Step '{self.name}' uses regex output without output_pattern")
        try:
            compiled = re.compile(self.output_pattern)
        except re.error as exc:
            raise ValueError(f"Step '{self.name}' has an invalid output_pattern: {exc}") from exc
        if compiled.groups != 1:
            raise ValueError(
                f"Step '{self.name}' output_pattern must contain exactly one capture group"
            )
        return self


class CommandStep(BaseStep):
    """Runs a shell command."""

    type: Literal["command"] = "command"
    command: str
    args: List[str] = Field(default_factory=list)
    working_directory: Optional[str] = None

    @field_validator("command")
    @classmethod
    def _ensure_command(cls, v: str) -> str:
        return _require_text(v, "Command step has an empty command")

    @property
    def command_line(self) -> str:
        return " ".join([self.command, *(shlex.quote(arg) for arg in self.args)])


class AgentPromptStep(BaseStep):
    """Asks a human for input and waits for the answer."""

    type: Literal["agent_prompt"] = "agent_prompt"
    message: str
    input_variable: Optional[str] = None

    @field_validator("message")
    @classmethod
    def _ensure_message(cls, v: str) -> str:
        return _require_text(v, "AgentPrompt step has an empty message")


class ToolCallStep(BaseStep):
    """Invokes a registered tool with structured arguments."""

    type: Literal["tool_call"] = "tool_call"
    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("tool_name")
    @classmethod
    def _ensure_tool_name(cls, v: str) -> str:
        return _require_text(v, "ToolCall step has an empty tool_name")


class SubWorkflowStep(BaseStep):
    """Runs another workflow from the library."""

    type: Literal["sub_workflow"] = "sub_workflow"
    workflow_name: str
    args: List[str] = Field(default_factory=list)
    arguments: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("workflow_name")
    @classmethod
    def _ensure_workflow_name(cls, v: str) -> str:
        return _require_text(v, "SubWorkflow step has an empty workflow_name")


class PluginActionStep(BaseStep):
    """Calls an action exposed by a plugin host."""

    type: Literal["plugin_action"] = "plugin_action"
    plugin_name: str
    action_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("plugin_name", "action_name")
    @classmethod
    def _ensure_names(cls, v: str) -> str:
        return _require_text(v, "PluginAction step needs a plugin_name and an action_name")


WorkflowStep = Annotated[
    Union[CommandStep, AgentPromptStep, ToolCallStep, SubWorkflowStep, PluginActionStep],
    Field(discriminator="type"),
]


class Workflow(BaseModel):
    """A named, ordered sequence of steps with optional parameters."""

    id: str
    name: str
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    source_url: Optional[str] = None
    author: Optional[str] = None
    author_url: Optional[str] = None
    shells: Optional[List[Shell]] = None
    arguments: List[WorkflowArgument] = Field(default_factory=list)
    steps: List[WorkflowStep] = Field(default_factory=list)
    environment: Dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _normalize_steps(cls, data: Any) -> Any:
        """Fill in generated step ids and the implicit ``command`` kind."""
        if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
            return data
        steps = []
        for raw in data["steps"]:
            if isinstance(raw, dict):
                raw = dict(raw)
                if not raw.get("id"):
                    raw["id"] = str(uuid.uuid4())
                if "type" not in raw and "command" in raw:
                    raw["type"] = "command"
            steps.append(raw)
        return {**data, "steps": steps}

    @field_validator("id")
    @classmethod
    def _ensure_id(cls, v: str) -> str:
        return _require_text(v, "ID is required")

    @field_validator("name")
    @classmethod
    def _ensure_name(cls, v: str) -> str:
        return _require_text(v, "Name is required")

    @field_validator("shells")
    @classmethod
    def _ensure_shells(cls, v: Optional[List[Shell]]) -> Optional[List[Shell]]:
        if v is not None and not v:
            raise ValueError("Shells array cannot be empty")
        return v

    @model_validator(mode="after")
    def _ensure_unique_names(self) -> "Workflow":
        seen_steps: set[str] = set()
        for step in self.steps:
            if step.id in seen_steps:
                raise ValueError(f"Duplicate step id '{step.id}'")
            seen_steps.add(step.id)
        seen_args: set[str] = set()
        for arg in self.arguments:
            if arg.name in seen_args:
                raise ValueError(f"Duplicate argument name '{arg.name}'")
            seen_args.add(arg.name)
        return self

    # ------------------------------------------------------------------
    # Loading and saving
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workflow":
        """Validate ``data`` into a workflow.

        Raises:
            WorkflowValidationError: the definition is structurally invalid.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise WorkflowValidationError(str(exc)) from exc

    @classmethod
    def from_yaml(cls, text: str) -> "Workflow":
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise WorkflowValidationError(f"Parse error: {exc}") from exc
        if not isinstance(data, dict):
            raise WorkflowValidationError("Workflow document must be a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: str | Path) -> "Workflow":
        return cls.from_yaml(Path(path).read_text(encoding="utf-8"))

    def to_yaml(self) -> str:
        return yaml.safe_dump(
            self.model_dump(mode="json", exclude_none=True), sort_keys=False
        )

    def to_file(self, path: str | Path) -> None:
        Path(path).write_text(self.to_yaml(), encoding="utf-8")

    # ------------------------------------------------------------------
    # Queries
    def get_argument(self, name: str) -> Optional[WorkflowArgument]:
        return next((arg for arg in self.arguments if arg.name == name), None)

    def extract_placeholders(self) -> List[str]:
        """Placeholder names used by argument defaults and command steps."""
        names: List[str] = []
        for arg in self.arguments:
            if isinstance(arg.default_value, str):
                names.extend(extract_placeholders(arg.default_value))
        for step in self.steps:
            if isinstance(step, CommandStep):
                names.extend(extract_placeholders(step.command))
        return names

    def is_compatible_with_shell(self, shell: Shell) -> bool:
        return self.shells is None or shell in self.shells

    @property
    def category(self) -> WorkflowCategory:
        for tag in self.tags:
            category = _CATEGORY_TAGS.get(tag.lower())
            if category is not None:
                return category
        return WorkflowCategory.OTHER

    def search_score(self, query: str) -> float:
        """Relevance of this workflow for a free-text ``query``."""
        needle = query.lower()
        score = 0.0

        name = self.name.lower()
        if needle in name:
            score += 10.0
            if name == needle:
                score += 20.0

        for tag in self.tags:
            tag = tag.lower()
            if needle in tag:
                score += 8.0
                if tag == needle:
                    score += 12.0

        if self.description and needle in self.description.lower():
            score += 5.0

        for step in self.steps:
            if isinstance(step, CommandStep) and needle in step.command.lower():
                score += 3.0

        if self.author and needle in self.author.lower():
            score += 2.0

        return score
