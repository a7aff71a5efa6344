"""Workflow model tests."""

import pytest

from stepflow.errors import ArgumentError, WorkflowValidationError
from stepflow.models import (
    AgentPromptStep,
    CommandStep,
    Shell,
    ToolCallStep,
    Workflow,
    WorkflowArgument,
    WorkflowCategory,
)

WORKFLOW_YAML = """
id: docker-cleanup
name: Clean up containers
description: Remove stopped containers
tags: [docker, maintenance]
author: ops
shells: [bash, zsh]
arguments:
  - name: label
    default_value: stale
steps:
  - name: List
    command: docker ps -a --filter label={{label}}
  - id: confirm
    type: agent_prompt
    name: Confirm
    message: Remove containers labelled {{label}}?
    input_variable: answer
  - id: prune
    name: Prune
    command: docker container prune -f
    condition: "{{answer}} == yes"
"""


def minimal(**overrides):
    data = {"id": "wf", "name": "Workflow", "steps": [{"name": "s", "command": "true"}]}
    data.update(overrides)
    return data


def test_load_from_yaml():
    workflow = Workflow.from_yaml(WORKFLOW_YAML)

    assert workflow.id == "docker-cleanup"
    assert [type(s) for s in workflow.steps] == [CommandStep, AgentPromptStep, CommandStep]
    assert workflow.steps[0].id  # generated
    assert workflow.steps[1].id == "confirm"
    assert workflow.steps[2].condition == "{{answer}} == yes"
    assert workflow.get_argument("label").default_value == "stale"


def test_yaml_round_trip(tmp_path):
    workflow = Workflow.from_yaml(WORKFLOW_YAML)
    path = tmp_path / "wf.yaml"

    workflow.to_file(path)

    assert Workflow.from_file(path) == workflow


@pytest.mark.parametrize(
    "overrides",
    [
        {"id": "  "},
        {"name": ""},
        {"shells": []},
        {"steps": [{"name": "s", "command": " "}]},
        {"steps": [{"name": "", "command": "ls"}]},
        {"steps": [{"type": "agent_prompt", "name": "p", "message": ""}]},
        {"steps": [{"type": "tool_call", "name": "t", "tool_name": ""}]},
        {"steps": [{"type": "tool_call", "name": "t", "tool_name": "x", "arguments": [1]}]},
        {"steps": [{"type": "plugin_action", "name": "p", "plugin_name": "a", "action_name": ""}]},
        {"steps": [{"type": "sub_workflow", "name": "w", "workflow_name": ""}]},
        {"steps": [{"type": "teleport", "name": "x"}]},
        {"steps": [{"name": "no kind"}]},
        {"steps": [{"id": "a", "name": "a", "command": "ls"}, {"id": "a", "name": "b", "command": "ls"}]},
        {"arguments": [{"name": "x"}, {"name": "x"}]},
        {"arguments": [{"name": ""}]},
        {"arguments": [{"name": "env", "arg_type": "enum"}]},
    ],
)
def test_invalid_definitions_are_rejected(overrides):
    with pytest.raises(WorkflowValidationError):
        Workflow.from_dict(minimal(**overrides))


@pytest.mark.parametrize(
    "pattern",
    [None, "no groups", "(one)(two)", "(unclosed"],
)
def test_regex_output_needs_one_capture_group(pattern):
    step = {"name": "s", "command": "ls", "output_format": "regex", "output_pattern": pattern}
    with pytest.raises(WorkflowValidationError):
        Workflow.from_dict(minimal(steps=[step]))


def test_regex_output_with_one_group_is_accepted():
    step = {"name": "s", "command": "ls", "output_format": "regex", "output_pattern": r"v(\d+)"}
    assert Workflow.from_dict(minimal(steps=[step])).steps[0].output_pattern == r"v(\d+)"


def test_yaml_parse_errors_are_validation_errors():
    with pytest.raises(WorkflowValidationError):
        Workflow.from_yaml("steps: [unclosed")
    with pytest.raises(WorkflowValidationError):
        Workflow.from_yaml("- just a list")


def test_command_line_joins_args():
    step = CommandStep(id="s", name="s", command="git", args=["log", "-1"])
    assert step.command_line == "git log -1"


def test_tool_call_arguments_default_to_empty_mapping():
    workflow = Workflow.from_dict(minimal(steps=[{"type": "tool_call", "name": "t", "tool_name": "x"}]))
    assert isinstance(workflow.steps[0], ToolCallStep)
    assert workflow.steps[0].arguments == {}


@pytest.mark.parametrize(
    "arg_type, value, expected",
    [
        ("number", "42", 42),
        ("number", "2.5", 2.5),
        ("number", 7, 7),
        ("boolean", "yes", True),
        ("boolean", "0", False),
        ("boolean", True, True),
        ("string", 5, "5"),
        ("path", "/tmp", "/tmp"),
    ],
)
def test_argument_coercion(arg_type, value, expected):
    argument = WorkflowArgument(name="a", arg_type=arg_type)
    assert argument.coerce(value) == expected


@pytest.mark.parametrize(
    "arg_type, value",
    [("number", "many"), ("number", True), ("number", "inf"), ("boolean", "maybe")],
)
def test_argument_coercion_errors(arg_type, value):
    with pytest.raises(ArgumentError):
        WorkflowArgument(name="a", arg_type=arg_type).coerce(value)


def test_enum_argument_checks_options():
    argument = WorkflowArgument(name="env", arg_type="enum", options=["dev", "prod"])
    assert argument.coerce("prod") == "prod"
    with pytest.raises(ArgumentError):
        argument.coerce("staging")


def test_extract_placeholders():
    workflow = Workflow.from_dict(
        minimal(
            arguments=[{"name": "dir", "default_value": "{{home}}/src"}],
            steps=[{"name": "s", "command": "ls {{dir}} {{pattern}}"}],
        )
    )
    assert workflow.extract_placeholders() == ["home", "dir", "pattern"]


def test_shell_compatibility():
    assert Workflow.from_dict(minimal()).is_compatible_with_shell(Shell.FISH)
    restricted = Workflow.from_dict(minimal(shells=["bash"]))
    assert restricted.is_compatible_with_shell(Shell.BASH)
    assert not restricted.is_compatible_with_shell(Shell.ZSH)


@pytest.mark.parametrize(
    "tags, category",
    [
        (["k8s"], WorkflowCategory.KUBERNETES),
        (["misc", "DB"], WorkflowCategory.DATABASE),
        (["filesystem"], WorkflowCategory.FILE_SYSTEM),
        ([], WorkflowCategory.OTHER),
    ],
)
def test_category_from_tags(tags, category):
    assert Workflow.from_dict(minimal(tags=tags)).category is category


def test_search_score_weights():
    workflow = Workflow.from_yaml(WORKFLOW_YAML)

    # name contains "clean" (10); description does not
    assert workflow.search_score("clean") == 10
    # exact tag match plus two docker commands
    assert workflow.search_score("docker") == 8 + 12 + 3 + 3
    assert workflow.search_score("ops") == 2
    assert workflow.search_score("kubectl") == 0
    exact = Workflow.from_dict(minimal(name="deploy"))
    assert exact.search_score("deploy") == 30


def test_command_line_quotes_args():
    step = CommandStep(id="s", name="s", command="printf", args=["[%s]", "a b; echo x"])
    assert step.command_line == "printf '[%s]' 'a b; echo x'"
