import pytest
from pydantic import ValidationError

from stepflow.events import (
    BreakpointHit,
    ResumeCommand,
    SetBreakpointCommand,
    SetVariableCommand,
    StepCompleted,
    StepOverCommand,
    WorkflowCompleted,
    parse_command,
    parse_event,
)


def test_event_json_is_tagged():
    event = StepCompleted(
        run_id="r", workflow_id="wf", step_index=0, step_id="s", name="Step", output="hi\n"
    )

    restored = parse_event(event.to_json())

    assert isinstance(restored, StepCompleted)
    assert restored == event


def test_parse_event_from_mapping():
    event = parse_event(
        {"type": "breakpoint_hit", "session_id": "s", "step_index": 2, "variables": {"x": 1}}
    )

    assert isinstance(event, BreakpointHit)
    assert event.variables == {"x": 1}
    assert event.timestamp.tzinfo is not None


def test_workflow_completed_error_is_optional():
    event = WorkflowCompleted(run_id="r", workflow_id="wf", name="n", success=True)
    assert event.error is None


def test_unknown_event_type_is_rejected():
    with pytest.raises(ValidationError):
        parse_event({"type": "exploded"})


@pytest.mark.parametrize(
    "payload, kind",
    [
        ('{"type": "resume"}', ResumeCommand),
        ('{"type": "step_over"}', StepOverCommand),
        ('{"type": "set_breakpoint", "index": 3}', SetBreakpointCommand),
        ('{"type": "set_variable", "name": "x", "value": [1, 2]}', SetVariableCommand),
    ],
)
def test_parse_command(payload, kind):
    assert isinstance(parse_command(payload), kind)


def test_negative_breakpoint_is_rejected():
    with pytest.raises(ValidationError):
        parse_command({"type": "set_breakpoint", "index": -1})
