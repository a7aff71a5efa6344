"""Shared fakes for stepflow tests."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from stepflow.channels import EventBroadcaster
from stepflow.config import ExecutorConfig
from stepflow.executor import WorkflowExecutor
from stepflow.models import Workflow
from stepflow.process import OutputChunk, ProcessExit

Result = Tuple[str, int]


class FakeProcessRunner:
    """Process runner returning scripted results keyed by command line.

    A value may be a list of results, consumed one per call; the last one
    repeats.
    """

    def __init__(
        self,
        results: Optional[Dict[str, Union[Result, List[Result]]]] = None,
        default: Result = ("", 0),
    ) -> None:
        self.results = results or {}
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    @property
    def command_lines(self) -> List[str]:
        return [call["arguments"][-1] for call in self.calls]

    def _next_result(self, command_line: str) -> Result:
        result = self.results.get(command_line, self.default)
        if isinstance(result, list):
            return result.pop(0) if len(result) > 1 else result[0]
        return result

    async def submit(
        self,
        executable: str,
        arguments: Sequence[str],
        working_directory: Optional[str] = None,
        environment: Optional[Dict[str, str]] = None,
    ):
        self.calls.append(
            {
                "executable": executable,
                "arguments": list(arguments),
                "working_directory": working_directory,
                "environment": dict(environment or {}),
            }
        )
        output, exit_code = self._next_result(arguments[-1])
        if output:
            yield OutputChunk(output)
        yield ProcessExit(exit_code)


def build_workflow(steps: List[Dict[str, Any]], **fields: Any) -> Workflow:
    data: Dict[str, Any] = {"id": "test-workflow", "name": "Test workflow", "steps": steps}
    data.update(fields)
    return Workflow.from_dict(data)


@pytest.fixture
def runner() -> FakeProcessRunner:
    return FakeProcessRunner()


@pytest.fixture
def make_workflow():
    return build_workflow


@pytest.fixture
def executor_config() -> ExecutorConfig:
    return ExecutorConfig(retry_backoff_base=0, retry_backoff_jitter=0)


@pytest.fixture
def make_executor(runner, executor_config):
    """Factory for executors wired to the fake runner and a fresh broadcaster."""

    def _make(**kwargs: Any) -> WorkflowExecutor:
        kwargs.setdefault("config", executor_config)
        kwargs.setdefault("process_runner", runner)
        kwargs.setdefault("events", EventBroadcaster())
        return WorkflowExecutor(**kwargs)

    return _make
