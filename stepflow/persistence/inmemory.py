"""In-memory implementation of the run repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .models import RunRecord, StepRecord
from .repository import RunRepository


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRunRepository(RunRepository):
    """Store run history in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, RunRecord] = {}
        self._step_id = 0

    async def create_run(
        self,
        run_id: str,
        workflow_id: str,
        workflow_name: str,
        variables: dict[str, Any] | None = None,
        parent_run_id: Optional[str] = None,
    ) -> None:
        self._runs[run_id] = RunRecord(
            run_id=run_id,
            workflow_id=workflow_id,
            workflow_name=workflow_name,
            parent_run_id=parent_run_id,
            variables=dict(variables or {}),
            started_at=_now(),
        )

    async def mark_step_started(
        self, run_id: str, step_index: int, step_id: str, step_name: str
    ) -> None:
        run = self._runs.get(run_id)
        if not run:
            return
        self._step_id += 1
        run.steps.append(
            StepRecord(
                id=self._step_id,
                run_id=run_id,
                step_index=step_index,
                step_id=step_id,
                step_name=step_name,
                started_at=_now(),
                status="running",
            )
        )

    async def mark_step_completed(
        self,
        run_id: str,
        step_index: int,
        status: str,
        output: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        run = self._runs.get(run_id)
        if not run:
            return
        for step in reversed(run.steps):
            if step.step_index == step_index and step.completed_at is None:
                step.completed_at = _now()
                step.status = status
                step.output = output
                step.error = error
                break

    async def update_variables(self, run_id: str, variables: dict[str, Any]) -> None:
        run = self._runs.get(run_id)
        if run:
            run.variables = dict(variables)

    async def mark_run_completed(
        self, run_id: str, status: str, error: Optional[str] = None
    ) -> None:
        run = self._runs.get(run_id)
        if run:
            run.status = status
            run.error = error
            run.completed_at = _now()

    async def get_run(self, run_id: str) -> RunRecord | None:
        return self._runs.get(run_id)

    async def list_runs(self) -> list[RunRecord]:
        runs = sorted(self._runs.values(), key=lambda r: r.started_at, reverse=True)
        return [run.model_copy(update={"steps": []}) for run in runs]
