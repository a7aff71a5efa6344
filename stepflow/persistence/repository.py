"""Repository abstraction for run history persistence."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from .models import RunRecord


class RunRepository(Protocol):
    """Protocol for run history backends."""

    async def create_run(
        self,
        run_id: str,
        workflow_id: str,
        workflow_name: str,
        variables: dict[str, Any] | None = None,
        parent_run_id: Optional[str] = None,
    ) -> None:
        """Persist the start of a run."""

    async def mark_step_started(
        self, run_id: str, step_index: int, step_id: str, step_name: str
    ) -> None:
        """Record start of a step."""

    async def mark_step_completed(
        self,
        run_id: str,
        step_index: int,
        status: str,
        output: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        """Record the outcome of a started step."""

    async def update_variables(self, run_id: str, variables: dict[str, Any]) -> None:
        """Persist the run's current variables."""

    async def mark_run_completed(
        self, run_id: str, status: str, error: Optional[str] = None
    ) -> None:
        """Mark the run as finished."""

    async def get_run(self, run_id: str) -> RunRecord | None:
        """Retrieve a run with its steps."""

    async def list_runs(self) -> list[RunRecord]:
        """Return all persisted runs, newest first, without their steps."""
