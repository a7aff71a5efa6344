"""Data models for persisted run history."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class StepRecord(BaseModel):
    """Record of an individual step execution."""

    id: Optional[int] = None
    run_id: str
    step_index: int
    step_id: str
    step_name: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status: Optional[str] = None
    output: Optional[str] = None
    error: Optional[str] = None


class RunRecord(BaseModel):
    """Persisted workflow run."""

    run_id: str
    workflow_id: str
    workflow_name: str
    parent_run_id: Optional[str] = None
    status: str = "running"
    variables: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    steps: list[StepRecord] = Field(default_factory=list)
