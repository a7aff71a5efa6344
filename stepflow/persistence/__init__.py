"""Run history persistence for stepflow."""

from __future__ import annotations

from typing import Optional

from ..config import StepflowConfig
from .inmemory import InMemoryRunRepository
from .models import RunRecord, StepRecord
from .repository import RunRepository
from .sqlite import SQLiteRunRepository


def get_repository(
    database_url: Optional[str] = None, config: Optional[StepflowConfig] = None
) -> RunRepository:
    """Build a run repository.

    The backend is selected from ``database_url`` or, failing that, the
    ``database_url`` of ``config``. Without either, an in-memory repository is
    returned. Every call builds a new repository.
    """

    database_url = database_url or (config.database_url if config else None)
    if not database_url:
        return InMemoryRunRepository()

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        return SQLiteRunRepository(path)
    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "InMemoryRunRepository",
    "RunRecord",
    "RunRepository",
    "SQLiteRunRepository",
    "StepRecord",
    "get_repository",
]
