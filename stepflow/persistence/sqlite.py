"""SQLite implementation of the run repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .models import RunRecord, StepRecord
from .repository import RunRepository

_RUN_COLUMNS = (
    "run_id, workflow_id, workflow_name, parent_run_id, status, variables, error, "
    "started_at, completed_at"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteRunRepository(RunRepository):
    """Persist run history using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                workflow_name TEXT NOT NULL,
                parent_run_id TEXT,
                status TEXT NOT NULL,
                variables TEXT,
                error TEXT,
                started_at TEXT,
                completed_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT NOT NULL,
                step_index INTEGER NOT NULL,
                step_id TEXT NOT NULL,
                step_name TEXT NOT NULL,
                started_at TEXT,
                completed_at TEXT,
                status TEXT,
                output TEXT,
                error TEXT
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _to_run(row: sqlite3.Row, steps: list[StepRecord] | None = None) -> RunRecord:
        return RunRecord(
            run_id=row["run_id"],
            workflow_id=row["workflow_id"],
            workflow_name=row["workflow_name"],
            parent_run_id=row["parent_run_id"],
            status=row["status"],
            variables=json.loads(row["variables"]) if row["variables"] else {},
            error=row["error"],
            started_at=_parse_time(row["started_at"]),
            completed_at=_parse_time(row["completed_at"]),
            steps=steps or [],
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_run(
        self,
        run_id: str,
        workflow_id: str,
        workflow_name: str,
        variables: dict[str, Any] | None = None,
        parent_run_id: Optional[str] = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO runs (run_id, workflow_id, workflow_name, parent_run_id, status, "
            "variables, started_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            run_id,
            workflow_id,
            workflow_name,
            parent_run_id,
            "running",
            json.dumps(variables or {}, default=str),
            _now(),
        )

    async def mark_step_started(
        self, run_id: str, step_index: int, step_id: str, step_name: str
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO step_history (run_id, step_index, step_id, step_name, started_at, status) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            run_id,
            step_index,
            step_id,
            step_name,
            _now(),
            "running",
        )

    async def mark_step_completed(
        self,
        run_id: str,
        step_index: int,
        status: str,
        output: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE step_history
            SET completed_at = ?, status = ?, output = ?, error = ?
            WHERE run_id = ? AND step_index = ? AND completed_at IS NULL
            """,
            _now(),
            status,
            output,
            error,
            run_id,
            step_index,
        )

    async def update_variables(self, run_id: str, variables: dict[str, Any]) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE runs SET variables = ? WHERE run_id = ?",
            json.dumps(variables, default=str),
            run_id,
        )

    async def mark_run_completed(
        self, run_id: str, status: str, error: Optional[str] = None
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE runs SET status = ?, error = ?, completed_at = ? WHERE run_id = ?",
            status,
            error,
            _now(),
            run_id,
        )

    async def get_run(self, run_id: str) -> RunRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, f"SELECT {_RUN_COLUMNS} FROM runs WHERE run_id = ?", run_id
        )
        if not row:
            return None
        step_rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, run_id, step_index, step_id, step_name, started_at, completed_at, "
            "status, output, error FROM step_history WHERE run_id = ? ORDER BY id",
            run_id,
        )
        steps = [
            StepRecord(
                id=r["id"],
                run_id=r["run_id"],
                step_index=r["step_index"],
                step_id=r["step_id"],
                step_name=r["step_name"],
                started_at=_parse_time(r["started_at"]),
                completed_at=_parse_time(r["completed_at"]),
                status=r["status"],
                output=r["output"],
                error=r["error"],
            )
            for r in step_rows
        ]
        return self._to_run(row, steps)

    async def list_runs(self) -> list[RunRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_RUN_COLUMNS} FROM runs ORDER BY started_at DESC, rowid DESC",
        )
        return [self._to_run(row) for row in rows]
