"""SQLite implementation of the run repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import NotFound
from .models import HistoryEntry, RunRecord
from .repository import Mutator, RunRepository, apply_mutation

_RUN_COLUMNS = (
    "run_id, workflow_id, status, current_step_index, current_step_id, input, "
    "last_output, suspend_envelope, final_result, error, created_at, updated_at"
)


def _dump(value: Any) -> str | None:
    return None if value is None else json.dumps(value)


def _load(value: str | None) -> Any:
    return None if value is None else json.loads(value)


class SQLiteRunRepository(RunRepository):
    """Persist run state using SQLite.

    Updates run inside ``BEGIN IMMEDIATE`` transactions so writers in other
    processes sharing the database file are serialized as well.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS runs (
                    run_id TEXT PRIMARY KEY,
                    workflow_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    current_step_index INTEGER NOT NULL,
                    current_step_id TEXT,
                    input TEXT,
                    last_output TEXT,
                    suspend_envelope TEXT,
                    final_result TEXT,
                    error TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS run_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    step_id TEXT NOT NULL,
                    step_index INTEGER NOT NULL,
                    entered_at TEXT NOT NULL,
                    left_at TEXT NOT NULL,
                    outcome_kind TEXT NOT NULL
                )
                """
            )

    # ------------------------------------------------------------------
    # Helper methods
    @staticmethod
    def _row_values(record: RunRecord) -> tuple:
        data = record.model_dump(mode="json", by_alias=True)
        return (
            record.run_id,
            record.workflow_id,
            record.status.value,
            record.current_step_index,
            record.current_step_id,
            _dump(data["input"]),
            _dump(data["last_output"]),
            _dump(data["suspend_envelope"]),
            _dump(data["final_result"]),
            _dump(data["error"]),
            record.created_at.isoformat(),
            record.updated_at.isoformat(),
        )

    def _read(self, cur: sqlite3.Cursor, run_id: str) -> RunRecord:
        cur.execute(f"SELECT {_RUN_COLUMNS} FROM runs WHERE run_id = ?", (run_id,))
        row = cur.fetchone()
        if row is None:
            raise NotFound(f"Run {run_id} not found")
        cur.execute(
            "SELECT step_id, step_index, entered_at, left_at, outcome_kind "
            "FROM run_history WHERE run_id = ? ORDER BY id",
            (run_id,),
        )
        history = [
            HistoryEntry(
                step_id=r["step_id"],
                step_index=r["step_index"],
                entered_at=datetime.fromisoformat(r["entered_at"]),
                left_at=datetime.fromisoformat(r["left_at"]),
                outcome_kind=r["outcome_kind"],
            )
            for r in cur.fetchall()
        ]
        return self._to_record(row, history)

    @staticmethod
    def _to_record(row: sqlite3.Row, history: list[HistoryEntry]) -> RunRecord:
        return RunRecord(
            run_id=row["run_id"],
            workflow_id=row["workflow_id"],
            status=row["status"],
            current_step_index=row["current_step_index"],
            current_step_id=row["current_step_id"],
            input=_load(row["input"]),
            last_output=_load(row["last_output"]),
            suspend_envelope=_load(row["suspend_envelope"]),
            final_result=_load(row["final_result"]),
            error=_load(row["error"]),
            history=history,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _insert(self, record: RunRecord) -> None:
        with self._lock:
            self._conn.execute(
                f"INSERT INTO runs ({_RUN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._row_values(record),
            )

    def _get(self, run_id: str) -> RunRecord:
        with self._lock:
            cur = self._conn.cursor()
            # run row and history must come from the same snapshot
            cur.execute("BEGIN")
            try:
                return self._read(cur, run_id)
            finally:
                cur.execute("COMMIT")

    def _update(self, run_id: str, mutator: Mutator) -> RunRecord:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                current = self._read(cur, run_id)
                updated = apply_mutation(current, mutator)
                cur.execute(
                    """
                    UPDATE runs SET status = ?, current_step_index = ?, current_step_id = ?,
                        input = ?, last_output = ?, suspend_envelope = ?, final_result = ?,
                        error = ?, updated_at = ?
                    WHERE run_id = ?
                    """,
                    self._row_values(updated)[2:10] + (updated.updated_at.isoformat(), run_id),
                )
                for entry in updated.history[len(current.history) :]:
                    cur.execute(
                        "INSERT INTO run_history (run_id, step_id, step_index, entered_at, left_at, outcome_kind) "
                        "VALUES (?, ?, ?, ?, ?, ?)",
                        (
                            run_id,
                            entry.step_id,
                            entry.step_index,
                            entry.entered_at.isoformat(),
                            entry.left_at.isoformat(),
                            entry.outcome_kind,
                        ),
                    )
            except BaseException:
                cur.execute("ROLLBACK")
                raise
            cur.execute("COMMIT")
            return updated

    def _list(self) -> list[RunRecord]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(f"SELECT {_RUN_COLUMNS} FROM runs ORDER BY created_at")
            return [self._to_record(row, []) for row in cur.fetchall()]

    # ------------------------------------------------------------------
    # Repository API
    async def create(self, workflow_id: str, initial_input: Any, first_step_id: str) -> str:
        record = RunRecord(
            run_id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            current_step_id=first_step_id,
            input=initial_input,
        )
        await asyncio.to_thread(self._insert, record)
        return record.run_id

    async def get(self, run_id: str) -> RunRecord:
        return await asyncio.to_thread(self._get, run_id)

    async def update(self, run_id: str, mutator: Mutator) -> RunRecord:
        return await asyncio.to_thread(self._update, run_id, mutator)

    async def list_runs(self) -> list[RunRecord]:
        return await asyncio.to_thread(self._list)

    def close(self) -> None:
        self._conn.close()
