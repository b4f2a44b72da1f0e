"""PostgreSQL implementation of the run repository."""

from __future__ import annotations

import json
import uuid
from typing import Any

import asyncpg

from ..errors import NotFound
from .models import HistoryEntry, RunRecord
from .repository import Mutator, RunRepository, apply_mutation

_RUN_COLUMNS = (
    "run_id, workflow_id, status, current_step_index, current_step_id, input, "
    "last_output, suspend_envelope, final_result, error, created_at, updated_at"
)


def _dump(value: Any) -> str | None:
    return None if value is None else json.dumps(value)


def _load(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


class PostgresRunRepository(RunRepository):
    """Persist run state using PostgreSQL.

    Updates lock the run row with ``SELECT ... FOR UPDATE`` so concurrent
    writers on any host are serialized per run.
    """

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                current_step_index INTEGER NOT NULL,
                current_step_id TEXT,
                input JSONB,
                last_output JSONB,
                suspend_envelope JSONB,
                final_result JSONB,
                error JSONB,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS run_history (
                id SERIAL PRIMARY KEY,
                run_id TEXT NOT NULL,
                step_id TEXT NOT NULL,
                step_index INTEGER NOT NULL,
                entered_at TIMESTAMPTZ NOT NULL,
                left_at TIMESTAMPTZ NOT NULL,
                outcome_kind TEXT NOT NULL
            )
            """
        )

    # ------------------------------------------------------------------
    @staticmethod
    def _json_values(record: RunRecord) -> tuple:
        data = record.model_dump(mode="json", by_alias=True)
        return tuple(
            _dump(data[name])
            for name in ("input", "last_output", "suspend_envelope", "final_result", "error")
        )

    @staticmethod
    def _to_record(row: asyncpg.Record, history: list[HistoryEntry]) -> RunRecord:
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
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def _read(self, conn: asyncpg.Connection, run_id: str, *, lock: bool = False) -> RunRecord:
        query = f"SELECT {_RUN_COLUMNS} FROM runs WHERE run_id = $1"
        if lock:
            query += " FOR UPDATE"
        row = await conn.fetchrow(query, run_id)
        if row is None:
            raise NotFound(f"Run {run_id} not found")
        history_rows = await conn.fetch(
            "SELECT step_id, step_index, entered_at, left_at, outcome_kind "
            "FROM run_history WHERE run_id = $1 ORDER BY id",
            run_id,
        )
        history = [
            HistoryEntry(
                step_id=r["step_id"],
                step_index=r["step_index"],
                entered_at=r["entered_at"],
                left_at=r["left_at"],
                outcome_kind=r["outcome_kind"],
            )
            for r in history_rows
        ]
        return self._to_record(row, history)

    # ------------------------------------------------------------------
    async def create(self, workflow_id: str, initial_input: Any, first_step_id: str) -> str:
        record = RunRecord(
            run_id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            current_step_id=first_step_id,
            input=initial_input,
        )
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO runs ({_RUN_COLUMNS}) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)",
                record.run_id,
                record.workflow_id,
                record.status.value,
                record.current_step_index,
                record.current_step_id,
                *self._json_values(record),
                record.created_at,
                record.updated_at,
            )
        finally:
            await conn.close()
        return record.run_id

    async def get(self, run_id: str) -> RunRecord:
        conn = await self._connect()
        try:
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                return await self._read(conn, run_id)
        finally:
            await conn.close()

    async def update(self, run_id: str, mutator: Mutator) -> RunRecord:
        conn = await self._connect()
        try:
            async with conn.transaction():
                current = await self._read(conn, run_id, lock=True)
                updated = apply_mutation(current, mutator)
                await conn.execute(
                    """
                    UPDATE runs SET status = $1, current_step_index = $2, current_step_id = $3,
                        input = $4, last_output = $5, suspend_envelope = $6, final_result = $7,
                        error = $8, updated_at = $9
                    WHERE run_id = $10
                    """,
                    updated.status.value,
                    updated.current_step_index,
                    updated.current_step_id,
                    *self._json_values(updated),
                    updated.updated_at,
                    run_id,
                )
                for entry in updated.history[len(current.history) :]:
                    await conn.execute(
                        "INSERT INTO run_history (run_id, step_id, step_index, entered_at, left_at, outcome_kind) "
                        "VALUES ($1, $2, $3, $4, $5, $6)",
                        run_id,
                        entry.step_id,
                        entry.step_index,
                        entry.entered_at,
                        entry.left_at,
                        entry.outcome_kind,
                    )
        finally:
            await conn.close()
        return updated

    async def list_runs(self) -> list[RunRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(f"SELECT {_RUN_COLUMNS} FROM runs ORDER BY created_at")
        finally:
            await conn.close()
        return [self._to_record(r, []) for r in rows]
