"""
Instance state and per-step checkpoints.

Instance lifecycle:

    queued -> running -> complete
                      -> errored
    complete | errored -> queued   (re-submitted; checkpoints are cleared)
    running -> running             (resumed after a restart)

Backends:
- memory:   single process, lost on restart (local dev, tests)
- postgres: `workflow_instances` + `workflow_steps` tables
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from core import config, db

from .steps import InvalidTransition


class InstanceStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETE = "complete"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (InstanceStatus.COMPLETE, InstanceStatus.ERRORED)


_TRANSITIONS: dict[InstanceStatus, frozenset[InstanceStatus]] = {
    InstanceStatus.QUEUED: frozenset({InstanceStatus.RUNNING}),
    InstanceStatus.RUNNING: frozenset({InstanceStatus.RUNNING, InstanceStatus.COMPLETE, InstanceStatus.ERRORED}),
    InstanceStatus.COMPLETE: frozenset({InstanceStatus.QUEUED}),
    InstanceStatus.ERRORED: frozenset({InstanceStatus.QUEUED}),
}


def check_transition(current: InstanceStatus, target: InstanceStatus) -> None:
    if target not in _TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move instance from {current.value} to {target.value}.")


@dataclass(frozen=True)
class InstanceRecord:
    instance_id: str
    workflow: str
    params: dict[str, Any]
    status: InstanceStatus
    output: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CheckpointStore(Protocol):
    async def get_instance(self, instance_id: str) -> InstanceRecord | None: ...

    async def create_instance(
        self, instance_id: str, workflow: str, params: dict[str, Any]
    ) -> tuple[InstanceRecord, bool]:
        """
        Return (record, scheduled). An unknown or terminal instance is (re)queued
        with `params` and scheduled=True; a queued/running one is returned as is.
        """
        ...

    async def set_status(
        self,
        instance_id: str,
        status: InstanceStatus,
        *,
        output: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> InstanceRecord: ...

    async def load_steps(self, instance_id: str) -> dict[str, Any]: ...

    async def save_step(self, instance_id: str, step_name: str, result: Any) -> None: ...

    async def list_active(self) -> list[InstanceRecord]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_copy(value: Any) -> Any:
    # Same round trip a durable backend does; rejects non-JSON results early.
    return json.loads(json.dumps(value))


class MemoryCheckpointStore:
    def __init__(self) -> None:
        self._instances: dict[str, InstanceRecord] = {}
        self._steps: dict[str, dict[str, Any]] = {}

    async def get_instance(self, instance_id: str) -> InstanceRecord | None:
        return self._instances.get(instance_id)

    async def create_instance(
        self, instance_id: str, workflow: str, params: dict[str, Any]
    ) -> tuple[InstanceRecord, bool]:
        existing = self._instances.get(instance_id)
        if existing is not None and not existing.status.is_terminal:
            return existing, False

        now = _utcnow()
        record = InstanceRecord(
            instance_id=instance_id,
            workflow=workflow,
            params=_json_copy(params),
            status=InstanceStatus.QUEUED,
            created_at=existing.created_at if existing is not None else now,
            updated_at=now,
        )
        self._instances[instance_id] = record
        self._steps[instance_id] = {}
        return record, True

    async def set_status(
        self,
        instance_id: str,
        status: InstanceStatus,
        *,
        output: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> InstanceRecord:
        current = self._instances.get(instance_id)
        if current is None:
            raise KeyError(instance_id)
        check_transition(current.status, status)
        record = replace(
            current,
            status=status,
            output=_json_copy(output) if output is not None else None,
            error=error,
            updated_at=_utcnow(),
        )
        self._instances[instance_id] = record
        return record

    async def load_steps(self, instance_id: str) -> dict[str, Any]:
        return _json_copy(self._steps.get(instance_id, {}))

    async def save_step(self, instance_id: str, step_name: str, result: Any) -> None:
        if instance_id not in self._instances:
            raise KeyError(instance_id)
        self._steps.setdefault(instance_id, {})[step_name] = _json_copy(result)

    async def list_active(self) -> list[InstanceRecord]:
        return [r for r in self._instances.values() if not r.status.is_terminal]


_INSTANCE_COLUMNS = "instance_id, workflow, params, status, output, error, created_at, updated_at"


def _json_dumps(value: object) -> str:
    return json.dumps(value, ensure_ascii=True)


def _json_loads(value: Any) -> Any:
    # asyncpg returns jsonb as text unless a codec is registered.
    if value is None or not isinstance(value, (str, bytes)):
        return value
    return json.loads(value)


def _row_to_record(row: dict[str, Any]) -> InstanceRecord:
    return InstanceRecord(
        instance_id=str(row["instance_id"]),
        workflow=str(row["workflow"]),
        params=_json_loads(row["params"]) or {},
        status=InstanceStatus(row["status"]),
        output=_json_loads(row.get("output")),
        error=row.get("error"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class PostgresCheckpointStore:
    async def get_instance(self, instance_id: str) -> InstanceRecord | None:
        row = await db.fetch_one(
            f"SELECT {_INSTANCE_COLUMNS} FROM workflow_instances WHERE instance_id = $1",
            instance_id,
        )
        return _row_to_record(row) if row is not None else None

    async def create_instance(
        self, instance_id: str, workflow: str, params: dict[str, Any]
    ) -> tuple[InstanceRecord, bool]:
        async with db.transaction() as conn:
            row = await conn.fetchrow(
                f"SELECT {_INSTANCE_COLUMNS} FROM workflow_instances WHERE instance_id = $1 FOR UPDATE",
                instance_id,
            )
            if row is not None:
                existing = _row_to_record(dict(row))
                if not existing.status.is_terminal:
                    return existing, False
                await conn.execute("DELETE FROM workflow_steps WHERE instance_id = $1", instance_id)

            row = await conn.fetchrow(
                f"""
                INSERT INTO workflow_instances (instance_id, workflow, params, status)
                VALUES ($1, $2, $3::jsonb, $4)
                ON CONFLICT (instance_id) DO UPDATE
                SET workflow = EXCLUDED.workflow,
                    params = EXCLUDED.params,
                    status = EXCLUDED.status,
                    output = NULL,
                    error = NULL,
                    updated_at = now()
                RETURNING {_INSTANCE_COLUMNS}
                """,
                instance_id,
                workflow,
                _json_dumps(params),
                InstanceStatus.QUEUED.value,
            )
        return _row_to_record(dict(row)), True

    async def set_status(
        self,
        instance_id: str,
        status: InstanceStatus,
        *,
        output: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> InstanceRecord:
        async with db.transaction() as conn:
            current = await conn.fetchval(
                "SELECT status FROM workflow_instances WHERE instance_id = $1 FOR UPDATE",
                instance_id,
            )
            if current is None:
                raise KeyError(instance_id)
            check_transition(InstanceStatus(current), status)
            row = await conn.fetchrow(
                f"""
                UPDATE workflow_instances
                SET status = $2, output = $3::jsonb, error = $4, updated_at = now()
                WHERE instance_id = $1
                RETURNING {_INSTANCE_COLUMNS}
                """,
                instance_id,
                status.value,
                _json_dumps(output) if output is not None else None,
                error,
            )
        return _row_to_record(dict(row))

    async def load_steps(self, instance_id: str) -> dict[str, Any]:
        rows = await db.fetch_all(
            "SELECT step_name, result FROM workflow_steps WHERE instance_id = $1",
            instance_id,
        )
        return {str(r["step_name"]): _json_loads(r["result"]) for r in rows}

    async def save_step(self, instance_id: str, step_name: str, result: Any) -> None:
        await db.execute(
            """
            INSERT INTO workflow_steps (instance_id, step_name, result)
            VALUES ($1, $2, $3::jsonb)
            ON CONFLICT (instance_id, step_name) DO UPDATE
            SET result = EXCLUDED.result, completed_at = now()
            """,
            instance_id,
            step_name,
            _json_dumps(result),
        )

    async def list_active(self) -> list[InstanceRecord]:
        rows = await db.fetch_all(
            f"""
            SELECT {_INSTANCE_COLUMNS}
            FROM workflow_instances
            WHERE status IN ($1, $2)
            ORDER BY created_at ASC
            """,
            InstanceStatus.QUEUED.value,
            InstanceStatus.RUNNING.value,
        )
        return [_row_to_record(r) for r in rows]


def get_checkpoint_store() -> CheckpointStore:
    if config.checkpoint_backend() == "postgres":
        return PostgresCheckpointStore()
    return MemoryCheckpointStore()
