"""
Tests for the Postgres checkpoint and blob backends.

`core.db` is patched with AsyncMock fakes; no database is used. Rows come
back the way asyncpg returns them without a jsonb codec: jsonb as text.
"""

import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest

from feedback import persistence
from feedback.composition import compose
from feedback.schemas import Feedback
from storage.blobs import Blob, BlobStoreError, PostgresBlobStore
from workflow.checkpoints import InstanceStatus, PostgresCheckpointStore
from workflow.steps import InvalidTransition

EXTRACTED = {"themes": ["Workers"], "urgency": "high", "value": 70, "sentiment": "negative"}


def _row(status, params='{"feedbackId": "fb-1"}', output=None, error=None):
    return {
        "instance_id": "i-1",
        "workflow": "feedback-workflow",
        "params": params,
        "status": status,
        "output": output,
        "error": error,
        "created_at": None,
        "updated_at": None,
    }


def _connection(fetchrow=None, fetchval=None):
    conn = AsyncMock()
    conn.fetchrow.side_effect = fetchrow
    conn.fetchval.return_value = fetchval
    return conn


def _transaction(conn):
    @asynccontextmanager
    async def transaction():
        yield conn

    return transaction


# ---------------------------------------------------------------------------
# PostgresCheckpointStore
# ---------------------------------------------------------------------------

class TestPostgresCreateInstance:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["complete", "errored"])
    async def test_terminal_row_is_requeued_and_steps_cleared(self, status):
        conn = _connection(fetchrow=[_row(status, output='{"success": true}'), _row("queued")])

        with patch("workflow.checkpoints.db.transaction", _transaction(conn)):
            record, scheduled = await PostgresCheckpointStore().create_instance(
                "i-1", "feedback-workflow", {"feedbackId": "fb-1"}
            )

        assert scheduled is True
        assert record.status is InstanceStatus.QUEUED
        assert record.params == {"feedbackId": "fb-1"}
        conn.execute.assert_awaited_once_with("DELETE FROM workflow_steps WHERE instance_id = $1", "i-1")
        insert_args = conn.fetchrow.await_args_list[1].args
        assert insert_args[1:] == ("i-1", "feedback-workflow", '{"feedbackId": "fb-1"}', "queued")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["queued", "running"])
    async def test_active_row_is_returned_unchanged(self, status):
        conn = _connection(fetchrow=[_row(status)])

        with patch("workflow.checkpoints.db.transaction", _transaction(conn)):
            record, scheduled = await PostgresCheckpointStore().create_instance(
                "i-1", "feedback-workflow", {"feedbackId": "other"}
            )

        assert scheduled is False
        assert record.status is InstanceStatus(status)
        assert record.params == {"feedbackId": "fb-1"}
        conn.execute.assert_not_awaited()
        assert conn.fetchrow.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_instance_is_inserted(self):
        conn = _connection(fetchrow=[None, _row("queued")])

        with patch("workflow.checkpoints.db.transaction", _transaction(conn)):
            record, scheduled = await PostgresCheckpointStore().create_instance(
                "i-1", "feedback-workflow", {"feedbackId": "fb-1"}
            )

        assert scheduled is True
        assert record.status is InstanceStatus.QUEUED
        conn.execute.assert_not_awaited()


class TestPostgresSetStatus:

    @pytest.mark.asyncio
    async def test_legal_transition_writes_output(self):
        output = {"success": True, "feedbackId": "fb-1"}
        conn = _connection(fetchval="running", fetchrow=[_row("complete", output=json.dumps(output))])

        with patch("workflow.checkpoints.db.transaction", _transaction(conn)):
            record = await PostgresCheckpointStore().set_status("i-1", InstanceStatus.COMPLETE, output=output)

        assert record.status is InstanceStatus.COMPLETE
        assert record.output == output
        args = conn.fetchrow.await_args.args
        assert args[1:3] == ("i-1", "complete")
        assert json.loads(args[3]) == output
        assert args[4] is None

    @pytest.mark.asyncio
    async def test_illegal_transition_writes_nothing(self):
        conn = _connection(fetchval="queued")

        with patch("workflow.checkpoints.db.transaction", _transaction(conn)):
            with pytest.raises(InvalidTransition):
                await PostgresCheckpointStore().set_status("i-1", InstanceStatus.COMPLETE)

        conn.fetchrow.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_instance(self):
        conn = _connection(fetchval=None)

        with patch("workflow.checkpoints.db.transaction", _transaction(conn)):
            with pytest.raises(KeyError):
                await PostgresCheckpointStore().set_status("missing", InstanceStatus.RUNNING)

        conn.fetchrow.assert_not_awaited()


class TestPostgresReads:

    @pytest.mark.asyncio
    async def test_get_instance_decodes_jsonb_text(self):
        row = _row("errored", error="persist: BlobStoreError: down")
        with patch("workflow.checkpoints.db.fetch_one", AsyncMock(return_value=row)):
            record = await PostgresCheckpointStore().get_instance("i-1")

        assert record.status is InstanceStatus.ERRORED
        assert record.params == {"feedbackId": "fb-1"}
        assert record.output is None
        assert record.error == "persist: BlobStoreError: down"

    @pytest.mark.asyncio
    async def test_get_missing_instance(self):
        with patch("workflow.checkpoints.db.fetch_one", AsyncMock(return_value=None)):
            assert await PostgresCheckpointStore().get_instance("nope") is None

    @pytest.mark.asyncio
    async def test_load_steps_decodes_results(self):
        rows = [
            {"step_name": "extract", "result": json.dumps(EXTRACTED)},
            {"step_name": "compose", "result": '{"id": "fb-1"}'},
        ]
        with patch("workflow.checkpoints.db.fetch_all", AsyncMock(return_value=rows)) as fetch_all:
            steps = await PostgresCheckpointStore().load_steps("i-1")

        assert steps == {"extract": EXTRACTED, "compose": {"id": "fb-1"}}
        assert fetch_all.await_args.args[1] == "i-1"

    @pytest.mark.asyncio
    async def test_list_active_asks_for_queued_and_running(self):
        rows = [_row("queued"), _row("running")]
        with patch("workflow.checkpoints.db.fetch_all", AsyncMock(return_value=rows)) as fetch_all:
            records = await PostgresCheckpointStore().list_active()

        assert [r.status for r in records] == [InstanceStatus.QUEUED, InstanceStatus.RUNNING]
        assert fetch_all.await_args.args[1:] == ("queued", "running")

    @pytest.mark.asyncio
    async def test_save_step_writes_json_text(self):
        with patch("workflow.checkpoints.db.execute", AsyncMock()) as execute:
            await PostgresCheckpointStore().save_step("i-1", "extract", EXTRACTED)

        args = execute.await_args.args
        assert args[1:3] == ("i-1", "extract")
        assert json.loads(args[3]) == EXTRACTED


# ---------------------------------------------------------------------------
# PostgresBlobStore
# ---------------------------------------------------------------------------

class TestPostgresBlobStore:

    @pytest.mark.asyncio
    async def test_put_upserts_key_with_slash(self):
        with patch("storage.blobs.db.execute", AsyncMock()) as execute:
            await PostgresBlobStore().put("feedback-github/123.json", b"{}", content_type="application/json")

        assert execute.await_args.args[1:] == ("feedback-github/123.json", b"{}", "application/json")

    @pytest.mark.asyncio
    async def test_get_returns_blob(self):
        row = {"key": "feedback-github/123.json", "body": b'{"id": 1}', "content_type": "application/json"}
        with patch("storage.blobs.db.fetch_one", AsyncMock(return_value=row)):
            blob = await PostgresBlobStore().get("feedback-github/123.json")

        assert blob == Blob(key="feedback-github/123.json", body=b'{"id": 1}', content_type="application/json")

    @pytest.mark.asyncio
    async def test_get_missing_key(self):
        with patch("storage.blobs.db.fetch_one", AsyncMock(return_value=None)):
            assert await PostgresBlobStore().get("feedback-none.json") is None

    @pytest.mark.asyncio
    async def test_empty_key_never_reaches_database(self):
        with patch("storage.blobs.db.execute", AsyncMock()) as execute:
            with pytest.raises(BlobStoreError):
                await PostgresBlobStore().put("", b"{}", content_type="application/json")
        execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_feedback_id_with_slash_is_stored(self, feedback_payload):
        fb = Feedback.model_validate({**feedback_payload, "id": "github/123"})

        with patch("storage.blobs.db.execute", AsyncMock()) as execute:
            key = await persistence.store(compose(fb, EXTRACTED, now=1), PostgresBlobStore())

        assert key == "feedback-github/123.json"
        args = execute.await_args.args
        assert args[1] == key
        assert json.loads(args[2])["id"] == "github/123"
