"""Tests for snakey.cli: sync, record and mirror commands."""

import argparse
import json
import logging

import pytest

from snakey import Snakey
from snakey.cli.__main__ import build_parser, main
from snakey.cli.commands import cmd_mirror, cmd_record, cmd_sync
from snakey.cli.commands.record import _parse_fields
from snakey.config import ClientConfig
from snakey.errors import TransportError
from snakey.types import ErrorType, MirrorSyncStatus, Operation, SyncResult, SyncTable

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def s(client_config, transport):
    return Snakey(config=client_config, transport=transport)


@pytest.fixture
def offline_s(tmp_path):
    return Snakey(config=ClientConfig(db_path=tmp_path / "no-backend.db"))


@pytest.fixture
def restore_snakey_logger():
    logger = logging.getLogger("snakey")
    saved_handlers = list(logger.handlers)
    saved_level = logger.level
    yield
    for handler in logger.handlers:
        if handler not in saved_handlers:
            handler.close()
    logger.handlers = saved_handlers
    logger.setLevel(saved_level)


def _sync_args(**kwargs):
    """Build an argparse.Namespace with defaults for sync commands."""
    defaults = {"command": "sync", "sync_action": "status", "json": False, "full": False, "id": None}
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


def _record_args(**kwargs):
    defaults = {
        "command": "record",
        "record_action": "create",
        "table": "reptiles",
        "record_id": None,
        "id": None,
        "data": None,
        "set": None,
        "json": False,
        "offline": False,
    }
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


def _mirror_args(**kwargs):
    defaults = {
        "command": "mirror",
        "mirror_action": "list",
        "table": "reptiles",
        "reptile": None,
        "limit": 0,
        "json": False,
    }
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


def _queue_reptile(s, rid, name="Monty"):
    body = {"id": rid, "name": name}
    s.mirror.put(SyncTable.REPTILES, body, MirrorSyncStatus.PENDING, track_undo=True)
    return s.queue.enqueue(Operation.CREATE, SyncTable.REPTILES, rid, body)


# ============================================================================
# sync
# ============================================================================


class TestSyncStatus:
    def test_text(self, s, capsys):
        _queue_reptile(s, "r1")
        cmd_sync(_sync_args(), s)
        out = capsys.readouterr().out
        assert "Sync Status" in out
        assert "Backend: http://localhost:8000" in out
        assert "Connection: online" in out
        assert "Pending changes: 1" in out
        assert "Last sync: never" in out

    def test_json(self, s, capsys):
        entry = _queue_reptile(s, "r1")
        s.queue.mark_failed(entry.id, "conflict", ErrorType.CONFLICT)

        cmd_sync(_sync_args(json=True), s)

        data = json.loads(capsys.readouterr().out)
        assert data["pending"] == 0
        assert data["failed_terminal"] == 1
        assert data["failed"] == 1

    def test_needs_attention_hint(self, s, capsys):
        entry = _queue_reptile(s, "r1")
        s.queue.mark_failed(entry.id, "gone", ErrorType.NOT_FOUND)
        cmd_sync(_sync_args(), s)
        assert "snakey sync failed" in capsys.readouterr().out


class TestSyncFailed:
    def test_none(self, s, capsys):
        cmd_sync(_sync_args(sync_action="failed"), s)
        assert "✓ No failed changes" in capsys.readouterr().out

    def test_lists_entries(self, s, capsys):
        entry = _queue_reptile(s, "r1")
        s.queue.mark_failed(entry.id, "Reptile r1 belongs to another user", ErrorType.FORBIDDEN)

        cmd_sync(_sync_args(sync_action="failed"), s)

        out = capsys.readouterr().out
        assert "Failed changes (1):" in out
        assert "[FORBIDDEN]" in out

    def test_json(self, s, capsys):
        entry = _queue_reptile(s, "r1")
        s.queue.mark_failed(entry.id, "bad", ErrorType.VALIDATION_ERROR)

        cmd_sync(_sync_args(sync_action="failed", json=True), s)

        (item,) = json.loads(capsys.readouterr().out)
        assert item["recordId"] == "r1"
        assert item["errorType"] == "VALIDATION_ERROR"
        assert item["payload"] == {"id": "r1", "name": "Monty"}


class TestSyncRun:
    def test_run_pushes_and_pulls(self, s, transport, capsys):
        _queue_reptile(s, "r1")
        _queue_reptile(s, "r2")

        cmd_sync(_sync_args(sync_action="run"), s)

        out = capsys.readouterr().out
        assert "✓ Sync complete" in out
        assert "Pushed: 2 (1 batches)" in out
        assert transport.pulls == [0]

    def test_run_json(self, s, capsys):
        cmd_sync(_sync_args(sync_action="run", json=True), s)
        data = json.loads(capsys.readouterr().out)
        assert data["pushed"] == 0
        assert data["skipped"] is False

    def test_run_failure_exits_nonzero(self, s, transport, capsys):
        _queue_reptile(s, "r1")
        transport.push_error = TransportError("connection refused")

        with pytest.raises(SystemExit) as exc:
            cmd_sync(_sync_args(sync_action="run"), s)

        assert exc.value.code == 1
        out = capsys.readouterr().out
        assert "⚠ Sync complete" in out
        assert "connection refused" in out

    def test_run_without_backend(self, offline_s, capsys):
        with pytest.raises(SystemExit) as exc:
            cmd_sync(_sync_args(sync_action="run"), offline_s)
        assert exc.value.code == 1
        assert "✗ Backend not configured" in capsys.readouterr().out

    def test_push(self, s, transport, capsys):
        _queue_reptile(s, "r1")
        cmd_sync(_sync_args(sync_action="push"), s)
        assert "✓ Push complete" in capsys.readouterr().out
        assert transport.pulls == []

    def test_pull_full_resets_cursor(self, s, transport, capsys):
        s.meta.set_pull_cursor(5_000)
        cmd_sync(_sync_args(sync_action="pull", full=True), s)
        assert transport.pulls == [0]
        assert "✓ Pull complete" in capsys.readouterr().out

    def test_unknown_action(self, s, capsys):
        with pytest.raises(SystemExit) as exc:
            cmd_sync(_sync_args(sync_action="bogus"), s)
        assert exc.value.code == 2


class TestSyncRetry:
    def test_retry_without_backend_only_requeues(self, offline_s, capsys):
        entry = _queue_reptile(offline_s, "r1")
        offline_s.queue.mark_failed(entry.id, "bad", ErrorType.VALIDATION_ERROR)

        cmd_sync(_sync_args(sync_action="retry"), offline_s)

        assert "✓ 1 failed changes requeued" in capsys.readouterr().out
        assert offline_s.queue.pending_count() == 1

    def test_retry_with_backend_syncs(self, s, transport, capsys):
        entry = _queue_reptile(s, "r1")
        s.queue.mark_failed(entry.id, "bad", ErrorType.VALIDATION_ERROR)

        cmd_sync(_sync_args(sync_action="retry", id=[entry.id]), s)

        assert "✓ Retry complete" in capsys.readouterr().out
        assert s.queue.get(entry.id) is None


# ============================================================================
# record
# ============================================================================


class TestParseFields:
    def test_data_and_set(self):
        payload = _parse_fields(
            _record_args(
                data='{"name": "Monty"}',
                set=["accepted=true", "currentWeight=1250.5", "species=Python regius"],
            )
        )
        assert payload == {
            "name": "Monty",
            "accepted": True,
            "currentWeight": 1250.5,
            "species": "Python regius",
        }

    def test_set_overrides_data(self):
        payload = _parse_fields(_record_args(data='{"name": "A"}', set=["name=B"]))
        assert payload == {"name": "B"}

    @pytest.mark.parametrize("data", ["{not json", "[1, 2]"])
    def test_invalid_data(self, data):
        with pytest.raises(ValueError):
            _parse_fields(_record_args(data=data))

    def test_set_requires_equals(self):
        with pytest.raises(ValueError, match="key=value"):
            _parse_fields(_record_args(set=["oops"]))


class TestRecordCommands:
    def test_create_offline_queues(self, s, transport, capsys):
        cmd_record(_record_args(offline=True, id="r1", set=["name=Monty"]), s)

        assert "✓ Created r1 (queued, will sync later)" in capsys.readouterr().out
        assert transport.singles == []
        assert s.queue.pending_count() == 1

    def test_create_online_syncs(self, s, transport, capsys):
        cmd_record(_record_args(id="r1", set=["name=Monty"]), s)

        assert "✓ Created r1 (synced)" in capsys.readouterr().out
        assert len(transport.singles) == 1

    def test_create_json(self, s, capsys):
        cmd_record(_record_args(id="r1", set=["name=Monty"], json=True, offline=True), s)
        data = json.loads(capsys.readouterr().out)
        assert data["recordId"] == "r1"
        assert data["outcome"] == "queued"
        assert data["record"]["name"] == "Monty"

    def test_rejected_write_exits_nonzero(self, s, transport, capsys):
        transport.single_handler = lambda table, op: SyncResult(
            success=False,
            record_id=op.record_id,
            error="Invalid reptiles payload",
            error_type=ErrorType.VALIDATION_ERROR,
        )

        with pytest.raises(SystemExit) as exc:
            cmd_record(_record_args(id="r1"), s)

        assert exc.value.code == 1
        assert "rejected by server; local change reverted" in capsys.readouterr().out

    def test_update_and_delete(self, s, capsys):
        s.mirror.put(SyncTable.REPTILES, {"id": "r1", "name": "Monty"})

        cmd_record(
            _record_args(record_action="update", record_id="r1", set=["notes=Ate well"]), s
        )
        cmd_record(_record_args(record_action="delete", record_id="r1"), s)

        out = capsys.readouterr().out
        assert "✓ Updated r1 (synced)" in out
        assert "✓ Deleted r1 (synced)" in out
        assert s.mirror.get(SyncTable.REPTILES, "r1") is None


# ============================================================================
# mirror
# ============================================================================


class TestMirrorCommands:
    def test_list_empty(self, s, capsys):
        cmd_mirror(_mirror_args(), s)
        assert "No reptiles in the local mirror" in capsys.readouterr().out

    def test_list_marks_pending(self, s, capsys):
        s.mirror.put(SyncTable.REPTILES, {"id": "r1", "name": "Monty"})
        s.mirror.put(SyncTable.REPTILES, {"id": "r2", "name": "Kaa"}, MirrorSyncStatus.PENDING)

        cmd_mirror(_mirror_args(), s)

        out = capsys.readouterr().out
        assert "reptiles (2):" in out
        assert "• r2  Kaa" in out
        assert "local change not yet confirmed" in out

    def test_list_by_reptile_with_limit(self, s, capsys):
        for i in range(3):
            s.mirror.put(SyncTable.FEEDINGS, {"id": f"f{i}", "reptileId": "r1"})
        s.mirror.put(SyncTable.FEEDINGS, {"id": "other", "reptileId": "r2"})

        cmd_mirror(_mirror_args(table="feedings", reptile="r1", limit=2, json=True), s)

        records = json.loads(capsys.readouterr().out)
        assert len(records) == 2
        assert all(r["reptileId"] == "r1" for r in records)

    def test_show(self, s, capsys):
        s.mirror.put(SyncTable.REPTILES, {"id": "r1", "name": "Monty"})
        cmd_mirror(_mirror_args(mirror_action="show", record_id="r1"), s)
        out = capsys.readouterr().out
        assert "name: Monty" in out
        assert "sync status: synced" in out

    def test_show_missing(self, s, capsys):
        cmd_mirror(_mirror_args(mirror_action="show", record_id="nope"), s)
        assert "✗ reptiles:nope is not in the local mirror" in capsys.readouterr().out


# ============================================================================
# main
# ============================================================================


class TestMain:
    def test_parser_rejects_unknown_table(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["mirror", "list", "eggs"])

    def test_parser_record_flags(self):
        args = build_parser().parse_args(
            ["record", "--offline", "create", "feedings", "-s", "reptileId=r1", "-s", "accepted=true"]
        )
        assert args.offline
        assert args.table == "feedings"
        assert args.set == ["reptileId=r1", "accepted=true"]

    def test_main_mirror_list(self, restore_snakey_logger, capsys):
        main(["mirror", "list", "reptiles"])
        assert "No reptiles in the local mirror" in capsys.readouterr().out

    def test_main_reports_command_errors(self, restore_snakey_logger, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["record", "--offline", "create", "feedings", "--set", "preyType=mouse"])
        assert exc.value.code == 1
        assert "✗ reptileId is required" in capsys.readouterr().out

    def test_main_reports_missing_record(self, restore_snakey_logger, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["record", "--offline", "update", "reptiles", "ghost", "--set", "name=x"])
        assert exc.value.code == 1
        assert "✗ reptiles:ghost is not in the mirror" in capsys.readouterr().out
