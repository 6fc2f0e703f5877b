"""Tests for the JSON state store."""

import asyncio
import json
import os
import threading
import time

import pytest

from unibtc_swap_bot.state_store import ReadWriteLock, StateStore


def _bump_mtime(path):
    """Make an external edit visible regardless of filesystem timestamp resolution."""
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))


class TestLoad:
    """Test loading and defaulting."""

    def test_missing_file_writes_default(self, state_path, default_state):
        store = StateStore(str(state_path), default_state=default_state)

        state = store.load()

        assert state == default_state
        on_disk = json.loads(state_path.read_text())
        assert on_disk == {
            "notificationTargets": ["https://push.example/key/Swap/"],
            "lastBlockNumber": "1000",
            "recentTxHashes": ["0xseed"],
        }

    def test_corrupt_file_is_replaced_and_kept_aside(self, state_path, default_state):
        state_path.write_text("{ this is not json")
        store = StateStore(str(state_path), default_state=default_state)

        state = store.load()

        assert state == default_state
        assert json.loads(state_path.read_text())["lastBlockNumber"] == "1000"
        corrupt = state_path.with_name(state_path.name + ".corrupt")
        assert corrupt.read_text() == "{ this is not json"

    @pytest.mark.parametrize(
        "document",
        [
            {"notificationTargets": [], "lastBlockNumber": "abc", "recentTxHashes": []},
            {"notificationTargets": []},
            ["not", "an", "object"],
        ],
    )
    def test_invalid_document_uses_default(self, state_path, default_state, document):
        state_path.write_text(json.dumps(document))
        store = StateStore(str(state_path), default_state=default_state)

        assert store.load() == default_state

    def test_legacy_keys_are_accepted(self, state_path, default_state):
        state_path.write_text(json.dumps({
            "barkAPIURLs": ["https://api.day.app/k/"],
            "lastBlockNumber": "21612681",
            "currentTxHashes": ["0xabc"],
        }))
        store = StateStore(str(state_path), default_state=default_state)

        state = store.load()
        store.save()

        assert state.notification_targets == ["https://api.day.app/k/"]
        assert state.recent_tx_hashes == ["0xabc"]
        on_disk = json.loads(state_path.read_text())
        assert list(on_disk) == ["notificationTargets", "lastBlockNumber", "recentTxHashes"]

    def test_integer_block_number_is_coerced(self, state_path, default_state):
        state_path.write_text(json.dumps({
            "notificationTargets": [],
            "lastBlockNumber": 21700000,
            "recentTxHashes": [],
        }))
        store = StateStore(str(state_path), default_state=default_state)

        assert store.load().last_block_number == "21700000"

    def test_unknown_fields_survive_round_trip(self, state_path, default_state):
        state_path.write_text(json.dumps({
            "notificationTargets": ["https://a.example/"],
            "lastBlockNumber": "5",
            "recentTxHashes": [],
            "futureSetting": {"enabled": True},
        }))
        store = StateStore(str(state_path), default_state=default_state)

        store.load()
        store.save()

        assert json.loads(state_path.read_text())["futureSetting"] == {"enabled": True}


class TestSave:
    """Test persistence."""

    def test_save_of_load_is_byte_identical(self, store, state_path):
        before = state_path.read_bytes()

        store.save()

        assert state_path.read_bytes() == before

    def test_save_writes_mutations(self, store, state_path):
        store.set_last_block_number("2000")
        store.set_recent_tx_hashes(["0xa", "0xb", "0xa"])
        store.save()

        on_disk = json.loads(state_path.read_text())
        assert on_disk["lastBlockNumber"] == "2000"
        assert on_disk["recentTxHashes"] == ["0xa", "0xb"]

    def test_save_leaves_no_temp_files(self, store, state_path):
        store.save()
        store.save()

        assert sorted(p.name for p in state_path.parent.iterdir()) == [state_path.name]


class TestAccessors:
    """Test lock-guarded getters and setters."""

    def test_getters_return_copies(self, store):
        targets = store.get_notification_targets()
        hashes = store.get_recent_tx_hashes()
        targets.append("https://evil.example/")
        hashes.add("0xinjected")

        assert store.get_notification_targets() == ["https://push.example/key/Swap/"]
        assert store.get_recent_tx_hashes() == {"0xseed"}

    def test_set_block_number_rejects_garbage(self, store):
        with pytest.raises(ValueError):
            store.set_last_block_number("12a")
        assert store.get_last_block_number() == "1000"


class TestReload:
    """Test hot reload of external edits."""

    def test_external_edit_is_picked_up(self, store, state_path):
        state_path.write_text(json.dumps({
            "notificationTargets": ["https://new.example/k/"],
            "lastBlockNumber": "1000",
            "recentTxHashes": ["0xseed"],
        }))
        _bump_mtime(state_path)

        assert store.reload() is True
        assert store.get_notification_targets() == ["https://new.example/k/"]

    def test_own_save_does_not_trigger_reload(self, store):
        store.set_last_block_number("1234")
        store.save()

        assert store.reload() is False
        assert store.get_last_block_number() == "1234"

    def test_broken_edit_keeps_current_state(self, store, state_path):
        state_path.write_text('{"notificationTargets": [')
        _bump_mtime(state_path)

        assert store.reload() is False
        assert store.get_last_block_number() == "1000"
        assert state_path.read_text() == '{"notificationTargets": ['

    @pytest.mark.asyncio
    async def test_watch_reloads_in_background(self, store, state_path):
        task = asyncio.create_task(store.watch(interval=0.01))
        try:
            state_path.write_text(json.dumps({
                "notificationTargets": ["https://watched.example/"],
                "lastBlockNumber": "1000",
                "recentTxHashes": [],
            }))
            _bump_mtime(state_path)
            for _ in range(100):
                await asyncio.sleep(0.01)
                if store.get_notification_targets() == ["https://watched.example/"]:
                    break
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert store.get_notification_targets() == ["https://watched.example/"]


def test_writer_waits_for_reader():
    lock = ReadWriteLock()
    events = []

    def writer():
        with lock.write():
            events.append("write")

    with lock.read():
        thread = threading.Thread(target=writer)
        thread.start()
        time.sleep(0.05)
        events.append("read-done")

    thread.join(timeout=1)
    assert events == ["read-done", "write"]
