"""Tests for the key-value stores and their self-healing behavior."""

import json
import os
import stat
from concurrent.futures import ThreadPoolExecutor

from smartwallet.storage import FileStore, MemoryStore


class TestMemoryStore:
    def test_values_are_copies(self):
        store = MemoryStore()
        original = {"wallets": {"a": 1}}
        store.set("k", original)
        original["wallets"]["a"] = 2

        assert store.get("k") == {"wallets": {"a": 1}}

    def test_corrupted_entry_reads_as_missing(self):
        store = MemoryStore({"ok": 1})
        store.set_raw("broken", "{not json")

        assert store.get("broken") is None
        assert store.get("ok") == 1

    def test_remove_and_clear(self):
        store = MemoryStore({"a": 1, "b": 2})
        store.remove("a")
        store.remove("missing")
        assert store.get("a") is None
        store.clear()
        assert store.get("b") is None


class TestFileStore:
    def test_set_get_remove_persist_across_instances(self, tmp_path):
        path = tmp_path / "home" / "session.json"
        FileStore(path).set("oauth_state", "abc")

        reopened = FileStore(path)
        assert reopened.get("oauth_state") == "abc"
        reopened.remove("oauth_state")
        assert FileStore(path).get("oauth_state") is None

    def test_private_permissions(self, tmp_path):
        path = tmp_path / "home" / "wallets.json"
        FileStore(path).set("k", 1)

        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(path.parent).st_mode) == 0o700

    def test_unreadable_file_resets_with_warning(self, tmp_path, caplog):
        path = tmp_path / "wallets.json"
        path.write_text("{truncated")
        store = FileStore(path)

        with caplog.at_level("WARNING"):
            assert store.get("anything") is None
        assert "Resetting unreadable store" in caplog.text
        assert json.loads(path.read_text()) == {}

    def test_non_object_file_resets(self, tmp_path):
        path = tmp_path / "wallets.json"
        path.write_text("[1, 2, 3]")
        store = FileStore(path)

        assert store.get("k") is None
        store.set("k", "v")
        assert json.loads(path.read_text()) == {"k": "v"}

    def test_concurrent_writers_do_not_lose_keys(self, tmp_path):
        path = tmp_path / "store.json"

        def write(i: int) -> None:
            FileStore(path).set(f"key-{i}", i)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(write, range(24)))

        store = FileStore(path)
        assert all(store.get(f"key-{i}") == i for i in range(24))

    def test_clear(self, tmp_path):
        store = FileStore(tmp_path / "s.json")
        store.set("a", 1)
        store.clear()
        assert store.get("a") is None
