"""
Key-value stores behind the session and wallet namespaces.

Both implementations self-heal: unreadable content is logged and replaced
with an empty store instead of raising.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional, Protocol


logger = logging.getLogger(__name__)


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, 0o700)


def ensure_private_file(path: Path) -> None:
    if not path.exists():
        path.touch()
    os.chmod(path, 0o600)


class KeyValueStore(Protocol):
    def open(self) -> None: ...

    def close(self) -> None: ...

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemoryStore:
    """In-process store; values are copied through JSON like the file store."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, str] = {}
        self._open = False
        for k, v in (initial or {}).items():
            self._data[k] = json.dumps(v)

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Dropping corrupted in-memory entry %s", key)
            self._data.pop(key, None)
            return None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def set_raw(self, key: str, raw: str) -> None:
        """Store text as-is (used to simulate corruption)."""
        self._data[key] = raw

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


class FileStore:
    """JSON-file-backed store with lock-based concurrency control and atomic writes."""

    def __init__(self, path: Path):
        self.path = path
        self._lock_path = path.with_suffix(path.suffix + ".lock")
        self._opened = False

    def open(self) -> None:
        if self._opened:
            return
        ensure_private_dir(self.path.parent)
        ensure_private_file(self._lock_path)
        self._opened = True

    def close(self) -> None:
        self._opened = False

    @contextmanager
    def _lock(self):
        self.open()
        with open(self._lock_path, "r+") as lockf:
            fcntl.flock(lockf.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lockf.fileno(), fcntl.LOCK_UN)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (ValueError, OSError) as e:
            logger.warning("Resetting unreadable store %s: %s", self.path, e)
            self._save({})
            return {}
        if not isinstance(data, dict):
            logger.warning("Resetting store %s: top level is not an object", self.path)
            self._save({})
            return {}
        return data

    def _save(self, data: dict[str, Any]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + f".tmp.{os.getpid()}")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)
        ensure_private_file(self.path)

    def get(self, key: str) -> Optional[Any]:
        with self._lock():
            return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock():
            data = self._load()
            data[key] = value
            self._save(data)

    def remove(self, key: str) -> None:
        with self._lock():
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)

    def clear(self) -> None:
        with self._lock():
            self._save({})
