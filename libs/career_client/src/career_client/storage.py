from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Protocol

LOGGER = logging.getLogger("career.client")


class KeyValueStorage(Protocol):
    """String key/value store; each batch call is applied as one unit."""

    def get_many(self, keys: Iterable[str]) -> dict[str, str]: ...

    def set_many(self, items: Mapping[str, str]) -> None: ...

    def delete_many(self, keys: Iterable[str]) -> None: ...


class MemoryStorage:
    def __init__(self) -> None:
        self._items: dict[str, str] = {}
        self._lock = threading.RLock()

    def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        with self._lock:
            return {key: self._items[key] for key in keys if key in self._items}

    def set_many(self, items: Mapping[str, str]) -> None:
        with self._lock:
            self._items.update(items)

    def delete_many(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._items.pop(key, None)


class JsonFileStorage:
    """JSON document on disk, shared by every process using the same path.

    Writes replace the whole file atomically, so a reader in another process
    sees either the previous document or the new one.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._last_seen = self._read_raw()

    def _read_raw(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except UnicodeDecodeError:
            LOGGER.warning(json.dumps({"event": "storage_corrupt", "path": str(self.path)}))
            return ""

    def _load(self) -> dict[str, str]:
        raw = self._read_raw()
        if not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.warning(json.dumps({"event": "storage_corrupt", "path": str(self.path)}))
            return {}
        if not isinstance(parsed, dict):
            return {}
        return {key: value for key, value in parsed.items() if isinstance(value, str)}

    def _dump(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(items, indent=2, sort_keys=True)
        tmp_path = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        try:
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        self._last_seen = content

    def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        with self._lock:
            items = self._load()
        return {key: items[key] for key in keys if key in items}

    def set_many(self, items: Mapping[str, str]) -> None:
        with self._lock:
            current = self._load()
            current.update(items)
            self._dump(current)

    def delete_many(self, keys: Iterable[str]) -> None:
        with self._lock:
            current = self._load()
            for key in keys:
                current.pop(key, None)
            self._dump(current)

    def has_external_change(self) -> bool:
        """Return True if the file changed since this instance last wrote or checked it."""
        with self._lock:
            raw = self._read_raw()
            if raw == self._last_seen:
                return False
            self._last_seen = raw
            return True


class StorageWatcher:
    """Polls a shared file and reports changes made by other processes."""

    def __init__(
        self,
        storage: JsonFileStorage,
        on_change: Callable[[], None],
        *,
        interval_seconds: float = 1.0,
    ) -> None:
        self.storage = storage
        self.on_change = on_change
        self.interval_seconds = interval_seconds

    def poll_once(self) -> bool:
        try:
            changed = self.storage.has_external_change()
        except OSError as exc:
            LOGGER.warning(
                json.dumps(
                    {
                        "event": "storage_poll_failed",
                        "path": str(self.storage.path),
                        "error": str(exc),
                    }
                )
            )
            return False
        if changed:
            self.on_change()
        return changed

    async def run(self) -> None:
        while True:
            self.poll_once()
            await asyncio.sleep(self.interval_seconds)
