"""String key-value stores backing local progress persistence."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when a key-value backend cannot read or write."""


class InMemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileKeyValueStore:
    """One JSON object on disk mapping keys to raw string values."""

    def __init__(self, path: str, logger_instance=None) -> None:
        self.path = str(path or "").strip()
        self.logger = logger_instance or logger
        self._lock = threading.Lock()
        self._cached: dict[str, str] = {}
        self._cached_mtime: float | None = None
        self._loaded = False

    def get(self, key: str) -> str | None:
        with self._lock:
            self._refresh_cache_locked()
            return self._cached.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._refresh_cache_locked()
            updated = dict(self._cached)
            updated[key] = str(value)
            self._write_locked(updated)

    def remove(self, key: str) -> None:
        with self._lock:
            self._refresh_cache_locked()
            if key not in self._cached:
                return
            updated = dict(self._cached)
            updated.pop(key, None)
            self._write_locked(updated)

    def keys(self) -> list[str]:
        with self._lock:
            self._refresh_cache_locked()
            return list(self._cached)

    def _write_locked(self, payload: dict[str, str]) -> None:
        if not self.path:
            raise StorageError("Storage path is not configured.")
        parent = os.path.dirname(os.path.abspath(self.path))
        try:
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, ensure_ascii=False, indent=2, sort_keys=True)
                handle.write("\n")
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"Failed to write storage file {self.path}: {exc}") from exc
        try:
            self._cached_mtime = os.path.getmtime(self.path)
        except OSError:
            self._cached_mtime = None
        self._cached = payload
        self._loaded = True

    def _refresh_cache_locked(self) -> None:
        if not self.path:
            self._loaded = True
            return
        try:
            mtime = os.path.getmtime(self.path)
        except FileNotFoundError:
            self._cached = {}
            self._cached_mtime = None
            self._loaded = True
            return
        except OSError as exc:
            raise StorageError(f"Failed to inspect storage file {self.path}: {exc}") from exc

        if self._loaded and self._cached_mtime == mtime:
            return

        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Failed to read storage file {self.path}: {exc}") from exc
        if not isinstance(payload, dict):
            self.logger.warning("Ignoring storage file without a JSON object: %s", self.path)
            payload = {}
        self._cached = {
            str(key): value if isinstance(value, str) else json.dumps(value)
            for key, value in payload.items()
        }
        self._cached_mtime = mtime
        self._loaded = True


class SqliteKeyValueStore:
    def __init__(self, db_path: str, *, table_name: str = "kv_store", logger_instance=None) -> None:
        self.db_path = str(db_path or "").strip()
        self.table_name = table_name
        self.logger = logger_instance or logger
        self._db_lock = threading.Lock()
        self._schema_ready = False

    def get(self, key: str) -> str | None:
        rows = self._execute(f'SELECT value FROM "{self.table_name}" WHERE key = ?', (key,))
        return rows[0][0] if rows else None

    def set(self, key: str, value: str) -> None:
        self._execute(
            f'INSERT INTO "{self.table_name}" (key, value) VALUES (?, ?) '
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, str(value)),
        )

    def remove(self, key: str) -> None:
        self._execute(f'DELETE FROM "{self.table_name}" WHERE key = ?', (key,))

    def keys(self) -> list[str]:
        rows = self._execute(f'SELECT key FROM "{self.table_name}" ORDER BY key')
        return [row[0] for row in rows]

    def _ensure_schema_with_connection(self, connection: sqlite3.Connection) -> None:
        if self._schema_ready:
            return
        connection.execute(
            f'CREATE TABLE IF NOT EXISTS "{self.table_name}" '
            "(key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        self._schema_ready = True

    def _execute(self, statement: str, params: tuple = ()) -> list[tuple]:
        if not self.db_path:
            raise StorageError("Storage database path is empty.")
        parent = os.path.dirname(os.path.abspath(self.db_path))
        with self._db_lock:
            try:
                if parent:
                    os.makedirs(parent, exist_ok=True)
                connection = sqlite3.connect(self.db_path)
            except (OSError, sqlite3.Error) as exc:
                raise StorageError(f"Failed to open storage database {self.db_path}: {exc}") from exc
            try:
                with connection:
                    self._ensure_schema_with_connection(connection)
                    return connection.execute(statement, params).fetchall()
            except sqlite3.Error as exc:
                raise StorageError(f"Storage database error: {exc}") from exc
            finally:
                connection.close()


def build_key_value_store(backend: str, path: str, logger_instance=None):
    """Create the configured backend: ``json``, ``sqlite`` or ``memory``."""
    normalized = str(backend or "json").strip().lower()
    if normalized == "memory":
        return InMemoryKeyValueStore()
    if normalized == "sqlite":
        return SqliteKeyValueStore(path, logger_instance=logger_instance)
    if normalized == "json":
        return JsonFileKeyValueStore(path, logger_instance=logger_instance)
    raise ValueError(f"Unknown storage backend: {backend}")
