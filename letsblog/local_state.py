from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from .errors import StorageError
from .storage_schema import LOCAL_MIGRATIONS, initialize_sqlite


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class KeyValueStore(Protocol):
    def get_item(self, key: str) -> Any | None: ...

    def set_item(self, key: str, value: Any) -> None: ...

    def remove_item(self, key: str) -> None: ...


class SQLiteKeyValueStore:
    """
    On-device key-value persistence for the local fallback store.

    Each value is serialized as JSON text and replaced whole on every write.
    Assumes a single writer: concurrent processes doing read-modify-write on the
    same key will lose updates.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    @classmethod
    def open(cls, path: str | Path) -> "SQLiteKeyValueStore":
        db_path = str(path)
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(db_path)
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to open sqlite database: {db_path}: {e}") from e

        try:
            initialize_sqlite(conn, LOCAL_MIGRATIONS)
        except Exception as e:
            conn.close()
            raise StorageError(f"Failed to initialize sqlite schema: {e}") from e

        return cls(conn)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteKeyValueStore":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def get_item(self, key: str) -> Any | None:
        k = (key or "").strip()
        if not k:
            raise ValueError("key must be non-empty")

        row = self._conn.execute("SELECT value FROM kv_items WHERE key = ?", (k,)).fetchone()
        if row is None:
            return None

        try:
            return json.loads(row["value"])
        except ValueError as e:
            raise StorageError(f"Stored value for {k!r} is not valid JSON: {e}") from e

    def set_item(self, key: str, value: Any) -> None:
        k = (key or "").strip()
        if not k:
            raise ValueError("key must be non-empty")

        payload = json.dumps(value, ensure_ascii=False, separators=(",", ":"))

        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO kv_items(key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                      value = excluded.value,
                      updated_at = excluded.updated_at
                    """.strip(),
                    (k, payload, _utc_now_iso()),
                )
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to write {k!r}: {e}") from e

    def remove_item(self, key: str) -> None:
        k = (key or "").strip()
        if not k:
            raise ValueError("key must be non-empty")

        try:
            with self._conn:
                self._conn.execute("DELETE FROM kv_items WHERE key = ?", (k,))
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to remove {k!r}: {e}") from e

    def keys(self) -> list[str]:
        rows = self._conn.execute("SELECT key FROM kv_items ORDER BY key").fetchall()
        return [str(r["key"]) for r in rows]
