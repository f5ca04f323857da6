"""Local key-value stores used for quota snapshots."""

from pathlib import Path
from typing import Protocol

from smokefree_qa.storage.database import connect, initialize_database


class KeyValueStore(Protocol):
    """Minimal get/set/delete store keyed by string."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Process-local store; contents are lost on exit."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqliteKeyValueStore:
    """Store backed by the ``settings`` table of the application database.

    Args:
        db_path: Path to the SQLite database file. The schema is created
            on construction if missing.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = db_path
        initialize_database(db_path)

    def get(self, key: str) -> str | None:
        with connect(self._db_path) as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with connect(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO settings (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )

    def delete(self, key: str) -> None:
        with connect(self._db_path) as conn:
            conn.execute("DELETE FROM settings WHERE key = ?", (key,))
