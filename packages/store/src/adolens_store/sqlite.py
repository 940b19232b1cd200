"""SQLiteStore — local file-based settings store.

Schema:
  settings — one row per key; the value column holds JSON so that structured
             settings (the provider config) and plain strings share a table.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any

from adolens_store.base import BaseStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS settings (
    key         TEXT PRIMARY KEY,
    value_json  TEXT NOT NULL,
    updated_at  TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


class SQLiteStore(BaseStore):
    """Stores settings in a local SQLite database file.

    The database file path defaults to `.adolens.db` in the current working
    directory. Configure via .adolens.yml: `store_path: /path/to/adolens.db`.
    The file holds credentials in clear text; keep it out of version control.
    """

    def __init__(self, db_path: str = ".adolens.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def get(self, key: str) -> Any:
        row = self._conn.execute("SELECT value_json FROM settings WHERE key=?", (key,)).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value_json"])
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt value for setting %r", key)
            return None

    def set(self, key: str, value: Any) -> None:
        self._conn.execute(
            """
            INSERT INTO settings (key, value_json, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET value_json=excluded.value_json, updated_at=excluded.updated_at
            """,
            (key, json.dumps(value)),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM settings WHERE key=?", (key,))
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()
