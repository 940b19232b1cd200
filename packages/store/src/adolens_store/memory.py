"""In-memory store: nothing survives the process.

Useful in CI, where settings come from environment variables, and in tests.
Using a MemoryStore rather than None lets the CLI always go through the
store accessors without conditional checks.
"""

from __future__ import annotations

from typing import Any

from adolens_store.base import BaseStore


class MemoryStore(BaseStore):
    def __init__(self, initial: dict | None = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)
