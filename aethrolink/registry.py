"""Thread-safe registry of runtime adapters keyed by adapter kind."""

from __future__ import annotations

import threading
from typing import Any


class AdapterRegistry:
    """Maps adapter kinds such as ``"acp"`` to adapter instances."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[str, Any] = {}

    def register(self, kind: str, adapter: Any) -> None:
        """Register ``adapter`` under ``kind``, replacing any previous one."""
        with self._lock:
            self._items[kind] = adapter

    def get(self, kind: str) -> Any | None:
        """Return the adapter registered under ``kind``, or None."""
        with self._lock:
            return self._items.get(kind)

    def __contains__(self, kind: object) -> bool:
        with self._lock:
            return kind in self._items