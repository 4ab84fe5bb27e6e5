"""Sticky-session locking and persisted session bindings."""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Protocol

from aethrolink.events import clone_event_data
from aethrolink.types import SessionBinding

DEFAULT_SESSION_IDLE_TIMEOUT = timedelta(hours=1)


class SessionBusyError(RuntimeError):
    """Raised when another task already holds a sticky session scope."""

    def __init__(self, scope: str) -> None:
        super().__init__(f"session scope busy: {scope}")
        self.scope = scope


class _BindingStore(Protocol):
    def get_session_binding(
        self, target_id: str, subcontext_key: str, sticky_key: str
    ) -> SessionBinding | None: ...

    def upsert_session_binding(self, binding: SessionBinding) -> None: ...

    def touch_session_binding_activity(
        self, target_id: str, subcontext_key: str, sticky_key: str, touched_at: datetime
    ) -> None: ...


class _MemoryBindingStore:
    """In-process binding store used when no persistent store is given."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[tuple[str, str, str], SessionBinding] = {}

    def get_session_binding(self, target_id, subcontext_key, sticky_key):
        with self._lock:
            found = self._items.get((target_id, subcontext_key, sticky_key))
            return dataclasses.replace(found) if found is not None else None

    def upsert_session_binding(self, binding):
        key = (binding.target_id, binding.subcontext_key, binding.sticky_key)
        with self._lock:
            self._items[key] = dataclasses.replace(binding)

    def touch_session_binding_activity(self, target_id, subcontext_key, sticky_key, touched_at):
        with self._lock:
            found = self._items.get((target_id, subcontext_key, sticky_key))
            if found is not None:
                found.last_activity_at = touched_at


def session_scope(target_id: str, subcontext_key: str, sticky_key: str) -> str:
    """In-process lock scope of a sticky runtime session."""
    return f"{target_id}::{subcontext_key}::{sticky_key}"


class SessionCoordinator:
    """Serialises prompts per sticky session and persists session bindings."""

    def __init__(self, store: _BindingStore | None = None) -> None:
        self._store: _BindingStore = store if store is not None else _MemoryBindingStore()
        self._lock = threading.Lock()
        self._active: dict[str, str] = {}

    def try_acquire(self, scope: str, task_id: str) -> None:
        """Claim ``scope`` for ``task_id``; raise SessionBusyError if another task holds it."""
        with self._lock:
            holder = self._active.get(scope)
            if holder is not None and holder != task_id:
                raise SessionBusyError(scope)
            self._active[scope] = task_id

    def release(self, scope: str, task_id: str) -> None:
        """Free ``scope`` if ``task_id`` holds it."""
        with self._lock:
            if self._active.get(scope) == task_id:
                del self._active[scope]

    def load_binding(
        self, target_id: str, subcontext_key: str, sticky_key: str
    ) -> SessionBinding | None:
        """Return the persisted binding, or None when there is none."""
        return self._store.get_session_binding(target_id, subcontext_key, sticky_key)

    def persist_binding(
        self,
        target_id: str,
        subcontext_key: str,
        sticky_key: str,
        adapter: str,
        remote_session_id: str,
        metadata: Mapping[str, Any] | None,
        touched_at: datetime,
    ) -> SessionBinding:
        """Create or refresh the binding and return what was stored."""
        binding = self.load_binding(target_id, subcontext_key, sticky_key)
        if binding is None:
            binding = SessionBinding(created_at=touched_at)
        binding.target_id = target_id
        binding.subcontext_key = subcontext_key
        binding.sticky_key = sticky_key
        binding.adapter = adapter
        binding.remote_session_id = remote_session_id
        binding.metadata = clone_event_data(metadata)
        binding.updated_at = touched_at
        binding.last_used_at = touched_at
        binding.last_activity_at = touched_at
        self._store.upsert_session_binding(binding)
        return binding

    def touch_activity(
        self, target_id: str, subcontext_key: str, sticky_key: str, touched_at: datetime
    ) -> None:
        """Record the latest runtime activity on a binding."""
        self._store.touch_session_binding_activity(target_id, subcontext_key, sticky_key, touched_at)


def session_idle_timeout(runtime_options: Mapping[str, Any] | None) -> timedelta:
    """Idle timeout from ``session_idle_timeout_ms``, defaulting to one hour."""
    if runtime_options is None:
        return DEFAULT_SESSION_IDLE_TIMEOUT
    value = runtime_options.get("session_idle_timeout_ms")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return DEFAULT_SESSION_IDLE_TIMEOUT
    return timedelta(milliseconds=value)


def session_binding_stale(
    binding: SessionBinding, idle_timeout: timedelta, now: datetime
) -> bool:
    """Whether a binding must be discarded instead of reused."""
    if not binding.remote_session_id:
        return True
    if idle_timeout <= timedelta(0):
        return False
    return now - binding.last_activity_at > idle_timeout