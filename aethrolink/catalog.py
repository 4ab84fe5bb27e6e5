"""Dialect lookup and dialect-driven handle helpers of the ACP adapter."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from aethrolink.dialects import Dialect, HermesDialect, OpenClawDialect
from aethrolink.goose import GooseDialect
from aethrolink.helpers import as_string, merge_options
from aethrolink.types import RuntimeSpec, TaskRecord


class UnsupportedDialectError(ValueError):
    """Raised when a target or handle names no known dialect."""


@dataclass
class RemoteHandle:
    """Handle of a task submitted to a runtime."""

    task_id: str = ""
    target_id: str = ""
    binding: str = ""
    remote_execution_id: str = ""
    remote_session_id: str = ""
    adapter_state: dict[str, Any] = field(default_factory=dict)


def default_dialects() -> dict[str, Dialect]:
    """The built-in dialects keyed by name."""
    return {dialect.name: dialect for dialect in (HermesDialect(), OpenClawDialect(), GooseDialect())}


def resolve_dialect(dialects: Mapping[str, Dialect], spec: RuntimeSpec) -> Dialect:
    """Dialect named by the spec, falling back to its adapter name."""
    name = spec.dialect or spec.adapter
    try:
        return dialects[name]
    except KeyError:
        raise UnsupportedDialectError(
            f"unsupported acp dialect for target {spec.target_id}: {name}"
        ) from None


def dialect_from_state(
    dialects: Mapping[str, Dialect], adapter_state: Mapping[str, Any] | None
) -> Dialect:
    """Dialect recorded in a handle's adapter state."""
    name = as_string(adapter_state, "dialect")
    if not name:
        raise UnsupportedDialectError("missing dialect in adapter state")
    try:
        return dialects[name]
    except KeyError:
        raise UnsupportedDialectError(
            f"unsupported acp dialect in adapter state: {name}"
        ) from None


def subcontext_key_for(
    dialects: Mapping[str, Dialect],
    spec: RuntimeSpec,
    runtime_options: Mapping[str, Any] | None,
) -> str:
    """Worker scope for a target and request options, or ``""`` for unknown dialects."""
    try:
        dialect = resolve_dialect(dialects, spec)
    except UnsupportedDialectError:
        return ""
    return dialect.subcontext_key(merge_options(spec.defaults, runtime_options))


def rehydrate_handle(
    dialects: Mapping[str, Dialect], task: TaskRecord, spec: RuntimeSpec
) -> RemoteHandle:
    """Rebuild the remote handle of a persisted task."""
    dialect = resolve_dialect(dialects, spec)
    handle = RemoteHandle(task_id=task.task_id, target_id=task.resolved_agent_id)
    if task.remote is not None:
        handle.binding = task.remote.binding
        handle.remote_execution_id = task.remote.remote_execution_id
        handle.remote_session_id = task.remote.remote_session_id
    handle.adapter_state = dialect.rehydrate_state(task)
    return handle