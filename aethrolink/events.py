"""Conversions between runtime notifications, runtime events and task events."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from aethrolink.types import (
    EventSource,
    LocalRuntimeEvent,
    LocalRuntimeEventKind,
    TaskEvent,
    TaskEventKind,
    TaskStatus,
    new_id,
    now_utc,
)

_NOTIFICATION_KINDS: dict[str, tuple[TaskStatus, LocalRuntimeEventKind]] = {
    "task.awaiting_input": (TaskStatus.AWAITING_INPUT, LocalRuntimeEventKind.STATE_CHANGE),
    "task.completed": (TaskStatus.COMPLETED, LocalRuntimeEventKind.TERMINAL),
    "task.failed": (TaskStatus.FAILED, LocalRuntimeEventKind.TERMINAL),
    "task.cancelled": (TaskStatus.CANCELLED, LocalRuntimeEventKind.TERMINAL),
}

_TERMINAL_TASK_KINDS = {
    TaskStatus.COMPLETED: TaskEventKind.COMPLETED,
    TaskStatus.FAILED: TaskEventKind.FAILED,
    TaskStatus.CANCELLED: TaskEventKind.CANCELLED,
}


def clone_event_data(data: Mapping[str, Any] | None) -> dict[str, Any]:
    """Copy event data, recursing into nested mappings."""
    if data is None:
        return {}
    return {
        key: clone_event_data(value) if isinstance(value, Mapping) else value
        for key, value in data.items()
    }


def task_event_kind_for(event: LocalRuntimeEvent) -> TaskEventKind:
    """Map a runtime event onto the task event kind it represents."""
    if event.kind is LocalRuntimeEventKind.TERMINAL and event.state in _TERMINAL_TASK_KINDS:
        return _TERMINAL_TASK_KINDS[event.state]
    if event.state is TaskStatus.AWAITING_INPUT:
        return TaskEventKind.AWAITING_INPUT
    return TaskEventKind.RUNNING


def runtime_event_to_task_event(task_id: str, event: LocalRuntimeEvent) -> TaskEvent:
    """Build the persisted task event for a runtime event."""
    return TaskEvent(
        event_id=new_id(),
        task_id=task_id,
        kind=task_event_kind_for(event),
        state=event.state,
        source=EventSource.ADAPTER,
        message=event.message,
        data=clone_event_data(event.data),
        created_at=event.created_at,
    )


def notification_to_runtime_event(raw: Mapping[str, Any]) -> LocalRuntimeEvent:
    """Normalise an ACP structured notification into a runtime event."""
    kind = raw.get("kind")
    message = raw.get("message")
    data = raw.get("data")
    state, event_kind = _NOTIFICATION_KINDS.get(
        kind if isinstance(kind, str) else "",
        (TaskStatus.RUNNING, LocalRuntimeEventKind.PROGRESS),
    )
    return LocalRuntimeEvent(
        kind=event_kind,
        state=state,
        message=message if isinstance(message, str) else "",
        data=clone_event_data(data if isinstance(data, Mapping) else None),
        created_at=now_utc(),
    )


def payload_json(payload: Mapping[str, Any]) -> str:
    """Encode a payload as compact JSON with sorted keys."""
    return json.dumps(payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False)