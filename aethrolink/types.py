"""Core records shared by adapters, dialects and the session coordinator."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


class TaskStatus(str, Enum):
    """Lifecycle state of a task."""

    RUNNING = "running"
    AWAITING_INPUT = "awaiting_input"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        """Whether no further transitions follow this state."""
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


class LocalRuntimeEventKind(str, Enum):
    """Kind of a normalised runtime event."""

    PROGRESS = "progress"
    STATE_CHANGE = "state_change"
    TERMINAL = "terminal"


class TaskEventKind(str, Enum):
    """Kind of a persisted task event."""

    RUNNING = "task.running"
    AWAITING_INPUT = "task.awaiting_input"
    COMPLETED = "task.completed"
    FAILED = "task.failed"
    CANCELLED = "task.cancelled"


class EventSource(str, Enum):
    """Component that produced a task event."""

    ADAPTER = "adapter"


@dataclass
class LaunchSpec:
    """How a managed runtime process is started."""

    mode: str = ""
    command: list[str] = field(default_factory=list)
    commands: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class RuntimeSpec:
    """Resolved description of a dispatch target."""

    target_id: str = ""
    adapter: str = ""
    dialect: str = ""
    endpoint: str = ""
    healthcheck: str = ""
    launch: LaunchSpec = field(default_factory=LaunchSpec)
    defaults: dict[str, Any] = field(default_factory=dict)
    capabilities: list[str] = field(default_factory=list)
    owner: str = ""
    peer_id: str = ""
    peer_base_url: str = ""
    peer_status: str = ""


@dataclass
class TaskEnvelope:
    """A task as handed to an adapter for submission."""

    task_id: str = ""
    thread_id: str = ""
    conversation_id: str = ""
    sender: str = ""
    target_agent_id: str = ""
    intent: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    runtime_options: dict[str, Any] = field(default_factory=dict)


@dataclass
class RemoteInfo:
    """Remote execution details persisted with a task."""

    binding: str = ""
    remote_execution_id: str = ""
    remote_session_id: str = ""


@dataclass
class TaskRecord:
    """A persisted task."""

    task_id: str = ""
    resolved_agent_id: str = ""
    thread_id: str = ""
    conversation_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    runtime_options: dict[str, Any] = field(default_factory=dict)
    remote: RemoteInfo | None = None


@dataclass
class WorkspaceBinding:
    """Working directory and tool attachments for a runtime session."""

    cwd: str = ""
    attach_mcp: bool = False
    mcp_servers: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class LocalRuntimeEvent:
    """Runtime-neutral event emitted by a local runtime."""

    kind: LocalRuntimeEventKind = LocalRuntimeEventKind.PROGRESS
    state: TaskStatus = TaskStatus.RUNNING
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = ZERO_TIME


@dataclass
class TaskEvent:
    """Orchestrator-facing task event."""

    event_id: str = ""
    task_id: str = ""
    kind: TaskEventKind = TaskEventKind.RUNNING
    state: TaskStatus = TaskStatus.RUNNING
    source: EventSource = EventSource.ADAPTER
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = ZERO_TIME


@dataclass
class SessionBinding:
    """Persisted mapping from a sticky key to a remote session."""

    target_id: str = ""
    subcontext_key: str = ""
    sticky_key: str = ""
    adapter: str = ""
    remote_session_id: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = ZERO_TIME
    updated_at: datetime = ZERO_TIME
    last_used_at: datetime = ZERO_TIME
    last_activity_at: datetime = ZERO_TIME


def new_id() -> str:
    """Return a new time-ordered 26-character identifier."""
    value = (time.time_ns() // 1_000_000) << 80 | secrets.randbits(80)
    return "".join(_CROCKFORD[(value >> (5 * shift)) & 31] for shift in reversed(range(26)))


def now_utc() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(timezone.utc)