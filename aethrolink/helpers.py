"""Small helpers shared by the ACP adapter and its dialects."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from aethrolink.types import TaskEnvelope, TaskRecord, WorkspaceBinding

DEFAULT_INITIALIZE_TIMEOUT = timedelta(seconds=30)
DEFAULT_SESSION_SETUP_TIMEOUT = timedelta(seconds=90)
_MIN_PROMPT_TIMEOUT = timedelta(minutes=1)


def as_string(mapping: Mapping[str, Any] | None, key: str) -> str:
    """Return ``mapping[key]`` when it is a string, else an empty string."""
    if mapping is None:
        return ""
    value = mapping.get(key)
    return value if isinstance(value, str) else ""


def extract_prompt_text(task: TaskEnvelope) -> str:
    """Return the payload's ``text`` or ``prompt`` field, whichever is set first."""
    for key in ("text", "prompt"):
        value = as_string(task.payload, key)
        if value:
            return value
    return ""


def adapter_cwd(runtime_options: Mapping[str, Any] | None) -> str:
    """Resolve the runtime working directory, defaulting to the current one."""
    return as_string(runtime_options, "cwd") or "."


def normalize_workspace_binding(binding: WorkspaceBinding) -> WorkspaceBinding:
    """Return the binding with an empty cwd replaced by ``"."``."""
    if binding.cwd:
        return binding
    return dataclasses.replace(binding, cwd=".")


def prompt_timeout(idle_timeout: timedelta) -> timedelta:
    """Prompt RPC timeout: the idle timeout, but never below one minute."""
    return max(idle_timeout, _MIN_PROMPT_TIMEOUT)


def merge_options(
    base: Mapping[str, Any] | None, override: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Return a new dict of ``base`` overlaid with ``override``."""
    return {**(base or {}), **(override or {})}


def session_matches(params: Mapping[str, Any], session_id: str) -> bool:
    """Whether a notification's session id equals ``session_id``."""
    sid = as_string(params, "sessionId") or as_string(params, "session_id")
    return sid == session_id


def chunk_text(params: Mapping[str, Any]) -> str | None:
    """Return streamed assistant text from an agent_message_chunk update, if any."""
    update = params.get("update")
    if not isinstance(update, Mapping):
        return None
    if as_string(update, "sessionUpdate") != "agent_message_chunk":
        return None
    content = update.get("content")
    if not isinstance(content, Mapping):
        return None
    return as_string(content, "text") or None


def task_remote_session_id(task: TaskRecord) -> str:
    """Return the persisted remote session id of a task, or an empty string."""
    return task.remote.remote_session_id if task.remote is not None else ""


def duration_option(
    runtime_options: Mapping[str, Any] | None, key: str, fallback: timedelta
) -> timedelta:
    """Read a positive millisecond option as a timedelta, else ``fallback``."""
    if runtime_options is None:
        return fallback
    value = runtime_options.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    if value <= 0:
        return fallback
    return timedelta(milliseconds=value)


def initialize_timeout(runtime_options: Mapping[str, Any] | None) -> timedelta:
    """Timeout for the ACP initialize handshake."""
    return duration_option(runtime_options, "initialize_timeout_ms", DEFAULT_INITIALIZE_TIMEOUT)


def session_setup_timeout(runtime_options: Mapping[str, Any] | None) -> timedelta:
    """Timeout for opening or loading an ACP session."""
    return duration_option(
        runtime_options, "session_setup_timeout_ms", DEFAULT_SESSION_SETUP_TIMEOUT
    )