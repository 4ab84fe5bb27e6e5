"""A fake ACP runtime speaking JSON-RPC over line-delimited JSON.

It answers ``initialize`` and the ``session/*`` methods with deterministic
replies so session reuse, replay and recovery can be exercised without a
real model.
"""

from __future__ import annotations

import argparse
import json
import os
import re
import sys
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, TextIO

from aethrolink.types import new_id

_SAY_EXACTLY = re.compile(r"say exactly\s+(.+)", re.IGNORECASE)
_DEFAULT_DELAY = timedelta(milliseconds=300)


@dataclass
class SessionState:
    """Transcript and flags of one fake session."""

    waiting: bool = False
    messages: list[tuple[str, str]] = field(default_factory=list)
    last_exact: str = ""


def extract_mode(payload: Mapping[str, Any] | None) -> str:
    """Scenario mode from a payload (nested ``payload.mode`` first), default ``success``."""
    if payload is None:
        return "success"
    inner = payload.get("payload")
    if isinstance(inner, Mapping):
        mode = inner.get("mode")
        if isinstance(mode, str) and mode:
            return mode
    mode = payload.get("mode")
    if isinstance(mode, str) and mode:
        return mode
    return "success"


def duration_from_payload(
    payload: Mapping[str, Any] | None, key: str, fallback: timedelta
) -> timedelta:
    """Read a millisecond count from the payload, else ``fallback``."""
    if payload is None:
        return fallback
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    return timedelta(milliseconds=value)


def first_string(mapping: Mapping[str, Any] | None, *args: str) -> str:
    """First non-empty string value among the given keys."""
    if mapping is None:
        return ""
    for key in args:
        value = mapping.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def extract_prompt_text(params: Mapping[str, Any] | None) -> str:
    """First non-empty text item of the ``prompt`` array."""
    if params is None:
        return ""
    items = params.get("prompt")
    if not isinstance(items, list):
        return ""
    for item in items:
        if isinstance(item, Mapping):
            text = item.get("text")
            if isinstance(text, str) and text:
                return text
    return ""


def parse_say_exactly(prompt_text: str) -> str:
    """The phrase of a ``say exactly <phrase>`` prompt, or an empty string."""
    match = _SAY_EXACTLY.fullmatch(prompt_text.strip())
    if match is None:
        return ""
    return match.group(1).strip(" .\"'")


def hermes_response(state: SessionState, prompt_text: str) -> str:
    """Deterministic assistant reply for a prompt in the given session."""
    exact = parse_say_exactly(prompt_text)
    if exact:
        return exact
    if "what did i ask you to say exactly" in prompt_text.lower():
        return state.last_exact or "UNKNOWN"
    return f"echo: {prompt_text.strip()}"


def parse_prompt_payload(prompt_text: str) -> dict[str, Any] | None:
    """Decode a prompt that is a JSON object, else None."""
    prompt_text = prompt_text.strip()
    if not prompt_text.startswith("{"):
        return None
    try:
        payload = json.loads(prompt_text)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def _hard_exit() -> None:
    os._exit(1)


class FakeClientAgent:
    """Handles decoded JSON-RPC messages and writes replies as JSON lines."""

    def __init__(
        self, out: TextIO | None = None, exit: Callable[[], None] | None = None
    ) -> None:
        self.out = out if out is not None else sys.stdout
        self.sessions: dict[str, SessionState] = {}
        self._exit = exit if exit is not None else _hard_exit
        self._session_lock = threading.Lock()
        self._write_lock = threading.Lock()

    # -- output -------------------------------------------------------------

    def _write(self, message: Mapping[str, Any]) -> None:
        encoded = json.dumps(message, sort_keys=True, separators=(",", ":"))
        with self._write_lock:
            self.out.write(encoded + "\n")
            self.out.flush()

    def _reply(self, msg_id: Any, result: Mapping[str, Any]) -> None:
        self._write({"jsonrpc": "2.0", "id": msg_id, "result": result})

    def _error(self, msg_id: Any, message: str) -> None:
        self._write({"jsonrpc": "2.0", "id": msg_id, "error": {"message": message}})

    def _session_result(self, msg_id: Any, session_id: str, remote_execution_id: str) -> None:
        self._reply(
            msg_id,
            {
                "remote_execution_id": remote_execution_id,
                "session_id": session_id,
                "sessionId": session_id,
            },
        )

    def _emit_event(self, session_id: str, event: Mapping[str, Any]) -> None:
        self._write(
            {
                "jsonrpc": "2.0",
                "method": "session/update",
                "params": {"session_id": session_id, "event": event},
            }
        )

    def _emit_update(self, session_id: str, update_kind: str, text: str) -> None:
        self._write(
            {
                "jsonrpc": "2.0",
                "method": "session/update",
                "params": {
                    "sessionId": session_id,
                    "update": {"sessionUpdate": update_kind, "content": {"text": text}},
                },
            }
        )

    def _emit_chunk(self, session_id: str, text: str) -> None:
        self._emit_update(session_id, "agent_message_chunk", text)

    # -- sessions -----------------------------------------------------------

    def _ensure_session(self, session_id: str) -> SessionState:
        with self._session_lock:
            return self.sessions.setdefault(session_id, SessionState())

    def _lookup_session(self, session_id: str) -> SessionState | None:
        with self._session_lock:
            return self.sessions.get(session_id)

    def _append(self, state: SessionState, role: str, content: str) -> None:
        with self._session_lock:
            state.messages.append((role, content))

    def _spawn(self, target: Callable[..., None], *args: Any) -> None:
        threading.Thread(target=target, args=args, daemon=True).start()

    def _wait_with_heartbeats(self, session_id: str, payload: Mapping[str, Any] | None) -> None:
        delay = duration_from_payload(payload, "delay_ms", _DEFAULT_DELAY).total_seconds()
        heartbeat = duration_from_payload(payload, "heartbeat_ms", timedelta(0)).total_seconds()
        if heartbeat <= 0:
            time.sleep(max(delay, 0.0))
            return
        start = time.monotonic()
        deadline = start + delay
        next_tick = start + heartbeat
        while time.monotonic() < deadline:
            time.sleep(max(next_tick - time.monotonic(), 0.0))
            next_tick += heartbeat
            self._emit_event(
                session_id,
                {"kind": "task.running", "message": "Heartbeat", "data": {"heartbeat": True}},
            )

    # -- dispatch -----------------------------------------------------------

    def handle(self, message: Mapping[str, Any]) -> None:
        """Process one decoded JSON-RPC message."""
        msg_id = message.get("id")
        method = message.get("method")
        method = method if isinstance(method, str) else ""
        params = message.get("params")
        params = params if isinstance(params, Mapping) else {}

        if method == "initialize":
            self._reply(msg_id, {})
        elif method == "session/new":
            session_id = first_string(params, "session_id", "sessionId") or new_id()
            self._ensure_session(session_id)
            self._reply(msg_id, {"session_id": session_id, "sessionId": session_id})
        elif method == "session/load":
            self._load(msg_id, params)
        elif method == "session/prompt":
            self._prompt(msg_id, params)
        elif method == "session/resume":
            self._resume(msg_id, params)
        elif method == "session/cancel":
            session_id = first_string(params, "session_id", "sessionId")
            self._reply(msg_id, {"ok": True})
            self._spawn(
                self._emit_event,
                session_id,
                {"kind": "task.cancelled", "message": "Task cancelled", "data": {}},
            )
        else:
            self._error(msg_id, "method_not_found")

    def _load(self, msg_id: Any, params: Mapping[str, Any]) -> None:
        session_id = first_string(params, "session_id", "sessionId")
        state = self._ensure_session(session_id)
        with self._session_lock:
            history = list(state.messages)
        for role, content in history:
            if role == "user":
                self._emit_update(session_id, "user_message_chunk", content)
            elif role == "assistant":
                self._emit_chunk(session_id, content)
        self._reply(msg_id, {"session_id": session_id, "sessionId": session_id})

    def _prompt(self, msg_id: Any, params: Mapping[str, Any]) -> None:
        hermes_style = params.get("sessionId") is not None
        session_id = first_string(params, "session_id", "sessionId")
        remote_execution_id = "run_" + new_id()
        if hermes_style:
            self._hermes_prompt(msg_id, params, session_id, remote_execution_id)
            return

        payload = params.get("payload")
        payload = payload if isinstance(payload, Mapping) else None
        mode = extract_mode(payload)
        if mode == "submit_fail":
            self._error(msg_id, "submit_failed")
            return
        state = self._ensure_session(session_id)
        prompt_text = extract_prompt_text(params)
        if prompt_text:
            self._append(state, "user", prompt_text)
        with self._session_lock:
            state.waiting = mode == "await_then_resume"
        self._session_result(msg_id, session_id, remote_execution_id)
        self._spawn(self._run_structured, state, session_id, mode, remote_execution_id, payload)

    def _hermes_prompt(
        self, msg_id: Any, params: Mapping[str, Any], session_id: str, remote_execution_id: str
    ) -> None:
        state = self._ensure_session(session_id)
        prompt_text = extract_prompt_text(params)
        self._append(state, "user", prompt_text)
        exact = parse_say_exactly(prompt_text)
        if exact:
            with self._session_lock:
                state.last_exact = exact
        payload = parse_prompt_payload(prompt_text)
        if payload is not None and extract_mode(payload) == "delayed_success":
            self._wait_with_heartbeats(session_id, payload)
            self._emit_chunk(session_id, "delayed_ok")
            self._append(state, "assistant", "delayed_ok")
            time.sleep(0.02)
            self._session_result(msg_id, session_id, remote_execution_id)
            return
        with self._session_lock:
            response = hermes_response(state, prompt_text)
        time.sleep(0.04)
        self._emit_chunk(session_id, response)
        self._append(state, "assistant", response)
        time.sleep(0.02)
        self._session_result(msg_id, session_id, remote_execution_id)

    def _run_structured(
        self,
        state: SessionState,
        session_id: str,
        mode: str,
        remote_execution_id: str,
        payload: Mapping[str, Any] | None,
    ) -> None:
        self._emit_event(
            session_id,
            {
                "kind": "task.running",
                "message": "Runtime accepted the task",
                "data": {"remote_execution_id": remote_execution_id},
            },
        )
        if mode == "success":
            time.sleep(0.1)
            self._append(state, "assistant", "ok")
            self._completed(session_id, "ok")
        elif mode == "await_then_resume":
            time.sleep(0.1)
            self._emit_event(
                session_id,
                {
                    "kind": "task.awaiting_input",
                    "message": "Runtime requires additional input",
                    "data": {"prompt": "Approve?"},
                },
            )
        elif mode == "crash_after_start":
            time.sleep(0.1)
            self._exit()
        elif mode == "delayed_success":
            self._wait_with_heartbeats(session_id, payload)
            self._append(state, "assistant", "delayed_ok")
            self._completed(session_id, "delayed_ok")

    def _completed(self, session_id: str, text: str) -> None:
        self._emit_event(
            session_id,
            {"kind": "task.completed", "message": "Task completed", "data": {"result": {"text": text}}},
        )

    def _resume(self, msg_id: Any, params: Mapping[str, Any]) -> None:
        session_id = first_string(params, "session_id", "sessionId")
        session = self._lookup_session(session_id)
        if session is not None:
            with self._session_lock:
                session.waiting = False
        self._reply(msg_id, {"ok": True})
        self._spawn(self._run_resume, session_id)

    def _run_resume(self, session_id: str) -> None:
        self._emit_event(session_id, {"kind": "task.running", "message": "Task resumed", "data": {}})
        time.sleep(0.08)
        session = self._lookup_session(session_id)
        if session is not None:
            self._append(session, "assistant", "resumed")
        self._completed(session_id, "resumed")

    def serve(self, lines: Iterable[str | bytes]) -> None:
        """Handle every JSON object line; blank and malformed lines are ignored."""
        for line in lines:
            if isinstance(line, bytes):
                line = line.decode("utf-8", errors="replace")
            line = line.rstrip("\r\n")
            if not line:
                continue
            try:
                message = json.loads(line)
            except ValueError:
                continue
            if isinstance(message, dict):
                self.handle(message)


def main(argv: list[str] | None = None) -> None:
    """Serve JSON-RPC on standard input and output."""
    argparse.ArgumentParser(prog="fake-acp-client-agent").parse_args(argv)
    FakeClientAgent(sys.stdout).serve(sys.stdin)


if __name__ == "__main__":
    main()