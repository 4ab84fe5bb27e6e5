"""A fake run-based agent server used to exercise HTTP runtime adapters."""

from __future__ import annotations

import argparse
import dataclasses
import json
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlsplit

from aethrolink.types import new_id


@dataclass
class RunState:
    """State of one fake run."""

    run_id: str
    session_id: str
    status: str
    result: dict[str, Any] | None = None
    reason: str = ""
    mode: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Wire form of the run; the mode is never exposed."""
        out: dict[str, Any] = {
            "run_id": self.run_id,
            "session_id": self.session_id,
            "status": self.status,
        }
        if self.result:
            out["result"] = self.result
        if self.reason:
            out["reason"] = self.reason
        return out


def mode_from_body(body: Any) -> str:
    """Mode encoded as JSON in the second message's content, default ``success``."""
    if not isinstance(body, Mapping):
        return "success"
    messages = body.get("messages")
    if not isinstance(messages, list) or len(messages) <= 1:
        return "success"
    second = messages[1]
    if not isinstance(second, Mapping):
        return "success"
    content = second.get("content")
    if not isinstance(content, str):
        return "success"
    try:
        parsed = json.loads(content)
    except ValueError:
        return "success"
    if isinstance(parsed, Mapping):
        mode = parsed.get("mode")
        if isinstance(mode, str) and mode:
            return mode
    return "success"


class CommAgent:
    """In-memory run table whose runs progress on background timers."""

    def __init__(self, success_delay: float = 0.15, resume_delay: float = 0.08) -> None:
        self._lock = threading.Lock()
        self._runs: dict[str, RunState] = {}
        self._success_delay = success_delay
        self._resume_delay = resume_delay

    def _later(self, delay: float, action) -> None:
        timer = threading.Timer(delay, action)
        timer.daemon = True
        timer.start()

    def _update(self, run_id: str, **changes: Any) -> None:
        with self._lock:
            run = self._runs.get(run_id)
            if run is not None:
                for name, value in changes.items():
                    setattr(run, name, value)

    def create_run(self, body: Any) -> dict[str, str]:
        """Start a run; raise ValueError for the ``submit_fail`` mode."""
        mode = mode_from_body(body)
        if mode == "submit_fail":
            raise ValueError("submit_failed")
        run_id = "run_" + new_id()
        session_id = "sess_" + new_id()
        status = "awaiting_input" if mode == "await_then_resume" else "running"
        with self._lock:
            self._runs[run_id] = RunState(run_id=run_id, session_id=session_id, status=status, mode=mode)
        if mode == "success":
            self._later(
                self._success_delay,
                lambda: self._update(run_id, status="completed", result={"text": "ok"}),
            )
        elif mode == "launch_fail":
            self._update(run_id, status="failed", reason="launch_failed")
        return {"run_id": run_id, "session_id": session_id}

    def get_run(self, run_id: str) -> RunState | None:
        """A snapshot of the run, or None when it is unknown."""
        with self._lock:
            run = self._runs.get(run_id)
            return dataclasses.replace(run) if run is not None else None

    def resume(self, run_id: str) -> None:
        """Resume a run; it completes with ``resumed`` after a short delay."""

        def work() -> None:
            self._update(run_id, status="running")
            self._later(
                self._resume_delay,
                lambda: self._update(run_id, status="completed", result={"text": "resumed"}),
            )

        threading.Thread(target=work, daemon=True).start()

    def cancel(self, run_id: str) -> None:
        """Mark a run cancelled."""
        self._update(run_id, status="cancelled")


def create_server(host: str, port: int, agent: CommAgent) -> ThreadingHTTPServer:
    """HTTP server exposing the agent's run API."""

    class Handler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args: Any) -> None:
            pass

        def _send(self, status: int, payload: Any) -> None:
            encoded = (json.dumps(payload) + "\n").encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(encoded)))
            self.end_headers()
            self.wfile.write(encoded)

        def _not_found(self) -> None:
            encoded = b"404 page not found\n"
            self.send_response(404)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.send_header("Content-Length", str(len(encoded)))
            self.end_headers()
            self.wfile.write(encoded)

        def _parts(self) -> list[str]:
            return [part for part in urlsplit(self.path).path.split("/") if part]

        def _read_body(self) -> Any:
            length = int(self.headers.get("Content-Length") or 0)
            raw = self.rfile.read(length) if length else b""
            try:
                return json.loads(raw) if raw else None
            except ValueError:
                return None

        def do_GET(self) -> None:
            parts = self._parts()
            if parts == ["ping"]:
                self._send(200, {"ok": True})
            elif len(parts) == 2 and parts[0] == "runs":
                run = agent.get_run(parts[1])
                if run is None:
                    self._send(404, {"error": "not_found", "status": "failed", "reason": "not_found"})
                else:
                    self._send(200, run.to_dict())
            else:
                self._not_found()

        def do_POST(self) -> None:
            parts = self._parts()
            body = self._read_body()
            if parts == ["runs"]:
                try:
                    self._send(200, agent.create_run(body))
                except ValueError as exc:
                    self._send(422, {"error": str(exc)})
            elif len(parts) == 3 and parts[0] == "runs" and parts[2] == "resume":
                agent.resume(parts[1])
                self._send(200, {"ok": True})
            elif len(parts) == 3 and parts[0] == "runs" and parts[2] == "cancel":
                agent.cancel(parts[1])
                self._send(200, {"ok": True})
            else:
                self._not_found()

    return ThreadingHTTPServer((host, port), Handler)


def main(argv: list[str] | None = None) -> None:
    """Serve the fake agent on all interfaces."""
    parser = argparse.ArgumentParser(prog="fake-acp-comm-agent")
    parser.add_argument("--port", default="9102", help="listen port")
    args = parser.parse_args(argv)
    server = create_server("", int(args.port), CommAgent())
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()