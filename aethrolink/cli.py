"""Command-line client for an alink-core node's HTTP API."""

from __future__ import annotations

import argparse
import json
import sys
import urllib.error
import urllib.request
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, TextIO

DEFAULT_SERVER = "http://127.0.0.1:7777"
DEFAULT_LEASE_TTL_SECONDS = 300
HTTP_TIMEOUT_SECONDS = 30.0

COMMAND_NAMES = (
    "register",
    "ensure-registered",
    "heartbeat",
    "call",
    "task-get",
    "task-events",
    "thread-create",
    "thread-get",
    "thread-continue",
    "thread-turns",
    "agents",
    "targets",
    "peer-add",
    "peer-list",
    "peer-sync",
)
USAGE = "usage: alink-cli <" + "|".join(COMMAND_NAMES) + ">"


class CliError(Exception):
    """A command failed; the message is shown to the user."""


class _FlagParser(argparse.ArgumentParser):
    """Argument parser that reports problems as CliError and writes to a given stream."""

    def __init__(self, prog: str, stderr: TextIO) -> None:
        super().__init__(prog=prog, allow_abbrev=False)
        self._stderr = stderr

    def flag(self, name: str, **kwargs: Any) -> None:
        """Add an option reachable as both ``--name`` and ``-name``."""
        self.add_argument(f"--{name}", f"-{name}", dest=name.replace("-", "_"), **kwargs)

    def _print_message(self, message: str, file: Any = None) -> None:
        if message:
            self._stderr.write(message)

    def exit(self, status: int = 0, message: str | None = None) -> None:  # type: ignore[override]
        if message:
            self._print_message(message)
        if status == 0:
            raise CliError("flag: help requested")
        raise CliError((message or "").strip())

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage()
        raise CliError(message)


class _Http:
    """Minimal JSON-over-HTTP client that treats non-2xx replies as errors."""

    def __init__(self, timeout: float = HTTP_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout

    def post_json(self, url: str, payload: Any) -> str:
        data = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        request = urllib.request.Request(
            url, data=data, method="POST", headers={"Content-Type": "application/json"}
        )
        return self._send(request)

    def get(self, url: str) -> str:
        return self._send(urllib.request.Request(url, method="GET"))

    def _send(self, request: urllib.request.Request) -> str:
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                return response.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            raise CliError(f"http {exc.code}: {body.strip()}") from None
        except (urllib.error.URLError, OSError) as exc:
            raise CliError(str(exc)) from exc


def default_state_path() -> str:
    """Location of the local agent state file."""
    try:
        home = Path.home()
    except (RuntimeError, KeyError, OSError):
        return ".aethrolink-agent.json"
    return str(home / ".aethrolink" / "agent.json")


def save_agent_state(path: str | Path, agent_id: str) -> None:
    """Write the registered agent id to the state file, creating its directory."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps({"agent_id": agent_id}, separators=(",", ":")), encoding="utf-8")


def load_agent_state(path: str | Path) -> str:
    """Read the agent id stored in the state file.

    Raises OSError when the file cannot be read and ValueError when it is malformed.
    """
    state = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(state, dict):
        raise ValueError("agent state must be a JSON object")
    agent_id = state.get("agent_id", "")
    if agent_id is None:
        return ""
    if not isinstance(agent_id, str):
        raise ValueError("agent_id must be a string")
    return agent_id


def resolve_agent_id(explicit: str, state_path: str | Path) -> str:
    """Explicit agent id, else the one saved in the state file."""
    if explicit:
        return explicit
    try:
        agent_id = load_agent_state(state_path)
    except (OSError, ValueError) as exc:
        raise CliError(f"resolve agent id: {exc}") from exc
    if not agent_id:
        raise CliError("resolve agent id: empty agent_id in state file")
    return agent_id


def csv_list(raw: str) -> list[str]:
    """Split comma-separated values, dropping blanks."""
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_key_value_csv(raw: str) -> dict[str, Any]:
    """Parse ``key=value`` pairs separated by commas; malformed items are skipped."""
    out: dict[str, Any] = {}
    for part in raw.split(","):
        part = part.strip()
        if not part or "=" not in part:
            continue
        key, value = part.split("=", 1)
        key = key.strip()
        if key:
            out[key] = value.strip()
    return out


def shell_words(raw: str) -> list[str]:
    """Split a command string on whitespace."""
    return raw.split()


def join_url(base: str, path: str) -> str:
    """Append an absolute path to a base URL without doubling slashes."""
    return base.rstrip("/") + path


class _Cli:
    def __init__(self, stdout: TextIO, stderr: TextIO, http: _Http) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.http = http

    def _parser(self, prog: str) -> _FlagParser:
        parser = _FlagParser(prog, self.stderr)
        parser.flag("server", default=DEFAULT_SERVER, help="alink-core base URL")
        return parser

    def _emit(self, body: str) -> None:
        self.stdout.write(body + "\n")

    def _add_registration_flags(self, parser: _FlagParser, with_agent_id: bool) -> None:
        parser.flag("state-file", default=default_state_path(), help="local state file")
        if with_agent_id:
            parser.flag("agent-id", default="", help="explicit agent id")
        parser.flag("display-name", default="", help="agent display name")
        parser.flag("transport-kind", default="local_managed", help="transport kind")
        parser.flag("endpoint", default="", help="agent endpoint")
        parser.flag("adapter", default="", help="runtime adapter kind")
        parser.flag("dialect", default="", help="runtime dialect")
        parser.flag("healthcheck", default="", help="runtime healthcheck URL")
        parser.flag("launch-mode", default="managed", help="launch mode")
        parser.flag("launch-command", default="", help="launch command string")
        parser.flag("defaults", default="", help="comma-separated key=value runtime defaults")
        parser.flag("capabilities", default="", help="comma-separated capabilities")
        parser.flag("sticky-mode", default="", help="sticky mode")
        parser.flag(
            "lease-ttl-seconds", type=int, default=DEFAULT_LEASE_TTL_SECONDS,
            help="lease ttl in seconds",
        )

    def register(self, args: Sequence[str]) -> None:
        parser = self._parser("register")
        self._add_registration_flags(parser, with_agent_id=True)
        self._register_with(parser.parse_args(args))

    def _register_with(self, opts: argparse.Namespace) -> None:
        request = {
            "agent_id": opts.agent_id,
            "display_name": opts.display_name,
            "transport_kind": opts.transport_kind,
            "endpoint": opts.endpoint,
            "adapter": opts.adapter,
            "dialect": opts.dialect,
            "healthcheck": opts.healthcheck,
            "launch": {"mode": opts.launch_mode, "command": shell_words(opts.launch_command)},
            "defaults": parse_key_value_csv(opts.defaults),
            "capabilities": csv_list(opts.capabilities),
            "sticky_mode": opts.sticky_mode,
            "lease_ttl_seconds": opts.lease_ttl_seconds,
        }
        body = self.http.post_json(join_url(opts.server, "/v1/agents/register"), request)
        try:
            response = json.loads(body)
        except ValueError as exc:
            raise CliError(f"decode register response: {exc}") from exc
        if not isinstance(response, dict):
            raise CliError("decode register response: expected a JSON object")
        agent = response.get("agent") or {}
        agent_id = agent.get("agent_id", "") if isinstance(agent, dict) else ""
        try:
            save_agent_state(opts.state_file, agent_id or "")
        except OSError as exc:
            raise CliError(f"save agent state: {exc}") from exc
        self._emit(body)

    def ensure_registered(self, args: Sequence[str]) -> None:
        parser = self._parser("ensure-registered")
        self._add_registration_flags(parser, with_agent_id=False)
        opts = parser.parse_args(args)
        try:
            agent_id = load_agent_state(opts.state_file)
        except (OSError, ValueError):
            agent_id = ""
        if agent_id:
            try:
                body = self.http.get(join_url(opts.server, "/v1/agents/" + agent_id))
            except CliError:
                pass
            else:
                self._emit(body)
                return
        opts.agent_id = ""
        self._register_with(opts)

    def heartbeat(self, args: Sequence[str]) -> None:
        parser = self._parser("heartbeat")
        parser.flag("state-file", default=default_state_path(), help="local state file")
        parser.flag("agent-id", default="", help="explicit agent id")
        parser.flag(
            "lease-ttl-seconds", type=int, default=DEFAULT_LEASE_TTL_SECONDS,
            help="lease ttl in seconds",
        )
        opts = parser.parse_args(args)
        agent_id = resolve_agent_id(opts.agent_id, opts.state_file)
        body = self.http.post_json(
            join_url(opts.server, f"/v1/agents/{agent_id}/heartbeat"),
            {"lease_ttl_seconds": opts.lease_ttl_seconds},
        )
        self._emit(body)

    def call(self, args: Sequence[str]) -> None:
        parser = self._parser("call")
        parser.flag("state-file", default=default_state_path(), help="local state file")
        parser.flag("agent-id", default="", help="explicit agent id")
        parser.flag("target-agent-id", default="", help="target agent id")
        parser.flag("intent", default="", help="task intent")
        parser.flag("text", default="", help="text payload")
        parser.flag("conversation-id", default="", help="conversation id")
        parser.flag("heartbeat", action="store_true", help="refresh agent lease before submitting")
        opts = parser.parse_args(args)
        sender = "local"
        try:
            agent_id = resolve_agent_id(opts.agent_id, opts.state_file)
        except CliError:
            agent_id = ""
        if agent_id:
            sender = agent_id
            if opts.heartbeat:
                self.http.post_json(
                    join_url(opts.server, f"/v1/agents/{agent_id}/heartbeat"),
                    {"lease_ttl_seconds": 0},
                )
        request = {
            "sender": sender,
            "target_agent_id": opts.target_agent_id,
            "intent": opts.intent,
            "payload": {"text": opts.text},
            "conversation_id": opts.conversation_id,
        }
        self._emit(self.http.post_json(join_url(opts.server, "/v1/tasks"), request))

    def _get_by_id(self, prog: str, id_flag: str, help_text: str, path: Callable[[str], str],
                   args: Sequence[str]) -> None:
        parser = self._parser(prog)
        parser.flag(id_flag, default="", help=help_text)
        opts = parser.parse_args(args)
        ident = getattr(opts, id_flag.replace("-", "_"))
        self._emit(self.http.get(join_url(opts.server, path(ident))))

    def task_get(self, args: Sequence[str]) -> None:
        self._get_by_id("task-get", "task-id", "task id", lambda i: f"/v1/tasks/{i}", args)

    def task_events(self, args: Sequence[str]) -> None:
        self._get_by_id(
            "task-events", "task-id", "task id", lambda i: f"/v1/tasks/{i}/events", args
        )

    def thread_create(self, args: Sequence[str]) -> None:
        parser = self._parser("thread-create")
        parser.flag("agent-a-id", default="", help="first thread agent id")
        parser.flag("agent-b-id", default="", help="second thread agent id")
        parser.flag("continuity-key", default="", help="explicit continuity key")
        opts = parser.parse_args(args)
        request = {
            "agent_a_id": opts.agent_a_id,
            "agent_b_id": opts.agent_b_id,
            "continuity_key": opts.continuity_key,
        }
        self._emit(self.http.post_json(join_url(opts.server, "/v1/threads"), request))

    def thread_get(self, args: Sequence[str]) -> None:
        self._get_by_id(
            "thread-get", "thread-id", "thread id", lambda i: f"/v1/threads/{i}/inspect", args
        )

    def thread_continue(self, args: Sequence[str]) -> None:
        parser = self._parser("thread-continue")
        parser.flag("thread-id", default="", help="thread id")
        parser.flag("sender", default="", help="explicit sender agent id")
        parser.flag("target-agent-id", default="", help="explicit target agent id")
        parser.flag("intent", default="", help="task intent")
        parser.flag("text", default="", help="text payload")
        parser.flag("conversation-id", default="", help="conversation id override")
        opts = parser.parse_args(args)
        request = {
            "sender": opts.sender,
            "target_agent_id": opts.target_agent_id,
            "intent": opts.intent,
            "payload": {"text": opts.text},
            "conversation_id": opts.conversation_id,
        }
        url = join_url(opts.server, f"/v1/threads/{opts.thread_id}/continue")
        self._emit(self.http.post_json(url, request))

    def thread_turns(self, args: Sequence[str]) -> None:
        self._get_by_id(
            "thread-turns", "thread-id", "thread id", lambda i: f"/v1/threads/{i}/turns", args
        )

    def agents(self, args: Sequence[str]) -> None:
        opts = self._parser("agents").parse_args(args)
        self._emit(self.http.get(join_url(opts.server, "/v1/agents")))

    def targets(self, args: Sequence[str]) -> None:
        parser = self._parser("targets")
        parser.flag(
            "refresh", action="store_true", help="refresh static peer targets before listing"
        )
        opts = parser.parse_args(args)
        path = "/v1/targets?refresh=true" if opts.refresh else "/v1/targets"
        self._emit(self.http.get(join_url(opts.server, path)))

    def peer_add(self, args: Sequence[str]) -> None:
        """Register a static peer without contacting runtime adapters."""
        parser = self._parser("peer-add")
        parser.flag("peer-id", default="", help="peer node id")
        parser.flag("display-name", default="", help="peer display name")
        parser.flag("base-url", default="", help="peer base URL")
        parser.flag("capabilities", default="", help="comma-separated peer capabilities")
        opts = parser.parse_args(args)
        request = {
            "peer_id": opts.peer_id,
            "display_name": opts.display_name,
            "base_url": opts.base_url,
            "capabilities": csv_list(opts.capabilities),
        }
        self._emit(self.http.post_json(join_url(opts.server, "/v1/peers"), request))

    def peer_list(self, args: Sequence[str]) -> None:
        """Read the static peer registry without probing peer liveness."""
        opts = self._parser("peer-list").parse_args(args)
        self._emit(self.http.get(join_url(opts.server, "/v1/peers")))

    def peer_sync(self, args: Sequence[str]) -> None:
        """Refresh cached peer-owned targets through node transport."""
        parser = self._parser("peer-sync")
        parser.flag("peer-id", default="", help="peer node id")
        opts = parser.parse_args(args)
        url = join_url(opts.server, f"/v1/peers/{opts.peer_id}/sync")
        self._emit(self.http.post_json(url, {}))

    def dispatch(self, args: Sequence[str]) -> None:
        if not args:
            raise CliError(USAGE)
        name, rest = args[0], list(args[1:])
        if name not in COMMAND_NAMES:
            raise CliError(f"unknown command: {name}")
        getattr(self, name.replace("-", "_"))(rest)


def run(args: Sequence[str], stdout: TextIO, stderr: TextIO) -> None:
    """Run one command; raise CliError on failure."""
    _Cli(stdout, stderr, _Http()).dispatch(list(args))


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point: run the command and return the process exit status."""
    try:
        run(sys.argv[1:] if argv is None else argv, sys.stdout, sys.stderr)
    except CliError as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())