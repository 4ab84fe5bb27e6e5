# aethrolink

Building blocks for routing tasks to local agent runtimes that speak ACP
(a JSON-RPC session protocol), a command-line client for an AethroLink node's
HTTP API, and two fake agents for testing.

## What is in the package

- `aethrolink.types` – task, event, runtime and session records
  (`TaskEnvelope`, `TaskRecord`, `RuntimeSpec`, `SessionBinding`, ...), the
  `TaskStatus` states with `is_terminal()`, event kinds, and `new_id()` /
  `now_utc()`.
- `aethrolink.helpers` – option merging, prompt-text extraction, ACP chunk
  parsing and timeout resolution (`initialize_timeout`,
  `session_setup_timeout`, `prompt_timeout`).
- `aethrolink.events` – conversion of ACP notifications into runtime events
  and of runtime events into task events.
- `aethrolink.run_tracker` – `RunTracker`, per-run bookkeeping, and
  `synthetic_completion_decision`, the rule for when a completion event may be
  synthesised after a prompt returns.
- `aethrolink.session` – `SessionCoordinator`: per-scope locking
  (`try_acquire` raises `SessionBusyError` when another task holds the scope),
  binding persistence, plus `session_idle_timeout` and `session_binding_stale`.
- `aethrolink.dialects`, `aethrolink.goose` – the `HermesDialect`,
  `OpenClawDialect` and `GooseDialect` runtime dialects: worker scoping, sticky
  keys, ACP request payloads and completion rules.
- `aethrolink.catalog` – `default_dialects()`, `resolve_dialect`,
  `dialect_from_state`, `subcontext_key_for` and `rehydrate_handle`.
- `aethrolink.registry` – `AdapterRegistry`, a thread-safe map of adapter
  kinds to adapters.
- `aethrolink.cli` – the `alink-cli` command.
- `aethrolink.fake_client_agent`, `aethrolink.fake_comm_agent` – deterministic
  stand-in agents.

## Installing

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## The command-line client

`alink-cli` talks to a node over HTTP (default `http://127.0.0.1:7777`, change
it with `--server`). Each subcommand prints the node's reply body.

Register this agent and remember its id in `~/.aethrolink/agent.json`
(change the file with `--state-file`):

```
alink-cli register --display-name hermes-dev --adapter acp --dialect hermes \
    --launch-command "hermes -p aethrolink-agent acp" --defaults executor=aethrolink-agent
```

Register only when the remembered agent cannot be fetched from the node:

```
alink-cli ensure-registered --display-name hermes-dev
```

Refresh the lease and send a task (the sender is the remembered agent id, or
`local` when there is none):

```
alink-cli heartbeat
alink-cli call --target-agent-id core --intent agent.runtime --text hello --heartbeat
alink-cli task-get --task-id <id>
alink-cli task-events --task-id <id>
```

Threads between two agents:

```
alink-cli thread-create --agent-a-id core --agent-b-id openclaw_main
alink-cli thread-continue --thread-id <id> --intent ui.review --text hello
alink-cli thread-get --thread-id <id>
alink-cli thread-turns --thread-id <id>
```

Discovery and static peers:

```
alink-cli agents
alink-cli targets --refresh
alink-cli peer-add --peer-id peer-b --display-name "Node B" --base-url http://node-b
alink-cli peer-list
alink-cli peer-sync --peer-id peer-b
```

A failed request ends the command with exit status 1 and a message such as
`http 404: ...` on standard error.

## Fake agents

`fake-acp-client-agent` reads JSON-RPC requests line by line on standard input
and answers on standard output. It understands `initialize`, `session/new`,
`session/load`, `session/prompt`, `session/resume` and `session/cancel`. A
prompt sent with a `sessionId`, such as `Say exactly OK`, is answered with an
`agent_message_chunk` carrying `OK`; `session/load` replays the session's
history as message chunks.

```
fake-acp-client-agent
```

`fake-acp-comm-agent` is a small HTTP server with `GET /ping`, `POST /runs`,
`GET /runs/<id>`, `POST /runs/<id>/resume` and `POST /runs/<id>/cancel`. The
`mode` given as JSON in the second message of a run request decides what
happens: `success` completes, `await_then_resume` waits for input,
`launch_fail` fails and `submit_fail` is rejected with status 422.

```
fake-acp-comm-agent --port 9102
```

## Using the library

```python
from aethrolink.catalog import default_dialects
from aethrolink.cli import csv_list

dialects = default_dialects()
dialects["goose"].subcontext_key({"profile": "qa"})   # "profile:qa"
dialects["hermes"].subcontext_key({})                 # "executor:aethrolink-agent"
csv_list(" a, ,b ")                                   # ["a", "b"]
```

## What the package does not do

- It contains no node server: `alink-cli` needs a node reachable over HTTP,
  and nothing here serves the `/v1/...` API.
- It does not launch or manage runtime worker processes, and has no adapter
  that drives a live ACP session; the dialects only build payloads, keys and
  events.
- `SessionCoordinator` keeps bindings in memory unless it is given a store
  object with `get_session_binding`, `upsert_session_binding` and
  `touch_session_binding_activity`; no database store is included.