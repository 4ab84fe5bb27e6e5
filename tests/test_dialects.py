import json

import pytest

from aethrolink.dialects import (
    HermesDialect,
    OpenClawDialect,
    UnsupportedOperationError,
    hermes_executor,
    openclaw_session_key,
    openclaw_sticky_session_key,
)
from aethrolink.run_tracker import RunTracker, synthetic_completion_decision
from aethrolink.types import (
    LaunchSpec,
    LocalRuntimeEventKind,
    RemoteInfo,
    RuntimeSpec,
    TaskEnvelope,
    TaskRecord,
    TaskStatus,
    WorkspaceBinding,
)


@pytest.mark.parametrize("dialect", [HermesDialect()], ids=["hermes"])
def test_dialects_prefer_thread_id_for_sticky_continuity(dialect):
    task = TaskEnvelope(
        thread_id="thread-123",
        conversation_id="conv-123",
        runtime_options={"session_key": "manual-key"},
        task_id="task-123",
    )
    assert dialect.sticky_key(task) == "thread-123"


def test_openclaw_maps_thread_id_onto_stable_session_key():
    dialect = OpenClawDialect()
    task = TaskEnvelope(
        thread_id="thread-oc-123",
        conversation_id="conv-oc-123",
        runtime_options={},
        task_id="task-oc-123",
    )
    assert dialect.sticky_key(task) == "thread-oc-123"
    state = dialect.adapter_state(task, "sess-1")
    assert state["session_key"] == "thread-oc-123"
    assert state["sticky_key"] == "thread-oc-123"
    assert "session_id" not in state


def test_hermes_sticky_key_fallback_order():
    dialect = HermesDialect()
    assert dialect.sticky_key(TaskEnvelope(task_id="t", conversation_id="c", runtime_options={"session_key": "k"})) == "k"
    assert dialect.sticky_key(TaskEnvelope(task_id="t", conversation_id="c")) == "c"
    assert dialect.sticky_key(TaskEnvelope(task_id="t")) == "t"


def test_executor_and_session_key_defaults():
    assert hermes_executor(None) == "aethrolink-agent"
    assert hermes_executor({"executor": "coder"}) == "coder"
    assert openclaw_session_key({}) == "main"
    assert openclaw_session_key({"session_key": "design"}) == "design"
    assert openclaw_sticky_session_key(TaskEnvelope(runtime_options={"session_key": "design"})) == "design"


def test_subcontext_keys():
    assert HermesDialect().subcontext_key({}) == "executor:aethrolink-agent"
    assert HermesDialect().subcontext_key({"executor": "coder"}) == "executor:coder"
    assert OpenClawDialect().subcontext_key({}) == "session:main"
    assert OpenClawDialect().subcontext_key({"session_key": "design"}) == "session:design"


def test_hermes_command_uses_executor_commands():
    spec = RuntimeSpec(
        target_id="h",
        launch=LaunchSpec(command=["fallback"], commands={"coder": ["hermes", "-p", "coder", "acp"]}),
    )
    assert HermesDialect().command(spec, {"executor": "coder"}) == ["hermes", "-p", "coder", "acp"]
    with pytest.raises(ValueError, match="missing hermes command for executor other"):
        HermesDialect().command(spec, {"executor": "other"})


def test_command_falls_back_to_launch_command_and_requires_one():
    spec = RuntimeSpec(target_id="h", launch=LaunchSpec(command=["run", "acp"]))
    assert HermesDialect().command(spec, {}) == ["run", "acp"]
    assert OpenClawDialect().command(spec, {}) == ["run", "acp"]
    with pytest.raises(ValueError, match="missing launch command for target empty"):
        OpenClawDialect().command(RuntimeSpec(target_id="empty"), {})


def test_workspace_binding_and_metadata():
    hermes = HermesDialect().workspace_binding(TaskEnvelope(runtime_options={"cwd": "/repo", "executor": "coder"}))
    assert hermes.cwd == "/repo"
    assert hermes.attach_mcp is True
    assert hermes.metadata == {"executor": "coder"}
    openclaw = OpenClawDialect().workspace_binding(TaskEnvelope(runtime_options={}))
    assert openclaw.cwd == "."
    assert openclaw.attach_mcp is False
    assert openclaw.metadata == {"session_key": "main"}
    binding = WorkspaceBinding(cwd="/w")
    assert HermesDialect().binding_metadata({"executor": "x"}, binding) == {"executor": "x", "cwd": "/w"}
    assert OpenClawDialect().binding_metadata({}, binding) == {"session_key": "main", "cwd": "/w"}


def test_session_payloads():
    binding = WorkspaceBinding(cwd="/repo", mcp_servers=[{"name": "memory"}])
    assert HermesDialect().open_session_payload(binding, {}) == {"cwd": "/repo", "mcpServers": [{"name": "memory"}]}
    assert HermesDialect().load_session_payload("s1", binding, {}) == {"sessionId": "s1"}
    assert OpenClawDialect().load_session_payload("s1", binding, {}) == {
        "sessionId": "s1",
        "cwd": "/repo",
        "mcpServers": [{"name": "memory"}],
    }
    assert OpenClawDialect().prompt_payload("s1", "hi", binding, {}) == {
        "sessionId": "s1",
        "prompt": [{"type": "text", "text": "hi"}],
    }


def test_prompt_text_defaults():
    assert HermesDialect().prompt_text(TaskEnvelope(payload={"prompt": "p"})) == "p"
    assert HermesDialect().prompt_text(TaskEnvelope()) == "Say exactly OK"
    assert OpenClawDialect().prompt_text(TaskEnvelope()) == "Say exactly OPENCLAW OK"
    encoded = OpenClawDialect().prompt_text(TaskEnvelope(payload={"mode": "x", "a": 1}))
    assert json.loads(encoded) == {"mode": "x", "a": 1}


def test_resume_unsupported():
    with pytest.raises(UnsupportedOperationError, match="hermes adapter does not support resume"):
        HermesDialect().resume_payload("s", {})
    with pytest.raises(UnsupportedOperationError, match="openclaw adapter does not support resume"):
        OpenClawDialect().resume_payload("s", {})


def test_accepted_and_completion_events():
    task = TaskEnvelope(thread_id="th", runtime_options={"executor": "coder"})
    hermes = HermesDialect().accepted_event(task, "s1")
    assert hermes.kind is LocalRuntimeEventKind.PROGRESS
    assert hermes.state is TaskStatus.RUNNING
    assert hermes.message == "Hermes accepted the task"
    assert hermes.data == {"executor": "coder", "session_id": "s1"}
    assert OpenClawDialect().accepted_event(task, "s1").data == {"session_key": "th", "session_id": "s1"}
    done = OpenClawDialect().completion_event(task, "ok")
    assert done.kind is LocalRuntimeEventKind.TERMINAL
    assert done.state is TaskStatus.COMPLETED
    assert done.message == "OpenClaw completed the task"
    assert done.data == {"result": {"text": "ok"}}


def test_hermes_adapter_state_and_rehydrate():
    task = TaskEnvelope(task_id="t1", conversation_id="c1", runtime_options={"executor": "coder", "session_idle_timeout_ms": 5})
    assert HermesDialect().adapter_state(task, "s1") == {
        "dialect": "hermes",
        "executor": "coder",
        "session_id": "s1",
        "sticky_key": "c1",
        "session_idle_timeout_ms": 5,
    }
    record = TaskRecord(task_id="t1", thread_id="th", runtime_options={}, remote=RemoteInfo(remote_session_id="rs"))
    assert HermesDialect().rehydrate_state(record) == {
        "dialect": "hermes",
        "executor": "aethrolink-agent",
        "session_id": "rs",
        "sticky_key": "th",
    }
    assert OpenClawDialect().rehydrate_state(record) == {
        "dialect": "openclaw",
        "session_key": "th",
        "sticky_key": "th",
    }


def test_recover_and_synthetic_completion_policies():
    assert HermesDialect().should_recover_final_text("  ", False) is True
    assert HermesDialect().should_recover_final_text("x", False) is False
    assert HermesDialect().should_emit_synthetic_completion("", True, True) is True
    openclaw = OpenClawDialect()
    assert openclaw.should_recover_final_text("", False) is False
    assert openclaw.should_recover_final_text("", True) is True
    assert openclaw.should_emit_synthetic_completion("done", False, True) is False
    assert openclaw.should_emit_synthetic_completion(" ", True, False) is False
    assert openclaw.should_emit_synthetic_completion("done", True, False) is True


def test_synthetic_completion_suppressed_after_structured_terminal():
    tracker = RunTracker(final_text="done", saw_structured_events=True, saw_terminal_event=True)
    assert synthetic_completion_decision(OpenClawDialect(), tracker) is False


def test_hermes_notification_appends_chunks_only():
    tracker = RunTracker()
    chunk = {"update": {"sessionUpdate": "agent_message_chunk", "content": {"text": "hi"}}}
    assert HermesDialect().handle_notification(chunk, tracker) == ([], False)
    assert HermesDialect().handle_notification({"event": {"kind": "task.completed"}}, tracker) == ([], False)
    assert tracker.final_text == "hi"
    assert tracker.saw_structured_events is False


def test_openclaw_notification_maps_structured_events():
    tracker = RunTracker()
    events, terminal = OpenClawDialect().handle_notification(
        {"event": {"kind": "task.completed", "message": "Task completed", "data": {"result": {"text": "ok"}}}},
        tracker,
    )
    assert terminal is True
    assert len(events) == 1
    assert events[0].state is TaskStatus.COMPLETED
    assert events[0].data == {"result": {"text": "ok"}}
    assert tracker.saw_structured_events is True

    events, terminal = OpenClawDialect().handle_notification({"event": {"kind": "task.running"}}, tracker)
    assert terminal is False
    assert events[0].state is TaskStatus.RUNNING

    chunk = {"update": {"sessionUpdate": "agent_message_chunk", "content": {"text": "abc"}}}
    assert OpenClawDialect().handle_notification(chunk, tracker) == ([], False)
    assert tracker.final_text == "abc"
    assert OpenClawDialect().handle_notification({}, tracker) == ([], False)