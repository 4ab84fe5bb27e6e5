import pytest

from aethrolink.dialects import UnsupportedOperationError
from aethrolink.goose import GooseDialect, goose_profile
from aethrolink.run_tracker import RunTracker
from aethrolink.types import (
    LaunchSpec,
    RemoteInfo,
    RuntimeSpec,
    TaskEnvelope,
    TaskRecord,
    TaskStatus,
    WorkspaceBinding,
)


def test_name():
    assert GooseDialect().name == "goose"


def test_profile_scoped_subcontext_and_conversation_sticky_key():
    dialect = GooseDialect()
    assert dialect.subcontext_key({}) == "profile:default"
    assert dialect.subcontext_key({"profile": "qa"}) == "profile:qa"
    task = TaskEnvelope(
        conversation_id="conv-123", runtime_options={"profile": "qa"}, task_id="task-123"
    )
    assert dialect.sticky_key(task) == "conv-123"


def test_thread_id_wins_sticky_key():
    task = TaskEnvelope(
        thread_id="thread-123",
        conversation_id="conv-123",
        runtime_options={"session_key": "manual-key"},
        task_id="task-123",
    )
    assert GooseDialect().sticky_key(task) == "thread-123"


def test_sticky_key_falls_back_to_task_id():
    assert GooseDialect().sticky_key(TaskEnvelope(task_id="task-123")) == "task-123"


def test_standard_acp_payloads():
    dialect = GooseDialect()
    binding = WorkspaceBinding(cwd="/repo", mcp_servers=[{"name": "memory"}])
    open_payload = dialect.open_session_payload(binding, {"profile": "qa"})
    assert open_payload["cwd"] == "/repo"
    assert open_payload["mcpServers"] == [{"name": "memory"}]
    load_payload = dialect.load_session_payload("sess-123", binding, {"profile": "qa"})
    assert load_payload["sessionId"] == "sess-123"
    assert load_payload["cwd"] == "/repo"
    prompt_payload = dialect.prompt_payload("sess-123", "Reply exactly OK", binding, {"profile": "qa"})
    items = prompt_payload["prompt"]
    assert len(items) == 1
    assert items[0]["text"] == "Reply exactly OK"
    assert dialect.binding_name == "goose_acp"


def test_goose_profile_default():
    assert goose_profile(None) == "default"
    assert goose_profile({"profile": "qa"}) == "qa"


def test_command_requires_launch_command():
    dialect = GooseDialect()
    with pytest.raises(ValueError, match="missing launch command for target goose_t"):
        dialect.command(RuntimeSpec(target_id="goose_t"), {})
    spec = RuntimeSpec(target_id="goose_t", launch=LaunchSpec(command=["goose", "acp"]))
    assert dialect.command(spec, {}) == ["goose", "acp"]


def test_workspace_binding_and_metadata():
    dialect = GooseDialect()
    binding = dialect.workspace_binding(TaskEnvelope(runtime_options={"profile": "qa", "cwd": "/w"}))
    assert binding.cwd == "/w"
    assert binding.attach_mcp is True
    assert binding.metadata == {"profile": "qa"}
    assert dialect.binding_metadata({"profile": "qa"}, binding) == {"profile": "qa", "cwd": "/w"}


def test_prompt_text_default():
    assert GooseDialect().prompt_text(TaskEnvelope()) == "Say exactly OK"
    assert GooseDialect().prompt_text(TaskEnvelope(payload={"text": "hi"})) == "hi"


def test_resume_unsupported():
    with pytest.raises(UnsupportedOperationError, match="goose adapter does not support resume"):
        GooseDialect().resume_payload("sess", {})


def test_events():
    dialect = GooseDialect()
    task = TaskEnvelope(runtime_options={"profile": "qa"})
    accepted = dialect.accepted_event(task, "sess-1")
    assert accepted.message == "Goose accepted the task"
    assert accepted.data == {"profile": "qa", "session_id": "sess-1"}
    done = dialect.completion_event(task, "final")
    assert done.state is TaskStatus.COMPLETED
    assert done.data == {"result": {"text": "final"}}


def test_adapter_state_and_rehydrate():
    dialect = GooseDialect()
    task = TaskEnvelope(
        task_id="t1", conversation_id="c1", runtime_options={"profile": "qa", "session_idle_timeout_ms": 5}
    )
    assert dialect.adapter_state(task, "sess-1") == {
        "dialect": "goose",
        "profile": "qa",
        "session_id": "sess-1",
        "sticky_key": "c1",
        "session_idle_timeout_ms": 5,
    }
    record = TaskRecord(task_id="t1", thread_id="th", remote=RemoteInfo(remote_session_id="sess-9"))
    assert dialect.rehydrate_state(record) == {
        "dialect": "goose",
        "profile": "default",
        "session_id": "sess-9",
        "sticky_key": "th",
    }


def test_recovery_and_synthetic_completion():
    dialect = GooseDialect()
    assert dialect.should_recover_final_text("  ", False) is True
    assert dialect.should_recover_final_text("text", True) is False
    assert dialect.should_emit_synthetic_completion("", True, True) is True


def test_handle_notification_appends_chunks():
    tracker = RunTracker()
    params = {"update": {"sessionUpdate": "agent_message_chunk", "content": {"text": "he"}}}
    events, terminal = GooseDialect().handle_notification(params, tracker)
    GooseDialect().handle_notification(params, tracker)
    assert events == []
    assert terminal is False
    assert tracker.final_text == "hehe"