"""Runtime-specific ACP dialects behind a shared session transport."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from aethrolink.events import notification_to_runtime_event, payload_json
from aethrolink.helpers import (
    adapter_cwd,
    as_string,
    chunk_text,
    extract_prompt_text,
    task_remote_session_id,
)
from aethrolink.run_tracker import RunTracker
from aethrolink.types import (
    LocalRuntimeEvent,
    LocalRuntimeEventKind,
    RuntimeSpec,
    TaskEnvelope,
    TaskRecord,
    TaskStatus,
    WorkspaceBinding,
    now_utc,
)


class UnsupportedOperationError(RuntimeError):
    """Raised when a dialect does not support a requested operation."""


class Dialect:
    """Shared ACP behaviour; subclasses set the class attributes below.

    A dialect scopes runtime worker processes by one runtime option
    (``scope_option``, falling back to ``scope_default``) and exposes that
    scope as ``"<scope_prefix>:<value>"``.
    """

    name: str = "acp"
    label: str = "Runtime"
    binding_name: str = "acp"
    scope_option: str = "session_key"
    scope_default: str = "default"
    scope_prefix: str = "session"
    attach_mcp: bool = True
    load_includes_workspace: bool = True
    default_prompt: str = "Say exactly OK"
    resume_unsupported_reason: str = "thin ACP slice"

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def _scope_value(self, options: Mapping[str, Any] | None) -> str:
        return as_string(options, self.scope_option) or self.scope_default

    def _scope_metadata(self, options: Mapping[str, Any] | None) -> dict[str, Any]:
        return {self.scope_option: self._scope_value(options)}

    def _accepted_data(self, task: TaskEnvelope) -> dict[str, Any]:
        return self._scope_metadata(task.runtime_options)

    def _state_fields(self, task: TaskEnvelope, session_id: str) -> dict[str, Any]:
        return {**self._scope_metadata(task.runtime_options), "session_id": session_id}

    def command(self, spec: RuntimeSpec, options: Mapping[str, Any] | None) -> list[str]:
        """Return the launch command for the target."""
        if not spec.launch.command:
            raise ValueError(f"missing launch command for target {spec.target_id}")
        return list(spec.launch.command)

    def subcontext_key(self, options: Mapping[str, Any] | None) -> str:
        """Key that scopes reusable worker processes."""
        return f"{self.scope_prefix}:{self._scope_value(options)}"

    def sticky_key(self, task: TaskEnvelope) -> str:
        """Key that selects the remote session a task continues."""
        return (
            task.thread_id
            or as_string(task.runtime_options, "session_key")
            or task.conversation_id
            or task.task_id
        )

    def workspace_binding(self, task: TaskEnvelope) -> WorkspaceBinding:
        """Working directory and tool attachments for the task's session."""
        return WorkspaceBinding(
            cwd=adapter_cwd(task.runtime_options),
            attach_mcp=self.attach_mcp,
            mcp_servers=[],
            metadata=self._scope_metadata(task.runtime_options),
        )

    def binding_metadata(
        self, options: Mapping[str, Any] | None, binding: WorkspaceBinding
    ) -> dict[str, Any]:
        """Metadata persisted with a sticky session binding."""
        return {**self._scope_metadata(options), "cwd": binding.cwd}

    def open_session_payload(
        self, binding: WorkspaceBinding, options: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        """Parameters of a ``session/new`` request."""
        return {"cwd": binding.cwd, "mcpServers": binding.mcp_servers}

    def load_session_payload(
        self, session_id: str, binding: WorkspaceBinding, options: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        """Parameters of a ``session/load`` request."""
        if not self.load_includes_workspace:
            return {"sessionId": session_id}
        return {"sessionId": session_id, "cwd": binding.cwd, "mcpServers": binding.mcp_servers}

    def prompt_text(self, task: TaskEnvelope) -> str:
        """Text sent to the runtime for the task."""
        return extract_prompt_text(task) or self.default_prompt

    def prompt_payload(
        self,
        session_id: str,
        prompt_text: str,
        binding: WorkspaceBinding,
        options: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        """Parameters of a ``session/prompt`` request."""
        return {"sessionId": session_id, "prompt": [{"type": "text", "text": prompt_text}]}

    def resume_payload(self, session_id: str, payload: Mapping[str, Any] | None) -> dict[str, Any]:
        """Parameters of a ``session/resume`` request."""
        raise UnsupportedOperationError(
            f"{self.name} adapter does not support resume in this {self.resume_unsupported_reason}"
        )

    def accepted_event(self, task: TaskEnvelope, session_id: str) -> LocalRuntimeEvent:
        """Progress event emitted when the runtime takes the task."""
        return LocalRuntimeEvent(
            kind=LocalRuntimeEventKind.PROGRESS,
            state=TaskStatus.RUNNING,
            message=f"{self.label} accepted the task",
            data={**self._accepted_data(task), "session_id": session_id},
            created_at=now_utc(),
        )

    def completion_event(self, task: TaskEnvelope, final_text: str) -> LocalRuntimeEvent:
        """Terminal event carrying the final assistant text."""
        return LocalRuntimeEvent(
            kind=LocalRuntimeEventKind.TERMINAL,
            state=TaskStatus.COMPLETED,
            message=f"{self.label} completed the task",
            data={"result": {"text": final_text}},
            created_at=now_utc(),
        )

    def adapter_state(self, task: TaskEnvelope, session_id: str) -> dict[str, Any]:
        """Dialect state stored in the remote handle of a submitted task."""
        return {
            "dialect": self.name,
            **self._state_fields(task, session_id),
            "sticky_key": self.sticky_key(task),
            "session_idle_timeout_ms": (task.runtime_options or {}).get("session_idle_timeout_ms"),
        }

    def rehydrate_state(self, task: TaskRecord) -> dict[str, Any]:
        """Rebuild handle state from a persisted task record."""
        envelope = TaskEnvelope(
            task_id=task.task_id,
            thread_id=task.thread_id,
            conversation_id=task.conversation_id,
            runtime_options=task.runtime_options,
        )
        return {
            "dialect": self.name,
            **self._state_fields(envelope, task_remote_session_id(task)),
            "sticky_key": self.sticky_key(envelope),
        }

    def should_recover_final_text(self, final_text: str, saw_structured: bool) -> bool:
        """Whether to replay the session to recover missing final text."""
        return final_text.strip() == ""

    def should_emit_synthetic_completion(
        self, final_text: str, saw_structured: bool, saw_terminal: bool
    ) -> bool:
        """Whether a completion event is synthesised after the prompt returns."""
        return True

    def handle_notification(
        self, params: Mapping[str, Any], tracker: RunTracker
    ) -> tuple[list[LocalRuntimeEvent], bool]:
        """Consume a session notification; return events and whether the run ended."""
        text = chunk_text(params)
        if text is not None:
            tracker.append_chunk(text)
        return [], False


def hermes_executor(runtime_options: Mapping[str, Any] | None) -> str:
    """Hermes executor name, defaulting to ``aethrolink-agent``."""
    return as_string(runtime_options, "executor") or "aethrolink-agent"


def openclaw_session_key(runtime_options: Mapping[str, Any] | None) -> str:
    """OpenClaw session key, defaulting to ``main``."""
    return as_string(runtime_options, "session_key") or "main"


def openclaw_sticky_session_key(task: TaskEnvelope) -> str:
    """Thread id when present, else the OpenClaw session key."""
    return task.thread_id or openclaw_session_key(task.runtime_options)


class HermesDialect(Dialect):
    """Hermes ACP runtime, scoped per executor."""

    name = "hermes"
    label = "Hermes"
    binding_name = "hermes_acp"
    scope_option = "executor"
    scope_default = "aethrolink-agent"
    scope_prefix = "executor"
    attach_mcp = True
    load_includes_workspace = False
    default_prompt = "Say exactly OK"
    resume_unsupported_reason = "thin real-runtime slice"

    def command(self, spec: RuntimeSpec, options: Mapping[str, Any] | None) -> list[str]:
        """Per-executor command when configured, else the plain launch command."""
        if spec.launch.commands:
            executor = hermes_executor(options)
            command = spec.launch.commands.get(executor)
            if command:
                return list(command)
            raise ValueError(f"missing hermes command for executor {executor}")
        return super().command(spec, options)

    def subcontext_key(self, options: Mapping[str, Any] | None) -> str:
        """Workers are scoped by executor."""
        return "executor:" + hermes_executor(options)

    def sticky_key(self, task: TaskEnvelope) -> str:
        """Thread, explicit session key, conversation, then task id."""
        return (
            task.thread_id
            or as_string(task.runtime_options, "session_key")
            or task.conversation_id
            or task.task_id
        )


class OpenClawDialect(Dialect):
    """OpenClaw ACP bridge, scoped per session key."""

    name = "openclaw"
    label = "OpenClaw"
    binding_name = "acp_client_stdio"
    scope_option = "session_key"
    scope_default = "main"
    scope_prefix = "session"
    attach_mcp = False
    load_includes_workspace = True
    default_prompt = "Say exactly OPENCLAW OK"
    resume_unsupported_reason = "real ACP bridge slice"

    def _accepted_data(self, task: TaskEnvelope) -> dict[str, Any]:
        return {"session_key": openclaw_sticky_session_key(task)}

    def _state_fields(self, task: TaskEnvelope, session_id: str) -> dict[str, Any]:
        return {"session_key": openclaw_sticky_session_key(task)}

    def subcontext_key(self, options: Mapping[str, Any] | None) -> str:
        """Workers are scoped by session key."""
        return "session:" + openclaw_session_key(options)

    def sticky_key(self, task: TaskEnvelope) -> str:
        """Thread id when present, else the session key."""
        return openclaw_sticky_session_key(task)

    def prompt_text(self, task: TaskEnvelope) -> str:
        """Explicit text, else the payload as JSON, else a smoke-test prompt."""
        text = extract_prompt_text(task)
        if not text and task.payload:
            text = payload_json(task.payload)
        return text or self.default_prompt

    def should_recover_final_text(self, final_text: str, saw_structured: bool) -> bool:
        """Recover only when structured events arrived but no text did."""
        return final_text.strip() == "" and saw_structured

    def should_emit_synthetic_completion(
        self, final_text: str, saw_structured: bool, saw_terminal: bool
    ) -> bool:
        """Never after a terminal event, nor for structured runs without text."""
        if saw_terminal:
            return False
        return not (saw_structured and final_text.strip() == "")

    def handle_notification(
        self, params: Mapping[str, Any], tracker: RunTracker
    ) -> tuple[list[LocalRuntimeEvent], bool]:
        """Handle text chunks and structured task events."""
        text = chunk_text(params)
        if text is not None:
            tracker.append_chunk(text)
            return [], False
        event = params.get("event")
        if not isinstance(event, Mapping):
            return [], False
        tracker.mark_structured_event()
        mapped = notification_to_runtime_event(event)
        return [mapped], mapped.state.is_terminal()