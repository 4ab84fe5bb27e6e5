"""Goose CLI ACP dialect, scoped per Goose profile."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from aethrolink.dialects import Dialect
from aethrolink.helpers import adapter_cwd, as_string
from aethrolink.types import RuntimeSpec, TaskEnvelope, WorkspaceBinding


def goose_profile(runtime_options: Mapping[str, Any] | None) -> str:
    """Goose profile name, defaulting to ``default``."""
    return as_string(runtime_options, "profile") or "default"


class GooseDialect(Dialect):
    """Goose ACP server; worker processes are kept apart per profile."""

    name = "goose"
    label = "Goose"
    binding_name = "goose_acp"
    scope_option = "profile"
    scope_default = "default"
    scope_prefix = "profile"
    attach_mcp = True
    load_includes_workspace = True
    default_prompt = "Say exactly OK"
    resume_unsupported_reason = "thin ACP slice"

    def command(self, spec: RuntimeSpec, options: Mapping[str, Any] | None) -> list[str]:
        """The configured Goose launch command, unchanged."""
        if not spec.launch.command:
            raise ValueError(f"missing launch command for target {spec.target_id}")
        return list(spec.launch.command)

    def subcontext_key(self, options: Mapping[str, Any] | None) -> str:
        """Workers are scoped by Goose profile."""
        return "profile:" + goose_profile(options)

    def sticky_key(self, task: TaskEnvelope) -> str:
        """Thread, explicit session key, conversation, then task id."""
        return (
            task.thread_id
            or as_string(task.runtime_options, "session_key")
            or task.conversation_id
            or task.task_id
        )

    def workspace_binding(self, task: TaskEnvelope) -> WorkspaceBinding:
        """Open sessions in the caller cwd with MCP servers attached."""
        return WorkspaceBinding(
            cwd=adapter_cwd(task.runtime_options),
            attach_mcp=True,
            mcp_servers=[],
            metadata={"profile": goose_profile(task.runtime_options)},
        )

    def load_session_payload(
        self, session_id: str, binding: WorkspaceBinding, options: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        """Parameters of a Goose ``session/load`` request."""
        return {"sessionId": session_id, "cwd": binding.cwd, "mcpServers": binding.mcp_servers}