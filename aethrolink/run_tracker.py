"""Per-prompt state observed while consuming an ACP run."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from aethrolink.types import LocalRuntimeEvent, LocalRuntimeEventKind


@dataclass
class RunTracker:
    """Accumulated text and event flags of one prompt run."""

    final_text: str = ""
    saw_structured_events: bool = False
    saw_terminal_event: bool = False

    def append_chunk(self, text: str) -> None:
        """Append streamed assistant text."""
        self.final_text += text

    def mark_structured_event(self) -> None:
        """Note that the runtime sent a structured event notification."""
        self.saw_structured_events = True

    def record(self, events: Iterable[LocalRuntimeEvent]) -> None:
        """Note whether any of the events ends the task."""
        for event in events:
            if event.kind is LocalRuntimeEventKind.TERMINAL or event.state.is_terminal():
                self.saw_terminal_event = True


def synthetic_completion_decision(dialect: Any, tracker: RunTracker) -> bool:
    """Whether a completion event should be synthesised after the prompt returns."""
    if tracker.saw_terminal_event:
        return False
    return dialect.should_emit_synthetic_completion(
        tracker.final_text, tracker.saw_structured_events, tracker.saw_terminal_event
    )