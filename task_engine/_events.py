# Copyright (c) Microsoft. All rights reserved.

"""Translation of status snapshots into composite status events.

Consumers such as progress bars or chat front-ends usually want to know what
changed rather than receive the full snapshot. ``StatusEventTranslator`` keeps
the previous snapshot and emits one ``TaskStatusEvent`` per snapshot that
differs from it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ._state import ActionKind, TaskStatus, ToolCallRecord, ToolCallStatus, utc_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressUpdate:
    current_turn: int
    max_turns: int
    percentage: float


@dataclass(frozen=True)
class LlmResponseUpdate:
    text: str
    is_complete: bool


@dataclass(frozen=True)
class ToolStartUpdate:
    call_id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultUpdate:
    call_id: str
    name: str
    success: bool
    duration: float | None = None
    result: str | None = None
    error: str | None = None
    export_path: str | None = None


@dataclass(frozen=True)
class CompletionUpdate:
    success: bool
    summary: str
    output_path: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class CurrentActionUpdate:
    kind: ActionKind
    description: str


@dataclass(frozen=True)
class StatusUpdates:
    """The parts of the status that changed; unchanged parts are None."""

    progress: ProgressUpdate | None = None
    llm_response: LlmResponseUpdate | None = None
    tool_starts: tuple[ToolStartUpdate, ...] = ()
    tool_results: tuple[ToolResultUpdate, ...] = ()
    completion: CompletionUpdate | None = None
    current_action: CurrentActionUpdate | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.progress is None
            and self.llm_response is None
            and not self.tool_starts
            and not self.tool_results
            and self.completion is None
            and self.current_action is None
        )


@dataclass(frozen=True)
class TaskStatusEvent:
    """One composite status event.

    Attributes:
        session_id: Session the event belongs to.
        turn: Current turn number.
        timestamp: ISO 8601 timestamp of the underlying snapshot.
        updates: What changed since the previous event.
    """

    session_id: str
    turn: int
    updates: StatusUpdates
    timestamp: str = field(default_factory=utc_timestamp)


class StatusEventTranslator:
    """Status observer that turns snapshots into ``TaskStatusEvent``s.

    Pass an instance as the engine's status observer; every emitted event is
    handed to ``on_event``. Use one translator per execution, or call
    ``reset()`` between executions.
    """

    def __init__(self, on_event: Callable[[TaskStatusEvent], None] | None = None) -> None:
        self._on_event = on_event
        self._previous: TaskStatus | None = None
        self.events: list[TaskStatusEvent] = []

    def reset(self) -> None:
        self._previous = None
        self.events.clear()

    def __call__(self, status: TaskStatus) -> None:
        event = self.translate(status)
        if event is None:
            return
        self.events.append(event)
        if self._on_event is not None:
            self._on_event(event)

    def translate(self, status: TaskStatus) -> TaskStatusEvent | None:
        """Return the event for ``status``, or None when nothing reportable changed."""
        previous = self._previous
        self._previous = status

        updates = StatusUpdates(
            progress=self._progress_update(previous, status),
            llm_response=self._llm_response_update(previous, status),
            tool_starts=self._tool_starts(previous, status),
            tool_results=self._tool_results(previous, status),
            completion=self._completion_update(previous, status),
            current_action=self._current_action_update(previous, status),
        )
        if updates.is_empty:
            return None
        return TaskStatusEvent(
            session_id=status.session_id,
            turn=status.progress.current_turn,
            updates=updates,
            timestamp=status.timestamp,
        )

    @staticmethod
    def _progress_update(previous: TaskStatus | None, status: TaskStatus) -> ProgressUpdate | None:
        if previous is not None and previous.progress == status.progress:
            return None
        progress = status.progress
        return ProgressUpdate(progress.current_turn, progress.max_turns, progress.percentage)

    @staticmethod
    def _llm_response_update(previous: TaskStatus | None, status: TaskStatus) -> LlmResponseUpdate | None:
        if status.stream is None:
            return None
        if previous is not None and previous.stream == status.stream:
            return None
        return LlmResponseUpdate(status.stream.accumulated_text, status.stream.is_complete)

    @staticmethod
    def _tool_starts(previous: TaskStatus | None, status: TaskStatus) -> tuple[ToolStartUpdate, ...]:
        starts = []
        for record in status.tool_calls:
            if record.status is not ToolCallStatus.EXECUTING:
                continue
            before = previous.find_tool_call(record.call_id) if previous is not None else None
            if before is not None and before.status is ToolCallStatus.EXECUTING:
                continue
            starts.append(ToolStartUpdate(record.call_id, record.name, dict(record.args)))
        return tuple(starts)

    @staticmethod
    def _tool_results(previous: TaskStatus | None, status: TaskStatus) -> tuple[ToolResultUpdate, ...]:
        results = []
        for record in status.tool_calls:
            if record.status not in (ToolCallStatus.COMPLETED, ToolCallStatus.ERROR):
                continue
            before = previous.find_tool_call(record.call_id) if previous is not None else None
            if before is not None and before == record:
                continue
            results.append(_tool_result(record))
        return tuple(results)

    @staticmethod
    def _completion_update(previous: TaskStatus | None, status: TaskStatus) -> CompletionUpdate | None:
        if not status.session_state.is_terminal or status.final_result is None:
            return None
        if previous is not None and previous.session_state.is_terminal and previous.final_result == status.final_result:
            return None
        final = status.final_result
        return CompletionUpdate(final.success, final.summary, final.output_path, final.error)

    @staticmethod
    def _current_action_update(previous: TaskStatus | None, status: TaskStatus) -> CurrentActionUpdate | None:
        if previous is not None and previous.current_action == status.current_action:
            return None
        return CurrentActionUpdate(status.current_action.kind, status.current_action.description)


def _tool_result(record: ToolCallRecord) -> ToolResultUpdate:
    return ToolResultUpdate(
        call_id=record.call_id,
        name=record.name,
        success=record.status is ToolCallStatus.COMPLETED,
        duration=record.duration,
        result=record.result,
        error=record.error,
        export_path=record.export_path,
    )
