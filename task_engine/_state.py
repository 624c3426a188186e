# Copyright (c) Microsoft. All rights reserved.

"""State types for the turn-execution engine."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_timestamp() -> str:
    """Return the current time as an ISO 8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


class SessionState(Enum):
    """Lifecycle state of one task execution.

    The states form a one-way lattice: ``initializing`` may move to ``running``
    or ``error``, ``running`` may move to ``completed`` or ``error``, and the two
    terminal states are never left.
    """

    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ERROR)

    def can_transition_to(self, target: "SessionState") -> bool:
        """Whether moving from this state to ``target`` respects the lattice."""
        if target is self:
            return True
        return target in _SESSION_TRANSITIONS[self]


_SESSION_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.INITIALIZING: frozenset({SessionState.RUNNING, SessionState.ERROR}),
    SessionState.RUNNING: frozenset({SessionState.COMPLETED, SessionState.ERROR}),
    SessionState.COMPLETED: frozenset(),
    SessionState.ERROR: frozenset(),
}


class ActionKind(Enum):
    """What the engine is doing right now."""

    THINKING = "thinking"
    TOOL_EXECUTING = "tool_executing"
    RESPONDING = "responding"


class ToolCallStatus(Enum):
    """Status of a single tool invocation."""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _TOOL_STATUS_RANK[self]

    def can_transition_to(self, target: "ToolCallStatus") -> bool:
        """Transitions only move forward; ``completed`` and ``error`` are both final."""
        if target is self:
            return True
        return target.rank > self.rank


_TOOL_STATUS_RANK: dict[ToolCallStatus, int] = {
    ToolCallStatus.PENDING: 0,
    ToolCallStatus.EXECUTING: 1,
    ToolCallStatus.COMPLETED: 2,
    ToolCallStatus.ERROR: 2,
}


@dataclass(frozen=True)
class TaskRequest:
    """Input for one task execution.

    Attributes:
        session_id: Caller-supplied unique identifier for the session.
        description: Natural-language task description with all context included.
        model: Optional model override.
        max_turns: Optional maximum conversation turns for the session.
        working_directory: Optional working directory for tools.
        custom_prompt: Optional prompt that takes priority over the description.
        task_type: Optional task type used by prompt strategies.
        options: Opaque options handed to the session factory.
    """

    session_id: str
    description: str
    model: str | None = None
    max_turns: int | None = None
    working_directory: str | None = None
    custom_prompt: str | None = None
    task_type: str | None = None
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Progress:
    """Turn-based progress of an execution."""

    current_turn: int = 0
    max_turns: int = 0
    percentage: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_turn": self.current_turn,
            "max_turns": self.max_turns,
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class CurrentAction:
    """The action the engine is performing, with a display description."""

    kind: ActionKind
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "description": self.description}


@dataclass(frozen=True)
class StreamSnapshot:
    """The model's text for the current turn.

    Attributes:
        accumulated_text: Everything the model has said this turn so far, not a delta.
        is_complete: Whether the turn's stream has ended.
    """

    accumulated_text: str
    is_complete: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"accumulated_text": self.accumulated_text, "is_complete": self.is_complete}


@dataclass(frozen=True)
class FinalResult:
    """Outcome recorded in the status once it is known.

    Strategies may provide a partial final result while the task is still running;
    the engine overwrites ``success`` and ``error`` when the task terminates.
    """

    success: bool
    summary: str
    output_path: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "summary": self.summary,
            "output_path": self.output_path,
            "error": self.error,
        }


@dataclass(frozen=True)
class ToolCallRecord:
    """Ledger entry for one tool invocation.

    Attributes:
        call_id: Unique identifier of the invocation.
        name: Tool name.
        args: Arguments passed to the tool.
        status: Current status; only moves forward.
        start_time: Epoch seconds when the record was created.
        duration: Execution time in milliseconds, once finished.
        result: String-coerced result for display.
        error: Formatted error message, if the tool failed.
        export_path: Artifact path extracted by the strategy, if any.
        response_parts: Raw response parts returned by the tool.
    """

    call_id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    status: ToolCallStatus = ToolCallStatus.PENDING
    start_time: float = 0.0
    duration: float | None = None
    result: str | None = None
    error: str | None = None
    export_path: str | None = None
    response_parts: tuple[Any, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "call_id": self.call_id,
            "name": self.name,
            "args": self.args,
            "status": self.status.value,
            "start_time": self.start_time,
            "duration": self.duration,
            "result": self.result,
            "error": self.error,
            "export_path": self.export_path,
        }


@dataclass(frozen=True)
class TaskStatus:
    """Snapshot of an execution, published to the status observer after every change.

    The engine owns the live status and replaces it on each mutation, so every
    published snapshot stays valid after the engine moves on.
    """

    session_id: str
    session_state: SessionState = SessionState.INITIALIZING
    progress: Progress = field(default_factory=Progress)
    current_action: CurrentAction = field(
        default_factory=lambda: CurrentAction(ActionKind.THINKING, "Initializing...")
    )
    stream: StreamSnapshot | None = None
    tool_calls: tuple[ToolCallRecord, ...] = ()
    final_result: FinalResult | None = None
    timestamp: str = field(default_factory=utc_timestamp)

    def find_tool_call(self, call_id: str) -> ToolCallRecord | None:
        for record in self.tool_calls:
            if record.call_id == call_id:
                return record
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "session_id": self.session_id,
            "session_state": self.session_state.value,
            "progress": self.progress.to_dict(),
            "current_action": self.current_action.to_dict(),
            "stream": self.stream.to_dict() if self.stream else None,
            "tool_calls": [record.to_dict() for record in self.tool_calls],
            "final_result": self.final_result.to_dict() if self.final_result else None,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ResultMetadata:
    """Execution statistics attached to every result."""

    total_duration: float
    turn_count: int
    tool_call_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_duration": self.total_duration,
            "turn_count": self.turn_count,
            "tool_call_count": self.tool_call_count,
        }


@dataclass(frozen=True)
class TaskResult:
    """Final result of a task execution, produced exactly once per execution.

    Attributes:
        success: Whether the task completed successfully.
        session_id: The session the result belongs to.
        execution_summary: Human-readable summary of how the execution ended.
        metadata: Duration (milliseconds), turn count and tool call count.
        output_path: Output artifact path, when the strategy reported one.
        error: Error message for failed executions.
    """

    success: bool
    session_id: str
    execution_summary: str
    metadata: ResultMetadata
    output_path: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "success": self.success,
            "session_id": self.session_id,
            "output_path": self.output_path,
            "execution_summary": self.execution_summary,
            "error": self.error,
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True)
class WorkflowStep:
    """A step a strategy expects the task to go through.

    Attributes:
        name: Step name, usually the tool that performs it.
        weight: Progress weight (0-100) reached once the step is done.
        is_required: Whether the task cannot complete without this step.
        dependencies: Names of steps that must come first.
    """

    name: str
    weight: float
    is_required: bool = True
    dependencies: tuple[str, ...] = ()


@dataclass
class ToolProcessingResult:
    """What a strategy extracted from a successful tool result.

    Attributes:
        should_continue: Advisory flag; the engine logs it but the loop decides on its own.
        extracted_data: Domain data, e.g. ``{"export_path": ...}``.
        final_result: Partial final result merged into the status immediately.
    """

    should_continue: bool = True
    extracted_data: dict[str, Any] | None = None
    final_result: FinalResult | None = None
