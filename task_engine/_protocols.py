# Copyright (c) Microsoft. All rights reserved.

"""Capability protocols for the engine's collaborators.

The engine never requires a shared base class. Any object with the right
methods can act as a strategy, model session, tool executor, continuation
oracle or session factory. Strategy methods are individually optional: when a
strategy lacks one, the engine uses its built-in default for that capability.
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterator, Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ._cancellation import CancellationToken
    from ._messages import ContinuationDecision, Message, ResponseChunk, ToolResponse
    from ._session import EngineSession
    from ._state import TaskRequest, TaskStatus, ToolCallRecord, ToolProcessingResult, WorkflowStep


StatusObserver = Callable[["TaskStatus"], None]
"""Callback receiving every status snapshot, synchronously and in order."""


@runtime_checkable
class TaskStrategy(Protocol):
    """Policy object for one task domain."""

    @property
    def name(self) -> str:
        """Strategy name for logging and debugging."""
        ...

    def calculate_progress(self, tool_calls: Sequence[ToolCallRecord], turn_count: int) -> float:
        """Return progress in [0, 100] for the current ledger and turn."""
        ...

    def is_task_complete(self, tool_calls: Sequence[ToolCallRecord]) -> bool:
        """Whether the ledger shows the task has been completed."""
        ...

    def get_fatal_error_patterns(self) -> Sequence[re.Pattern[str] | str]:
        """Patterns that make a tool error fatal."""
        ...

    def get_workflow_steps(self) -> Sequence[WorkflowStep]:
        """Expected workflow steps; descriptive only."""
        ...

    def process_tool_result(self, tool_call: ToolCallRecord, result: ToolResponse) -> ToolProcessingResult | None:
        """Post-process a successful tool result."""
        ...

    def is_valid_tool_call(self, tool_name: str, args: dict[str, Any]) -> bool:
        """Whether a tool call is expected for this task type."""
        ...


@runtime_checkable
class ModelSession(Protocol):
    """A conversation with the model."""

    async def send_message_stream(
        self,
        message: Message,
        *,
        cancellation: CancellationToken,
        tools: Sequence[dict[str, Any]],
    ) -> AsyncIterator[ResponseChunk]:
        """Send one message and return a lazy, finite, non-restartable chunk stream.

        Raising from this call (rather than while iterating) signals a
        transport-level failure that the engine may recover from.
        """
        ...


@runtime_checkable
class ToolExecutor(Protocol):
    """Runs tools on behalf of the model."""

    async def execute(
        self,
        name: str,
        args: dict[str, Any],
        cancellation: CancellationToken,
    ) -> ToolResponse:
        """Execute a tool and return its response; failures are reported in ``ToolResponse.error``."""
        ...


@runtime_checkable
class ContinuationOracle(Protocol):
    """Decides, when a turn produced no tool calls, whether the model should speak again."""

    async def check_next_speaker(
        self,
        history: Sequence[Message],
        cancellation: CancellationToken,
    ) -> ContinuationDecision:
        """Return the decision, or raise when it cannot be determined."""
        ...


@runtime_checkable
class SessionFactory(Protocol):
    """Builds the collaborators for one task request."""

    async def create_session(self, request: TaskRequest) -> EngineSession:
        """Create a ready-to-use session; raising marks a setup failure."""
        ...


@runtime_checkable
class PromptStrategy(Protocol):
    """Builds the initial prompt for a task."""

    @property
    def name(self) -> str:
        """Strategy name for logging and debugging."""
        ...

    async def build_prompt(self, request: TaskRequest, session: EngineSession | None = None) -> str:
        """Return the initial user prompt."""
        ...
