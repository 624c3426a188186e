# Copyright (c) Microsoft. All rights reserved.

"""Session bundle, request validation and initial prompt building."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ._protocols import ContinuationOracle, ModelSession, PromptStrategy, ToolExecutor
    from ._state import TaskRequest

logger = logging.getLogger(__name__)


@dataclass
class EngineSession:
    """Collaborators the engine talks to during one execution.

    Attributes:
        model_session: The conversation with the model.
        tool_executor: Executes tool invocations.
        continuation_oracle: Consulted when a turn has no tool calls. Without one,
            a turn that neither calls tools nor completes the task fails the task.
        tool_declarations: Tool schemas sent with every message.
        max_session_turns: Soft turn limit for the session; 0 means unbounded.
        model: Model name, for logging.
        working_directory: Working directory, for logging.
        system_prompt: Optional system prompt combined into the initial message.
        closer: Optional object whose ``close()`` (sync or async) is called when the execution ends.
        session_turn_count: Turns run on this session so far. It outlives a single
            execution when the factory hands out the same session again.
    """

    model_session: ModelSession
    tool_executor: ToolExecutor
    continuation_oracle: ContinuationOracle | None = None
    tool_declarations: Sequence[dict[str, Any]] = field(default_factory=list)
    max_session_turns: int = 0
    model: str | None = None
    working_directory: str | None = None
    system_prompt: str | None = None
    closer: Any = None
    session_turn_count: int = 0

    async def close(self) -> None:
        """Release session resources; errors are logged, never raised."""
        close = getattr(self.closer, "close", None)
        if close is None:
            return
        try:
            outcome = close()
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("EngineSession: error while closing session resources")


@dataclass
class ValidationResult:
    """Outcome of request validation."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def validate_request(request: TaskRequest) -> ValidationResult:
    """Check a task request before any session is built.

    Args:
        request: The request to validate.

    Returns:
        A ValidationResult; ``is_valid`` is False when any error was found.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not request.session_id:
        errors.append("session_id is required")
    if request.max_turns is not None and request.max_turns <= 0:
        errors.append("max_turns must be positive")
    if not request.model:
        warnings.append("model not specified, using default")
    if not request.description and not request.custom_prompt:
        warnings.append("neither description nor custom_prompt given")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


class SimplePromptBuilder:
    """Builds the initial prompt from the request.

    Priority: a pluggable prompt strategy, then the request's custom prompt, then
    its description. A session system prompt, when present, is prepended.
    """

    def __init__(self, strategy: PromptStrategy | None = None) -> None:
        self._strategy = strategy

    def set_strategy(self, strategy: PromptStrategy | None) -> None:
        self._strategy = strategy

    async def build_prompt(self, request: TaskRequest, session: EngineSession | None = None) -> str:
        if self._strategy is not None:
            return await self._strategy.build_prompt(request, session)

        system_prompt = session.system_prompt if session is not None else None
        user_prompt = request.custom_prompt or request.description
        return self.combine_prompts(system_prompt, user_prompt)

    @staticmethod
    def combine_prompts(system_prompt: str | None, user_prompt: str) -> str:
        if not system_prompt:
            return user_prompt
        return f"{system_prompt}\n\n## Task Request\n\n{user_prompt}"
