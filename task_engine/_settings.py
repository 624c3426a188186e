# Copyright (c) Microsoft. All rights reserved.

"""Engine-wide settings."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from ._constants import (
    DEFAULT_CONTINUATION_PROMPT,
    DEFAULT_FATAL_TOOL_PATTERNS,
    DEFAULT_HARD_TURN_LIMIT,
    DEFAULT_MAX_TURNS,
    DEFAULT_PROGRESS_CEILING,
    DEFAULT_RECOVERABLE_PATTERNS,
    ENV_DEFAULT_MAX_TURNS,
    ENV_ENFORCE_TOOL_VALIDATION,
    ENV_HARD_TURN_LIMIT,
)


@dataclass(frozen=True)
class EngineSettings:
    """Settings that apply to every execution of an engine.

    Attributes:
        hard_turn_limit: Absolute per-execution turn ceiling, independent of the session's
            own limit. Use ``EXTENDED_HARD_TURN_LIMIT`` for long-running task types.
        default_max_turns: Turn budget used for progress when the session sets none.
        progress_ceiling: Upper bound of fallback progress while the task is running.
        recoverable_patterns: Regular expressions marking transport errors the model can recover from.
        default_fatal_tool_patterns: Fatal tool-error patterns used when the strategy has no ``get_fatal_error_patterns``.
        continuation_prompt: Message sent when the oracle says the model should continue.
        enforce_tool_validation: Reject tool calls the strategy does not consider valid.
    """

    hard_turn_limit: int = DEFAULT_HARD_TURN_LIMIT
    default_max_turns: int = DEFAULT_MAX_TURNS
    progress_ceiling: float = DEFAULT_PROGRESS_CEILING
    recoverable_patterns: tuple[str, ...] = DEFAULT_RECOVERABLE_PATTERNS
    default_fatal_tool_patterns: tuple[str, ...] = DEFAULT_FATAL_TOOL_PATTERNS
    continuation_prompt: str = DEFAULT_CONTINUATION_PROMPT
    enforce_tool_validation: bool = False

    def __post_init__(self) -> None:
        if self.hard_turn_limit <= 0:
            raise ValueError("hard_turn_limit must be positive")
        if self.default_max_turns <= 0:
            raise ValueError("default_max_turns must be positive")
        if not 0 <= self.progress_ceiling <= 100:
            raise ValueError("progress_ceiling must be within [0, 100]")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        """Build settings from ``TASK_ENGINE_*`` environment variables.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}
        if env.get(ENV_HARD_TURN_LIMIT):
            overrides["hard_turn_limit"] = int(env[ENV_HARD_TURN_LIMIT])
        if env.get(ENV_DEFAULT_MAX_TURNS):
            overrides["default_max_turns"] = int(env[ENV_DEFAULT_MAX_TURNS])
        if env.get(ENV_ENFORCE_TOOL_VALIDATION):
            overrides["enforce_tool_validation"] = env[ENV_ENFORCE_TOOL_VALIDATION].strip().lower() in (
                "1",
                "true",
                "yes",
                "on",
            )
        return cls(**overrides)  # type: ignore[arg-type]
