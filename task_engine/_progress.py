# Copyright (c) Microsoft. All rights reserved.

"""Turn-based progress calculation."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from ._constants import DEFAULT_PROGRESS_CEILING

if TYPE_CHECKING:
    from ._state import FinalResult, ToolCallRecord
    from ._strategies import StrategyAdapter


def fallback_progress(
    turn: int,
    max_turns: int,
    final_result: FinalResult | None = None,
    ceiling: float = DEFAULT_PROGRESS_CEILING,
) -> float:
    """Progress when the strategy does not compute its own.

    Grows linearly with the turn and reaches ``ceiling`` at ``max_turns``;
    only a successful final result reaches 100.
    """
    if final_result is not None and final_result.success:
        return 100.0
    if max_turns <= 0:
        return 0.0
    return max(0.0, min(turn / max_turns * ceiling, ceiling))


def calculate_progress(
    strategy: StrategyAdapter,
    tool_calls: Sequence[ToolCallRecord],
    turn: int,
    max_turns: int,
    final_result: FinalResult | None = None,
    ceiling: float = DEFAULT_PROGRESS_CEILING,
) -> float:
    """Return progress in [0, 100].

    Strategy values are clamped but otherwise trusted, so progress may go down
    between turns.
    """
    value = strategy.calculate_progress(tool_calls, turn)
    if value is None:
        return fallback_progress(turn, max_turns, final_result, ceiling)
    return max(0.0, min(100.0, float(value)))
