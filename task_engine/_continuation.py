# Copyright (c) Microsoft. All rights reserved.

"""Decision taken when a turn ends without tool invocations."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ._cancellation import CancellationToken
    from ._messages import Message
    from ._protocols import ContinuationOracle
    from ._state import ToolCallRecord
    from ._strategies import StrategyAdapter

logger = logging.getLogger(__name__)


class ContinuationVerdict(Enum):
    """What the engine does after a turn without tool calls."""

    COMPLETE = "complete"
    CONTINUE = "continue"
    STOP = "stop"


@dataclass(frozen=True)
class ContinuationOutcome:
    verdict: ContinuationVerdict
    reason: str | None = None


async def decide_continuation(
    strategy: StrategyAdapter,
    oracle: ContinuationOracle | None,
    tool_calls: Sequence[ToolCallRecord],
    history: Sequence[Message],
    cancellation: CancellationToken,
) -> ContinuationOutcome:
    """Decide between completion, another model turn, or failure.

    Only the strategy can declare the task complete. Otherwise the oracle is
    asked whether the model should speak again; a missing oracle, an oracle
    error or a "stop" answer all end the task as a failure.
    """
    if strategy.is_task_complete(tool_calls):
        logger.info(f"decide_continuation: strategy {strategy.name} reports the task complete")
        return ContinuationOutcome(ContinuationVerdict.COMPLETE)

    if oracle is None:
        logger.warning("decide_continuation: no continuation oracle configured, stopping")
        return ContinuationOutcome(ContinuationVerdict.STOP, "no continuation oracle configured")

    try:
        decision = await oracle.check_next_speaker(history, cancellation)
    except Exception as exc:
        logger.warning(f"decide_continuation: continuation oracle failed: {exc}")
        return ContinuationOutcome(ContinuationVerdict.STOP, f"continuation oracle failed: {exc}")

    if decision is not None and decision.should_continue:
        logger.info(f"decide_continuation: model should continue ({decision.reasoning or 'no reasoning given'})")
        return ContinuationOutcome(ContinuationVerdict.CONTINUE, decision.reasoning)

    reasoning = decision.reasoning if decision is not None else None
    logger.warning(f"decide_continuation: oracle says stop ({reasoning or 'no reasoning given'})")
    return ContinuationOutcome(ContinuationVerdict.STOP, reasoning)
