# Copyright (c) Microsoft. All rights reserved.

"""Sequential dispatch of the tool invocations requested in one turn."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from opentelemetry import trace

from ._constants import EXPORT_PATH_KEY, TRACER_NAME
from ._errors import format_tool_error, is_fatal_tool_error, is_tool_not_found
from ._messages import ContentPart, ToolError, ToolResponse
from ._state import ActionKind, CurrentAction, ToolCallRecord, ToolCallStatus

if TYPE_CHECKING:
    from ._cancellation import CancellationToken
    from ._messages import ToolInvocation
    from ._protocols import ToolExecutor
    from ._settings import EngineSettings
    from ._status import StatusTracker
    from ._strategies import StrategyAdapter

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer(TRACER_NAME)


@dataclass
class DispatchOutcome:
    """Result of dispatching one turn's tool invocations.

    Attributes:
        feedback_parts: Parts forming the next message to the model.
        fatal_error: Formatted error of the tool call that ended the task, if any.
        executed: Number of invocations that reached the ledger.
    """

    feedback_parts: list[ContentPart] = field(default_factory=list)
    fatal_error: str | None = None
    executed: int = 0


def stringify_result(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


class ToolDispatcher:
    """Runs tool invocations in request order and records them in the ledger."""

    def __init__(
        self,
        executor: ToolExecutor,
        tracker: StatusTracker,
        strategy: StrategyAdapter,
        settings: EngineSettings,
    ) -> None:
        self._executor = executor
        self._tracker = tracker
        self._strategy = strategy
        self._settings = settings

    async def dispatch(
        self,
        invocations: Sequence[ToolInvocation],
        cancellation: CancellationToken,
        turn: int,
    ) -> DispatchOutcome:
        """Execute invocations one at a time.

        Stops at the first fatal tool error; the remaining invocations are not run.
        """
        outcome = DispatchOutcome()
        for invocation in invocations:
            outcome.executed += 1
            fatal_error = await self._dispatch_one(invocation, cancellation, turn, outcome.feedback_parts)
            if fatal_error is not None:
                outcome.fatal_error = fatal_error
                break
        return outcome

    async def _dispatch_one(
        self,
        invocation: ToolInvocation,
        cancellation: CancellationToken,
        turn: int,
        feedback: list[ContentPart],
    ) -> str | None:
        call_id = self._tracker.allocate_call_id(invocation)
        args = dict(invocation.args or {})
        self._tracker.add_tool_call(
            ToolCallRecord(call_id=call_id, name=invocation.name, args=args, start_time=time.time())
        )
        self._tracker.update_tool_call(call_id, status=ToolCallStatus.EXECUTING)
        self._tracker.update(
            current_action=CurrentAction(ActionKind.TOOL_EXECUTING, f"Turn {turn} - executing {invocation.name}")
        )
        logger.info(f"ToolDispatcher: Turn {turn} - executing {invocation.name} ({call_id})")

        with _tracer.start_as_current_span(
            "task_engine.tool_call",
            attributes={
                "task_engine.tool.name": invocation.name,
                "task_engine.tool.call_id": call_id,
                "task_engine.turn": turn,
            },
        ) as span:
            started = time.monotonic()
            if self._settings.enforce_tool_validation and not self._strategy.is_valid_tool_call(
                invocation.name, args
            ):
                logger.warning(f"ToolDispatcher: {invocation.name} rejected by strategy {self._strategy.name}")
                response = ToolResponse(
                    error=ToolError(f"tool call {invocation.name} is not valid for this task")
                )
            else:
                response = await self._executor.execute(invocation.name, args, cancellation)
            duration = (time.monotonic() - started) * 1000

            if response.error is not None:
                message = format_tool_error(invocation.name, response)
                not_found = is_tool_not_found(response.error)
                patterns = self._strategy.get_fatal_error_patterns()
                if patterns is None:
                    patterns = self._settings.default_fatal_tool_patterns
                fatal = is_fatal_tool_error(message, not_found=not_found, patterns=patterns)
                span.set_attribute("task_engine.tool.status", ToolCallStatus.ERROR.value)
                span.set_attribute("task_engine.tool.fatal", fatal)
                self._tracker.update_tool_call(call_id, status=ToolCallStatus.ERROR, duration=duration, error=message)
                feedback.append(ContentPart(text=f"TOOL_ERROR({invocation.name}): {message}"))
                if fatal:
                    logger.error(f"ToolDispatcher: fatal error from {invocation.name}: {message}")
                    return message
                logger.warning(
                    "ToolDispatcher: non-fatal error from %s%s: %s",
                    invocation.name,
                    " (not found)" if not_found else "",
                    message,
                )
                return None

            span.set_attribute("task_engine.tool.status", ToolCallStatus.COMPLETED.value)
            result = stringify_result(response.result_display)
            parts = response.iter_response_parts()
            self._tracker.update_tool_call(
                call_id,
                status=ToolCallStatus.COMPLETED,
                duration=duration,
                result=result,
                response_parts=tuple(parts),
            )
            self._post_process(call_id, response)

            if parts:
                feedback.extend(parts)
            elif result is not None:
                feedback.append(ContentPart(text=result))
            return None

    def _post_process(self, call_id: str, response: ToolResponse) -> None:
        record = self._tracker.status.find_tool_call(call_id)
        if record is None:
            return
        processed = self._strategy.process_tool_result(record, response)
        if processed is None:
            return

        logger.debug(
            "ToolDispatcher: strategy %s processed %s (should_continue=%s)",
            self._strategy.name,
            record.name,
            processed.should_continue,
        )
        export_path = (processed.extracted_data or {}).get(EXPORT_PATH_KEY)
        if export_path:
            self._tracker.update_tool_call(call_id, export_path=str(export_path))
        if processed.final_result is not None:
            self._tracker.merge_final_result(processed.final_result)
