# Copyright (c) Microsoft. All rights reserved.

"""Strategy adapter and a step-weighted reference strategy."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

from ._constants import EXPORT_PATH_KEY
from ._state import FinalResult, ToolCallStatus, ToolProcessingResult, WorkflowStep

if TYPE_CHECKING:
    from ._messages import ToolResponse
    from ._state import ToolCallRecord

logger = logging.getLogger(__name__)


class StrategyAdapter:
    """Uniform view over a duck-typed strategy.

    Every capability is optional on the wrapped object. A missing method falls
    back to the engine default: no progress estimate, never complete, default
    fatal patterns, no workflow steps, no post-processing and every call valid.
    Exceptions raised by the strategy itself propagate.
    """

    def __init__(self, strategy: Any) -> None:
        self._strategy = strategy

    @property
    def wrapped(self) -> Any:
        return self._strategy

    @property
    def name(self) -> str:
        name = getattr(self._strategy, "name", None)
        if callable(name):
            name = name()
        if isinstance(name, str) and name:
            return name
        return type(self._strategy).__name__

    def calculate_progress(self, tool_calls: Sequence[ToolCallRecord], turn_count: int) -> float | None:
        method = getattr(self._strategy, "calculate_progress", None)
        if method is None:
            return None
        return method(tool_calls, turn_count)

    def is_task_complete(self, tool_calls: Sequence[ToolCallRecord]) -> bool:
        method = getattr(self._strategy, "is_task_complete", None)
        if method is None:
            return False
        return bool(method(tool_calls))

    def get_fatal_error_patterns(self) -> Sequence[re.Pattern[str] | str] | None:
        method = getattr(self._strategy, "get_fatal_error_patterns", None)
        if method is None:
            return None
        return list(method() or [])

    def get_workflow_steps(self) -> list[WorkflowStep]:
        method = getattr(self._strategy, "get_workflow_steps", None)
        if method is None:
            return []
        return list(method() or [])

    def process_tool_result(self, tool_call: ToolCallRecord, result: ToolResponse) -> ToolProcessingResult | None:
        method = getattr(self._strategy, "process_tool_result", None)
        if method is None:
            return None
        return method(tool_call, result)

    def is_valid_tool_call(self, tool_name: str, args: dict[str, Any]) -> bool:
        method = getattr(self._strategy, "is_valid_tool_call", None)
        if method is None:
            return True
        return bool(method(tool_name, args))


class StepWeightedStrategy:
    """Strategy driven by a list of weighted workflow steps.

    Progress is the highest weight among steps whose tool has completed, so
    weights read as milestones (for example 25, 50, 100). The task is complete
    once the completion tool has completed.

    Example:
        .. code-block:: python

            strategy = StepWeightedStrategy(
                "report",
                steps=[
                    WorkflowStep("collect_data", 40),
                    WorkflowStep("write_report", 90, dependencies=("collect_data",)),
                    WorkflowStep("complete_task", 100, dependencies=("write_report",)),
                ],
                completion_tool="complete_task",
            )
    """

    def __init__(
        self,
        name: str,
        steps: Iterable[WorkflowStep],
        *,
        completion_tool: str,
        fatal_patterns: Iterable[re.Pattern[str] | str] = (),
        valid_tools: Iterable[str] | None = None,
        export_path_key: str = EXPORT_PATH_KEY,
    ) -> None:
        self._name = name
        self._steps = list(steps)
        self._weights = {step.name: step.weight for step in self._steps}
        self._completion_tool = completion_tool
        self._fatal_patterns = list(fatal_patterns)
        self._valid_tools = frozenset(valid_tools) if valid_tools is not None else None
        self._export_path_key = export_path_key

    @property
    def name(self) -> str:
        return self._name

    def calculate_progress(self, tool_calls: Sequence[ToolCallRecord], turn_count: int) -> float:
        reached = [
            self._weights[record.name]
            for record in tool_calls
            if record.status is ToolCallStatus.COMPLETED and record.name in self._weights
        ]
        return min(max(reached, default=0.0), 100.0)

    def is_task_complete(self, tool_calls: Sequence[ToolCallRecord]) -> bool:
        return any(
            record.name == self._completion_tool and record.status is ToolCallStatus.COMPLETED
            for record in tool_calls
        )

    def get_fatal_error_patterns(self) -> list[re.Pattern[str] | str]:
        return list(self._fatal_patterns)

    def get_workflow_steps(self) -> list[WorkflowStep]:
        return list(self._steps)

    def is_valid_tool_call(self, tool_name: str, args: dict[str, Any]) -> bool:
        if self._valid_tools is None:
            return True
        return tool_name in self._valid_tools

    def process_tool_result(self, tool_call: ToolCallRecord, result: ToolResponse) -> ToolProcessingResult:
        export_path = None
        summary = None
        if isinstance(result.result_display, dict):
            export_path = result.result_display.get(self._export_path_key)
            summary = result.result_display.get("summary")

        extracted = {self._export_path_key: export_path} if export_path else None
        if tool_call.name != self._completion_tool:
            return ToolProcessingResult(should_continue=True, extracted_data=extracted)

        logger.info(f"StepWeightedStrategy[{self._name}]: completion tool {tool_call.name} finished")
        final_result = FinalResult(
            success=True,
            summary=summary if isinstance(summary, str) and summary else f"{self._name} task completed",
            output_path=export_path,
        )
        return ToolProcessingResult(should_continue=False, extracted_data=extracted, final_result=final_result)
