# Copyright (c) Microsoft. All rights reserved.

"""Task Engine - turn-execution runtime for tool-using model conversations.

The engine runs successive model turns, streams and assembles partial output,
dispatches tool invocations, classifies every failure as fatal, recoverable
or ignorable, and always converges to one TaskResult. A live TaskStatus
snapshot is published to the status observer after every change.

Example:
    .. code-block:: python

        from task_engine import (
            EngineSession,
            StepWeightedStrategy,
            TaskEngine,
            TaskRequest,
            WorkflowStep,
        )


        class MySessionFactory:
            async def create_session(self, request):
                return EngineSession(
                    model_session=my_model_session,
                    tool_executor=my_tool_executor,
                    continuation_oracle=my_oracle,
                    tool_declarations=my_tool_schemas,
                    max_session_turns=request.max_turns or 0,
                )


        strategy = StepWeightedStrategy(
            "export",
            steps=[WorkflowStep("fetch", 50), WorkflowStep("complete_task", 100)],
            completion_tool="complete_task",
        )
        engine = TaskEngine(strategy, MySessionFactory(), status_observer=print)
        result = await engine.execute_task(TaskRequest(session_id="s-1", description="Export the report"))
"""

from ._cancellation import CancellationToken
from ._constants import (
    DEFAULT_CONTINUATION_PROMPT,
    DEFAULT_FATAL_TOOL_PATTERNS,
    DEFAULT_HARD_TURN_LIMIT,
    DEFAULT_MAX_TURNS,
    DEFAULT_PROGRESS_CEILING,
    DEFAULT_RECOVERABLE_PATTERNS,
    EXPORT_PATH_KEY,
    EXTENDED_HARD_TURN_LIMIT,
    TOOL_NOT_FOUND_MARKER,
)
from ._continuation import ContinuationOutcome, ContinuationVerdict, decide_continuation
from ._engine import TaskEngine
from ._errors import (
    ApiErrorClassification,
    ErrorCategory,
    ErrorClassifier,
    TaskSetupError,
    compile_patterns,
    extract_api_error_details,
    format_tool_error,
    is_fatal_tool_error,
    is_server_error,
    is_tool_not_found,
)
from ._events import (
    CompletionUpdate,
    CurrentActionUpdate,
    LlmResponseUpdate,
    ProgressUpdate,
    StatusEventTranslator,
    StatusUpdates,
    TaskStatusEvent,
    ToolResultUpdate,
    ToolStartUpdate,
)
from ._messages import (
    ContentPart,
    ContinuationDecision,
    Message,
    ResponseChunk,
    ToolError,
    ToolInvocation,
    ToolResponse,
)
from ._progress import calculate_progress, fallback_progress
from ._protocols import (
    ContinuationOracle,
    ModelSession,
    PromptStrategy,
    SessionFactory,
    StatusObserver,
    TaskStrategy,
    ToolExecutor,
)
from ._session import EngineSession, SimplePromptBuilder, ValidationResult, validate_request
from ._settings import EngineSettings
from ._state import (
    ActionKind,
    CurrentAction,
    FinalResult,
    Progress,
    ResultMetadata,
    SessionState,
    StreamSnapshot,
    TaskRequest,
    TaskResult,
    TaskStatus,
    ToolCallRecord,
    ToolCallStatus,
    ToolProcessingResult,
    WorkflowStep,
)
from ._status import StatusTracker
from ._strategies import StepWeightedStrategy, StrategyAdapter
from ._stream import TurnOutput, consume_turn_stream
from ._tool_dispatch import DispatchOutcome, ToolDispatcher

__all__ = [
    "DEFAULT_CONTINUATION_PROMPT",
    "DEFAULT_FATAL_TOOL_PATTERNS",
    "DEFAULT_HARD_TURN_LIMIT",
    "DEFAULT_MAX_TURNS",
    "DEFAULT_PROGRESS_CEILING",
    "DEFAULT_RECOVERABLE_PATTERNS",
    "EXPORT_PATH_KEY",
    "EXTENDED_HARD_TURN_LIMIT",
    "TOOL_NOT_FOUND_MARKER",
    "ActionKind",
    "ApiErrorClassification",
    "CancellationToken",
    "CompletionUpdate",
    "ContentPart",
    "ContinuationDecision",
    "ContinuationOracle",
    "ContinuationOutcome",
    "ContinuationVerdict",
    "CurrentAction",
    "CurrentActionUpdate",
    "DispatchOutcome",
    "EngineSession",
    "EngineSettings",
    "ErrorCategory",
    "ErrorClassifier",
    "FinalResult",
    "LlmResponseUpdate",
    "Message",
    "ModelSession",
    "Progress",
    "ProgressUpdate",
    "PromptStrategy",
    "ResponseChunk",
    "ResultMetadata",
    "SessionFactory",
    "SessionState",
    "SimplePromptBuilder",
    "StatusEventTranslator",
    "StatusObserver",
    "StatusTracker",
    "StatusUpdates",
    "StepWeightedStrategy",
    "StrategyAdapter",
    "StreamSnapshot",
    "TaskEngine",
    "TaskRequest",
    "TaskResult",
    "TaskSetupError",
    "TaskStatus",
    "TaskStatusEvent",
    "TaskStrategy",
    "ToolCallRecord",
    "ToolCallStatus",
    "ToolDispatcher",
    "ToolError",
    "ToolExecutor",
    "ToolInvocation",
    "ToolProcessingResult",
    "ToolResponse",
    "ToolResultUpdate",
    "ToolStartUpdate",
    "TurnOutput",
    "ValidationResult",
    "WorkflowStep",
    "calculate_progress",
    "compile_patterns",
    "consume_turn_stream",
    "decide_continuation",
    "extract_api_error_details",
    "fallback_progress",
    "format_tool_error",
    "is_fatal_tool_error",
    "is_server_error",
    "is_tool_not_found",
    "validate_request",
]
