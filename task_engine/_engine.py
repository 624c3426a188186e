# Copyright (c) Microsoft. All rights reserved.

"""TaskEngine: drives a multi-turn, tool-using conversation to a TaskResult."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from opentelemetry import trace

from ._cancellation import CancellationToken
from ._constants import TRACER_NAME
from ._continuation import ContinuationVerdict, decide_continuation
from ._errors import ErrorClassifier, TaskSetupError, error_message
from ._messages import Message
from ._progress import calculate_progress
from ._session import SimplePromptBuilder, validate_request
from ._settings import EngineSettings
from ._state import (
    ActionKind,
    CurrentAction,
    FinalResult,
    Progress,
    ResultMetadata,
    SessionState,
    StreamSnapshot,
    TaskResult,
)
from ._status import StatusTracker
from ._strategies import StrategyAdapter
from ._stream import consume_turn_stream
from ._tool_dispatch import ToolDispatcher

if TYPE_CHECKING:
    from ._protocols import SessionFactory, StatusObserver
    from ._session import EngineSession
    from ._state import TaskRequest

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer(TRACER_NAME)


@dataclass
class _Execution:
    """Mutable state of one execution."""

    request: TaskRequest
    tracker: StatusTracker
    cancellation: CancellationToken
    turn_count: int = 0
    soft_limit: int = 0
    max_turns: int = 0
    history: list[Message] = field(default_factory=list)


@dataclass
class _TurnOutcome:
    """How a turn ended: with the next message, with an error, or with completion."""

    next_message: Message | None = None
    error: str | None = None


class TaskEngine:
    """Runs successive model turns until the task completes, fails or hits a limit.

    The engine sends a message, streams and accumulates the reply, runs any
    requested tools and feeds their results back as the next message. A turn
    without tool calls either completes the task (when the strategy says so),
    continues with a short prompt (when the continuation oracle says the model
    should speak again) or fails. Every execution resolves to exactly one
    TaskResult; ``execute_task`` never raises for task-level failures.

    Example:
        .. code-block:: python

            engine = TaskEngine(strategy, session_factory, status_observer=print_status)
            result = await engine.execute_task(TaskRequest(session_id="s-1", description="Summarize the logs"))
    """

    # Terminal messages
    NOT_COMPLETED_ERROR = "Task failed: Task was not completed successfully."
    NOT_COMPLETED_SUMMARY = "Task failed: Task was not completed successfully"
    CANCELLED_ERROR = "Operation cancelled."
    FATAL_TOOL_SUMMARY = "Task failed due to fatal tool error"
    EXECUTION_ERROR_SUMMARY = "Error occurred during execution"
    SETUP_ERROR_SUMMARY = "Task setup failed"
    COMPLETED_SUMMARY = "Task execution completed"

    def __init__(
        self,
        strategy: Any,
        session_factory: SessionFactory,
        *,
        settings: EngineSettings | None = None,
        prompt_builder: Any = None,
        status_observer: StatusObserver | None = None,
    ):
        """Initialize the TaskEngine.

        Args:
            strategy: Policy object for the task domain. Any subset of the
                TaskStrategy methods may be implemented.
            session_factory: Builds the model session and tool executor per request.
            settings: Engine settings. Defaults to ``EngineSettings()``.
            prompt_builder: Object with ``async build_prompt(request, session)``.
                Defaults to SimplePromptBuilder.
            status_observer: Callable receiving every TaskStatus snapshot.
        """
        self._strategy = StrategyAdapter(strategy)
        self._session_factory = session_factory
        self._settings = settings or EngineSettings()
        self._prompt_builder = prompt_builder or SimplePromptBuilder()
        self._status_observer = status_observer
        self._classifier = ErrorClassifier(self._settings.recoverable_patterns)
        self._active: list[tuple[str, CancellationToken]] = []

    @property
    def strategy(self) -> Any:
        return self._strategy.wrapped

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def is_running(self) -> bool:
        return bool(self._active)

    def set_status_observer(self, observer: StatusObserver | None) -> None:
        """Replace the observer used by executions started from now on."""
        self._status_observer = observer

    def abort(self, session_id: str | None = None, reason: str = "User cancelled") -> int:
        """Cancel running executions.

        Args:
            session_id: Only cancel executions of this session; all executions when None.
            reason: Reason recorded on the cancellation token.

        Returns:
            The number of executions that were signalled.
        """
        tokens = [
            token for sid, token in self._active if session_id is None or sid == session_id
        ]
        for token in tokens:
            token.cancel(reason)
        return len(tokens)

    async def execute_task(
        self,
        request: TaskRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> TaskResult:
        """Run a task to completion.

        Args:
            request: The task to run.
            cancellation: Optional externally owned cancellation token.

        Returns:
            The TaskResult. Setup failures, transport errors, fatal tool errors,
            limit exhaustion and unexpected exceptions are all reported in it.
        """
        started = time.monotonic()
        token = cancellation or CancellationToken()
        execution = _Execution(
            request=request,
            tracker=StatusTracker(request.session_id, self._status_observer),
            cancellation=token,
        )
        entry = (request.session_id, token)
        self._active.append(entry)
        session: EngineSession | None = None
        execution_error: str | None = None

        with _tracer.start_as_current_span(
            "task_engine.execute_task",
            attributes={
                "task_engine.session_id": request.session_id,
                "task_engine.strategy": self._strategy.name,
            },
        ) as span:
            try:
                execution.tracker.publish()
                session, initial_message = await self._setup(execution)
                execution.tracker.update(
                    session_state=SessionState.RUNNING,
                    current_action=CurrentAction(ActionKind.THINKING, "Starting task execution..."),
                )
                execution_error = await self._run_turns(execution, session, initial_message)
            except TaskSetupError as exc:
                execution_error = str(exc)
                logger.error(f"TaskEngine: setup failed for session {request.session_id}: {execution_error}")
                self._fail(execution, execution_error, self.SETUP_ERROR_SUMMARY)
            except Exception as exc:
                execution_error = error_message(exc)
                logger.error(
                    f"TaskEngine: execution failed for session {request.session_id}: {execution_error}",
                    exc_info=True,
                )
                self._fail(execution, execution_error, self.EXECUTION_ERROR_SUMMARY)
            finally:
                self._active = [active for active in self._active if active is not entry]
                if session is not None:
                    await session.close()

            result = self._build_result(execution, execution_error, started)
            span.set_attribute("task_engine.success", result.success)
            span.set_attribute("task_engine.turn_count", result.metadata.turn_count)
            span.set_attribute("task_engine.tool_call_count", result.metadata.tool_call_count)
            span.set_attribute("task_engine.final_state", execution.tracker.status.session_state.value)

        execution.tracker.finalize()
        logger.info(
            "TaskEngine: session %s finished (success=%s, turns=%d, tool_calls=%d, %.0fms)",
            request.session_id,
            result.success,
            result.metadata.turn_count,
            result.metadata.tool_call_count,
            result.metadata.total_duration,
        )
        return result

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def _setup(self, execution: _Execution) -> tuple[EngineSession, Message]:
        request = execution.request
        validation = validate_request(request)
        for warning in validation.warnings:
            logger.warning(f"TaskEngine: {warning}")
        if not validation.is_valid:
            raise TaskSetupError(f"Configuration validation failed: {', '.join(validation.errors)}")

        try:
            session = await self._session_factory.create_session(request)
        except Exception as exc:
            raise TaskSetupError(f"Failed to create session: {error_message(exc)}") from exc

        execution.soft_limit = session.max_session_turns or request.max_turns or 0
        execution.max_turns = min(
            execution.soft_limit or self._settings.default_max_turns,
            self._settings.hard_turn_limit,
        )
        try:
            prompt = await self._prompt_builder.build_prompt(request, session)
        except Exception as exc:
            await session.close()
            raise TaskSetupError(f"Failed to build initial prompt: {error_message(exc)}") from exc

        logger.info(
            f"TaskEngine: session {request.session_id} ready "
            f"(model={session.model or 'default'}, strategy={self._strategy.name}, "
            f"max_turns={execution.max_turns}, hard_limit={self._settings.hard_turn_limit})"
        )
        return session, Message.user_text(prompt)

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    async def _run_turns(self, execution: _Execution, session: EngineSession, message: Message) -> str | None:
        """Run turns until the execution terminates; return its error, or None on completion."""
        hard_limit = self._settings.hard_turn_limit
        while True:
            execution.turn_count += 1
            session.session_turn_count += 1
            turn = session.session_turn_count

            if execution.turn_count > hard_limit:
                return self._fail(execution, f"Reached hard turn limit ({hard_limit}).")
            if execution.soft_limit > 0 and turn > execution.soft_limit:
                return self._fail(execution, f"Reached max session turns ({execution.soft_limit}) for this session.")

            with _tracer.start_as_current_span(
                "task_engine.turn",
                attributes={"task_engine.session_id": execution.request.session_id, "task_engine.turn": turn},
            ) as span:
                outcome = await self._run_turn(execution, session, message, turn)
                span.set_attribute("task_engine.turn.terminal", outcome.next_message is None)

            if outcome.next_message is None:
                return outcome.error
            message = outcome.next_message

    async def _run_turn(
        self,
        execution: _Execution,
        session: EngineSession,
        message: Message,
        turn: int,
    ) -> _TurnOutcome:
        tracker = execution.tracker
        logger.info(f"TaskEngine: Starting turn {turn}")
        tracker.update(
            progress=self._progress(execution, turn),
            current_action=CurrentAction(ActionKind.THINKING, f"Turn {turn} - thinking..."),
            stream=None,
        )

        execution.history.append(message)
        try:
            stream = await session.model_session.send_message_stream(
                message,
                cancellation=execution.cancellation,
                tools=session.tool_declarations,
            )
        except Exception as exc:
            return self._handle_send_error(execution, exc, turn)

        output = await consume_turn_stream(
            stream,
            execution.cancellation,
            on_text=lambda text: tracker.update(stream=StreamSnapshot(text, is_complete=False)),
        )
        if output.cancelled:
            logger.info(f"TaskEngine: Turn {turn} cancelled ({execution.cancellation.reason or 'no reason given'})")
            return _TurnOutcome(error=self._fail(execution, self.CANCELLED_ERROR))

        execution.history.append(output.as_message())
        if output.text:
            tracker.update(stream=StreamSnapshot(output.text, is_complete=True))

        if output.tool_invocations:
            tracker.update(
                current_action=CurrentAction(
                    ActionKind.TOOL_EXECUTING,
                    f"Turn {turn} - executing {len(output.tool_invocations)} tool call(s)",
                )
            )
            dispatcher = ToolDispatcher(session.tool_executor, tracker, self._strategy, self._settings)
            dispatched = await dispatcher.dispatch(output.tool_invocations, execution.cancellation, turn)
            if dispatched.fatal_error is not None:
                return _TurnOutcome(error=self._fail(execution, dispatched.fatal_error, self.FATAL_TOOL_SUMMARY))
            logger.info(f"TaskEngine: Turn {turn} complete, {dispatched.executed} tool call(s) fed back")
            return _TurnOutcome(next_message=Message(role="user", parts=tuple(dispatched.feedback_parts)))

        tracker.update(current_action=CurrentAction(ActionKind.RESPONDING, f"Turn {turn} - responding"))
        decision = await decide_continuation(
            self._strategy,
            session.continuation_oracle,
            tracker.tool_calls,
            execution.history,
            execution.cancellation,
        )
        if decision.verdict is ContinuationVerdict.COMPLETE:
            self._complete(execution)
            return _TurnOutcome()
        if decision.verdict is ContinuationVerdict.CONTINUE:
            return _TurnOutcome(next_message=Message.user_text(self._settings.continuation_prompt))
        return _TurnOutcome(error=self._fail(execution, self.NOT_COMPLETED_ERROR, self.NOT_COMPLETED_SUMMARY))

    def _handle_send_error(self, execution: _Execution, exc: Exception, turn: int) -> _TurnOutcome:
        classification = self._classifier.classify(exc)
        if not classification.recoverable:
            logger.error(f"TaskEngine: Turn {turn} - unrecoverable API error: {classification.message}")
            return _TurnOutcome(
                error=self._fail(execution, classification.message, self.EXECUTION_ERROR_SUMMARY)
            )

        feedback = self._classifier.format_for_model(classification)
        logger.warning(
            "TaskEngine: Turn %d - recoverable API error (%s): %s",
            turn,
            classification.category.value,
            classification.message,
        )
        execution.tracker.update(
            current_action=CurrentAction(ActionKind.THINKING, f"Turn {turn} - handling API error..."),
            stream=StreamSnapshot(feedback, is_complete=True),
        )
        return _TurnOutcome(next_message=Message.user_text(feedback))

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def _progress(self, execution: _Execution, turn: int) -> Progress:
        status = execution.tracker.status
        percentage = calculate_progress(
            self._strategy,
            execution.tracker.tool_calls,
            turn,
            execution.max_turns,
            status.final_result,
            self._settings.progress_ceiling,
        )
        return Progress(current_turn=turn, max_turns=execution.max_turns, percentage=percentage)

    def _complete(self, execution: _Execution) -> None:
        tracker = execution.tracker
        existing = tracker.status.final_result
        final_result = FinalResult(
            success=True,
            summary=existing.summary if existing and existing.summary else self.COMPLETED_SUMMARY,
            output_path=(existing.output_path if existing else None) or tracker.latest_export_path(),
        )
        logger.info(f"TaskEngine: session {execution.request.session_id} completed")
        tracker.update(
            session_state=SessionState.COMPLETED,
            progress=replace(tracker.status.progress, percentage=100.0),
            current_action=CurrentAction(ActionKind.RESPONDING, "Task completed"),
            final_result=final_result,
        )

    def _fail(self, execution: _Execution, error: str, summary: str | None = None) -> str:
        """Move the execution to the error state and return the error message."""
        tracker = execution.tracker
        if tracker.is_terminal:
            return error
        existing = tracker.status.final_result
        logger.error(f"TaskEngine: session {execution.request.session_id} failed: {error}")
        tracker.update(
            session_state=SessionState.ERROR,
            current_action=CurrentAction(ActionKind.RESPONDING, "Task failed"),
            final_result=FinalResult(
                success=False,
                summary=summary or error,
                output_path=existing.output_path if existing else None,
                error=error,
            ),
        )
        return error

    def _build_result(self, execution: _Execution, execution_error: str | None, started: float) -> TaskResult:
        status = execution.tracker.status
        final_result = status.final_result
        success = execution_error is None and status.session_state is SessionState.COMPLETED
        summary = (
            execution_error
            or (final_result.summary if final_result is not None else None)
            or self.COMPLETED_SUMMARY
        )
        output_path = (final_result.output_path if final_result is not None else None) or (
            execution.tracker.latest_export_path()
        )
        return TaskResult(
            success=success,
            session_id=execution.request.session_id,
            execution_summary=summary,
            metadata=ResultMetadata(
                total_duration=(time.monotonic() - started) * 1000,
                turn_count=execution.turn_count,
                tool_call_count=len(status.tool_calls),
            ),
            output_path=output_path,
            error=execution_error,
        )
