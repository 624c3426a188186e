# Copyright (c) Microsoft. All rights reserved.

"""Tests for StatusEventTranslator."""

from task_engine import (
    ActionKind,
    ContentPart,
    CurrentAction,
    EngineSession,
    FinalResult,
    Progress,
    ResponseChunk,
    SessionState,
    StatusEventTranslator,
    StatusTracker,
    StreamSnapshot,
    TaskEngine,
    TaskRequest,
    ToolCallRecord,
    ToolCallStatus,
    ToolInvocation,
    ToolResponse,
)


def _tracked():
    translator = StatusEventTranslator()
    return StatusTracker("s-1", translator), translator


def test_first_snapshot_reports_progress_and_action() -> None:
    tracker, translator = _tracked()
    tracker.publish()

    event = translator.events[0]
    assert event.session_id == "s-1"
    assert event.updates.progress is not None
    assert event.updates.current_action.description == "Initializing..."
    assert event.updates.completion is None


def test_unchanged_snapshot_emits_nothing() -> None:
    tracker, translator = _tracked()
    tracker.publish()
    tracker.update()
    assert len(translator.events) == 1


def test_progress_and_stream_changes() -> None:
    tracker, translator = _tracked()
    tracker.publish()
    tracker.update(progress=Progress(2, 10, 19.0))
    tracker.update(stream=StreamSnapshot("partial"))

    progress_event, stream_event = translator.events[1:]
    assert progress_event.turn == 2
    assert progress_event.updates.progress.percentage == 19.0
    assert progress_event.updates.llm_response is None
    assert stream_event.updates.llm_response.text == "partial"
    assert stream_event.updates.llm_response.is_complete is False
    assert stream_event.updates.progress is None


def test_tool_start_and_result() -> None:
    tracker, translator = _tracked()
    tracker.add_tool_call(ToolCallRecord("c-1", "fetch", {"url": "x"}))
    tracker.update_tool_call("c-1", status=ToolCallStatus.EXECUTING)
    tracker.update_tool_call("c-1", status=ToolCallStatus.COMPLETED, result="ok", duration=3.0)

    starts = [e.updates.tool_starts for e in translator.events if e.updates.tool_starts]
    results = [e.updates.tool_results for e in translator.events if e.updates.tool_results]
    assert len(starts) == 1
    assert starts[0][0].name == "fetch"
    assert starts[0][0].args == {"url": "x"}
    assert len(results) == 1
    assert results[0][0].success is True
    assert results[0][0].result == "ok"


def test_tool_error_result() -> None:
    tracker, translator = _tracked()
    tracker.add_tool_call(ToolCallRecord("c-1", "fetch"))
    tracker.update_tool_call("c-1", status=ToolCallStatus.ERROR, error="Error executing tool fetch: boom")

    result = translator.events[-1].updates.tool_results[0]
    assert result.success is False
    assert result.error == "Error executing tool fetch: boom"


def test_completion_reported_once() -> None:
    tracker, translator = _tracked()
    tracker.update(session_state=SessionState.RUNNING)
    tracker.update(
        session_state=SessionState.COMPLETED,
        current_action=CurrentAction(ActionKind.RESPONDING, "Task completed"),
        final_result=FinalResult(True, "done", output_path="/tmp/out"),
    )
    tracker.finalize()

    completions = [e.updates.completion for e in translator.events if e.updates.completion]
    assert len(completions) == 1
    assert completions[0].success is True
    assert completions[0].output_path == "/tmp/out"


def test_reset_forgets_previous_snapshot() -> None:
    tracker, translator = _tracked()
    tracker.publish()
    translator.reset()
    tracker.publish()
    assert len(translator.events) == 1


async def test_translator_as_engine_observer() -> None:
    """The translator can be plugged straight into the engine."""

    class OneShotSession:
        def __init__(self):
            self.turns = [
                [ResponseChunk(parts=(ContentPart(text="Calling"), ContentPart(function_call=ToolInvocation("finish"))))],
                [ResponseChunk(parts=(ContentPart(text="Done"),))],
            ]

        async def send_message_stream(self, message, *, cancellation, tools):
            chunks = self.turns.pop(0)

            async def replay():
                for chunk in chunks:
                    yield chunk

            return replay()

    class Executor:
        async def execute(self, name, args, cancellation):
            return ToolResponse(result_display="ok", response_parts=["ok"])

    class FinishStrategy:
        def is_task_complete(self, tool_calls):
            return any(c.name == "finish" and c.status is ToolCallStatus.COMPLETED for c in tool_calls)

    class Factory:
        async def create_session(self, request):
            return EngineSession(model_session=OneShotSession(), tool_executor=Executor())

    received = []
    engine = TaskEngine(FinishStrategy(), Factory(), status_observer=StatusEventTranslator(received.append))

    result = await engine.execute_task(TaskRequest(session_id="s-9", description="finish up", model="m"))

    assert result.success is True
    assert any(e.updates.tool_starts for e in received)
    assert any(e.updates.llm_response and e.updates.llm_response.text == "Calling" for e in received)
    completions = [e.updates.completion for e in received if e.updates.completion]
    assert len(completions) == 1 and completions[0].success is True
