# Copyright (c) Microsoft. All rights reserved.

"""Example: running the TaskEngine against a scripted model.

The model session replays a fixed conversation, so the example runs offline.
It shows the full loop: streaming text, tool dispatch, strategy progress,
status events and the final TaskResult.

Engine settings can be overridden through the environment (or a ``.env``
file), for example ``TASK_ENGINE_HARD_TURN_LIMIT=200``.

Usage:
    python scripted_task.py
    python scripted_task.py --max-turns 2
    python scripted_task.py --verbose
"""

import argparse
import asyncio
import logging
from datetime import datetime, timezone

from dotenv import load_dotenv

from task_engine import (
    ContentPart,
    EngineSession,
    EngineSettings,
    ResponseChunk,
    StatusEventTranslator,
    StepWeightedStrategy,
    TaskEngine,
    TaskRequest,
    TaskStatusEvent,
    ToolError,
    ToolInvocation,
    ToolResponse,
    WorkflowStep,
)

load_dotenv()

# ============================================================
# Scripted collaborators
# ============================================================


def _say(*fragments: str) -> list[ResponseChunk]:
    return [ResponseChunk(parts=(ContentPart(text=fragment),)) for fragment in fragments]


def _call(name: str, **args) -> ResponseChunk:
    return ResponseChunk(parts=(ContentPart(function_call=ToolInvocation(name, args)),))


class ScriptedModelSession:
    """Replays one scripted reply per turn."""

    def __init__(self) -> None:
        self._turns = [
            [*_say("Let me check ", "the time first."), _call("get_current_time")],
            [*_say("Now the sum."), _call("add_numbers", a=12, b=30)],
            [*_say("Writing the report."), _call("write_report", summary="12 + 30 = 42")],
            _say("The report is written."),
        ]

    async def send_message_stream(self, message, *, cancellation, tools):
        chunks = self._turns.pop(0) if self._turns else _say("Nothing left to do.")

        async def replay():
            for chunk in chunks:
                await asyncio.sleep(0.05)
                yield chunk

        return replay()


class ExampleTools:
    """Tool executor with three small tools."""

    async def execute(self, name, args, cancellation):
        if name == "get_current_time":
            now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
            return ToolResponse(result_display=now, response_parts=[f"Current time: {now}"])
        if name == "add_numbers":
            total = args.get("a", 0) + args.get("b", 0)
            return ToolResponse(result_display={"sum": total}, response_parts=[f"Sum: {total}"])
        if name == "write_report":
            return ToolResponse(
                result_display={"export_path": "report.txt", "summary": args.get("summary", "")},
                response_parts=["Report written to report.txt"],
            )
        return ToolResponse(error=ToolError(f"Tool {name} not found in registry", not_found=True))


class ExampleSessionFactory:
    async def create_session(self, request: TaskRequest) -> EngineSession:
        return EngineSession(
            model_session=ScriptedModelSession(),
            tool_executor=ExampleTools(),
            tool_declarations=[{"name": "get_current_time"}, {"name": "add_numbers"}, {"name": "write_report"}],
            max_session_turns=request.max_turns or 0,
            model=request.model,
        )


# ============================================================
# Main
# ============================================================


def print_event(event: TaskStatusEvent) -> None:
    updates = event.updates
    if updates.progress is not None:
        print(f"[turn {event.turn}] progress {updates.progress.percentage:.0f}%")
    if updates.llm_response is not None and updates.llm_response.is_complete:
        print(f"[turn {event.turn}] model: {updates.llm_response.text}")
    for start in updates.tool_starts:
        print(f"[turn {event.turn}] -> {start.name}({start.args})")
    for result in updates.tool_results:
        outcome = result.result if result.success else result.error
        print(f"[turn {event.turn}] <- {result.name}: {outcome}")
    if updates.completion is not None:
        state = "succeeded" if updates.completion.success else "failed"
        print(f"Task {state}: {updates.completion.summary}")


async def main(max_turns: int | None) -> None:
    strategy = StepWeightedStrategy(
        "report",
        steps=[
            WorkflowStep("get_current_time", 20),
            WorkflowStep("add_numbers", 60, dependencies=("get_current_time",)),
            WorkflowStep("write_report", 100, dependencies=("add_numbers",)),
        ],
        completion_tool="write_report",
        valid_tools=["get_current_time", "add_numbers", "write_report"],
    )
    engine = TaskEngine(
        strategy,
        ExampleSessionFactory(),
        settings=EngineSettings.from_env(),
        status_observer=StatusEventTranslator(print_event),
    )

    request = TaskRequest(
        session_id="example-1",
        description="Note the current time, add 12 and 30, and write a short report.",
        model="scripted",
        max_turns=max_turns,
    )
    result = await engine.execute_task(request)

    print()
    print(f"Success:    {result.success}")
    print(f"Summary:    {result.execution_summary}")
    print(f"Output:     {result.output_path}")
    print(f"Turns:      {result.metadata.turn_count}")
    print(f"Tool calls: {result.metadata.tool_call_count}")
    print(f"Duration:   {result.metadata.total_duration:.0f}ms")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the TaskEngine against a scripted model")
    parser.add_argument("--max-turns", type=int, default=None, help="Soft turn limit for the session")
    parser.add_argument("--verbose", action="store_true", help="Show engine logs")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(main(args.max_turns))
