# Copyright (c) Microsoft. All rights reserved.

"""Tests for StrategyAdapter and StepWeightedStrategy."""

from task_engine import (
    StepWeightedStrategy,
    StrategyAdapter,
    TaskStrategy,
    ToolCallRecord,
    ToolCallStatus,
    ToolResponse,
    WorkflowStep,
)


def _record(name: str, status: ToolCallStatus = ToolCallStatus.COMPLETED) -> ToolCallRecord:
    return ToolCallRecord(call_id=f"{name}-1", name=name, status=status)


def _strategy(**kwargs) -> StepWeightedStrategy:
    return StepWeightedStrategy(
        "report",
        [
            WorkflowStep("initialize", 25),
            WorkflowStep("process", 50, dependencies=("initialize",)),
            WorkflowStep("complete_task", 100, dependencies=("process",)),
        ],
        completion_tool="complete_task",
        **kwargs,
    )


# ---------------------------------------------------------------------------
# StrategyAdapter
# ---------------------------------------------------------------------------


class TestStrategyAdapter:
    """Tests for defaults applied to duck-typed strategies."""

    def test_defaults_for_empty_strategy(self) -> None:
        adapter = StrategyAdapter(object())
        assert adapter.name == "object"
        assert adapter.calculate_progress([], 1) is None
        assert adapter.is_task_complete([_record("complete_task")]) is False
        assert adapter.get_fatal_error_patterns() is None
        assert adapter.get_workflow_steps() == []
        assert adapter.process_tool_result(_record("x"), ToolResponse()) is None
        assert adapter.is_valid_tool_call("anything", {}) is True

    def test_name_from_attribute_or_method(self) -> None:
        class Named:
            name = "named"

        class MethodNamed:
            def name(self):
                return "from-method"

        assert StrategyAdapter(Named()).name == "named"
        assert StrategyAdapter(MethodNamed()).name == "from-method"

    def test_empty_pattern_list_is_kept(self) -> None:
        """An empty pattern list means no tool error is fatal, not the default set."""

        class NoPatterns:
            def get_fatal_error_patterns(self):
                return []

        assert StrategyAdapter(NoPatterns()).get_fatal_error_patterns() == []


# ---------------------------------------------------------------------------
# StepWeightedStrategy
# ---------------------------------------------------------------------------


class TestStepWeightedStrategy:
    """Tests for the step-weighted reference strategy."""

    def test_satisfies_protocol(self) -> None:
        assert isinstance(_strategy(), TaskStrategy)

    def test_progress_is_highest_completed_milestone(self) -> None:
        strategy = _strategy()
        assert strategy.calculate_progress([], 3) == 0
        assert strategy.calculate_progress([_record("initialize")], 3) == 25
        assert (
            strategy.calculate_progress(
                [_record("initialize"), _record("process"), _record("complete_task", ToolCallStatus.ERROR)], 3
            )
            == 50
        )
        assert strategy.calculate_progress([_record("unknown")], 3) == 0

    def test_completion_requires_completed_completion_tool(self) -> None:
        strategy = _strategy()
        assert not strategy.is_task_complete([_record("process")])
        assert not strategy.is_task_complete([_record("complete_task", ToolCallStatus.ERROR)])
        assert strategy.is_task_complete([_record("process"), _record("complete_task")])

    def test_valid_tools(self) -> None:
        assert _strategy().is_valid_tool_call("anything", {})
        limited = _strategy(valid_tools=["initialize", "process", "complete_task"])
        assert limited.is_valid_tool_call("process", {})
        assert not limited.is_valid_tool_call("delete_all", {})

    def test_fatal_patterns_and_steps(self) -> None:
        strategy = _strategy(fatal_patterns=[r"FATAL_ERROR"])
        assert strategy.get_fatal_error_patterns() == [r"FATAL_ERROR"]
        assert [step.name for step in strategy.get_workflow_steps()] == ["initialize", "process", "complete_task"]

    def test_process_tool_result_extracts_export_path(self) -> None:
        result = _strategy().process_tool_result(
            _record("process"), ToolResponse(result_display={"export_path": "/tmp/data.json"})
        )
        assert result.extracted_data == {"export_path": "/tmp/data.json"}
        assert result.final_result is None
        assert result.should_continue is True

    def test_completion_tool_produces_final_result(self) -> None:
        result = _strategy().process_tool_result(
            _record("complete_task"),
            ToolResponse(result_display={"export_path": "/tmp/out.csv", "summary": "Wrote report"}),
        )
        assert result.should_continue is False
        assert result.final_result.success is True
        assert result.final_result.summary == "Wrote report"
        assert result.final_result.output_path == "/tmp/out.csv"

    def test_completion_tool_default_summary(self) -> None:
        result = _strategy().process_tool_result(_record("complete_task"), ToolResponse(result_display="ok"))
        assert result.final_result.summary == "report task completed"
        assert result.extracted_data is None
