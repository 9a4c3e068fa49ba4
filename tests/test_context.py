"""Tests for the execution context and metrics."""

from __future__ import annotations

import pytest
from pydantic import BaseModel, ValidationError

from litestar_stepflow.core.context import Budgets, ExecutionContext, RunMetrics, StepMetrics, estimate_tokens
from litestar_stepflow.core.types import StepKind
from tests.conftest import FakeClock


class MessageView(BaseModel):
    message: str


@pytest.mark.unit
class TestExecutionContext:
    """Tests for ExecutionContext."""

    def test_mapping_input_seeds_state(self) -> None:
        payload = {"message": "hi"}

        context = ExecutionContext.create("run-1", "wf-1", payload)
        context.merge({"message": "changed"})

        assert context.state == {"message": "changed"}
        assert payload == {"message": "hi"}

    def test_scalar_input_is_wrapped(self) -> None:
        context = ExecutionContext.create("run-1", "wf-1", "raw text")

        assert context.state == {"input": "raw text"}

    def test_missing_input_seeds_empty_state(self) -> None:
        context = ExecutionContext.create("run-1", "wf-1", None)

        assert context.state == {}
        assert context.budgets == Budgets()

    def test_view_ignores_unknown_keys(self) -> None:
        context = ExecutionContext.create("run-1", "wf-1", {"message": "hi", "other": 1})

        view = context.view(MessageView)

        assert view.message == "hi"

    def test_view_rejects_missing_keys(self) -> None:
        context = ExecutionContext.create("run-1", "wf-1", {"other": 1})

        with pytest.raises(ValidationError):
            context.view(MessageView)

    def test_merge_is_shallow_overwrite(self) -> None:
        context = ExecutionContext.create("run-1", "wf-1", {"a": {"x": 1}, "b": 2})

        context.merge({"a": {"y": 2}})

        assert context.state == {"a": {"y": 2}, "b": 2}

    def test_elapsed_uses_injected_clock(self) -> None:
        clock = FakeClock(start=1000)
        context = ExecutionContext.create("run-1", "wf-1", clock=clock)

        clock.advance(250)

        assert context.now() == 1250
        assert context.elapsed_ms() == 250

    def test_count_tokens(self) -> None:
        context = ExecutionContext.create("run-1", "wf-1")

        assert context.count_tokens("") == 0
        assert context.count_tokens("abcd") == 1
        assert context.count_tokens("abcde") == 2


@pytest.mark.unit
class TestMetrics:
    """Tests for Budgets, StepMetrics and RunMetrics."""

    def test_estimate_tokens_rounds_up(self) -> None:
        assert estimate_tokens("x" * 9) == 3

    def test_budgets_round_trip_through_mapping(self) -> None:
        budgets = Budgets(max_ms=2000, max_tokens=1500)

        assert Budgets.from_dict(budgets.to_dict()) == budgets
        assert Budgets.from_dict(None) == Budgets()

    def test_run_metrics_sum_step_contributions(self) -> None:
        metrics = RunMetrics()
        metrics.add(StepMetrics(key="0:echo", kind=StepKind.TOOL, ms=1.0))
        metrics.add(StepMetrics(key="1:classify", kind=StepKind.LLM, ms=2.0, tokens=12, cost_estimate_usd=0.01))
        metrics.add(StepMetrics(key="2:summarize", kind=StepKind.LLM, tokens=8, cost_estimate_usd=0.02))

        data = metrics.to_dict()

        assert data["total_tokens"] == 20
        assert data["cost_estimate_usd"] == pytest.approx(0.03)
        assert [step["key"] for step in data["per_step"]] == ["0:echo", "1:classify", "2:summarize"]
        assert data["per_step"][1]["kind"] == "llm"

    def test_discarded_usage_is_not_in_totals(self) -> None:
        metrics = RunMetrics()
        metrics.add(StepMetrics(key="0:classify", kind=StepKind.LLM, tokens=5, discarded_tokens=40))

        assert metrics.total_tokens == 5
