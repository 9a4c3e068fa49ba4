"""Tests for the step registry."""

from __future__ import annotations

import pytest
from pydantic import BaseModel

from litestar_stepflow.core.definitions import BranchDefinition, LlmDefinition, ToolDefinition
from litestar_stepflow.core.types import StepKind
from litestar_stepflow.engine.registry import StepRegistry
from litestar_stepflow.exceptions import StepNotFoundError


class In(BaseModel):
    value: int


class Out(BaseModel):
    value: int


def _tool(name: str = "double", factor: int = 2) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        input_schema=In,
        output_schema=Out,
        run=lambda data, ctx: {"value": data.value * factor},
    )


@pytest.mark.unit
class TestStepRegistry:
    """Tests for StepRegistry."""

    def test_register_and_get_tool(self) -> None:
        registry = StepRegistry()
        registry.register(_tool())

        definition = registry.get_tool("double")

        assert definition.name == "double"
        assert definition.kind == StepKind.TOOL

    def test_register_returns_registry_for_chaining(self) -> None:
        registry = StepRegistry()

        result = registry.register(_tool("a")).register(_tool("b"))

        assert result is registry
        assert registry.names(StepKind.TOOL) == ["a", "b"]

    def test_reregistering_overwrites(self) -> None:
        registry = StepRegistry()
        first, second = _tool(factor=2), _tool(factor=3)

        registry.register(first).register(second)

        assert registry.get_tool("double") is second

    def test_missing_tool_raises_with_name_and_kind(self) -> None:
        registry = StepRegistry()

        with pytest.raises(StepNotFoundError) as exc_info:
            registry.get_tool("missing")

        assert exc_info.value.name == "missing"
        assert exc_info.value.kind == StepKind.TOOL
        assert "missing" in str(exc_info.value)

    def test_kinds_are_separate_namespaces(self) -> None:
        registry = StepRegistry()
        registry.register(_tool("shared"))
        registry.register(
            LlmDefinition(name="shared", input_schema=In, output_schema=Out, prompt=lambda data, ctx: "p")
        )

        assert registry.get_tool("shared").kind == StepKind.TOOL
        assert registry.get_llm("shared").kind == StepKind.LLM
        with pytest.raises(StepNotFoundError):
            registry.get_branch("shared")

    def test_get_dispatches_on_kind(self) -> None:
        registry = StepRegistry()
        branch = BranchDefinition(name="pick", input_schema=In, choose_next=lambda data, ctx: "A")
        registry.register(branch)

        assert registry.get(StepKind.BRANCH, "pick") is branch
        assert registry.get("branch", "pick") is branch

    def test_get_unknown_kind_raises(self) -> None:
        registry = StepRegistry()

        with pytest.raises(StepNotFoundError):
            registry.get("webhook", "pick")

    def test_has(self) -> None:
        registry = StepRegistry().register(_tool())

        assert registry.has(StepKind.TOOL, "double")
        assert not registry.has(StepKind.LLM, "double")
        assert not registry.has("webhook", "double")
