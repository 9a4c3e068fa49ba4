"""Step definitions for litestar-stepflow.

A step definition is the executable contract behind a step row: the schemas it reads
and writes plus the handler the engine invokes. Definitions form a closed tagged
variant, one class per :class:`~litestar_stepflow.core.types.StepKind`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, TypeAlias

from pydantic import BaseModel

from litestar_stepflow.core.types import StepKind

if TYPE_CHECKING:
    from litestar_stepflow.core.context import ExecutionContext

__all__ = [
    "BranchDefinition",
    "BranchLabel",
    "LlmDefinition",
    "StepDefinition",
    "ToolDefinition",
    "ToolResult",
]

BranchLabel: TypeAlias = "str | int"
"""Step selector returned by a branch: a label or a step order."""

ToolHandler: TypeAlias = Callable[[Any, "ExecutionContext"], Any]
PromptTemplate: TypeAlias = Callable[[Any, "ExecutionContext"], str]
BranchChooser: TypeAlias = Callable[[Any, "ExecutionContext"], "BranchLabel | Awaitable[BranchLabel]"]


@dataclass(frozen=True)
class ToolResult:
    """Tool output that reports its own usage.

    Tools normally return their output directly and contribute nothing to run
    totals. A tool that spends tokens or money wraps its output in a ToolResult.

    Attributes:
        output: The tool output, a mapping or a model instance.
        tokens: Tokens consumed by the tool.
        cost_usd: Cost incurred by the tool.
    """

    output: Any
    tokens: int = 0
    cost_usd: float = 0.0


@dataclass(frozen=True)
class ToolDefinition:
    """Deterministic step with declared input and output schemas.

    Example:
        >>> class EchoIn(BaseModel):
        ...     message: str
        >>> class EchoOut(BaseModel):
        ...     echoed: str
        >>> echo = ToolDefinition(
        ...     name="echo",
        ...     input_schema=EchoIn,
        ...     output_schema=EchoOut,
        ...     run=lambda data, ctx: {"echoed": data.message},
        ... )
    """

    kind: ClassVar[StepKind] = StepKind.TOOL

    name: str
    input_schema: type[BaseModel]
    output_schema: type[BaseModel]
    run: ToolHandler
    """Sync or async ``run(input, context)`` returning the output."""
    description: str = ""


@dataclass(frozen=True)
class LlmDefinition:
    """Language model step whose response must satisfy a strict output schema."""

    kind: ClassVar[StepKind] = StepKind.LLM

    name: str
    input_schema: type[BaseModel]
    output_schema: type[BaseModel]
    prompt: PromptTemplate
    """Template ``prompt(input, context)`` returning the prompt text."""
    description: str = ""


@dataclass(frozen=True)
class BranchDefinition:
    """Decision step computing a ``next`` label.

    The label is written to ``state["next"]`` for traceability. The linear engine
    always continues with the next step in order.
    """

    kind: ClassVar[StepKind] = StepKind.BRANCH

    name: str
    input_schema: type[BaseModel]
    choose_next: BranchChooser
    """Sync or async ``choose_next(input, context)`` returning a label."""
    description: str = ""


StepDefinition: TypeAlias = ToolDefinition | LlmDefinition | BranchDefinition
"""Any registrable step definition."""
