"""Run execution context.

This module provides the ExecutionContext dataclass which carries budgets, the clock,
the token estimator and the mutable state bag through every step of a run, plus the
metric records the engine aggregates.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel

if TYPE_CHECKING:
    from litestar_stepflow.core.types import State, StepKind

__all__ = [
    "Budgets",
    "ExecutionContext",
    "RunMetrics",
    "StepMetrics",
    "estimate_tokens",
    "monotonic_ms",
]

ModelT = TypeVar("ModelT", bound=BaseModel)


def monotonic_ms() -> float:
    """Default clock: monotonic time in milliseconds."""
    return time.monotonic() * 1000


def estimate_tokens(text: str) -> int:
    """Estimate the token count of ``text`` as characters / 4, rounded up.

    This is not a tokenizer. It is the single approximation used for budget and cost
    accounting wherever a client does not report its own usage.
    """
    return math.ceil(len(text) / 4)


@dataclass(frozen=True)
class Budgets:
    """Soft ceilings for a whole run, checked between steps.

    Attributes:
        max_ms: Maximum elapsed wall time in milliseconds, or None to disable.
        max_tokens: Maximum cumulative tokens, or None to disable.
    """

    max_ms: float | None = None
    max_tokens: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> Budgets:
        """Build budgets from a persisted mapping."""
        if not data:
            return cls()
        return cls(max_ms=data.get("max_ms"), max_tokens=data.get("max_tokens"))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible mapping."""
        return asdict(self)


@dataclass
class StepMetrics:
    """Per-step contribution to a run's metrics.

    Attributes:
        key: Step key, ``"<order>:<name>"``.
        kind: Step kind.
        ms: Duration of the step in milliseconds.
        tokens: Tokens attributed to the run total.
        cost_estimate_usd: Cost attributed to the run total.
        attempts: Attempts made (structured output retries for llm steps).
        error_tag: Failure tag if the step failed.
        discarded_tokens: Tokens spent on failed llm attempts, not in the run total.
        discarded_cost_usd: Cost of failed llm attempts, not in the run total.
    """

    key: str
    kind: StepKind
    ms: float = 0.0
    tokens: int = 0
    cost_estimate_usd: float = 0.0
    attempts: int = 1
    error_tag: str | None = None
    discarded_tokens: int = 0
    discarded_cost_usd: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible mapping."""
        data = asdict(self)
        data["kind"] = str(self.kind)
        return data


@dataclass
class RunMetrics:
    """Aggregate metrics of a run.

    Totals only ever sum the contributions of steps that recorded metrics, so they
    are a deterministic function of the artifacts written.
    """

    total_ms: float = 0.0
    total_tokens: int = 0
    cost_estimate_usd: float = 0.0
    per_step: list[StepMetrics] = field(default_factory=list)

    def add(self, step: StepMetrics) -> None:
        """Record a step's contribution."""
        self.per_step.append(step)
        self.total_tokens += step.tokens
        self.cost_estimate_usd += step.cost_estimate_usd

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible mapping."""
        return {
            "total_ms": self.total_ms,
            "total_tokens": self.total_tokens,
            "cost_estimate_usd": self.cost_estimate_usd,
            "per_step": [step.to_dict() for step in self.per_step],
        }


@dataclass
class ExecutionContext:
    """Per-run scope threaded through every step invocation.

    A context is created once per run. Its ``state`` starts as the run input and
    receives each step's validated output, so later steps read what earlier steps
    produced. The clock is the single source of time for step timing and budget
    checks, which keeps elapsed-time comparisons consistent under test doubles.

    Attributes:
        run_id: Identifier of the run being executed.
        workflow_id: Identifier of the workflow being executed.
        budgets: Soft ceilings for the run.
        state: Mutable key/value bag shared across steps.
        clock: Millisecond clock used by ``now``.
        token_estimator: Function used by ``count_tokens``.

    Example:
        >>> context = ExecutionContext.create("run-1", "wf-1", {"message": "hi"})
        >>> context.merge({"echoed": "hi"})
        >>> context.state["echoed"]
        'hi'
    """

    run_id: str
    workflow_id: str
    budgets: Budgets = field(default_factory=Budgets)
    state: State = field(default_factory=dict)
    clock: Callable[[], float] = monotonic_ms
    token_estimator: Callable[[str], int] = estimate_tokens
    started_ms: float = field(init=False)

    def __post_init__(self) -> None:
        self.started_ms = self.clock()

    @classmethod
    def create(
        cls,
        run_id: str,
        workflow_id: str,
        run_input: Any = None,
        budgets: Budgets | None = None,
        clock: Callable[[], float] | None = None,
    ) -> ExecutionContext:
        """Create a context whose state is seeded from the run input.

        A mapping input is copied into state key by key. Any other input is wrapped
        under a single ``input`` key. A missing input seeds an empty state.

        Args:
            run_id: Identifier of the run.
            workflow_id: Identifier of the workflow.
            run_input: The run's input payload.
            budgets: Optional run budgets.
            clock: Optional millisecond clock.

        Returns:
            A new ExecutionContext.
        """
        if run_input is None:
            state: State = {}
        elif isinstance(run_input, Mapping):
            state = dict(run_input)
        else:
            state = {"input": run_input}

        return cls(
            run_id=run_id,
            workflow_id=workflow_id,
            budgets=budgets or Budgets(),
            state=state,
            clock=clock or monotonic_ms,
        )

    def now(self) -> float:
        """Current time in milliseconds from the run's clock."""
        return self.clock()

    def elapsed_ms(self) -> float:
        """Milliseconds elapsed since the context was created."""
        return self.now() - self.started_ms

    def count_tokens(self, text: str) -> int:
        """Estimate the token count of ``text``."""
        return self.token_estimator(text)

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieve a value from the state bag.

        Args:
            key: The key to look up.
            default: Value returned when the key is absent.

        Returns:
            The stored value or ``default``.
        """
        return self.state.get(key, default)

    def view(self, schema: type[ModelT]) -> ModelT:
        """Validate the state bag against ``schema`` and return the typed view.

        Keys the schema does not declare are ignored, so a step only sees the keys it
        reads.

        Args:
            schema: Pydantic model class describing the keys a step reads.

        Returns:
            A validated model instance.

        Raises:
            pydantic.ValidationError: If the state does not satisfy the schema.
        """
        return schema.model_validate(self.state)

    def merge(self, output: Mapping[str, Any]) -> None:
        """Merge a step's output into state with a shallow key overwrite.

        Args:
            output: The validated step output.
        """
        self.state.update(output)
