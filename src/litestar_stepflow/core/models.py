"""Concrete data models for litestar-stepflow.

This module provides the dataclasses exchanged between the engine and the stores:
workflow and step rows, run rows, artifact rows and the outcome of a run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from litestar_stepflow.core.context import Budgets, RunMetrics
from litestar_stepflow.core.types import ArtifactKind, RunStatus, State, StepKind, StepStatus

__all__ = [
    "ArtifactRecord",
    "Completion",
    "RunOutcome",
    "RunRecord",
    "StepSpec",
    "WorkflowRecord",
]


@dataclass(frozen=True)
class StepSpec:
    """One step row of a workflow.

    Attributes:
        id: Identifier of the step row.
        order: Position in the execution sequence, unique within a workflow.
        type: Declared step kind.
        config: Free-form configuration interpreted by the step's handler.
    """

    id: str
    order: int
    type: StepKind
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        """Registry name the step dispatches to."""
        return str(self.config.get("name") or self.config.get("tool") or "")

    @property
    def key(self) -> str:
        """Readable step key used in metrics and logs."""
        return f"{self.order}:{self.name}"


@dataclass
class WorkflowRecord:
    """A named, versioned, ordered set of steps.

    Attributes:
        id: Workflow identifier.
        name: Human readable name.
        version: Integer version.
        steps: Steps in ascending order.
    """

    id: str
    name: str
    version: int = 1
    steps: list[StepSpec] = field(default_factory=list)


@dataclass
class RunRecord:
    """One execution attempt of a workflow.

    Attributes:
        id: Run identifier.
        workflow_id: Workflow being executed.
        status: Current status.
        input: Opaque input payload.
        metrics: Accumulated metrics mapping.
        budgets: Budgets the run was started with.
        retry_count: Number of retries that led to this run.
        max_retries: Retry ceiling inherited by retries of this run.
        failure_reason: Human readable failure reason.
        last_error: Structured ``{"message", "tag"}`` error.
        previous_run_id: The run this one retries, if any.
        started_at: When execution began.
        finished_at: When the run reached a terminal state.
        created_at: When the row was created.
    """

    id: str
    workflow_id: str
    status: RunStatus = RunStatus.PENDING
    input: Any = None
    metrics: dict[str, Any] = field(default_factory=dict)
    budgets: Budgets | None = None
    retry_count: int = 0
    max_retries: int = 3
    failure_reason: str | None = None
    last_error: dict[str, Any] | None = None
    previous_run_id: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class ArtifactRecord:
    """Durable record of one step's input, output or log data within a run.

    Attributes:
        run_id: The run the artifact belongs to.
        step_id: The step the artifact describes.
        kind: Input, output or log.
        data: JSON-compatible payload.
        status: Step status when the artifact was written.
        sequence: Write order within the run, starting at 0.
        metrics: Per-step metrics (``ms``, ``tokens``, ``cost_estimate_usd``, ``attempts``).
        error: Structured ``{"message", "tag"}`` error, if any.
        started_at: When the step started.
        finished_at: When the step finished.
    """

    run_id: str
    step_id: str
    kind: ArtifactKind
    data: Any
    status: StepStatus
    sequence: int = 0
    metrics: dict[str, Any] = field(default_factory=dict)
    error: dict[str, Any] | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


@dataclass(frozen=True)
class Completion:
    """Response of a language model client.

    Attributes:
        text: Raw response text.
        tokens: Tokens consumed, or None when the client does not report usage.
        cost_usd: Cost of the call.
    """

    text: str
    tokens: int | None = None
    cost_usd: float = 0.0


@dataclass
class RunOutcome:
    """Finalized result of executing a run.

    Attributes:
        run_id: The executed run.
        status: Terminal status.
        metrics: Aggregate metrics at finalization.
        state: Final state bag.
        failure_reason: Failure reason when the run failed.
        error_tag: Failure class when the run failed.
    """

    run_id: str
    status: RunStatus
    metrics: RunMetrics
    state: State = field(default_factory=dict)
    failure_reason: str | None = None
    error_tag: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the run completed."""
        return self.status == RunStatus.COMPLETED
