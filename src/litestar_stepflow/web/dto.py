"""Data Transfer Objects for the stepflow web API.

This module defines DTOs for serializing and deserializing workflows, runs and
artifacts in REST API requests and responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from litestar_stepflow.core.models import ArtifactRecord, RunRecord, StepSpec, WorkflowRecord
    from litestar_stepflow.engine.service import TimelineEntry

__all__ = [
    "ArtifactDTO",
    "BudgetsDTO",
    "CreateWorkflowDTO",
    "HealthDTO",
    "ProcessorStatusDTO",
    "RunDTO",
    "RunDetailDTO",
    "StartRunDTO",
    "StepDTO",
    "TimelineEntryDTO",
    "TriggerResultDTO",
    "UpdateWorkflowDTO",
    "WorkflowDTO",
]


@dataclass
class StepDTO:
    """DTO for one workflow step.

    Attributes:
        order: Position in the execution sequence.
        type: Step kind: ``tool``, ``llm`` or ``branch``.
        config: Step configuration; ``name`` selects the registered definition.
        id: Step ID, assigned by the server when omitted.
    """

    order: int
    type: str
    config: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    @classmethod
    def from_record(cls, step: StepSpec) -> StepDTO:
        return cls(order=step.order, type=str(step.type), config=step.config, id=step.id)

    def to_mapping(self) -> dict[str, Any]:
        return {"id": self.id, "order": self.order, "type": self.type, "config": self.config}


@dataclass
class CreateWorkflowDTO:
    """DTO for creating a workflow.

    Attributes:
        name: Workflow name.
        steps: Steps of the workflow.
        version: Workflow version.
    """

    name: str
    steps: list[StepDTO] = field(default_factory=list)
    version: int = 1


@dataclass
class UpdateWorkflowDTO:
    """DTO for updating a workflow. Omitted fields are left unchanged.

    Attributes:
        name: New workflow name.
        version: New workflow version.
        steps: Replacement step set.
    """

    name: str | None = None
    version: int | None = None
    steps: list[StepDTO] | None = None


@dataclass
class WorkflowDTO:
    """DTO for a workflow with its steps."""

    id: str
    name: str
    version: int
    steps: list[StepDTO]

    @classmethod
    def from_record(cls, workflow: WorkflowRecord) -> WorkflowDTO:
        return cls(
            id=workflow.id,
            name=workflow.name,
            version=workflow.version,
            steps=[StepDTO.from_record(step) for step in workflow.steps],
        )


@dataclass
class BudgetsDTO:
    """DTO for run budgets. Omitted ceilings are not enforced."""

    max_ms: float | None = None
    max_tokens: int | None = None


@dataclass
class StartRunDTO:
    """DTO for starting a run.

    Attributes:
        input: Run input seeding the state bag.
        budgets: Optional time and token ceilings.
        max_retries: Retry ceiling for the run; the server default when omitted.
        wait: Execute inline and return the finished run instead of queueing it.
    """

    input: Any = None
    budgets: BudgetsDTO | None = None
    max_retries: int | None = None
    wait: bool = False


@dataclass
class RunDTO:
    """DTO for a run."""

    id: str
    workflow_id: str
    status: str
    input: Any
    metrics: dict[str, Any]
    retry_count: int
    max_retries: int
    budgets: dict[str, Any] | None = None
    failure_reason: str | None = None
    last_error: dict[str, Any] | None = None
    previous_run_id: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, run: RunRecord) -> RunDTO:
        return cls(
            id=run.id,
            workflow_id=run.workflow_id,
            status=str(run.status),
            input=run.input,
            metrics=run.metrics,
            retry_count=run.retry_count,
            max_retries=run.max_retries,
            budgets=run.budgets.to_dict() if run.budgets else None,
            failure_reason=run.failure_reason,
            last_error=run.last_error,
            previous_run_id=run.previous_run_id,
            started_at=run.started_at,
            finished_at=run.finished_at,
            created_at=run.created_at,
        )


@dataclass
class TimelineEntryDTO:
    """DTO for one step of a run's timeline."""

    step_id: str
    type: str
    order: int
    status: str
    inputs: Any = None
    outputs: Any = None
    metrics: dict[str, Any] = field(default_factory=dict)
    error: dict[str, Any] | None = None

    @classmethod
    def from_entry(cls, entry: TimelineEntry) -> TimelineEntryDTO:
        return cls(
            step_id=entry.step_id,
            type=entry.type,
            order=entry.order,
            status=entry.status,
            inputs=entry.inputs,
            outputs=entry.outputs,
            metrics=entry.metrics,
            error=entry.error,
        )


@dataclass
class RunDetailDTO:
    """DTO for a run with its per-step timeline."""

    run: RunDTO
    timeline: list[TimelineEntryDTO]


@dataclass
class ArtifactDTO:
    """DTO for a run artifact."""

    run_id: str
    step_id: str
    kind: str
    sequence: int
    status: str
    data: Any = None
    metrics: dict[str, Any] = field(default_factory=dict)
    error: dict[str, Any] | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_record(cls, artifact: ArtifactRecord) -> ArtifactDTO:
        return cls(
            run_id=artifact.run_id,
            step_id=artifact.step_id,
            kind=str(artifact.kind),
            sequence=artifact.sequence,
            status=str(artifact.status),
            data=artifact.data,
            metrics=artifact.metrics,
            error=artifact.error,
            started_at=artifact.started_at,
            finished_at=artifact.finished_at,
        )


@dataclass
class ProcessorStatusDTO:
    """DTO for the background processor status."""

    is_processing: bool
    poll_interval: float


@dataclass
class TriggerResultDTO:
    """DTO for a manual processor trigger."""

    processed: int


@dataclass
class HealthDTO:
    """DTO for the health check."""

    ok: bool = True
