"""SQLAlchemy models for stepflow persistence.

This module defines the database models backing the SQLAlchemy store:
- WorkflowModel: Named, versioned workflow
- StepModel: One ordered step of a workflow
- RunModel: One execution attempt of a workflow
- ArtifactModel: Append-only input/output/log record of a step within a run
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from advanced_alchemy.base import UUIDAuditBase
from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from litestar_stepflow.core.types import ArtifactKind, RunStatus, StepKind, StepStatus

__all__ = [
    "ArtifactModel",
    "RunModel",
    "StepModel",
    "WorkflowModel",
]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")


class WorkflowModel(UUIDAuditBase):
    """Persisted workflow.

    Attributes:
        name: Human readable name.
        version: Integer version.
        steps: The workflow's steps ordered by ``order``.
    """

    __tablename__ = "stepflow_workflows"

    name: Mapped[str] = mapped_column(String(255), index=True)
    version: Mapped[int] = mapped_column(Integer, default=1)

    steps: Mapped[list[StepModel]] = relationship(
        back_populates="workflow",
        lazy="noload",
        order_by="StepModel.order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class StepModel(UUIDAuditBase):
    """One step of a workflow.

    Attributes:
        workflow_id: Foreign key to the workflow.
        order: Position in the execution sequence, unique within the workflow.
        type: Step kind.
        config: Free-form step configuration, including the registry ``name``.
    """

    __tablename__ = "stepflow_steps"
    __table_args__ = (UniqueConstraint("workflow_id", "order", name="uq_stepflow_steps_workflow_order"),)

    workflow_id: Mapped[UUID] = mapped_column(ForeignKey("stepflow_workflows.id", ondelete="CASCADE"))
    order: Mapped[int] = mapped_column("order", Integer)
    type: Mapped[StepKind] = mapped_column(Enum(StepKind, native_enum=False, length=50))
    config: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)

    workflow: Mapped[WorkflowModel] = relationship(back_populates="steps", lazy="noload")


class RunModel(UUIDAuditBase):
    """One execution attempt of a workflow.

    Attributes:
        workflow_id: Foreign key to the workflow.
        status: Current run status.
        input: Opaque run input.
        metrics: Aggregate metrics written at finalization.
        budgets: Budgets the run was started with.
        retry_count: Number of retries that led to this run.
        max_retries: Retry ceiling.
        failure_reason: Failure reason when the run failed.
        last_error: Structured ``{"message", "tag"}`` error.
        previous_run_id: The run this one retries.
        started_at: When execution began.
        finished_at: When the run reached a terminal state.
    """

    __tablename__ = "stepflow_runs"
    __table_args__ = (
        Index("ix_stepflow_runs_status", "status"),
        Index("ix_stepflow_runs_workflow_id", "workflow_id"),
    )

    workflow_id: Mapped[UUID] = mapped_column(ForeignKey("stepflow_workflows.id", ondelete="CASCADE"))
    status: Mapped[RunStatus] = mapped_column(
        Enum(RunStatus, native_enum=False, length=50),
        default=RunStatus.PENDING,
    )
    input: Mapped[Any | None] = mapped_column(JSONType, nullable=True)
    metrics: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    budgets: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, default=3)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    previous_run_id: Mapped[UUID | None] = mapped_column(nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    artifacts: Mapped[list[ArtifactModel]] = relationship(
        back_populates="run",
        lazy="noload",
        order_by="ArtifactModel.sequence",
    )


class ArtifactModel(UUIDAuditBase):
    """Append-only record of a step's data within a run.

    ``step_id`` is a plain reference, not a foreign key, so replacing a workflow's
    steps never touches the history of earlier runs.

    Attributes:
        run_id: Foreign key to the run.
        step_id: Identifier of the step row.
        kind: Input, output or log.
        sequence: Write order within the run.
        data: JSON payload.
        status: Step status when written.
        metrics: Per-step metrics.
        error: Structured error, if any.
        started_at: When the step started.
        finished_at: When the step finished.
    """

    __tablename__ = "stepflow_artifacts"
    __table_args__ = (
        Index("ix_stepflow_artifacts_run_id_sequence", "run_id", "sequence", unique=True),
        Index("ix_stepflow_artifacts_step_id", "step_id"),
    )

    run_id: Mapped[UUID] = mapped_column(ForeignKey("stepflow_runs.id", ondelete="CASCADE"))
    step_id: Mapped[str] = mapped_column(String(64))
    kind: Mapped[ArtifactKind] = mapped_column(Enum(ArtifactKind, native_enum=False, length=50))
    sequence: Mapped[int] = mapped_column(Integer, default=0)
    data: Mapped[Any | None] = mapped_column(JSONType, nullable=True)
    status: Mapped[StepStatus] = mapped_column(Enum(StepStatus, native_enum=False, length=50))
    metrics: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    error: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    run: Mapped[RunModel] = relationship(back_populates="artifacts", lazy="noload")
