"""Repository implementations for stepflow persistence.

This module provides async repositories for CRUD operations on the stepflow models
using advanced-alchemy's repository pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from advanced_alchemy.repository import SQLAlchemyAsyncRepository
from sqlalchemy import delete, func, select

from litestar_stepflow.db.models import ArtifactModel, RunModel, StepModel, WorkflowModel

if TYPE_CHECKING:
    from collections.abc import Sequence

    from litestar_stepflow.core.types import RunStatus

__all__ = [
    "ArtifactRepository",
    "RunRepository",
    "StepRepository",
    "WorkflowRepository",
]


class WorkflowRepository(SQLAlchemyAsyncRepository[WorkflowModel]):
    """Repository for workflow CRUD operations."""

    model_type = WorkflowModel


class StepRepository(SQLAlchemyAsyncRepository[StepModel]):
    """Repository for workflow steps."""

    model_type = StepModel

    async def find_by_workflow(self, workflow_id: UUID) -> Sequence[StepModel]:
        """Find the steps of a workflow in execution order.

        Args:
            workflow_id: The workflow ID.

        Returns:
            Steps ordered by ``order``.
        """
        stmt = select(StepModel).where(StepModel.workflow_id == workflow_id).order_by(StepModel.order)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def delete_by_workflow(self, workflow_id: UUID) -> None:
        """Delete every step of a workflow.

        Args:
            workflow_id: The workflow ID.
        """
        await self.session.execute(delete(StepModel).where(StepModel.workflow_id == workflow_id))


class RunRepository(SQLAlchemyAsyncRepository[RunModel]):
    """Repository for runs."""

    model_type = RunModel

    async def find_by_status(self, status: RunStatus | None = None, limit: int | None = None) -> Sequence[RunModel]:
        """Find runs with a status, oldest first.

        Args:
            status: The status to filter by, or None for every run.
            limit: Maximum number of runs to return.

        Returns:
            Matching runs ordered by creation time.
        """
        stmt = select(RunModel).order_by(RunModel.created_at, RunModel.id)
        if status is not None:
            stmt = stmt.where(RunModel.status == status)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()


class ArtifactRepository(SQLAlchemyAsyncRepository[ArtifactModel]):
    """Repository for run artifacts."""

    model_type = ArtifactModel

    async def find_by_run(self, run_id: UUID) -> Sequence[ArtifactModel]:
        """Find the artifacts of a run in write order.

        Args:
            run_id: The run ID.

        Returns:
            Artifacts ordered by ``sequence``.
        """
        stmt = select(ArtifactModel).where(ArtifactModel.run_id == run_id).order_by(ArtifactModel.sequence)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def next_sequence(self, run_id: UUID) -> int:
        """Return the sequence number the next artifact of a run receives.

        Args:
            run_id: The run ID.
        """
        stmt = select(func.coalesce(func.max(ArtifactModel.sequence) + 1, 0)).where(ArtifactModel.run_id == run_id)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())
