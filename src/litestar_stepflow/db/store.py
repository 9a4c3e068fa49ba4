"""SQLAlchemy-backed store.

This module provides SQLAlchemyStore, an implementation of both store protocols on
top of the advanced-alchemy repositories. Every operation runs in its own session
and transaction, so the engine's writes are durable as soon as each call returns.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from litestar_stepflow.core.context import Budgets
from litestar_stepflow.core.models import ArtifactRecord, RunRecord, StepSpec, WorkflowRecord
from litestar_stepflow.core.types import RunStatus
from litestar_stepflow.db.models import ArtifactModel, RunModel, StepModel, WorkflowModel
from litestar_stepflow.db.repositories import ArtifactRepository, RunRepository, StepRepository, WorkflowRepository
from litestar_stepflow.exceptions import RunNotFoundError, WorkflowNotFoundError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

__all__ = ["SQLAlchemyStore"]

logger = logging.getLogger(__name__)


def _uuid(value: str | UUID | None) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _step_to_record(model: StepModel) -> StepSpec:
    return StepSpec(id=str(model.id), order=model.order, type=model.type, config=dict(model.config or {}))


def _workflow_to_record(model: WorkflowModel, steps: Sequence[StepModel]) -> WorkflowRecord:
    return WorkflowRecord(
        id=str(model.id),
        name=model.name,
        version=model.version,
        steps=[_step_to_record(step) for step in sorted(steps, key=lambda step: step.order)],
    )


def _run_to_record(model: RunModel) -> RunRecord:
    return RunRecord(
        id=str(model.id),
        workflow_id=str(model.workflow_id),
        status=model.status,
        input=model.input,
        metrics=dict(model.metrics or {}),
        budgets=Budgets.from_dict(model.budgets) if model.budgets is not None else None,
        retry_count=model.retry_count,
        max_retries=model.max_retries,
        failure_reason=model.failure_reason,
        last_error=model.last_error,
        previous_run_id=str(model.previous_run_id) if model.previous_run_id else None,
        started_at=model.started_at,
        finished_at=model.finished_at,
        created_at=model.created_at,
    )


def _artifact_to_record(model: ArtifactModel) -> ArtifactRecord:
    return ArtifactRecord(
        run_id=str(model.run_id),
        step_id=model.step_id,
        kind=model.kind,
        data=model.data,
        status=model.status,
        sequence=model.sequence,
        metrics=dict(model.metrics or {}),
        error=model.error,
        started_at=model.started_at,
        finished_at=model.finished_at,
    )


def _step_models(workflow_id: UUID, steps: list[StepSpec]) -> list[StepModel]:
    return [
        StepModel(
            id=_uuid(step.id) or uuid4(),
            workflow_id=workflow_id,
            order=step.order,
            type=step.type,
            config=dict(step.config),
        )
        for step in steps
    ]


class SQLAlchemyStore:
    """Run and workflow store persisted with SQLAlchemy.

    Args:
        session_maker: Factory for async sessions. Sessions should be created with
            ``expire_on_commit=False``.
        default_max_retries: Retry ceiling given to runs created by ``create_run_if_missing``.

    Example:
        >>> store = SQLAlchemyStore.from_url("sqlite+aiosqlite:///stepflow.db")
        >>> await store.create_schema()
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], default_max_retries: int = 3) -> None:
        self.session_maker = session_maker
        self.default_max_retries = default_max_retries

    @classmethod
    def from_url(cls, url: str, default_max_retries: int = 3, **engine_kwargs: Any) -> SQLAlchemyStore:
        """Create a store with its own engine.

        Args:
            url: SQLAlchemy async database URL.
            default_max_retries: Retry ceiling for new runs.
            **engine_kwargs: Passed to ``create_async_engine``.
        """
        engine = create_async_engine(url, **engine_kwargs)
        return cls(async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False), default_max_retries)

    @property
    def engine(self) -> AsyncEngine:
        """The engine the sessions are bound to."""
        bind = self.session_maker.kw["bind"]
        return bind

    async def create_schema(self) -> None:
        """Create the stepflow tables if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(WorkflowModel.metadata.create_all)

    async def dispose(self) -> None:
        """Dispose of the engine's connection pool."""
        await self.engine.dispose()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as session:
            yield session

    # WorkflowStore

    async def create_workflow(self, name: str, steps: list[StepSpec], version: int = 1) -> WorkflowRecord:
        async with self._session() as session:
            workflow = await WorkflowRepository(session=session).add(WorkflowModel(name=name, version=version))
            step_models = _step_models(workflow.id, steps)
            if step_models:
                await StepRepository(session=session).add_many(step_models)
            record = _workflow_to_record(workflow, step_models)
            await session.commit()
        return record

    async def get_workflow(self, workflow_id: str) -> WorkflowRecord | None:
        key = _uuid(workflow_id)
        if key is None:
            return None
        async with self._session() as session:
            workflow = await WorkflowRepository(session=session).get_one_or_none(id=key)
            if workflow is None:
                return None
            steps = await StepRepository(session=session).find_by_workflow(key)
            return _workflow_to_record(workflow, steps)

    async def replace_steps(self, workflow_id: str, steps: list[StepSpec]) -> WorkflowRecord:
        async with self._session() as session:
            workflow = await self._require_workflow(session, workflow_id)
            step_repo = StepRepository(session=session)
            await step_repo.delete_by_workflow(workflow.id)
            step_models = _step_models(workflow.id, steps)
            if step_models:
                await step_repo.add_many(step_models)
            record = _workflow_to_record(workflow, step_models)
            await session.commit()
        return record

    async def update_workflow(
        self,
        workflow_id: str,
        name: str | None = None,
        version: int | None = None,
    ) -> WorkflowRecord:
        async with self._session() as session:
            workflow = await self._require_workflow(session, workflow_id)
            if name is not None:
                workflow.name = name
            if version is not None:
                workflow.version = version
            await session.flush()
            steps = await StepRepository(session=session).find_by_workflow(workflow.id)
            record = _workflow_to_record(workflow, steps)
            await session.commit()
        return record

    # RunStore

    async def load_workflow_steps(self, workflow_id: str) -> list[StepSpec]:
        async with self._session() as session:
            workflow = await self._require_workflow(session, workflow_id)
            steps = await StepRepository(session=session).find_by_workflow(workflow.id)
            return [_step_to_record(step) for step in steps]

    async def persist_artifact(self, artifact: ArtifactRecord) -> ArtifactRecord:
        run_id = _uuid(artifact.run_id)
        if run_id is None:
            raise RunNotFoundError(artifact.run_id)
        async with self._session() as session:
            repo = ArtifactRepository(session=session)
            model = await repo.add(
                ArtifactModel(
                    run_id=run_id,
                    step_id=artifact.step_id,
                    kind=artifact.kind,
                    sequence=await repo.next_sequence(run_id),
                    data=artifact.data,
                    status=artifact.status,
                    metrics=artifact.metrics,
                    error=artifact.error,
                    started_at=artifact.started_at,
                    finished_at=artifact.finished_at,
                )
            )
            record = _artifact_to_record(model)
            await session.commit()
        return record

    async def update_run(
        self,
        run_id: str,
        status: RunStatus,
        *,
        metrics: dict[str, Any] | None = None,
        started_at: datetime | None = None,
        finished_at: datetime | None = None,
        failure_reason: str | None = None,
        last_error: dict[str, Any] | None = None,
    ) -> RunRecord:
        async with self._session() as session:
            run = await self._require_run(session, run_id)
            run.status = status
            if metrics is not None:
                run.metrics = metrics
            if started_at is not None:
                run.started_at = started_at
            if finished_at is not None:
                run.finished_at = finished_at
            if failure_reason is not None:
                run.failure_reason = failure_reason
            if last_error is not None:
                run.last_error = last_error
            await session.flush()
            record = _run_to_record(run)
            await session.commit()
        logger.debug("Run updated", extra={"run_id": run_id, "status": str(status)})
        return record

    async def create_run_if_missing(
        self,
        workflow_id: str,
        input: Any = None,
        budgets: Budgets | None = None,
    ) -> RunRecord:
        return await self.create_run(
            RunRecord(
                id=str(uuid4()),
                workflow_id=workflow_id,
                status=RunStatus.PENDING,
                input=input,
                budgets=budgets,
                max_retries=self.default_max_retries,
            )
        )

    async def create_run(self, run: RunRecord) -> RunRecord:
        async with self._session() as session:
            workflow = await self._require_workflow(session, run.workflow_id)
            model = await RunRepository(session=session).add(
                RunModel(
                    id=_uuid(run.id) or uuid4(),
                    workflow_id=workflow.id,
                    status=run.status,
                    input=run.input,
                    metrics=dict(run.metrics),
                    budgets=run.budgets.to_dict() if run.budgets is not None else None,
                    retry_count=run.retry_count,
                    max_retries=run.max_retries,
                    failure_reason=run.failure_reason,
                    last_error=run.last_error,
                    previous_run_id=_uuid(run.previous_run_id),
                    started_at=run.started_at,
                    finished_at=run.finished_at,
                )
            )
            record = _run_to_record(model)
            await session.commit()
        return record

    async def get_run(self, run_id: str) -> RunRecord | None:
        key = _uuid(run_id)
        if key is None:
            return None
        async with self._session() as session:
            run = await RunRepository(session=session).get_one_or_none(id=key)
            return _run_to_record(run) if run else None

    async def list_runs(self, status: RunStatus | None = None, limit: int | None = None) -> list[RunRecord]:
        async with self._session() as session:
            runs = await RunRepository(session=session).find_by_status(status, limit=limit)
            return [_run_to_record(run) for run in runs]

    async def list_artifacts(self, run_id: str) -> list[ArtifactRecord]:
        key = _uuid(run_id)
        if key is None:
            return []
        async with self._session() as session:
            artifacts = await ArtifactRepository(session=session).find_by_run(key)
            return [_artifact_to_record(artifact) for artifact in artifacts]

    @staticmethod
    async def _require_workflow(session: AsyncSession, workflow_id: str) -> WorkflowModel:
        key = _uuid(workflow_id)
        workflow = await WorkflowRepository(session=session).get_one_or_none(id=key) if key else None
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    @staticmethod
    async def _require_run(session: AsyncSession, run_id: str) -> RunModel:
        key = _uuid(run_id)
        run = await RunRepository(session=session).get_one_or_none(id=key) if key else None
        if run is None:
            raise RunNotFoundError(run_id)
        return run
