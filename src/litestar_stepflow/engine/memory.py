"""In-memory store.

This module provides a dict-backed implementation of both store protocols, suitable
for tests, examples and single-process deployments that do not need durability.
"""

from __future__ import annotations

import copy
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from litestar_stepflow.core.models import ArtifactRecord, RunRecord, StepSpec, WorkflowRecord
from litestar_stepflow.core.types import RunStatus
from litestar_stepflow.exceptions import RunNotFoundError, WorkflowNotFoundError

if TYPE_CHECKING:
    from litestar_stepflow.core.context import Budgets

__all__ = ["InMemoryStore"]


class InMemoryStore:
    """Dict-backed run and workflow store.

    Records are deep-copied on the way in and on the way out, so callers can never
    mutate stored state by holding on to a returned object.

    Attributes:
        default_max_retries: Retry ceiling given to runs created by ``create_run_if_missing``.
    """

    def __init__(self, default_max_retries: int = 3) -> None:
        self.default_max_retries = default_max_retries
        self._workflows: dict[str, WorkflowRecord] = {}
        self._runs: dict[str, RunRecord] = {}
        self._artifacts: dict[str, list[ArtifactRecord]] = {}

    # WorkflowStore

    async def create_workflow(self, name: str, steps: list[StepSpec], version: int = 1) -> WorkflowRecord:
        workflow = WorkflowRecord(id=str(uuid4()), name=name, version=version, steps=self._with_ids(steps))
        self._workflows[workflow.id] = workflow
        return copy.deepcopy(workflow)

    async def get_workflow(self, workflow_id: str) -> WorkflowRecord | None:
        workflow = self._workflows.get(workflow_id)
        return copy.deepcopy(workflow) if workflow else None

    async def replace_steps(self, workflow_id: str, steps: list[StepSpec]) -> WorkflowRecord:
        workflow = self._require_workflow(workflow_id)
        workflow.steps = self._with_ids(steps)
        return copy.deepcopy(workflow)

    async def update_workflow(
        self,
        workflow_id: str,
        name: str | None = None,
        version: int | None = None,
    ) -> WorkflowRecord:
        workflow = self._require_workflow(workflow_id)
        if name is not None:
            workflow.name = name
        if version is not None:
            workflow.version = version
        return copy.deepcopy(workflow)

    # RunStore

    async def load_workflow_steps(self, workflow_id: str) -> list[StepSpec]:
        workflow = self._require_workflow(workflow_id)
        return sorted(copy.deepcopy(workflow.steps), key=lambda step: step.order)

    async def persist_artifact(self, artifact: ArtifactRecord) -> ArtifactRecord:
        artifacts = self._artifacts.setdefault(artifact.run_id, [])
        stored = replace(copy.deepcopy(artifact), sequence=len(artifacts))
        artifacts.append(stored)
        return copy.deepcopy(stored)

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
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)

        run.status = status
        if metrics is not None:
            run.metrics = copy.deepcopy(metrics)
        if started_at is not None:
            run.started_at = started_at
        if finished_at is not None:
            run.finished_at = finished_at
        if failure_reason is not None:
            run.failure_reason = failure_reason
        if last_error is not None:
            run.last_error = copy.deepcopy(last_error)
        return copy.deepcopy(run)

    async def create_run_if_missing(
        self,
        workflow_id: str,
        input: Any = None,
        budgets: Budgets | None = None,
    ) -> RunRecord:
        self._require_workflow(workflow_id)
        run = RunRecord(
            id=str(uuid4()),
            workflow_id=workflow_id,
            status=RunStatus.PENDING,
            input=input,
            budgets=budgets,
            max_retries=self.default_max_retries,
        )
        return await self.create_run(run)

    async def create_run(self, run: RunRecord) -> RunRecord:
        self._require_workflow(run.workflow_id)
        stored = copy.deepcopy(run)
        stored.created_at = stored.created_at or datetime.now(timezone.utc)
        self._runs[stored.id] = stored
        return copy.deepcopy(stored)

    async def get_run(self, run_id: str) -> RunRecord | None:
        run = self._runs.get(run_id)
        return copy.deepcopy(run) if run else None

    async def list_runs(self, status: RunStatus | None = None, limit: int | None = None) -> list[RunRecord]:
        runs = [run for run in self._runs.values() if status is None or run.status == status]
        if limit is not None:
            runs = runs[:limit]
        return copy.deepcopy(runs)

    async def list_artifacts(self, run_id: str) -> list[ArtifactRecord]:
        return copy.deepcopy(self._artifacts.get(run_id, []))

    def _require_workflow(self, workflow_id: str) -> WorkflowRecord:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    @staticmethod
    def _with_ids(steps: list[StepSpec]) -> list[StepSpec]:
        return sorted(
            (replace(copy.deepcopy(step), id=step.id or str(uuid4())) for step in steps),
            key=lambda step: step.order,
        )
