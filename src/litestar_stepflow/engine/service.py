"""Run service.

This module provides the RunService which sits between callers (the web layer,
scripts, tests) and the engine: it manages workflow definitions, queues and starts
runs, and implements the explicit, capped retry operation.
"""

from __future__ import annotations

import copy
import logging
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from litestar_stepflow.config import StepflowSettings
from litestar_stepflow.core.models import RunRecord, StepSpec
from litestar_stepflow.core.types import ArtifactKind, RunStatus, StepKind
from litestar_stepflow.exceptions import (
    InvalidRunStateError,
    RetryLimitExceededError,
    RunNotFoundError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)

if TYPE_CHECKING:
    from litestar_stepflow.core.context import Budgets
    from litestar_stepflow.core.models import ArtifactRecord, WorkflowRecord
    from litestar_stepflow.core.protocols import RunStore, WorkflowStore
    from litestar_stepflow.engine.executor import ExecutionEngine

    class Store(RunStore, WorkflowStore): ...


__all__ = ["RunService", "TimelineEntry", "build_steps"]

logger = logging.getLogger(__name__)


@dataclass
class TimelineEntry:
    """One step of a run as seen through its artifacts.

    Attributes:
        step_id: The step row.
        type: The step kind.
        order: The step position.
        status: Status of the step's latest artifact, or ``"pending"`` if it never ran.
        inputs: Data of the input artifact.
        outputs: Data of the output or log artifact.
        metrics: Metrics of the terminal artifact.
        error: Error of the terminal artifact.
    """

    step_id: str
    type: str
    order: int
    status: str = "pending"
    inputs: Any = None
    outputs: Any = None
    metrics: dict[str, Any] = field(default_factory=dict)
    error: dict[str, Any] | None = None


def build_steps(steps: list[StepSpec | Mapping[str, Any]]) -> list[StepSpec]:
    """Normalize step definitions and reject step sets that cannot execute.

    Args:
        steps: StepSpec instances or mappings with ``order``, ``type`` and ``config``.

    Returns:
        StepSpec instances sorted by order.

    Raises:
        WorkflowValidationError: On duplicate orders, unknown types or malformed entries.
    """
    errors: list[str] = []
    normalized: list[StepSpec] = []

    for index, raw in enumerate(steps):
        if isinstance(raw, StepSpec):
            raw = {"id": raw.id, "order": raw.order, "type": raw.type, "config": raw.config}
        try:
            kind = StepKind(raw.get("type"))
        except ValueError:
            errors.append(f"Step {index} has unknown type '{raw.get('type')}'")
            continue
        order = raw.get("order", index)
        if not isinstance(order, int) or isinstance(order, bool) or order < 0:
            errors.append(f"Step {index} has invalid order '{order}'")
            continue
        normalized.append(
            StepSpec(
                id=str(raw.get("id") or uuid4()),
                order=order,
                type=kind,
                config=dict(raw.get("config") or {}),
            )
        )

    counts = Counter(step.order for step in normalized)
    errors.extend(f"Duplicate step order {order}" for order in sorted(counts) if counts[order] > 1)

    if errors:
        raise WorkflowValidationError(errors)
    return sorted(normalized, key=lambda step: step.order)


class RunService:
    """Workflow management and run lifecycle operations.

    Args:
        store: A store implementing both RunStore and WorkflowStore.
        engine: The execution engine used for inline runs.
        settings: Settings supplying the default retry ceiling.
    """

    def __init__(self, store: Store, engine: ExecutionEngine, settings: StepflowSettings | None = None) -> None:
        self.store = store
        self.engine = engine
        self.settings = settings or StepflowSettings()

    async def create_workflow(
        self,
        name: str,
        steps: list[StepSpec | Mapping[str, Any]],
        version: int = 1,
    ) -> WorkflowRecord:
        """Create a workflow and its steps.

        Raises:
            WorkflowValidationError: If the step set cannot execute.
        """
        workflow = await self.store.create_workflow(name, build_steps(steps), version=version)
        logger.info("Workflow created", extra={"workflow_id": workflow.id, "steps": len(workflow.steps)})
        return workflow

    async def update_workflow(
        self,
        workflow_id: str,
        name: str | None = None,
        version: int | None = None,
        steps: list[StepSpec | Mapping[str, Any]] | None = None,
    ) -> WorkflowRecord:
        """Rename, re-version or replace the step set of a workflow.

        Steps are validated before anything is written, and replaced as a whole.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
            WorkflowValidationError: If the new step set cannot execute.
        """
        new_steps = build_steps(steps) if steps is not None else None
        workflow = await self.store.update_workflow(workflow_id, name=name, version=version)
        if new_steps is not None:
            workflow = await self.store.replace_steps(workflow_id, new_steps)
        logger.info("Workflow updated", extra={"workflow_id": workflow_id})
        return workflow

    async def get_workflow(self, workflow_id: str) -> WorkflowRecord:
        """Return a workflow with its steps.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
        """
        workflow = await self.store.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    async def start_run(
        self,
        workflow_id: str,
        input: Any = None,
        budgets: Budgets | None = None,
        max_retries: int | None = None,
        wait: bool = False,
    ) -> RunRecord:
        """Create a run for a workflow.

        By default the run is queued with status ``running`` for the background
        processor. With ``wait=True`` it is created ``pending`` and executed inline.

        Returns:
            The run as stored after creation, or after execution when ``wait`` is set.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
        """
        await self.get_workflow(workflow_id)
        run = RunRecord(
            id=str(uuid4()),
            workflow_id=workflow_id,
            status=RunStatus.PENDING if wait else RunStatus.RUNNING,
            input=input,
            budgets=budgets,
            max_retries=self.settings.run_max_retries if max_retries is None else max_retries,
        )
        return await self._submit(run, wait)

    async def retry_run(self, run_id: str, wait: bool = False) -> RunRecord:
        """Start a new run repeating a finished one.

        The new run copies the previous run's input and budgets, links back through
        ``previous_run_id`` and carries ``retry_count + 1``.

        Raises:
            RunNotFoundError: If the run does not exist.
            InvalidRunStateError: If the run has not finished yet.
            RetryLimitExceededError: If the run already used all of its retries.
        """
        previous = await self.get_run(run_id)
        if not previous.status.is_terminal:
            raise InvalidRunStateError(run_id, previous.status, "retry")
        if previous.retry_count >= previous.max_retries:
            raise RetryLimitExceededError(run_id, previous.retry_count, previous.max_retries)

        run = RunRecord(
            id=str(uuid4()),
            workflow_id=previous.workflow_id,
            status=RunStatus.PENDING if wait else RunStatus.RUNNING,
            input=copy.deepcopy(previous.input),
            budgets=previous.budgets,
            retry_count=previous.retry_count + 1,
            max_retries=previous.max_retries,
            previous_run_id=previous.id,
        )
        logger.info(
            "Retrying run",
            extra={"run_id": run.id, "previous_run_id": previous.id, "retry_count": run.retry_count},
        )
        return await self._submit(run, wait)

    async def get_run(self, run_id: str) -> RunRecord:
        """Return a run.

        Raises:
            RunNotFoundError: If the run does not exist.
        """
        run = await self.store.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    async def list_artifacts(self, run_id: str) -> list[ArtifactRecord]:
        """Return a run's artifacts in write order.

        Raises:
            RunNotFoundError: If the run does not exist.
        """
        await self.get_run(run_id)
        return await self.store.list_artifacts(run_id)

    async def get_timeline(self, run_id: str) -> list[TimelineEntry]:
        """Return one entry per workflow step, joined with the run's artifacts.

        Raises:
            RunNotFoundError: If the run does not exist.
        """
        run = await self.get_run(run_id)
        artifacts = await self.store.list_artifacts(run_id)
        workflow = await self.store.get_workflow(run.workflow_id)
        steps = workflow.steps if workflow else []

        entries = {
            step.id: TimelineEntry(step_id=step.id, type=str(step.type), order=step.order) for step in steps
        }
        for artifact in artifacts:
            entry = entries.get(artifact.step_id)
            if entry is None:
                continue
            entry.status = str(artifact.status)
            if artifact.kind == ArtifactKind.INPUT:
                entry.inputs = artifact.data
            else:
                entry.outputs = artifact.data
                entry.metrics = artifact.metrics
                entry.error = artifact.error
        return sorted(entries.values(), key=lambda entry: entry.order)

    async def _submit(self, run: RunRecord, wait: bool) -> RunRecord:
        stored = await self.store.create_run(run)
        logger.info("Run created", extra={"run_id": stored.id, "workflow_id": stored.workflow_id, "wait": wait})
        if wait:
            await self.engine.execute_run(stored.id)
            return await self.get_run(stored.id)
        return stored
