"""Core protocols for litestar-stepflow.

This module defines the Protocol-based contracts the engine consumes: the run store,
the workflow store and the language model client. Using Protocol allows any store
or client with the right shape to be plugged in while keeping type safety.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from litestar_stepflow.core.context import Budgets
    from litestar_stepflow.core.models import ArtifactRecord, Completion, RunRecord, StepSpec, WorkflowRecord
    from litestar_stepflow.core.types import RunStatus

__all__ = ["LlmClient", "RunStore", "WorkflowStore"]


@runtime_checkable
class LlmClient(Protocol):
    """Protocol for language model clients.

    Example:
        >>> class CannedClient:
        ...     async def complete(self, prompt: str) -> Completion:
        ...         return Completion(text='{"label": "ok"}')
    """

    async def complete(self, prompt: str) -> Completion:
        """Send a prompt and return the raw completion.

        Args:
            prompt: The prompt text.

        Returns:
            The completion text with optional usage figures.
        """
        ...


@runtime_checkable
class RunStore(Protocol):
    """Protocol for the persistence the execution engine depends on.

    Implementations serialize their own writes. The engine performs no locking of
    its own and assumes each call is atomic.
    """

    async def load_workflow_steps(self, workflow_id: str) -> list[StepSpec]:
        """Load the steps of a workflow ordered by ``order``.

        Args:
            workflow_id: The workflow identifier.

        Returns:
            The workflow's steps in ascending order.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
        """
        ...

    async def persist_artifact(self, artifact: ArtifactRecord) -> ArtifactRecord:
        """Append an artifact to a run.

        Args:
            artifact: The artifact to store. Its ``sequence`` is assigned by the store.

        Returns:
            The stored artifact.
        """
        ...

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
        """Update a run's status and any of its bookkeeping fields.

        Fields passed as None are left untouched.

        Raises:
            RunNotFoundError: If the run does not exist.
        """
        ...

    async def create_run_if_missing(
        self,
        workflow_id: str,
        input: Any = None,
        budgets: Budgets | None = None,
    ) -> RunRecord:
        """Create a pending run for a workflow and return it."""
        ...

    async def create_run(self, run: RunRecord) -> RunRecord:
        """Store a fully specified run row."""
        ...

    async def get_run(self, run_id: str) -> RunRecord | None:
        """Return a run, or None when it does not exist."""
        ...

    async def list_runs(self, status: RunStatus | None = None, limit: int | None = None) -> list[RunRecord]:
        """List runs oldest first, optionally filtered by status.

        Args:
            status: Only return runs with this status.
            limit: Maximum number of runs to return.

        Returns:
            Matching runs ordered by creation time.
        """
        ...

    async def list_artifacts(self, run_id: str) -> list[ArtifactRecord]:
        """List a run's artifacts in write order."""
        ...


@runtime_checkable
class WorkflowStore(Protocol):
    """Protocol for workflow management persistence."""

    async def create_workflow(self, name: str, steps: list[StepSpec], version: int = 1) -> WorkflowRecord:
        """Create a workflow with its steps in one transaction."""
        ...

    async def get_workflow(self, workflow_id: str) -> WorkflowRecord | None:
        """Return a workflow with its steps, or None when it does not exist."""
        ...

    async def replace_steps(self, workflow_id: str, steps: list[StepSpec]) -> WorkflowRecord:
        """Replace the whole step set of a workflow in one transaction.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
        """
        ...

    async def update_workflow(
        self,
        workflow_id: str,
        name: str | None = None,
        version: int | None = None,
    ) -> WorkflowRecord:
        """Update a workflow's name or version.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
        """
        ...
