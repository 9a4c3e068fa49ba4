"""REST API controllers for stepflow.

This module provides the controller classes mounted by the plugin:
- WorkflowController: Create, read and update workflows
- RunController: Start, inspect and retry runs
- ProcessorController: Inspect and trigger the background processor
- HealthController: Liveness check
"""

from __future__ import annotations

from typing import ClassVar

from litestar import Controller, get, post, put
from litestar.params import Parameter

from litestar_stepflow.core.context import Budgets
from litestar_stepflow.engine.processor import BackgroundProcessor  # noqa: TC001 - needed for DI
from litestar_stepflow.engine.service import RunService  # noqa: TC001 - needed for DI
from litestar_stepflow.web.dto import (
    ArtifactDTO,
    CreateWorkflowDTO,
    HealthDTO,
    ProcessorStatusDTO,
    RunDetailDTO,
    RunDTO,
    StartRunDTO,
    TimelineEntryDTO,
    TriggerResultDTO,
    UpdateWorkflowDTO,
    WorkflowDTO,
)

__all__ = [
    "HealthController",
    "ProcessorController",
    "RunController",
    "WorkflowController",
]


class WorkflowController(Controller):
    """API controller for workflows.

    Tags: Workflows
    """

    path = "/workflows"
    tags: ClassVar[list[str]] = ["Workflows"]

    @post("/")
    async def create_workflow(self, data: CreateWorkflowDTO, stepflow_service: RunService) -> WorkflowDTO:
        """Create a workflow with its steps.

        Args:
            data: Workflow name, version and steps.
            stepflow_service: Injected run service.

        Returns:
            The created workflow.
        """
        workflow = await stepflow_service.create_workflow(
            data.name,
            [step.to_mapping() for step in data.steps],
            version=data.version,
        )
        return WorkflowDTO.from_record(workflow)

    @get("/{workflow_id:str}")
    async def get_workflow(self, workflow_id: str, stepflow_service: RunService) -> WorkflowDTO:
        """Get a workflow with its steps.

        Raises:
            NotFoundException: If the workflow does not exist.
        """
        return WorkflowDTO.from_record(await stepflow_service.get_workflow(workflow_id))

    @put("/{workflow_id:str}")
    async def update_workflow(
        self,
        workflow_id: str,
        data: UpdateWorkflowDTO,
        stepflow_service: RunService,
    ) -> WorkflowDTO:
        """Update a workflow; a provided step list replaces every existing step.

        Raises:
            NotFoundException: If the workflow does not exist.
        """
        workflow = await stepflow_service.update_workflow(
            workflow_id,
            name=data.name,
            version=data.version,
            steps=[step.to_mapping() for step in data.steps] if data.steps is not None else None,
        )
        return WorkflowDTO.from_record(workflow)


class RunController(Controller):
    """API controller for runs.

    Tags: Runs
    """

    path = "/runs"
    tags: ClassVar[list[str]] = ["Runs"]

    @post("/{workflow_id:str}/start")
    async def start_run(self, workflow_id: str, data: StartRunDTO, stepflow_service: RunService) -> RunDTO:
        """Start a run of a workflow.

        The run is queued for the background processor unless ``wait`` is set, in
        which case it executes before the response is sent.

        Raises:
            NotFoundException: If the workflow does not exist.
        """
        budgets = Budgets(max_ms=data.budgets.max_ms, max_tokens=data.budgets.max_tokens) if data.budgets else None
        run = await stepflow_service.start_run(
            workflow_id,
            input=data.input,
            budgets=budgets,
            max_retries=data.max_retries,
            wait=data.wait,
        )
        return RunDTO.from_record(run)

    @get("/{run_id:str}")
    async def get_run(self, run_id: str, stepflow_service: RunService) -> RunDetailDTO:
        """Get a run with a per-step timeline of its artifacts.

        Raises:
            NotFoundException: If the run does not exist.
        """
        run = await stepflow_service.get_run(run_id)
        timeline = await stepflow_service.get_timeline(run_id)
        return RunDetailDTO(
            run=RunDTO.from_record(run),
            timeline=[TimelineEntryDTO.from_entry(entry) for entry in timeline],
        )

    @get("/{run_id:str}/artifacts")
    async def list_artifacts(self, run_id: str, stepflow_service: RunService) -> list[ArtifactDTO]:
        """List a run's artifacts in write order.

        Raises:
            NotFoundException: If the run does not exist.
        """
        return [ArtifactDTO.from_record(artifact) for artifact in await stepflow_service.list_artifacts(run_id)]

    @post("/{run_id:str}/retry")
    async def retry_run(
        self,
        run_id: str,
        stepflow_service: RunService,
        wait: bool = Parameter(default=False, description="Execute the retry before responding"),
    ) -> RunDTO:
        """Start a new run repeating a finished one.

        Raises:
            NotFoundException: If the run does not exist.
            HTTPException: 409 if the run is still in progress or out of retries.
        """
        return RunDTO.from_record(await stepflow_service.retry_run(run_id, wait=wait))


class ProcessorController(Controller):
    """API controller for the background processor.

    Tags: Processor
    """

    path = "/processor"
    tags: ClassVar[list[str]] = ["Processor"]

    @get("/status")
    async def get_status(self, stepflow_processor: BackgroundProcessor) -> ProcessorStatusDTO:
        """Report whether the processor is polling and how often."""
        status = stepflow_processor.status()
        return ProcessorStatusDTO(is_processing=status.is_processing, poll_interval=status.poll_interval)

    @post("/trigger")
    async def trigger(self, stepflow_processor: BackgroundProcessor) -> TriggerResultDTO:
        """Process one page of queued runs immediately."""
        return TriggerResultDTO(processed=await stepflow_processor.process_now())


class HealthController(Controller):
    """Liveness endpoint."""

    path = "/health"
    tags: ClassVar[list[str]] = ["Health"]

    @get("/")
    async def health(self) -> HealthDTO:
        return HealthDTO()
