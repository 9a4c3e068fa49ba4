"""Minimal example of litestar-stepflow integration.

This example serves the bundled lead triage workflow. ``POST /leads`` runs an
inbound email through parsing, enrichment, scoring, CRM and Slack steps and
returns the identifiers the last two steps produced. The full stepflow API is
mounted under ``/stepflow``.

Run with:
    cd examples/minimal
    litestar run

Or:
    uvicorn app:app --reload
"""

from __future__ import annotations

from typing import Any

from litestar import Litestar, get, post
from litestar.datastructures import State  # noqa: TC002 - needed for DI

from litestar_stepflow import ArtifactKind, Budgets, RunService, StepflowPlugin, StepflowPluginConfig
from litestar_stepflow.workflows.lead import create_lead_registry, make_parse_email_llm

LEAD_STEPS: list[dict[str, Any]] = [
    {"order": 0, "type": "llm", "config": {"name": "parseEmail"}},
    {"order": 1, "type": "tool", "config": {"name": "enrichCompany"}},
    {"order": 2, "type": "tool", "config": {"name": "scoreLead"}},
    {"order": 3, "type": "tool", "config": {"name": "createCRMRecord"}},
    {"order": 4, "type": "tool", "config": {"name": "notifySlack"}},
]

LEAD_BUDGETS = Budgets(max_ms=2000, max_tokens=1500)

stepflow = StepflowPlugin(
    StepflowPluginConfig(
        registry=create_lead_registry(),
        llm_client=make_parse_email_llm(),
        autostart_processor=True,
    )
)


async def seed_workflows(app: Litestar) -> None:
    """Create the lead triage workflow and remember its id."""
    workflow = await stepflow.service.create_workflow("lead-triage", LEAD_STEPS)
    app.state.lead_workflow_id = workflow.id


@post("/leads")
async def submit_lead(data: dict[str, Any], state: State, stepflow_service: RunService) -> dict[str, Any]:
    """Triage an inbound email and wait for the result."""
    run = await stepflow_service.start_run(state.lead_workflow_id, input=data, budgets=LEAD_BUDGETS, wait=True)

    outputs: dict[str, Any] = {}
    for artifact in await stepflow_service.list_artifacts(run.id):
        if artifact.kind == ArtifactKind.OUTPUT and isinstance(artifact.data, dict):
            outputs.update(artifact.data)

    return {
        "run_id": run.id,
        "status": run.status,
        "score": outputs.get("score"),
        "crm_id": outputs.get("crmId"),
        "slack_message_id": outputs.get("slackMessageId"),
        "total_tokens": run.metrics.get("total_tokens"),
    }


@get("/leads/workflow")
async def lead_workflow(state: State) -> dict[str, str]:
    """Return the id of the seeded workflow, for use with the ``/stepflow`` API."""
    return {"workflow_id": state.lead_workflow_id}


app = Litestar(
    route_handlers=[submit_lead, lead_workflow],
    on_startup=[seed_workflows],
    plugins=[stepflow],
)
