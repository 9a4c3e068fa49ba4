"""Tests for the SQLAlchemy store on an in-memory SQLite database."""

from __future__ import annotations

from collections.abc import AsyncIterator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.pool import StaticPool

from litestar_stepflow.core.context import Budgets
from litestar_stepflow.core.models import ArtifactRecord, RunRecord
from litestar_stepflow.core.types import ArtifactKind, RunStatus, StepKind, StepStatus
from litestar_stepflow.db.store import SQLAlchemyStore
from litestar_stepflow.engine.executor import ExecutionEngine
from litestar_stepflow.engine.processor import BackgroundProcessor
from litestar_stepflow.engine.registry import StepRegistry
from litestar_stepflow.engine.service import RunService
from litestar_stepflow.exceptions import RunNotFoundError, WorkflowNotFoundError
from tests.conftest import ScriptedLlmClient, make_steps

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


@pytest.fixture
async def sql_store() -> AsyncIterator[SQLAlchemyStore]:
    store = SQLAlchemyStore.from_url(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await store.create_schema()
    yield store
    await store.dispose()


@pytest.fixture
def sql_engine(
    step_registry: StepRegistry,
    sql_store: SQLAlchemyStore,
    llm_client: ScriptedLlmClient,
) -> ExecutionEngine:
    return ExecutionEngine(step_registry, sql_store, llm_client=llm_client)


class TestSQLAlchemyStoreWorkflows:
    """Workflow persistence."""

    async def test_create_and_get_workflow(self, sql_store: SQLAlchemyStore) -> None:
        workflow = await sql_store.create_workflow(
            "echo-classify",
            make_steps((StepKind.LLM, "classify"), (StepKind.TOOL, "echo"))[::-1],
            version=3,
        )

        loaded = await sql_store.get_workflow(workflow.id)

        assert loaded is not None
        assert loaded.name == "echo-classify"
        assert loaded.version == 3
        assert [step.order for step in loaded.steps] == [0, 1]
        assert [step.type for step in loaded.steps] == [StepKind.LLM, StepKind.TOOL]
        assert all(UUID(step.id) for step in loaded.steps)

    async def test_missing_workflow(self, sql_store: SQLAlchemyStore) -> None:
        assert await sql_store.get_workflow(str(uuid4())) is None
        assert await sql_store.get_workflow("not-a-uuid") is None
        with pytest.raises(WorkflowNotFoundError):
            await sql_store.load_workflow_steps(str(uuid4()))

    async def test_replace_steps_swaps_whole_set(self, sql_store: SQLAlchemyStore) -> None:
        workflow = await sql_store.create_workflow("wf", make_steps((StepKind.TOOL, "echo"), (StepKind.TOOL, "echo")))

        replaced = await sql_store.replace_steps(workflow.id, make_steps((StepKind.BRANCH, "byFlag")))
        steps = await sql_store.load_workflow_steps(workflow.id)

        assert len(replaced.steps) == 1
        assert [(step.order, step.type) for step in steps] == [(0, StepKind.BRANCH)]

    async def test_update_workflow(self, sql_store: SQLAlchemyStore) -> None:
        workflow = await sql_store.create_workflow("wf", make_steps((StepKind.TOOL, "echo")))

        updated = await sql_store.update_workflow(workflow.id, name="renamed", version=2)

        assert updated.name == "renamed"
        assert updated.version == 2
        assert len(updated.steps) == 1


class TestSQLAlchemyStoreRuns:
    """Run and artifact persistence."""

    async def test_run_lifecycle(self, sql_store: SQLAlchemyStore) -> None:
        workflow = await sql_store.create_workflow("wf", make_steps((StepKind.TOOL, "echo")))
        run = await sql_store.create_run_if_missing(workflow.id, input={"message": "hi"}, budgets=Budgets(max_ms=10))

        assert run.status == RunStatus.PENDING
        assert run.budgets == Budgets(max_ms=10)
        assert run.max_retries == 3

        updated = await sql_store.update_run(
            run.id,
            RunStatus.FAILED,
            failure_reason="boom",
            last_error={"message": "boom", "tag": "HANDLER_FAILED"},
        )
        reloaded = await sql_store.get_run(run.id)

        assert updated.status == RunStatus.FAILED
        assert reloaded is not None
        assert reloaded.failure_reason == "boom"
        assert reloaded.last_error == {"message": "boom", "tag": "HANDLER_FAILED"}
        assert reloaded.input == {"message": "hi"}

    async def test_update_unknown_run(self, sql_store: SQLAlchemyStore) -> None:
        with pytest.raises(RunNotFoundError):
            await sql_store.update_run(str(uuid4()), RunStatus.RUNNING)

    async def test_artifacts_receive_increasing_sequence(self, sql_store: SQLAlchemyStore) -> None:
        workflow = await sql_store.create_workflow("wf", make_steps((StepKind.TOOL, "echo")))
        run = await sql_store.create_run_if_missing(workflow.id)
        step_id = workflow.steps[0].id

        for kind in (ArtifactKind.INPUT, ArtifactKind.OUTPUT):
            await sql_store.persist_artifact(
                ArtifactRecord(run_id=run.id, step_id=step_id, kind=kind, data={"k": kind}, status=StepStatus.RUNNING)
            )
        artifacts = await sql_store.list_artifacts(run.id)

        assert [(a.kind, a.sequence) for a in artifacts] == [(ArtifactKind.INPUT, 0), (ArtifactKind.OUTPUT, 1)]
        assert artifacts[1].data == {"k": "output"}

    async def test_list_runs_filters_by_status(self, sql_store: SQLAlchemyStore) -> None:
        workflow = await sql_store.create_workflow("wf", make_steps((StepKind.TOOL, "echo")))
        for status in (RunStatus.RUNNING, RunStatus.RUNNING, RunStatus.COMPLETED):
            await sql_store.create_run(RunRecord(id=str(uuid4()), workflow_id=workflow.id, status=status))

        assert len(await sql_store.list_runs(RunStatus.RUNNING)) == 2
        assert len(await sql_store.list_runs(RunStatus.RUNNING, limit=1)) == 1
        assert len(await sql_store.list_runs()) == 3


class TestSQLAlchemyStoreWithEngine:
    """The engine, service and processor on top of the SQL store."""

    async def test_engine_run_is_durable(self, sql_engine: ExecutionEngine, sql_store: SQLAlchemyStore) -> None:
        workflow = await sql_store.create_workflow(
            "echo-classify", make_steps((StepKind.TOOL, "echo"), (StepKind.LLM, "classify"))
        )

        outcome = await sql_engine.run_workflow(workflow.id, {"message": "hello"}, Budgets(max_tokens=1000))
        run = await sql_store.get_run(outcome.run_id)
        artifacts = await sql_store.list_artifacts(outcome.run_id)

        assert outcome.status == RunStatus.COMPLETED
        assert run is not None
        assert run.status == RunStatus.COMPLETED
        assert run.metrics["total_tokens"] == outcome.metrics.total_tokens
        assert len(run.metrics["per_step"]) == 2
        assert [a.kind for a in artifacts] == [ArtifactKind.INPUT, ArtifactKind.OUTPUT] * 2
        assert [a.sequence for a in artifacts] == [0, 1, 2, 3]

    async def test_service_retry_and_processor(self, sql_engine: ExecutionEngine, sql_store: SQLAlchemyStore) -> None:
        service = RunService(sql_store, sql_engine)
        workflow = await service.create_workflow("echo", [{"order": 0, "type": "tool", "config": {"name": "echo"}}])
        failed = await service.start_run(workflow.id, {"nope": 1}, wait=True)

        retried = await service.retry_run(failed.id)
        processed = await BackgroundProcessor(sql_engine, sql_store).process_now()
        final = await service.get_run(retried.id)

        assert failed.status == RunStatus.FAILED
        assert retried.previous_run_id == failed.id
        assert retried.retry_count == 1
        assert processed == 1
        assert final.status == RunStatus.FAILED
        assert final.input == {"nope": 1}
