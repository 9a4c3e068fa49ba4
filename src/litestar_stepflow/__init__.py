"""Litestar Stepflow - Budgeted multi-step pipelines for Litestar.

This package executes declaratively defined workflows made of typed steps against a
per-run state bag, recording every step's input and output as artifacts.

Key Features:
    - Tool, structured-output llm and branch steps with pydantic schemas
    - Wall-clock and token budgets checked between steps
    - Bounded retries for llm output that fails to parse or validate
    - Background polling of queued runs with bounded concurrency
    - In-memory and SQLAlchemy stores
    - Litestar plugin with a REST API

Example:
    >>> from litestar_stepflow import ExecutionEngine, InMemoryStore, StepSpec, StepKind
    >>> from litestar_stepflow.workflows.defaults import create_default_registry
    >>>
    >>> store = InMemoryStore()
    >>> workflow = await store.create_workflow(
    ...     "echo", [StepSpec(id="s1", order=0, type=StepKind.TOOL, config={"name": "echo"})]
    ... )
    >>> engine = ExecutionEngine(create_default_registry(), store)
    >>> outcome = await engine.run_workflow(workflow.id, {"message": "hi"})
"""

from __future__ import annotations

from litestar_stepflow.__metadata__ import __project__, __version__
from litestar_stepflow.config import StepflowSettings
from litestar_stepflow.core import (
    ArtifactKind,
    BranchDefinition,
    Budgets,
    Completion,
    ErrorTag,
    ExecutionContext,
    LlmDefinition,
    RunMetrics,
    RunOutcome,
    RunRecord,
    RunStatus,
    StepKind,
    StepMetrics,
    StepSpec,
    StepStatus,
    ToolDefinition,
    ToolResult,
    WorkflowRecord,
)
from litestar_stepflow.engine import (
    BackgroundProcessor,
    ExecutionEngine,
    InMemoryStore,
    RetryPolicy,
    RunService,
    StepRegistry,
    StructuredOutputCaller,
    retry_async,
)
from litestar_stepflow.exceptions import (
    BudgetExceededError,
    InvalidRunStateError,
    RetryExhaustedError,
    RetryLimitExceededError,
    RunAlreadyActiveError,
    RunAlreadyFinalizedError,
    RunNotFoundError,
    SchemaParseError,
    StepExecutionError,
    StepflowError,
    StepNotFoundError,
    StepValidationError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from litestar_stepflow.plugin import StepflowPlugin, StepflowPluginConfig

__all__ = (
    "ArtifactKind",
    "BackgroundProcessor",
    "BranchDefinition",
    "BudgetExceededError",
    "Budgets",
    "Completion",
    "ErrorTag",
    "ExecutionContext",
    "ExecutionEngine",
    "InMemoryStore",
    "InvalidRunStateError",
    "LlmDefinition",
    "RetryExhaustedError",
    "RetryLimitExceededError",
    "RetryPolicy",
    "RunAlreadyActiveError",
    "RunAlreadyFinalizedError",
    "RunMetrics",
    "RunNotFoundError",
    "RunOutcome",
    "RunRecord",
    "RunService",
    "RunStatus",
    "SchemaParseError",
    "StepExecutionError",
    "StepKind",
    "StepMetrics",
    "StepNotFoundError",
    "StepRegistry",
    "StepSpec",
    "StepStatus",
    "StepValidationError",
    "StepflowError",
    "StepflowPlugin",
    "StepflowPluginConfig",
    "StepflowSettings",
    "StructuredOutputCaller",
    "ToolDefinition",
    "ToolResult",
    "WorkflowNotFoundError",
    "WorkflowRecord",
    "WorkflowValidationError",
    "__project__",
    "__version__",
    "retry_async",
)
