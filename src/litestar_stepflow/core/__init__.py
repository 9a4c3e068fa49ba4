"""Core domain module for litestar-stepflow.

This module exports the building blocks shared by the engine and the stores:
types, step definitions, the execution context, data models and protocols.
"""

from __future__ import annotations

from litestar_stepflow.core.context import (
    Budgets,
    ExecutionContext,
    RunMetrics,
    StepMetrics,
    estimate_tokens,
    monotonic_ms,
)
from litestar_stepflow.core.definitions import (
    BranchDefinition,
    BranchLabel,
    LlmDefinition,
    StepDefinition,
    ToolDefinition,
    ToolResult,
)
from litestar_stepflow.core.models import (
    ArtifactRecord,
    Completion,
    RunOutcome,
    RunRecord,
    StepSpec,
    WorkflowRecord,
)
from litestar_stepflow.core.protocols import LlmClient, RunStore, WorkflowStore
from litestar_stepflow.core.types import (
    ArtifactKind,
    ErrorTag,
    JSONMapping,
    RunStatus,
    State,
    StepKind,
    StepStatus,
)

__all__ = [
    "ArtifactKind",
    "ArtifactRecord",
    "BranchDefinition",
    "BranchLabel",
    "Budgets",
    "Completion",
    "ErrorTag",
    "ExecutionContext",
    "JSONMapping",
    "LlmClient",
    "LlmDefinition",
    "RunMetrics",
    "RunOutcome",
    "RunRecord",
    "RunStatus",
    "RunStore",
    "State",
    "StepDefinition",
    "StepKind",
    "StepMetrics",
    "StepSpec",
    "StepStatus",
    "ToolDefinition",
    "ToolResult",
    "WorkflowRecord",
    "WorkflowStore",
    "estimate_tokens",
    "monotonic_ms",
]
