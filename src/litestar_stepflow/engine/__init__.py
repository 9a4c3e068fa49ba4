"""Workflow execution components.

This module provides the step registry, the execution engine, the structured output
caller, the retry primitive, the background processor, the run service and the
in-memory store.
"""

from __future__ import annotations

from litestar_stepflow.engine.executor import ExecutionEngine
from litestar_stepflow.engine.memory import InMemoryStore
from litestar_stepflow.engine.processor import BackgroundProcessor, ProcessorStatus
from litestar_stepflow.engine.registry import StepRegistry
from litestar_stepflow.engine.retry import RetryPolicy, default_retry_condition, retry_async
from litestar_stepflow.engine.service import RunService, TimelineEntry, build_steps
from litestar_stepflow.engine.structured import StructuredFailure, StructuredOutcome, StructuredOutputCaller

__all__ = [
    "BackgroundProcessor",
    "ExecutionEngine",
    "InMemoryStore",
    "ProcessorStatus",
    "RetryPolicy",
    "RunService",
    "StepRegistry",
    "StructuredFailure",
    "StructuredOutcome",
    "StructuredOutputCaller",
    "TimelineEntry",
    "build_steps",
    "default_retry_condition",
    "retry_async",
]
