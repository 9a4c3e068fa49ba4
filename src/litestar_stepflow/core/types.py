"""Core type definitions for litestar-stepflow.

This module defines the enums and type aliases shared by the engine, the stores and
the web layer.
"""

from __future__ import annotations

from enum import StrEnum, auto
from typing import Any, TypeAlias

__all__ = [
    "ArtifactKind",
    "ErrorTag",
    "JSONMapping",
    "RunStatus",
    "State",
    "StepKind",
    "StepStatus",
]


class StepKind(StrEnum):
    """Closed set of step kinds a workflow can contain.

    Attributes:
        TOOL: Deterministic function with declared input and output schemas.
        LLM: Language model call whose output must match a strict schema.
        BRANCH: Decision hook that computes a ``next`` label.
    """

    TOOL = auto()
    LLM = auto()
    BRANCH = auto()


class RunStatus(StrEnum):
    """Overall status of a run.

    Attributes:
        PENDING: Run row exists but execution has not begun.
        RUNNING: Run is executing, or queued for the background processor.
        COMPLETED: Every step finished within budget.
        FAILED: A step failed, a budget was breached, or execution crashed.
    """

    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is allowed from this status."""
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class StepStatus(StrEnum):
    """Execution status recorded on an artifact.

    Attributes:
        RUNNING: Input captured, step executing.
        SUCCEEDED: Step produced validated output.
        FAILED: Step raised or produced invalid data.
    """

    RUNNING = auto()
    SUCCEEDED = auto()
    FAILED = auto()


class ArtifactKind(StrEnum):
    """Kind of data an artifact holds.

    Attributes:
        INPUT: State snapshot handed to the step.
        OUTPUT: Validated step output, or the error of a failed tool/branch step.
        LOG: Diagnostic record, written when structured output is exhausted.
    """

    INPUT = auto()
    OUTPUT = auto()
    LOG = auto()


class ErrorTag(StrEnum):
    """Tags distinguishing failure classes on runs and artifacts."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    HANDLER_FAILED = "HANDLER_FAILED"
    STEP_NOT_FOUND = "STEP_NOT_FOUND"
    SCHEMA_PARSE_FAILED = "SCHEMA_PARSE_FAILED"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    EXECUTION_FAILED = "EXECUTION_FAILED"


State: TypeAlias = dict[str, Any]
"""Type alias for the per-run state bag."""

JSONMapping: TypeAlias = dict[str, Any]
"""Type alias for JSON-compatible mappings persisted by stores."""
