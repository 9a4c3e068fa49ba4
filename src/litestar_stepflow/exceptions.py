"""Exception hierarchy for litestar-stepflow."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from litestar_stepflow.core.types import StepKind

__all__ = (
    "BudgetExceededError",
    "InvalidRunStateError",
    "RetryExhaustedError",
    "RetryLimitExceededError",
    "RunAlreadyActiveError",
    "RunAlreadyFinalizedError",
    "RunNotFoundError",
    "SchemaParseError",
    "StepExecutionError",
    "StepNotFoundError",
    "StepValidationError",
    "StepflowError",
    "WorkflowNotFoundError",
    "WorkflowValidationError",
)


class StepflowError(Exception):
    """Base exception for all litestar-stepflow errors.

    Every exception raised by the engine, its stores and its services inherits from
    this class, so callers can catch the whole family with a single except clause.
    """

    tag: str = "EXECUTION_FAILED"
    """Error tag recorded on runs and artifacts when this error ends a step."""


class StepNotFoundError(StepflowError):
    """Raised when a step definition is not registered.

    Attributes:
        name: The requested definition name.
        kind: The kind namespace that was searched.
    """

    tag = "STEP_NOT_FOUND"

    def __init__(self, name: str, kind: StepKind | str) -> None:
        """Initialize the exception with lookup details.

        Args:
            name: The requested definition name.
            kind: The kind namespace that was searched.
        """
        self.name = name
        self.kind = kind
        super().__init__(f"{kind} step '{name}' not found")


class StepValidationError(StepflowError):
    """Raised when a step's input or output does not match its declared schema.

    Attributes:
        step_key: Identifier of the step whose data failed validation.
        stage: Either ``"input"`` or ``"output"``.
        errors: Validation error details produced by the schema.
    """

    tag = "VALIDATION_FAILED"

    def __init__(self, step_key: str, stage: str, errors: list[Any]) -> None:
        """Initialize the exception with validation details.

        Args:
            step_key: Identifier of the step whose data failed validation.
            stage: Either ``"input"`` or ``"output"``.
            errors: Validation error details produced by the schema.
        """
        self.step_key = step_key
        self.stage = stage
        self.errors = errors
        super().__init__(f"Step '{step_key}' {stage} failed validation: {errors}")


class StepExecutionError(StepflowError):
    """Raised when a step fails to execute.

    Wraps the underlying exception and carries the identifier of the step so the
    run's failure reason always names where execution stopped.

    Attributes:
        step_id: Identifier of the failing step row.
        step_key: Human readable key of the failing step.
        cause: The underlying exception.
    """

    def __init__(self, step_id: str, step_key: str, cause: Exception) -> None:
        """Initialize the exception with step execution details.

        Args:
            step_id: Identifier of the failing step row.
            step_key: Human readable key of the failing step.
            cause: The underlying exception.
        """
        self.step_id = step_id
        self.step_key = step_key
        self.cause = cause
        self.tag = getattr(cause, "tag", "HANDLER_FAILED")
        super().__init__(f"Step {step_id} ({step_key}) failed: {cause}")


class BudgetExceededError(StepflowError):
    """Raised when a run breaches its time or token budget.

    Attributes:
        reason: Description of the breached ceiling.
    """

    tag = "BUDGET_EXCEEDED"

    def __init__(self, reason: str) -> None:
        """Initialize the exception.

        Args:
            reason: Description of the breached ceiling.
        """
        self.reason = reason
        super().__init__(f"Budget exceeded: {reason}")


class SchemaParseError(StepflowError):
    """Raised when a language model never produced valid structured output.

    Attributes:
        attempts: Total attempts made before giving up.
        cause: The last parse or validation error.
    """

    tag = "SCHEMA_PARSE_FAILED"

    def __init__(self, attempts: int, cause: Exception | None = None) -> None:
        """Initialize the exception.

        Args:
            attempts: Total attempts made before giving up.
            cause: The last parse or validation error.
        """
        self.attempts = attempts
        self.cause = cause
        msg = f"SCHEMA_PARSE_FAILED after {attempts} attempt(s)"
        if cause:
            msg += f": {cause}"
        super().__init__(msg)


class RetryExhaustedError(StepflowError):
    """Raised when the generic retry primitive gives up.

    Attributes:
        attempts: Total attempts made.
        cause: The last error raised by the operation.
    """

    tag = "RETRY_EXHAUSTED"

    def __init__(self, attempts: int, cause: BaseException) -> None:
        """Initialize the exception.

        Args:
            attempts: Total attempts made.
            cause: The last error raised by the operation.
        """
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Operation failed after {attempts} attempt(s): {cause}")


class WorkflowNotFoundError(StepflowError):
    """Raised when a workflow does not exist in the store.

    Attributes:
        workflow_id: The identifier that was looked up.
    """

    def __init__(self, workflow_id: str) -> None:
        """Initialize the exception.

        Args:
            workflow_id: The identifier that was looked up.
        """
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' not found")


class WorkflowValidationError(StepflowError):
    """Raised when a workflow's step set is not executable.

    Duplicate step orders and unknown step types are configuration errors, never
    resolved by tie-breaking.

    Attributes:
        errors: List of validation error messages.
    """

    def __init__(self, errors: list[str]) -> None:
        """Initialize the exception with validation errors.

        Args:
            errors: List of validation error messages.
        """
        self.errors = errors
        super().__init__(f"Workflow validation failed: {'; '.join(errors)}")


class RunNotFoundError(StepflowError):
    """Raised when a run does not exist in the store.

    Attributes:
        run_id: The identifier that was looked up.
    """

    def __init__(self, run_id: str) -> None:
        """Initialize the exception.

        Args:
            run_id: The identifier that was looked up.
        """
        self.run_id = run_id
        super().__init__(f"Run '{run_id}' not found")


class RunAlreadyFinalizedError(StepflowError):
    """Raised when trying to execute a run that already reached a terminal state.

    Attributes:
        run_id: The run identifier.
        status: The terminal status of the run.
    """

    def __init__(self, run_id: str, status: str) -> None:
        """Initialize the exception.

        Args:
            run_id: The run identifier.
            status: The terminal status of the run.
        """
        self.run_id = run_id
        self.status = status
        super().__init__(f"Run '{run_id}' is already {status}")


class RunAlreadyActiveError(StepflowError):
    """Raised when a run is already being executed by the same engine.

    Attributes:
        run_id: The run identifier.
    """

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run '{run_id}' is already executing")


class InvalidRunStateError(StepflowError):
    """Raised when an operation is not allowed in the run's current status.

    Attributes:
        run_id: The run identifier.
        status: The current status of the run.
    """

    def __init__(self, run_id: str, status: str, operation: str) -> None:
        """Initialize the exception.

        Args:
            run_id: The run identifier.
            status: The current status of the run.
            operation: The rejected operation.
        """
        self.run_id = run_id
        self.status = status
        super().__init__(f"Cannot {operation} run '{run_id}' while it is {status}")


class RetryLimitExceededError(StepflowError):
    """Raised when retrying a run that already used all of its retries.

    Attributes:
        run_id: The run that was asked to be retried.
        retry_count: The run's retry count.
        max_retries: The run's retry ceiling.
    """

    def __init__(self, run_id: str, retry_count: int, max_retries: int) -> None:
        """Initialize the exception.

        Args:
            run_id: The run that was asked to be retried.
            retry_count: The run's retry count.
            max_retries: The run's retry ceiling.
        """
        self.run_id = run_id
        self.retry_count = retry_count
        self.max_retries = max_retries
        super().__init__(f"Run '{run_id}' reached its retry limit ({retry_count}/{max_retries})")
