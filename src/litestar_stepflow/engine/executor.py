"""Sequential execution engine.

This module provides the ExecutionEngine which drives one run of a workflow: it
loads the workflow's steps, dispatches each step to its registered definition,
records input and terminal artifacts, enforces budgets between steps and finalizes
the run exactly once.
"""

from __future__ import annotations

import inspect
import logging
from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, cast

from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from litestar_stepflow.config import StepflowSettings
from litestar_stepflow.core.context import Budgets, ExecutionContext, RunMetrics, StepMetrics
from litestar_stepflow.core.definitions import ToolResult
from litestar_stepflow.core.models import ArtifactRecord, RunOutcome
from litestar_stepflow.core.types import ArtifactKind, ErrorTag, RunStatus, StepKind, StepStatus
from litestar_stepflow.engine.structured import StructuredFailure, StructuredOutcome, StructuredOutputCaller
from litestar_stepflow.exceptions import (
    BudgetExceededError,
    RunAlreadyActiveError,
    RunAlreadyFinalizedError,
    RunNotFoundError,
    SchemaParseError,
    StepExecutionError,
    StepflowError,
    StepValidationError,
    WorkflowValidationError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from litestar_stepflow.core.models import StepSpec
    from litestar_stepflow.core.protocols import LlmClient, RunStore
    from litestar_stepflow.engine.registry import StepRegistry

__all__ = ["ExecutionEngine"]

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def snapshot(value: Any) -> Any:
    """Return a JSON-compatible deep copy of ``value``; unknown objects become strings."""
    return to_jsonable_python(value, fallback=str)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _validation_failure(step: StepSpec, stage: str, error: ValidationError) -> StepValidationError:
    errors = error.errors(include_url=False, include_context=False, include_input=False)
    return StepValidationError(step.key, stage, errors)


@dataclass
class _StepUsage:
    output: dict[str, Any]
    tokens: int = 0
    cost_usd: float = 0.0
    attempts: int = 1
    discarded_tokens: int = 0
    discarded_cost_usd: float = 0.0


class _StructuredOutputExhausted(Exception):
    def __init__(self, outcome: StructuredOutcome) -> None:
        self.outcome = outcome
        self.failure = cast("StructuredFailure", outcome.failure)
        self.error = SchemaParseError(self.failure.attempts, self.failure.cause)
        super().__init__(str(self.error))


class ExecutionEngine:
    """Runs workflows one step at a time against a per-run state bag.

    The engine holds no module-level state: the registry, the store, the language
    model client and the clock are all injected.

    Attributes:
        registry: Registry resolving step rows to definitions.
        store: Persistence for runs, steps and artifacts.
        structured_caller: Caller used for llm steps, or None when no client is configured.

    Example:
        >>> engine = ExecutionEngine(create_default_registry(), InMemoryStore(), llm_client=client)
        >>> outcome = await engine.run_workflow(workflow_id, {"message": "hello"}, Budgets(max_tokens=5000))
        >>> outcome.status
        <RunStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        registry: StepRegistry,
        store: RunStore,
        llm_client: LlmClient | None = None,
        structured_caller: StructuredOutputCaller | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            registry: Registry resolving step rows to definitions.
            store: Persistence for runs, steps and artifacts.
            llm_client: Language model client, wrapped in a default StructuredOutputCaller.
            structured_caller: Explicit caller, takes precedence over ``llm_client``.
            clock: Millisecond clock shared by step timing and budget checks.
        """
        self.registry = registry
        self.store = store
        if structured_caller is None and llm_client is not None:
            structured_caller = StructuredOutputCaller(llm_client)
        self.structured_caller = structured_caller
        self._clock = clock
        self._active: set[str] = set()

    @classmethod
    def from_settings(
        cls,
        registry: StepRegistry,
        store: RunStore,
        llm_client: LlmClient | None = None,
        settings: StepflowSettings | None = None,
    ) -> ExecutionEngine:
        """Build an engine whose llm retries follow ``settings``."""
        settings = settings or StepflowSettings()
        caller = StructuredOutputCaller.from_settings(llm_client, settings) if llm_client is not None else None
        return cls(registry, store, structured_caller=caller)

    def is_active(self, run_id: str) -> bool:
        """Whether this engine is currently executing ``run_id``."""
        return run_id in self._active

    async def run_workflow(
        self,
        workflow_id: str,
        input: Any = None,
        budgets: Budgets | None = None,
        run_id: str | None = None,
    ) -> RunOutcome:
        """Execute a workflow, creating its run row when ``run_id`` is omitted.

        Args:
            workflow_id: The workflow to execute.
            input: Run input seeding the state bag.
            budgets: Soft ceilings checked after every step.
            run_id: An existing, unfinished run row to execute instead of creating one.

        Returns:
            The finalized RunOutcome.

        Raises:
            RunNotFoundError: If ``run_id`` does not exist.
            RunAlreadyFinalizedError: If ``run_id`` is already completed or failed.
            RunAlreadyActiveError: If ``run_id`` is already executing in this engine.
        """
        if run_id is None:
            run = await self.store.create_run_if_missing(workflow_id, input=input, budgets=budgets)
            run_id = run.id
        return await self._execute(run_id, budgets, source=(workflow_id, input))

    async def execute_run(self, run_id: str, budgets: Budgets | None = None) -> RunOutcome:
        """Execute a stored run with the input and budgets recorded on it.

        Args:
            run_id: The run to execute.
            budgets: Overrides the budgets stored on the run.

        Returns:
            The finalized RunOutcome.

        Raises:
            RunNotFoundError: If the run does not exist.
            RunAlreadyFinalizedError: If the run is already completed or failed.
            RunAlreadyActiveError: If the run is already executing in this engine.
        """
        return await self._execute(run_id, budgets)

    async def _execute(
        self,
        run_id: str,
        budgets: Budgets | None,
        source: tuple[str, Any] | None = None,
    ) -> RunOutcome:
        # the claim precedes the status read
        if run_id in self._active:
            raise RunAlreadyActiveError(run_id)
        self._active.add(run_id)
        try:
            run = await self.store.get_run(run_id)
            if run is None:
                raise RunNotFoundError(run_id)
            if run.status.is_terminal:
                raise RunAlreadyFinalizedError(run_id, run.status)
            workflow_id, run_input = source or (run.workflow_id, run.input)
            return await self._drive(run_id, workflow_id, run_input, budgets or run.budgets or Budgets())
        finally:
            self._active.discard(run_id)

    async def _drive(self, run_id: str, workflow_id: str, run_input: Any, budgets: Budgets) -> RunOutcome:
        context = ExecutionContext.create(run_id, workflow_id, run_input, budgets, clock=self._clock)
        metrics = RunMetrics()
        current: StepSpec | None = None

        await self.store.update_run(run_id, RunStatus.RUNNING, started_at=_utcnow())
        logger.info("Starting run", extra={"run_id": run_id, "workflow_id": workflow_id})

        try:
            steps = self._validate_steps(await self.store.load_workflow_steps(workflow_id))
            for step in steps:
                current = step
                await self._execute_step(step, context, metrics)
                self._check_budgets(context, metrics)
        except (StepExecutionError, BudgetExceededError) as e:
            return await self._finalize(context, metrics, RunStatus.FAILED, str(e), e.tag)
        except Exception as e:
            logger.exception(
                "Run crashed",
                extra={"run_id": run_id, "step_id": current.id if current else None},
            )
            where = f" at step {current.id}" if current else ""
            return await self._finalize(
                context, metrics, RunStatus.FAILED, f"Execution failed{where}: {e}", ErrorTag.EXECUTION_FAILED
            )

        return await self._finalize(context, metrics, RunStatus.COMPLETED)

    def _validate_steps(self, steps: list[StepSpec]) -> list[StepSpec]:
        errors: list[str] = []
        normalized: list[StepSpec] = []

        duplicates = sorted(order for order, count in Counter(step.order for step in steps).items() if count > 1)
        errors.extend(f"Duplicate step order {order}" for order in duplicates)

        for step in steps:
            try:
                normalized.append(replace(step, type=StepKind(step.type)))
            except ValueError:
                errors.append(f"Step {step.id} has unknown type '{step.type}'")

        if errors:
            raise WorkflowValidationError(errors)
        return sorted(normalized, key=lambda step: step.order)

    def _check_budgets(self, context: ExecutionContext, metrics: RunMetrics) -> None:
        budgets = context.budgets
        elapsed = context.elapsed_ms()
        if budgets.max_ms is not None and elapsed > budgets.max_ms:
            raise BudgetExceededError(f"elapsed {elapsed:.0f}ms > max_ms {budgets.max_ms}")
        if budgets.max_tokens is not None and metrics.total_tokens > budgets.max_tokens:
            raise BudgetExceededError(f"tokens {metrics.total_tokens} > max_tokens {budgets.max_tokens}")

    async def _execute_step(self, step: StepSpec, context: ExecutionContext, metrics: RunMetrics) -> None:
        started_at = _utcnow()
        started_ms = context.now()
        step_log = {"run_id": context.run_id, "step_id": step.id, "step": step.key, "kind": str(step.type)}
        logger.info("Executing step", extra=step_log)

        await self._persist(context, step, ArtifactKind.INPUT, snapshot(context.state), StepStatus.RUNNING, started_at)

        try:
            usage = await self._dispatch(step, context)
        except _StructuredOutputExhausted as e:
            outcome = e.outcome
            step_metrics = StepMetrics(
                key=step.key,
                kind=step.type,
                ms=context.now() - started_ms,
                attempts=outcome.attempts,
                error_tag=ErrorTag.SCHEMA_PARSE_FAILED,
                discarded_tokens=outcome.discarded_tokens,
                discarded_cost_usd=outcome.discarded_cost_usd,
            )
            metrics.add(step_metrics)
            await self._persist(
                context,
                step,
                ArtifactKind.LOG,
                {"attempts": outcome.attempts, "cause": str(e.failure.cause)},
                StepStatus.FAILED,
                started_at,
                metrics=self._artifact_metrics(step_metrics),
                error=e.failure.to_error(),
            )
            logger.error("Step execution failed", extra={**step_log, "error": str(e.error)})
            raise StepExecutionError(step.id, step.key, e.error) from e.error
        except Exception as e:
            failure = StepExecutionError(step.id, step.key, e)
            step_metrics = StepMetrics(
                key=step.key, kind=step.type, ms=context.now() - started_ms, error_tag=failure.tag
            )
            metrics.add(step_metrics)
            await self._persist(
                context,
                step,
                ArtifactKind.OUTPUT,
                None,
                StepStatus.FAILED,
                started_at,
                metrics=self._artifact_metrics(step_metrics),
                error={"message": str(e), "tag": failure.tag},
            )
            logger.error("Step execution failed", extra={**step_log, "error": str(e), "tag": failure.tag})
            raise failure from e

        context.merge(usage.output)
        step_metrics = StepMetrics(
            key=step.key,
            kind=step.type,
            ms=context.now() - started_ms,
            tokens=usage.tokens,
            cost_estimate_usd=usage.cost_usd,
            attempts=usage.attempts,
            discarded_tokens=usage.discarded_tokens,
            discarded_cost_usd=usage.discarded_cost_usd,
        )
        metrics.add(step_metrics)
        await self._persist(
            context,
            step,
            ArtifactKind.OUTPUT,
            snapshot(usage.output),
            StepStatus.SUCCEEDED,
            started_at,
            metrics=self._artifact_metrics(step_metrics),
        )
        logger.info(
            "Step execution completed",
            extra={**step_log, "ms": step_metrics.ms, "tokens": step_metrics.tokens, "attempts": usage.attempts},
        )

    async def _dispatch(self, step: StepSpec, context: ExecutionContext) -> _StepUsage:
        match step.type:
            case StepKind.TOOL:
                return await self._run_tool(step, context)
            case StepKind.LLM:
                return await self._run_llm(step, context)
            case StepKind.BRANCH:
                return await self._run_branch(step, context)
        raise WorkflowValidationError([f"Step {step.id} has unknown type '{step.type}'"])

    async def _run_tool(self, step: StepSpec, context: ExecutionContext) -> _StepUsage:
        definition = self.registry.get_tool(step.name)
        payload = self._read_input(step, definition.input_schema, context)

        result = await _resolve(definition.run(payload, context))
        tokens, cost = 0, 0.0
        if isinstance(result, ToolResult):
            tokens, cost, result = result.tokens, result.cost_usd, result.output

        output = self._validate_output(step, definition.output_schema, result)
        return _StepUsage(output=output.model_dump(mode="json", by_alias=True), tokens=tokens, cost_usd=cost)

    async def _run_llm(self, step: StepSpec, context: ExecutionContext) -> _StepUsage:
        definition = self.registry.get_llm(step.name)
        if self.structured_caller is None:
            msg = f"llm step '{step.name}' requires a language model client"
            raise StepflowError(msg)
        payload = self._read_input(step, definition.input_schema, context)

        outcome = await self.structured_caller.call(definition, payload, context)
        if not outcome.ok:
            raise _StructuredOutputExhausted(outcome)

        value = cast("BaseModel", outcome.value)
        return _StepUsage(
            output=value.model_dump(mode="json", by_alias=True),
            tokens=outcome.tokens,
            cost_usd=outcome.cost_usd,
            attempts=outcome.attempts,
            discarded_tokens=outcome.discarded_tokens,
            discarded_cost_usd=outcome.discarded_cost_usd,
        )

    async def _run_branch(self, step: StepSpec, context: ExecutionContext) -> _StepUsage:
        definition = self.registry.get_branch(step.name)
        payload = self._read_input(step, definition.input_schema, context)
        label = await _resolve(definition.choose_next(payload, context))
        return _StepUsage(output={"next": label})

    @staticmethod
    def _read_input(step: StepSpec, schema: type[BaseModel], context: ExecutionContext) -> BaseModel:
        try:
            return context.view(schema)
        except ValidationError as e:
            raise _validation_failure(step, "input", e) from e

    @staticmethod
    def _validate_output(step: StepSpec, schema: type[BaseModel], data: Any) -> BaseModel:
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True)
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise _validation_failure(step, "output", e) from e

    @staticmethod
    def _artifact_metrics(step_metrics: StepMetrics) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ms": step_metrics.ms,
            "tokens": step_metrics.tokens,
            "cost_estimate_usd": step_metrics.cost_estimate_usd,
            "attempts": step_metrics.attempts,
        }
        if step_metrics.discarded_tokens or step_metrics.discarded_cost_usd:
            data["discarded_tokens"] = step_metrics.discarded_tokens
            data["discarded_cost_usd"] = step_metrics.discarded_cost_usd
        return data

    async def _persist(
        self,
        context: ExecutionContext,
        step: StepSpec,
        kind: ArtifactKind,
        data: Any,
        status: StepStatus,
        started_at: datetime,
        *,
        metrics: dict[str, Any] | None = None,
        error: dict[str, Any] | None = None,
    ) -> None:
        await self.store.persist_artifact(
            ArtifactRecord(
                run_id=context.run_id,
                step_id=step.id,
                kind=kind,
                data=data,
                status=status,
                metrics=metrics or {},
                error=error,
                started_at=started_at,
                finished_at=None if kind == ArtifactKind.INPUT else _utcnow(),
            )
        )

    async def _finalize(
        self,
        context: ExecutionContext,
        metrics: RunMetrics,
        status: RunStatus,
        failure_reason: str | None = None,
        error_tag: str | None = None,
    ) -> RunOutcome:
        metrics.total_ms = context.elapsed_ms()
        last_error = {"message": failure_reason, "tag": str(error_tag)} if failure_reason else None

        await self.store.update_run(
            context.run_id,
            status,
            metrics=metrics.to_dict(),
            finished_at=_utcnow(),
            failure_reason=failure_reason,
            last_error=last_error,
        )

        extra = {
            "run_id": context.run_id,
            "workflow_id": context.workflow_id,
            "total_ms": metrics.total_ms,
            "total_tokens": metrics.total_tokens,
        }
        if status == RunStatus.COMPLETED:
            logger.info("Run completed", extra=extra)
        else:
            logger.warning("Run failed", extra={**extra, "reason": failure_reason, "tag": error_tag})

        return RunOutcome(
            run_id=context.run_id,
            status=status,
            metrics=metrics,
            state=dict(context.state),
            failure_reason=failure_reason,
            error_tag=str(error_tag) if error_tag else None,
        )
