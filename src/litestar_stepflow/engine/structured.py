"""Structured output caller for llm steps.

This module wraps a language model client so that an llm step always yields a value
validated against its output schema, or an explicit failure after a bounded number
of attempts.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

from pydantic import BaseModel, ValidationError

from litestar_stepflow.core.types import ErrorTag
from litestar_stepflow.engine.retry import RetryPolicy, retry_async
from litestar_stepflow.exceptions import SchemaParseError

if TYPE_CHECKING:
    from litestar_stepflow.config import StepflowSettings
    from litestar_stepflow.core.context import ExecutionContext
    from litestar_stepflow.core.definitions import LlmDefinition
    from litestar_stepflow.core.models import Completion
    from litestar_stepflow.core.protocols import LlmClient

__all__ = ["StructuredFailure", "StructuredOutcome", "StructuredOutputCaller", "parse_structured"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StructuredFailure:
    """Why structured output could not be obtained.

    Attributes:
        tag: Always ``SCHEMA_PARSE_FAILED``.
        cause: The last JSON or validation error.
        attempts: Attempts made.
    """

    cause: Exception
    attempts: int
    tag: str = ErrorTag.SCHEMA_PARSE_FAILED

    def to_error(self) -> dict[str, Any]:
        """Serialize as a ``{"message", "tag"}`` error mapping."""
        return {"message": str(SchemaParseError(self.attempts, self.cause)), "tag": str(self.tag)}


@dataclass(frozen=True)
class StructuredOutcome:
    """Result of a structured output call.

    On success ``value`` holds the validated model and ``tokens``/``cost_usd`` describe
    the successful attempt only. Usage of rejected attempts is reported separately in
    ``discarded_tokens``/``discarded_cost_usd``.
    """

    value: BaseModel | None
    attempts: int
    tokens: int = 0
    cost_usd: float = 0.0
    discarded_tokens: int = 0
    discarded_cost_usd: float = 0.0
    failure: StructuredFailure | None = None

    @property
    def ok(self) -> bool:
        """Whether a validated value was obtained."""
        return self.failure is None

    def unwrap(self) -> BaseModel:
        """Return the validated value.

        Raises:
            SchemaParseError: If every attempt failed.
        """
        if self.failure is not None:
            raise SchemaParseError(self.failure.attempts, self.failure.cause) from self.failure.cause
        return cast("BaseModel", self.value)


def parse_structured(text: str, schema: type[BaseModel]) -> BaseModel:
    """Parse raw completion text as JSON and validate it against ``schema``.

    Raises:
        json.JSONDecodeError: If the text is not JSON.
        pydantic.ValidationError: If the JSON does not satisfy the schema.
    """
    return schema.model_validate(json.loads(text))


class StructuredOutputCaller:
    """Call a language model until its response validates, with bounded retries.

    Only malformed JSON and schema violations are retried here, with a deterministic
    exponential backoff. Client errors are not schema failures: they propagate, or are
    retried first by ``transport_retry`` when a policy is configured.

    Args:
        client: The language model client.
        max_retries: Extra attempts after the first one.
        initial_delay_ms: Sleep before the second attempt, doubled for every later one.
        sleep: Coroutine function taking seconds, injectable for tests.
        transport_retry: Optional policy for transient client errors.
    """

    def __init__(
        self,
        client: LlmClient,
        max_retries: int = 2,
        initial_delay_ms: float = 200,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        transport_retry: RetryPolicy | None = None,
    ) -> None:
        self.client = client
        self.max_retries = max_retries
        self.initial_delay_ms = initial_delay_ms
        self.transport_retry = transport_retry
        self._sleep = sleep

    @classmethod
    def from_settings(cls, client: LlmClient, settings: StepflowSettings) -> StructuredOutputCaller:
        """Build a caller from the ``llm_*`` and ``retry_*`` settings."""
        return cls(
            client,
            max_retries=settings.llm_max_retries,
            initial_delay_ms=settings.llm_initial_delay_ms,
            transport_retry=RetryPolicy.from_settings(settings),
        )

    async def call(self, definition: LlmDefinition, payload: BaseModel, context: ExecutionContext) -> StructuredOutcome:
        """Render the prompt, call the model and validate its response.

        Args:
            definition: The llm step definition.
            payload: The step input, already validated against ``definition.input_schema``.
            context: The run's execution context.

        Returns:
            A StructuredOutcome holding either the value or a StructuredFailure.
        """
        prompt = definition.prompt(payload, context)
        total = self.max_retries + 1
        discarded_tokens = 0
        discarded_cost = 0.0
        last_error: Exception | None = None

        for attempt in range(1, total + 1):
            completion = await self._complete(prompt, context)
            tokens = completion.tokens
            if tokens is None:
                tokens = context.count_tokens(prompt + completion.text)

            try:
                value = parse_structured(completion.text, definition.output_schema)
            except (json.JSONDecodeError, ValidationError) as e:
                last_error = e
                discarded_tokens += tokens
                discarded_cost += completion.cost_usd
                logger.warning(
                    "Structured output rejected",
                    extra={
                        "run_id": context.run_id,
                        "llm": definition.name,
                        "attempt": attempt,
                        "max_attempts": total,
                        "error": str(e),
                    },
                )
                if attempt < total:
                    await self._sleep(self.initial_delay_ms * 2 ** (attempt - 1) / 1000)
                continue

            return StructuredOutcome(
                value=value,
                attempts=attempt,
                tokens=tokens,
                cost_usd=completion.cost_usd,
                discarded_tokens=discarded_tokens,
                discarded_cost_usd=discarded_cost,
            )

        logger.error(
            "Structured output exhausted",
            extra={"run_id": context.run_id, "llm": definition.name, "attempts": total},
        )
        return StructuredOutcome(
            value=None,
            attempts=total,
            discarded_tokens=discarded_tokens,
            discarded_cost_usd=discarded_cost,
            failure=StructuredFailure(cause=cast("Exception", last_error), attempts=total),
        )

    async def _complete(self, prompt: str, context: ExecutionContext) -> Completion:
        if self.transport_retry is None:
            return await self.client.complete(prompt)
        return await retry_async(
            lambda: self.client.complete(prompt),
            self.transport_retry,
            sleep=self._sleep,
            request_id=context.run_id,
        )
