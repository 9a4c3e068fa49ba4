"""Tests for the structured output caller."""

from __future__ import annotations

import json

import pytest
from pydantic import BaseModel

from litestar_stepflow.core.context import ExecutionContext
from litestar_stepflow.core.definitions import LlmDefinition
from litestar_stepflow.core.models import Completion
from litestar_stepflow.engine.retry import RetryPolicy
from litestar_stepflow.engine.structured import StructuredOutputCaller, parse_structured
from litestar_stepflow.exceptions import RetryExhaustedError, SchemaParseError
from tests.conftest import (
    CLASSIFY_JSON,
    ClassifyInput,
    ClassifyOutput,
    ScriptedLlmClient,
    SleepRecorder,
    classify_prompt,
)


class Unavailable(Exception):
    status = 503


@pytest.fixture
def definition() -> LlmDefinition:
    return LlmDefinition(
        name="classify",
        input_schema=ClassifyInput,
        output_schema=ClassifyOutput,
        prompt=classify_prompt,
    )


@pytest.fixture
def context() -> ExecutionContext:
    return ExecutionContext.create("run-1", "wf-1", {"echoed": "hello"})


@pytest.mark.unit
class TestParseStructured:
    """Tests for parse_structured."""

    def test_valid_json(self) -> None:
        value = parse_structured(CLASSIFY_JSON, ClassifyOutput)

        assert value == ClassifyOutput(label="greeting", confidence=0.9)

    def test_invalid_json(self) -> None:
        with pytest.raises(json.JSONDecodeError):
            parse_structured("not json", ClassifyOutput)


@pytest.mark.unit
class TestStructuredOutputCaller:
    """Tests for StructuredOutputCaller."""

    async def test_first_valid_attempt_wins(
        self,
        definition: LlmDefinition,
        context: ExecutionContext,
        sleep_recorder: SleepRecorder,
    ) -> None:
        client = ScriptedLlmClient(CLASSIFY_JSON, "never used")
        caller = StructuredOutputCaller(client, sleep=sleep_recorder)

        outcome = await caller.call(definition, ClassifyInput(echoed="hello"), context)

        assert outcome.ok
        assert outcome.attempts == 1
        assert outcome.tokens == 10
        assert outcome.cost_usd == pytest.approx(0.01)
        assert client.prompts == ["Classify: hello"]
        assert sleep_recorder.delays == []

    async def test_retries_until_valid(
        self,
        definition: LlmDefinition,
        context: ExecutionContext,
        sleep_recorder: SleepRecorder,
    ) -> None:
        client = ScriptedLlmClient("not json", json.dumps({"label": "x", "confidence": 7}), CLASSIFY_JSON)
        caller = StructuredOutputCaller(client, max_retries=2, initial_delay_ms=200, sleep=sleep_recorder)

        outcome = await caller.call(definition, ClassifyInput(echoed="hello"), context)

        assert outcome.ok
        assert outcome.attempts == 3
        assert outcome.unwrap().label == "greeting"
        assert outcome.tokens == 10
        assert outcome.discarded_tokens == 20
        assert outcome.discarded_cost_usd == pytest.approx(0.02)
        assert sleep_recorder.delays == [0.2, 0.4]

    async def test_exhaustion_returns_failure(
        self,
        definition: LlmDefinition,
        context: ExecutionContext,
        sleep_recorder: SleepRecorder,
    ) -> None:
        client = ScriptedLlmClient("{}")
        caller = StructuredOutputCaller(client, max_retries=2, sleep=sleep_recorder)

        outcome = await caller.call(definition, ClassifyInput(echoed="hello"), context)

        assert not outcome.ok
        assert outcome.value is None
        assert outcome.attempts == 3
        assert len(client.prompts) == 3
        assert outcome.failure is not None
        assert outcome.failure.tag == "SCHEMA_PARSE_FAILED"
        assert outcome.failure.to_error()["tag"] == "SCHEMA_PARSE_FAILED"
        with pytest.raises(SchemaParseError) as exc_info:
            outcome.unwrap()
        assert exc_info.value.attempts == 3

    async def test_zero_retries_makes_one_attempt(
        self,
        definition: LlmDefinition,
        context: ExecutionContext,
        sleep_recorder: SleepRecorder,
    ) -> None:
        client = ScriptedLlmClient("nope")
        caller = StructuredOutputCaller(client, max_retries=0, sleep=sleep_recorder)

        outcome = await caller.call(definition, ClassifyInput(echoed="hello"), context)

        assert outcome.attempts == 1
        assert not outcome.ok
        assert sleep_recorder.delays == []

    async def test_missing_usage_is_estimated(self, definition: LlmDefinition, context: ExecutionContext) -> None:
        client = ScriptedLlmClient(Completion(text=CLASSIFY_JSON))
        caller = StructuredOutputCaller(client)

        outcome = await caller.call(definition, ClassifyInput(echoed="hello"), context)

        assert outcome.tokens == context.count_tokens("Classify: hello" + CLASSIFY_JSON)

    async def test_client_errors_propagate(self, definition: LlmDefinition, context: ExecutionContext) -> None:
        client = ScriptedLlmClient(ConnectionError("down"))
        caller = StructuredOutputCaller(client)

        with pytest.raises(ConnectionError):
            await caller.call(definition, ClassifyInput(echoed="hello"), context)

    async def test_transport_retry_recovers_transient_errors(
        self,
        definition: LlmDefinition,
        context: ExecutionContext,
        sleep_recorder: SleepRecorder,
    ) -> None:
        client = ScriptedLlmClient(Unavailable("busy"), CLASSIFY_JSON)
        caller = StructuredOutputCaller(
            client,
            sleep=sleep_recorder,
            transport_retry=RetryPolicy(max_retries=1, base_delay_ms=50, jitter_factor=0.0),
        )

        outcome = await caller.call(definition, ClassifyInput(echoed="hello"), context)

        assert outcome.ok
        assert outcome.attempts == 1
        assert sleep_recorder.delays == [0.05]

    async def test_transport_retry_exhaustion(
        self,
        definition: LlmDefinition,
        context: ExecutionContext,
        sleep_recorder: SleepRecorder,
    ) -> None:
        client = ScriptedLlmClient(Unavailable("busy"))
        caller = StructuredOutputCaller(
            client,
            sleep=sleep_recorder,
            transport_retry=RetryPolicy(max_retries=1, base_delay_ms=50, jitter_factor=0.0),
        )

        with pytest.raises(RetryExhaustedError):
            await caller.call(definition, ClassifyInput(echoed="hello"), context)


class Nested(BaseModel):
    items: list[int]


@pytest.mark.unit
def test_parse_structured_nested_schema() -> None:
    assert parse_structured('{"items": [1, 2]}', Nested).items == [1, 2]
