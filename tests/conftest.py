"""Shared test fixtures for litestar-stepflow test suite."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pytest
from pydantic import BaseModel, Field

from litestar_stepflow.core.definitions import LlmDefinition, ToolDefinition
from litestar_stepflow.core.models import Completion, StepSpec
from litestar_stepflow.core.types import StepKind
from litestar_stepflow.engine.executor import ExecutionEngine
from litestar_stepflow.engine.memory import InMemoryStore
from litestar_stepflow.engine.structured import StructuredOutputCaller
from litestar_stepflow.workflows.defaults import EchoInput, EchoOutput, create_default_registry

if TYPE_CHECKING:
    from litestar_stepflow.core.context import ExecutionContext
    from litestar_stepflow.engine.registry import StepRegistry


class FakeClock:
    """Millisecond clock advanced by hand, or by ``step_ms`` on every reading."""

    def __init__(self, start: float = 0.0, step_ms: float = 0.0) -> None:
        self.now = start
        self.step_ms = step_ms

    def __call__(self) -> float:
        value = self.now
        self.now += self.step_ms
        return value

    def advance(self, ms: float) -> None:
        self.now += ms


class ScriptedLlmClient:
    """LLM client replaying canned responses and recording prompts.

    Each response is a string, a Completion, or an exception to raise. The last
    response is repeated once the script runs out.
    """

    def __init__(self, *responses: str | Completion | Exception, tokens: int | None = 10, cost_usd: float = 0.01):
        self.responses = list(responses)
        self.tokens = tokens
        self.cost_usd = cost_usd
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> Completion:
        self.prompts.append(prompt)
        response = self.responses[min(len(self.prompts), len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, Completion):
            return response
        return Completion(text=response, tokens=self.tokens, cost_usd=self.cost_usd)


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` recording requested delays in seconds."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class ClassifyInput(BaseModel):
    echoed: str


class ClassifyOutput(BaseModel):
    label: str
    confidence: float = Field(ge=0, le=1)


def classify_prompt(data: ClassifyInput, context: ExecutionContext) -> str:
    return f"Classify: {data.echoed}"


CLASSIFY_JSON = json.dumps({"label": "greeting", "confidence": 0.9})


class FailInput(BaseModel):
    pass


class FailOutput(BaseModel):
    never: str


def explode(data: FailInput, context: ExecutionContext) -> dict[str, Any]:
    msg = "tool exploded"
    raise RuntimeError(msg)


async def slow_echo(data: EchoInput, context: ExecutionContext) -> dict[str, str]:
    await asyncio.sleep(0.02)
    return {"echoed": data.message}


SLOW_ECHO = ToolDefinition(name="slowEcho", input_schema=EchoInput, output_schema=EchoOutput, run=slow_echo)
"""Echo tool that yields to the event loop, for overlapping execution tests."""


def make_steps(*names: tuple[StepKind, str]) -> list[StepSpec]:
    """Build step rows named ``s<order>`` for ``(kind, name)`` pairs."""
    return [
        StepSpec(id=f"s{order}", order=order, type=kind, config={"name": name})
        for order, (kind, name) in enumerate(names)
    ]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def step_registry() -> StepRegistry:
    """Default registry extended with ``classify`` (llm), a failing ``explode`` tool and ``slowEcho``."""
    registry = create_default_registry()
    registry.register(
        LlmDefinition(name="classify", input_schema=ClassifyInput, output_schema=ClassifyOutput, prompt=classify_prompt)
    )
    registry.register(ToolDefinition(name="explode", input_schema=FailInput, output_schema=FailOutput, run=explode))
    registry.register(SLOW_ECHO)
    return registry


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def llm_client() -> ScriptedLlmClient:
    return ScriptedLlmClient(CLASSIFY_JSON)


@pytest.fixture
def make_engine(
    step_registry: StepRegistry,
    memory_store: InMemoryStore,
    sleep_recorder: SleepRecorder,
) -> Callable[..., ExecutionEngine]:
    """Factory building an engine over the shared registry and store without real sleeps."""

    def _make(client: Any = None, clock: Callable[[], float] | None = None, max_retries: int = 2) -> ExecutionEngine:
        caller = StructuredOutputCaller(client, max_retries=max_retries, sleep=sleep_recorder) if client else None
        return ExecutionEngine(step_registry, memory_store, structured_caller=caller, clock=clock)

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., ExecutionEngine], llm_client: ScriptedLlmClient) -> ExecutionEngine:
    return make_engine(llm_client)
