"""Default steps available to every application."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

from litestar_stepflow.core.definitions import BranchDefinition, ToolDefinition
from litestar_stepflow.engine.registry import StepRegistry

if TYPE_CHECKING:
    from litestar_stepflow.core.context import ExecutionContext

__all__ = ["EchoInput", "EchoOutput", "FlagInput", "create_default_registry"]


class EchoInput(BaseModel):
    message: str


class EchoOutput(BaseModel):
    echoed: str


class FlagInput(BaseModel):
    flag: bool


async def _echo(data: EchoInput, context: ExecutionContext) -> dict[str, str]:
    return {"echoed": data.message}


def _by_flag(data: FlagInput, context: ExecutionContext) -> str:
    return "A" if data.flag else "B"


def create_default_registry() -> StepRegistry:
    """Create a registry holding the ``echo`` tool and the ``byFlag`` branch.

    Returns:
        A new StepRegistry.
    """
    registry = StepRegistry()
    registry.register(
        ToolDefinition(
            name="echo",
            input_schema=EchoInput,
            output_schema=EchoOutput,
            run=_echo,
            description="Copy ``message`` to ``echoed``.",
        )
    )
    registry.register(
        BranchDefinition(
            name="byFlag",
            input_schema=FlagInput,
            choose_next=_by_flag,
            description="Choose ``A`` when ``flag`` is set, otherwise ``B``.",
        )
    )
    return registry
