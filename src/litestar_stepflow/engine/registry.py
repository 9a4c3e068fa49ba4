"""Step registry for managing step definitions.

This module provides a registry for storing and retrieving tool, llm and branch
definitions by kind and name.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from litestar_stepflow.core.types import StepKind
from litestar_stepflow.exceptions import StepNotFoundError

if TYPE_CHECKING:
    from litestar_stepflow.core.definitions import BranchDefinition, LlmDefinition, StepDefinition, ToolDefinition

__all__ = ["StepRegistry"]

logger = logging.getLogger(__name__)


class StepRegistry:
    """Registry for storing and retrieving step definitions.

    Definitions live in one namespace per kind, so a tool and an llm step may share
    a name. Registering a name twice in the same kind overwrites the earlier
    definition.

    Example:
        >>> registry = StepRegistry()
        >>> registry.register(echo).register(by_flag)
        >>> registry.get_tool("echo").name
        'echo'
    """

    def __init__(self) -> None:
        """Initialize an empty step registry."""
        self._definitions: dict[StepKind, dict[str, StepDefinition]] = {kind: {} for kind in StepKind}

    def register(self, definition: StepDefinition) -> StepRegistry:
        """Register a step definition under its kind and name.

        Args:
            definition: The definition to register.

        Returns:
            The registry, for chaining.
        """
        namespace = self._definitions[definition.kind]
        if definition.name in namespace:
            logger.debug("Overwriting %s step '%s'", definition.kind, definition.name)
        namespace[definition.name] = definition
        return self

    def get_tool(self, name: str) -> ToolDefinition:
        """Retrieve a tool definition.

        Raises:
            StepNotFoundError: If no tool is registered under ``name``.
        """
        return cast("ToolDefinition", self._lookup(StepKind.TOOL, name))

    def get_llm(self, name: str) -> LlmDefinition:
        """Retrieve an llm definition.

        Raises:
            StepNotFoundError: If no llm step is registered under ``name``.
        """
        return cast("LlmDefinition", self._lookup(StepKind.LLM, name))

    def get_branch(self, name: str) -> BranchDefinition:
        """Retrieve a branch definition.

        Raises:
            StepNotFoundError: If no branch is registered under ``name``.
        """
        return cast("BranchDefinition", self._lookup(StepKind.BRANCH, name))

    def get(self, kind: StepKind | str, name: str) -> StepDefinition:
        """Retrieve a definition by kind and name.

        Args:
            kind: The step kind.
            name: The definition name.

        Returns:
            The registered definition, whose kind always equals ``kind``.

        Raises:
            StepNotFoundError: If nothing is registered, or ``kind`` is not a known kind.
        """
        try:
            step_kind = StepKind(kind)
        except ValueError as e:
            raise StepNotFoundError(name, kind) from e

        match step_kind:
            case StepKind.TOOL:
                return self.get_tool(name)
            case StepKind.LLM:
                return self.get_llm(name)
            case StepKind.BRANCH:
                return self.get_branch(name)

    def has(self, kind: StepKind | str, name: str) -> bool:
        """Check whether a definition is registered."""
        try:
            return name in self._definitions[StepKind(kind)]
        except ValueError:
            return False

    def names(self, kind: StepKind | str) -> list[str]:
        """List the registered names of one kind, sorted."""
        return sorted(self._definitions[StepKind(kind)])

    def _lookup(self, kind: StepKind, name: str) -> StepDefinition:
        try:
            return self._definitions[kind][name]
        except KeyError as e:
            raise StepNotFoundError(name, kind) from e
