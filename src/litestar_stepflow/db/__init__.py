"""Database persistence layer for litestar-stepflow.

This module provides SQLAlchemy models, advanced-alchemy repositories and the
SQLAlchemyStore implementing the engine's store protocols.
"""

from __future__ import annotations

from litestar_stepflow.db.models import ArtifactModel, RunModel, StepModel, WorkflowModel
from litestar_stepflow.db.repositories import (
    ArtifactRepository,
    RunRepository,
    StepRepository,
    WorkflowRepository,
)
from litestar_stepflow.db.store import SQLAlchemyStore

__all__ = [
    "ArtifactModel",
    "ArtifactRepository",
    "RunModel",
    "RunRepository",
    "SQLAlchemyStore",
    "StepModel",
    "StepRepository",
    "WorkflowModel",
    "WorkflowRepository",
]
