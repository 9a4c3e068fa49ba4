"""Web API for litestar-stepflow.

The REST controllers are mounted automatically by StepflowPlugin when
``enable_api=True``. Domain errors are rendered through ``stepflow_exception_handler``.
"""

from __future__ import annotations

from litestar_stepflow.web.controllers import (
    HealthController,
    ProcessorController,
    RunController,
    WorkflowController,
)
from litestar_stepflow.web.exceptions import stepflow_exception_handler, to_http_exception

__all__ = [
    "HealthController",
    "ProcessorController",
    "RunController",
    "WorkflowController",
    "stepflow_exception_handler",
    "to_http_exception",
]
