"""Exception handling for stepflow web endpoints.

This module maps the stepflow exception hierarchy onto Litestar HTTP exceptions so
controllers can let domain errors propagate.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from litestar import MediaType, Response
from litestar.exceptions import HTTPException, NotFoundException, ValidationException
from litestar.status_codes import HTTP_409_CONFLICT, HTTP_500_INTERNAL_SERVER_ERROR

from litestar_stepflow.exceptions import (
    InvalidRunStateError,
    RetryLimitExceededError,
    RunAlreadyActiveError,
    RunAlreadyFinalizedError,
    RunNotFoundError,
    StepflowError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)

if TYPE_CHECKING:  # pragma: no cover
    from litestar import Request

__all__ = ["stepflow_exception_handler", "to_http_exception"]

logger = logging.getLogger(__name__)


def to_http_exception(exc: StepflowError) -> HTTPException:
    """Translate a stepflow error into the matching Litestar HTTP exception.

    Args:
        exc: The domain error.

    Returns:
        404 for missing workflows and runs, 400 for invalid workflow definitions,
        409 for run state conflicts and 500 for anything else.
    """
    match exc:
        case WorkflowNotFoundError() | RunNotFoundError():
            return NotFoundException(detail=str(exc))
        case WorkflowValidationError():
            return ValidationException(detail=str(exc), extra=list(exc.errors))
        case (
            RetryLimitExceededError() | InvalidRunStateError() | RunAlreadyFinalizedError() | RunAlreadyActiveError()
        ):
            return HTTPException(status_code=HTTP_409_CONFLICT, detail=str(exc))
        case _:
            return HTTPException(status_code=HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def stepflow_exception_handler(request: Request, exc: StepflowError) -> Response:
    """Render a stepflow error the way Litestar renders HTTP exceptions.

    Args:
        request: The current request.
        exc: The raised domain error.

    Returns:
        A JSON response with ``status_code``, ``detail`` and optional ``extra`` keys.
    """
    http_exc = to_http_exception(exc)
    if http_exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("Unhandled stepflow error", extra={"path": request.url.path, "error": str(exc)})

    content: dict[str, object] = {"status_code": http_exc.status_code, "detail": http_exc.detail}
    if http_exc.extra:
        content["extra"] = http_exc.extra
    return Response(content=content, status_code=http_exc.status_code, media_type=MediaType.JSON)
