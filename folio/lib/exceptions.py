"""Exception handlers turning workflow errors into JSON responses."""

import logging

from litestar import Request, Response
from litestar.exceptions import HTTPException
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from folio.lib import observability
from folio.workflow.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
    WorkflowError,
)

logger = logging.getLogger(__name__)

WORKFLOW_STATUS_CODES: dict[type[WorkflowError], int] = {
    NotFoundError: HTTP_404_NOT_FOUND,
    PermissionDeniedError: HTTP_403_FORBIDDEN,
    InvalidTransitionError: HTTP_409_CONFLICT,
    ValidationError: HTTP_400_BAD_REQUEST,
    ConflictError: HTTP_409_CONFLICT,
    PersistenceError: HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(exc: WorkflowError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in WORKFLOW_STATUS_CODES:
            return WORKFLOW_STATUS_CODES[error_type]
    return HTTP_500_INTERNAL_SERVER_ERROR


def workflow_exception_handler(request: Request, exc: WorkflowError) -> Response:
    """Render a workflow error as ``{"status_code", "detail", "error"}``."""
    status_code = status_code_for(exc)
    if exc.retryable:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)

    return Response(
        content={"status_code": status_code, "detail": exc.message, "error": exc.kind},
        status_code=status_code,
        media_type="application/json",
    )


def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    status_code = exc.status_code
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    return Response(
        content={"status_code": status_code, "detail": detail},
        status_code=status_code,
        media_type="application/json",
    )


def internal_server_error_handler(request: Request, exc: Exception) -> Response:
    """Handle unexpected exceptions without leaking their details."""
    if not observability.exception(
        "Unhandled exception on {method} {path}",
        method=request.method,
        path=request.url.path,
    ):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    return Response(
        content={"status_code": status_code, "detail": "Internal Server Error"},
        status_code=status_code,
        media_type="application/json",
    )
