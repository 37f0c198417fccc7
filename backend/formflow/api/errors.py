"""Translation of service errors into HTTP errors."""

import logging

from fastapi import HTTPException

from formflow.errors import (
    FormflowError,
    GraphConfirmationRequired,
    GraphValidationError,
    NotFoundError,
    ResponseValidationError,
    TransientFetchError,
    WorkflowStatusError,
)

logger = logging.getLogger(__name__)


def to_http_exception(error: FormflowError) -> HTTPException:
    """Map a formflow error onto the HTTP status the API reports for it."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=error.message)

    if isinstance(error, ResponseValidationError):
        return HTTPException(
            status_code=422,
            detail={"message": error.message, "errors": error.errors},
        )

    if isinstance(error, GraphValidationError):
        return HTTPException(
            status_code=422,
            detail={
                "message": error.message,
                "validation": error.result.model_dump(by_alias=True),
            },
        )

    if isinstance(error, GraphConfirmationRequired):
        return HTTPException(
            status_code=409,
            detail={
                "message": "Graph has warnings; resend with confirm_warnings=true",
                "validation": error.result.model_dump(by_alias=True),
            },
        )

    if isinstance(error, WorkflowStatusError):
        return HTTPException(status_code=409, detail=error.message)

    if isinstance(error, TransientFetchError):
        return HTTPException(status_code=503, detail="Storage temporarily unavailable")

    logger.error(f"Unhandled formflow error: {error}")
    return HTTPException(status_code=500, detail=error.message)
