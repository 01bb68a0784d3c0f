"""
Map the rewards error taxonomy onto HTTP responses:
{"error": <code>, "message": <text>}.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from fleet_rewards.core.errors import (
    ConflictError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
    ResourceExhaustedError,
    RetryableError,
    RewardsError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (PreconditionFailedError, 422),
    (InvalidArgumentError, 400),
    (InvalidStateError, 409),
    (PermissionDeniedError, 403),
    (ResourceExhaustedError, 503),
    (RetryableError, 503),
)


def status_for(exc: RewardsError) -> int:
    for error_cls, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 400


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RewardsError)
    async def rewards_error_handler(request: Request, exc: RewardsError):
        status_code = status_for(exc)
        headers = {"Retry-After": "5"} if status_code == 503 else None
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.code, "message": exc.message},
            headers=headers,
        )

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("storage_error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=503,
            content={"error": RetryableError.code, "message": "temporary storage failure"},
            headers={"Retry-After": "5"},
        )
