"""Translate domain exceptions into HTTP responses."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from fastapi.responses import JSONResponse

from teamcrm.exceptions import (
    AuthenticationError,
    AuthorizationError,
    InvalidRecordError,
    NotFoundError,
    StorageError,
    TeamCRMError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = structlog.get_logger(__name__)

_STATUS: dict[type[TeamCRMError], int] = {
    AuthenticationError: 401,
    AuthorizationError: 403,
    NotFoundError: 404,
    StorageError: 409,
    InvalidRecordError: 422,
}


def status_for(exc: TeamCRMError) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in _STATUS:
            return _STATUS[exc_type]  # type: ignore[index]
    return 500


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(TeamCRMError)
    async def teamcrm_error_handler(request: Request, exc: TeamCRMError) -> JSONResponse:
        status_code = status_for(exc)
        log = logger.error if status_code >= 500 else logger.info
        log(
            "request_rejected",
            path=request.url.path,
            status=status_code,
            error=type(exc).__name__,
            detail=str(exc),
        )
        headers = {"WWW-Authenticate": "Cookie"} if status_code == 401 else None
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc) or "Request failed"},
            headers=headers,
        )
