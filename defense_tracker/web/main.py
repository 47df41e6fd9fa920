from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from defense_tracker.infrastructure.config import get_settings
from defense_tracker.infrastructure.exceptions import (
    ConcurrencyConflictError,
    DatabaseError,
    DefenseTrackerError,
    IntegrityError,
    RubricError,
    ValidationError,
    WorkflowError,
    log_error_details,
)
from defense_tracker.infrastructure.logging import clear_context
from defense_tracker.web.routes import api

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "UnknownStudent": status.HTTP_404_NOT_FOUND,
    "UnknownDefence": status.HTTP_404_NOT_FOUND,
    "UnknownNotification": status.HTTP_404_NOT_FOUND,
    "ApprovalNotAuthorized": status.HTTP_403_FORBIDDEN,
    "NoRubricPublished": status.HTTP_409_CONFLICT,
    "RubricLocked": status.HTTP_409_CONFLICT,
    "ConfigurationError": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: DefenseTrackerError) -> int:
    """HTTP status for an application error, looked up by its ``code`` first."""
    if exc.code in STATUS_BY_CODE:
        return STATUS_BY_CODE[exc.code]
    if isinstance(exc, (ValidationError, RubricError)):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, (WorkflowError, ConcurrencyConflictError, IntegrityError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, DatabaseError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_400_BAD_REQUEST


def create_application() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app.title,
        version=settings.app.version,
        debug=settings.app.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api.router)

    @app.exception_handler(DefenseTrackerError)
    async def defense_tracker_error_handler(request: Request, exc: DefenseTrackerError) -> JSONResponse:
        code = status_for(exc)
        if code >= 500:
            logger.error(
                "%s %s failed: %s",
                request.method,
                request.url.path,
                log_error_details(exc, {"path": request.url.path}),
            )
        else:
            logger.info("%s %s rejected with %s: %s", request.method, request.url.path, exc.code, exc)
        clear_context()
        return JSONResponse(
            status_code=code,
            content={"code": exc.code, "detail": exc.user_message, "details": _jsonable(exc.details)},
        )

    return app


def _jsonable(details: dict) -> dict:
    return {key: value if isinstance(value, (int, float, bool, list, type(None))) else str(value)
            for key, value in details.items()}


app = create_application()
