"""
DAO Governance - API Error Handlers

Maps domain failures, request validation errors and database availability
errors onto JSON responses.
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from neo4j.exceptions import ServiceUnavailable, SessionExpired, TransientError
from starlette.exceptions import HTTPException as StarletteHTTPException

from daogov.services.results import ErrorKind, GovernanceFailure

logger = structlog.get_logger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.VOTING_NOT_ACTIVE: status.HTTP_409_CONFLICT,
    ErrorKind.VOTING_NOT_CONCLUDED: status.HTTP_409_CONFLICT,
    ErrorKind.DUPLICATE_VOTE: status.HTTP_409_CONFLICT,
    ErrorKind.HAS_VOTES: status.HTTP_409_CONFLICT,
    ErrorKind.THRESHOLD_NOT_MET: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.QUORUM_NOT_REACHED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INSUFFICIENT_FUNDS: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(kind: ErrorKind) -> int:
    return STATUS_BY_KIND.get(kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def _database_unavailable(
    request: Request, event: str, message: str, retry_after: int, exc: Exception
) -> JSONResponse:
    logger.warning(event, path=str(request.url.path), error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": message,
            "path": str(request.url.path),
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach every API exception handler to ``app``."""

    @app.exception_handler(GovernanceFailure)
    async def governance_failure_handler(request: Request, exc: GovernanceFailure) -> JSONResponse:
        status_code = status_for(exc.kind)
        logger.info(
            "governance_request_rejected",
            path=str(request.url.path),
            code=exc.kind.value,
            status_code=status_code,
        )
        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.error.message,
                "code": exc.kind.value,
                "details": jsonable_encoder(exc.error.details),
                "status_code": status_code,
                "path": str(request.url.path),
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.detail,
                "status_code": exc.status_code,
                "path": str(request.url.path),
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Submitted values ('input') and internal context ('ctx') are left out
        sanitized_errors = [
            {
                "loc": error.get("loc", []),
                "type": error.get("type", "unknown"),
                "msg": error.get("msg", "Validation failed"),
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "Validation error",
                "details": sanitized_errors,
                "path": str(request.url.path),
            },
        )

    @app.exception_handler(ServiceUnavailable)
    async def database_unavailable_handler(
        request: Request, exc: ServiceUnavailable
    ) -> JSONResponse:
        return _database_unavailable(
            request, "database_unavailable", "Database temporarily unavailable", 5, exc
        )

    @app.exception_handler(SessionExpired)
    async def database_session_expired_handler(
        request: Request, exc: SessionExpired
    ) -> JSONResponse:
        return _database_unavailable(
            request, "database_session_expired", "Database session expired, please retry", 1, exc
        )

    @app.exception_handler(TransientError)
    async def database_transient_error_handler(
        request: Request, exc: TransientError
    ) -> JSONResponse:
        return _database_unavailable(
            request,
            "database_transient_error",
            "Database temporarily unavailable, please retry",
            2,
            exc,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_exception",
            path=str(request.url.path),
            path_params=dict(request.path_params),
            caller_id=getattr(request.state, "caller_id", None),
            correlation_id=getattr(request.state, "correlation_id", None),
            error=str(exc),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "code": ErrorKind.INTERNAL_ERROR.value,
                "path": str(request.url.path),
            },
        )
