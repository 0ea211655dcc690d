"""
Estimatix - Domain exception -> HTTP response mapping.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from estimatix.domain.exceptions import (
    BusinessRuleError,
    EstimatixError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first
STATUS_CODES: list[tuple[type[EstimatixError], int]] = [
    (ValidationError, 422),
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (BusinessRuleError, 409),
    (ExternalServiceError, 502),
]


def status_code_for(error: EstimatixError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_body(error: EstimatixError) -> dict:
    details = {k: v for k, v in error.details.items() if v is not None}
    return {"error": error.message, "details": details}


async def estimatix_error_handler(request: Request, exc: EstimatixError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc}")
    return JSONResponse(status_code=status_code, content=error_body(exc))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EstimatixError, estimatix_error_handler)
