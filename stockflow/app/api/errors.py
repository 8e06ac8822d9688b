from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stockflow.services.errors import (
    ConflictError,
    DomainError,
    InsufficientStock,
    InvariantViolation,
    NotFoundError,
    StorageUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

# code HTTP par type d'erreur métier (premier match dans l'ordre du MRO)
STATUS_BY_ERROR: dict[type[DomainError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    InsufficientStock: 409,
    InvariantViolation: 500,
    StorageUnavailable: 503,
}


def status_for(exc: DomainError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 400


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.code, exc.details)
        else:
            logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc)

        return JSONResponse(content={"error": exc.to_dict()}, status_code=status_code)
