from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import InsufficientCreditsError, LightlisterError, MalformedInputError


logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Map service errors onto JSON responses."""

    @app.exception_handler(InsufficientCreditsError)
    async def insufficient_credits_handler(
        request: Request, exc: InsufficientCreditsError
    ) -> JSONResponse:
        logger.info(
            "Insufficient credits",
            extra={"path": request.url.path, "details": exc.details},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "reason": exc.code, **exc.details},
        )

    @app.exception_handler(LightlisterError)
    async def lightlister_error_handler(
        request: Request, exc: LightlisterError
    ) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "Request failed with %s: %s",
            exc.code,
            exc.message,
            extra={"path": request.url.path, "method": request.method},
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_response_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {"loc": [str(part) for part in e["loc"]], "msg": e["msg"]}
            for e in exc.errors()
        ]
        error = MalformedInputError("invalid request body", details={"errors": errors})
        logger.warning(
            "Malformed request",
            extra={"path": request.url.path, "method": request.method},
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error.to_response_dict(),
        )
