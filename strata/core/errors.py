import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StrataError(Exception):
    """Base class for errors raised by the service layer.

    The message is user facing and is returned verbatim as ``detail``.
    """

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailed(StrataError):
    status_code = 400


class PermissionDenied(StrataError):
    status_code = 403

    def __init__(self, message: str = "Anda tidak mempunyai kebenaran untuk tindakan ini.") -> None:
        super().__init__(message)


class NotFound(StrataError):
    status_code = 404


class StateConflict(StrataError):
    status_code = 409


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StrataError)
    async def strata_error_handler(request: Request, exc: StrataError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "path": str(request.url.path)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Validation failed.",
                "errors": jsonable_encoder(exc.errors()),
                "path": str(request.url.path),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        payload: Dict[str, Any] = {"detail": exc.detail or "HTTP error.", "path": str(request.url.path)}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error.",
                "path": str(request.url.path),
            },
        )
