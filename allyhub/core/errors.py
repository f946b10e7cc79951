"""Application error taxonomy and its HTTP rendering.

Services raise AppError subclasses close to the boundary where bad input or
a missing entity is detected. Storage errors are not wrapped: they propagate
as SQLAlchemyError and are turned into one generic response here, after the
full detail has been logged server-side.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code: int = 500
    error: str = "internal_error"
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthorizedError(AppError):
    status_code = 401
    error = "unauthorized"
    default_message = "API key missing or invalid"


class ForbiddenError(AppError):
    status_code = 403
    error = "forbidden"
    default_message = "Not permitted to perform this action"


class NotFoundError(AppError):
    status_code = 404
    error = "not_found"
    default_message = "Not found"


class BadRequestError(AppError):
    status_code = 400
    error = "bad_request"
    default_message = "Bad request"


def _body(error: str, message: str) -> dict:
    return {"error": error, "message": message}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("app_error path=%s err=%s", request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=_body(exc.error, exc.message), headers=headers)


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("database_error path=%s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=_body("database_error", "A database error occurred"))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, database_error_handler)  # type: ignore[arg-type]


__all__ = [
    "AppError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "BadRequestError",
    "install_error_handlers",
]
