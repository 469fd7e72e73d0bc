"""Failure values and the HTTP boundary that renders them.

Services report expected failures by returning a :class:`Failure` instead of
raising. Routes hand those to :func:`failure_response`, which is the only
place a failure becomes an HTTP status and JSON body.
"""
from dataclasses import dataclass
from enum import Enum
import logging
from typing import TypeVar, Union

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL_ERROR"

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self]


STATUS_CODES = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
}


@dataclass(frozen=True)
class Failure:
    """A classified failure carried back to the request boundary."""

    kind: ErrorKind
    message: str
    reason: str | None = None

    @property
    def status_code(self) -> int:
        return self.kind.status_code


Result = Union[T, Failure]


class FailureError(Exception):
    """Raised by dependencies, which cannot return a response themselves."""

    def __init__(self, failure: Failure):
        super().__init__(failure.message)
        self.failure = failure


def error_response(
    kind: ErrorKind,
    message: str,
    reason: str | None = None,
    details=None,
    status: int | None = None,
) -> JSONResponse:
    status = status or kind.status_code
    payload = {"status": status, "error": kind.value, "message": message, "success": False}
    if reason:
        payload["reason"] = reason
    if details:
        payload["details"] = jsonable_encoder(details)
    headers = {"WWW-Authenticate": "Bearer"} if kind is ErrorKind.UNAUTHORIZED else None
    return JSONResponse(status_code=status, content=payload, headers=headers)


def failure_response(failure: Failure) -> JSONResponse:
    """Render a failure as the uniform error envelope."""
    return error_response(failure.kind, failure.message, reason=failure.reason)


def validation_details(errors) -> list[dict]:
    """Keep only where and why a field failed; submitted values are never echoed."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in errors
    ]


def _kind_for_status(status_code: int) -> ErrorKind:
    for kind, code in STATUS_CODES.items():
        if code == status_code:
            return kind
    return ErrorKind.INTERNAL if status_code >= 500 else ErrorKind.BAD_REQUEST


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FailureError)
    async def handle_failure(request: Request, exc: FailureError):
        return failure_response(exc.failure)

    # Malformed or missing request fields are client errors
    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error_response(ErrorKind.BAD_REQUEST, "Invalid input", details=validation_details(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return error_response(
            _kind_for_status(exc.status_code),
            str(exc.detail),
            status=exc.status_code,
        )

    # 500 Internal Error (catch-all)
    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled exception", exc_info=exc)
        return error_response(ErrorKind.INTERNAL, "An unexpected error occurred")
