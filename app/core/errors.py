"""Error taxonomy and the uniform JSON error envelope.

Every failure that crosses the HTTP boundary is an ``ApiError`` tagged with
one ``ErrorKind``. Handlers branch on the kind, not on exception subclasses.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Closed set of error kinds with their default status and machine code."""

    VALIDATION = "VALIDATION_ERROR"
    AUTH = "UNAUTHORIZED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "INVALID_TOKEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL = "INTERNAL_ERROR"

    @property
    def code(self) -> str:
        return self.value

    @property
    def status_code(self) -> int:
        return _DEFAULT_STATUS[self]


_DEFAULT_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTH: 401,
    ErrorKind.TOKEN_EXPIRED: 401,
    ErrorKind.TOKEN_INVALID: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL: 500,
}

_STATUS_TO_KIND = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.AUTH,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMITED,
}


class ApiError(Exception):
    """A failure with a kind, a human message and an HTTP status."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: Optional[int] = None,
        errors: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code or kind.status_code
        self.errors = errors
        self.headers = headers

    @property
    def code(self) -> str:
        return self.kind.code

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "message": self.message,
            "code": self.code,
        }
        if self.errors is not None:
            payload["errors"] = self.errors
        return payload

    def __repr__(self) -> str:
        return f"<ApiError(kind={self.kind.name}, status={self.status_code}, message={self.message!r})>"


def validation_error(message: str, errors: Any = None) -> ApiError:
    return ApiError(ErrorKind.VALIDATION, message, errors=errors)


def auth_error(message: str, status_code: Optional[int] = None) -> ApiError:
    return ApiError(ErrorKind.AUTH, message, status_code=status_code)


def not_found_error(message: str) -> ApiError:
    return ApiError(ErrorKind.NOT_FOUND, message)


def conflict_error(message: str) -> ApiError:
    return ApiError(ErrorKind.CONFLICT, message)


def internal_error(message: str = "Internal Server Error", errors: Any = None) -> ApiError:
    return ApiError(ErrorKind.INTERNAL, message, errors=errors)


def error_response(exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(),
        headers=exc.headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers that render every known failure as the error envelope."""

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        log_fn = logger.error if exc.kind is ErrorKind.INTERNAL else logger.info
        log_fn(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg")}
            for err in exc.errors()
        ]
        return error_response(validation_error("Invalid request payload", errors=details))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        kind = _STATUS_TO_KIND.get(exc.status_code, ErrorKind.INTERNAL)
        return error_response(
            ApiError(
                kind,
                str(exc.detail),
                status_code=exc.status_code,
                headers=getattr(exc, "headers", None),
            )
        )
