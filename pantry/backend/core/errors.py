"""Typed failures returned by the auth and quota services.

Services never raise for expected outcomes (bad credentials, replayed
refresh tokens, exhausted quotas). They return a ``Failure`` and the HTTP
layer raises ``to_http_exception(failure)``; the handlers installed by
``register_error_handlers`` render it as
``{"detail": ..., "error": ..., ["limit_kind", "limit"]}``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

log = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_TOKEN = "invalid_token"
    INVALID_REFRESH = "invalid_refresh"
    QUOTA_EXCEEDED = "quota_exceeded"
    MONTHLY_LIMIT_EXCEEDED = "monthly_limit_exceeded"
    USER_NOT_FOUND = "user_not_found"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    INTERNAL = "internal"


STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_REFRESH: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.QUOTA_EXCEEDED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorKind.MONTHLY_LIMIT_EXCEEDED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorKind.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

NOT_AUTHENTICATED = "Not authenticated"


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str
    limit_kind: Optional[str] = None
    limit: Optional[int] = None

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def as_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "error": self.kind.value}
        if self.limit_kind is not None:
            body["limit_kind"] = self.limit_kind
            body["limit"] = self.limit
        return body


def quota_exceeded(limit_kind: str, limit: int) -> Failure:
    return Failure(
        kind=ErrorKind.QUOTA_EXCEEDED,
        message=f"Usage limit reached for {limit_kind} ({limit} per period)",
        limit_kind=limit_kind,
        limit=limit,
    )


def monthly_limit_exceeded(limit_kind: str, limit: int) -> Failure:
    return Failure(
        kind=ErrorKind.MONTHLY_LIMIT_EXCEEDED,
        message=f"Monthly limit reached for {limit_kind} ({limit})",
        limit_kind=limit_kind,
        limit=limit,
    )


class FailureHTTPException(HTTPException):
    def __init__(self, failure: Failure, headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(status_code=failure.status_code, detail=failure.message, headers=headers)
        self.failure = failure


def to_http_exception(failure: Failure) -> FailureHTTPException:
    headers = None
    if failure.kind in (ErrorKind.INVALID_TOKEN, ErrorKind.INVALID_CREDENTIALS):
        headers = {"WWW-Authenticate": "Bearer"}
    return FailureHTTPException(failure, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FailureHTTPException)
    async def _failure(request: Request, exc: FailureHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.failure.as_body(),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def _validation(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
        body = Failure(ErrorKind.VALIDATION_ERROR, "Missing or invalid fields").as_body()
        body["fields"] = [f for f in fields if f]
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)

    @app.exception_handler(Exception)
    async def _internal(request: Request, exc: Exception):
        log.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=Failure(ErrorKind.INTERNAL, "Internal server error").as_body(),
        )
