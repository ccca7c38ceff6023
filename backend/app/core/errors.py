"""
Centralised error handling — exception hierarchy, error envelope and the
single error normalizer every failure goes through.

Provides:
    • Application exception classes carrying an explicit HTTP status, the
      public API for route handlers: BadRequestError (400),
      UnauthorizedError (401), ForbiddenError (403), NotFoundError (404),
      ConflictError (409), PayloadTooLargeError (413),
      UnprocessableEntityError (422), RateLimitError (429) and
      RequestValidationFailed (400 with field details)
    • ErrorEnvelope / ValidationProblem response models
    • classify_error() — one explicit pass turning any exception into
      ValidationFailure | HttpFailure | UnknownFailure
    • ErrorNormalizer — logs the error, then renders the envelope
    • register_error_handlers() — wires the normalizer into FastAPI

Envelope shape (every error response):
    {"error": "Not Found", "message": "Resource not found"}
    {"error": "Validation Error", "message": "Request validation failed",
     "details": [{"field": "/email", "message": "...", "provided": ...}]}

Usage:
    from backend.app.core.errors import NotFoundError

    raise NotFoundError("User not found")
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from backend.app.core.logging_config import StructuredLogger
from backend.app.core import request_info

GENERIC_SERVER_MESSAGE = "Something went wrong"
DEFAULT_SERVER_MESSAGE = "Internal server error"
VALIDATION_CATEGORY = "Validation Error"
VALIDATION_MESSAGE = "Request validation failed"

# status -> (category, default message); None means "use the error message as is"
HTTP_ERROR_CATEGORIES: Dict[int, Tuple[str, Optional[str]]] = {
    400: ("Bad Request", None),
    401: ("Unauthorized", "Authentication required"),
    403: ("Forbidden", "Access denied"),
    404: ("Not Found", "Resource not found"),
    409: ("Conflict", "Resource conflict"),
    422: ("Unprocessable Entity", "Request could not be processed"),
    429: ("Too Many Requests", "Rate limit exceeded"),
}
SERVER_ERROR_CATEGORY = "Internal Server Error"

# First element of a FastAPI validation loc names where the value came from
_REQUEST_LOCATIONS = frozenset({"body", "query", "path", "header", "cookie"})


# ═══════════════════════════════════════════════════════════════════════════
# Response models
# ═══════════════════════════════════════════════════════════════════════════

class ValidationProblem(BaseModel):
    """One field-level constraint violation."""
    field: str = Field(..., description="Path-like locator into the payload", examples=["/email"])
    message: str = Field(..., examples=["Field required"])
    provided: Optional[Any] = Field(None, description="The offending value")
    expected: Optional[Any] = Field(None, description="Allowed values")


class ErrorEnvelope(BaseModel):
    """JSON body of every error response."""
    error: str = Field(..., examples=["Not Found"])
    message: str = Field(..., examples=["Resource not found"])
    details: Optional[List[ValidationProblem]] = None

    def to_dict(self) -> Dict[str, Any]:
        # exclude_unset keeps an explicit `provided: null` but drops absent keys
        return self.model_dump(exclude_unset=True)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class AppError(Exception):
    """Base exception for errors raised deliberately by route handlers."""

    status_code: int = 500

    def __init__(
        self,
        message: str = "",
        *,
        status_code: Optional[int] = None,
        validation: Optional[Sequence[ValidationProblem]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.validation = list(validation or [])
        self.headers = dict(headers or {})


class BadRequestError(AppError):
    status_code = 400


class UnauthorizedError(AppError):
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class PayloadTooLargeError(AppError):
    status_code = 413


class UnprocessableEntityError(AppError):
    status_code = 422


class RateLimitError(AppError):
    """Rate limit exceeded (429)."""

    status_code = 429

    def __init__(self, message: str = "", *, retry_after: int = 60, **kwargs: Any):
        headers = {"Retry-After": str(retry_after), **kwargs.pop("headers", {})}
        super().__init__(message, headers=headers, **kwargs)
        self.retry_after = retry_after


class RequestValidationFailed(AppError):
    """Field-level validation failure raised from handler code (always 400)."""

    status_code = 400

    def __init__(self, problems: Sequence[ValidationProblem], message: str = VALIDATION_MESSAGE):
        super().__init__(message, validation=problems)


# ═══════════════════════════════════════════════════════════════════════════
# Classification
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ValidationFailure:
    problems: Tuple[ValidationProblem, ...]


@dataclass(frozen=True)
class HttpFailure:
    status_code: int
    message: str


@dataclass(frozen=True)
class UnknownFailure:
    message: str


Failure = Union[ValidationFailure, HttpFailure, UnknownFailure]


def problem_from_pydantic(err: Mapping[str, Any]) -> ValidationProblem:
    """Map one entry of pydantic's ``errors()`` list to a ValidationProblem."""
    loc = tuple(err.get("loc") or ())
    if loc and loc[0] in _REQUEST_LOCATIONS:
        source, path = str(loc[0]), loc[1:]
    else:
        source, path = "", loc
    field = "/" + "/".join(str(p) for p in path) if path else (source or "/")

    data: Dict[str, Any] = {"field": field, "message": str(err.get("msg") or "Invalid value")}
    if err.get("type") != "missing" and "input" in err:
        data["provided"] = _jsonable(err["input"])
    ctx = err.get("ctx")
    if isinstance(ctx, Mapping) and "expected" in ctx:
        data["expected"] = _jsonable(ctx["expected"])
    return ValidationProblem(**data)


def _jsonable(value: Any) -> Any:
    try:
        return jsonable_encoder(value)
    except Exception:
        return repr(value)


def _validation_problems(exc: BaseException) -> List[ValidationProblem]:
    if isinstance(exc, (RequestValidationError, PydanticValidationError)):
        return [problem_from_pydantic(e) for e in exc.errors()]
    if isinstance(exc, AppError):
        return list(exc.validation)
    return []


def error_status_code(exc: BaseException) -> Optional[int]:
    code = getattr(exc, "status_code", None)
    if isinstance(code, int) and not isinstance(code, bool):
        return code
    return None


def _message(exc: BaseException) -> str:
    if isinstance(exc, StarletteHTTPException):
        detail = exc.detail
        try:
            # Starlette fills a missing detail with the stock reason phrase
            if detail == HTTPStatus(exc.status_code).phrase:
                return ""
        except ValueError:
            pass
        return detail if isinstance(detail, str) else str(detail or "")
    if isinstance(exc, AppError):
        return str(exc.message) if exc.message else ""
    return str(exc)


def classify_error(exc: BaseException) -> Failure:
    """Ordered, first match wins: validation, then explicit status, then unknown."""
    problems = _validation_problems(exc)
    if problems:
        return ValidationFailure(tuple(problems))
    message = _message(exc)
    status = error_status_code(exc)
    if status is not None:
        return HttpFailure(status, message)
    return UnknownFailure(message)


# ═══════════════════════════════════════════════════════════════════════════
# Normalizer
# ═══════════════════════════════════════════════════════════════════════════

class ErrorNormalizer:
    """
    The single boundary turning any exception into a logged JSON envelope.

    ``is_production`` masks internal error text behind a fixed message;
    the full message and stack still go to the logger.
    """

    def __init__(self, logger: StructuredLogger, *, is_production: bool = False) -> None:
        self.logger = logger
        self.is_production = is_production

    def render(self, failure: Failure) -> Tuple[int, ErrorEnvelope]:
        if isinstance(failure, ValidationFailure):
            return 400, ErrorEnvelope(
                error=VALIDATION_CATEGORY,
                message=VALIDATION_MESSAGE,
                details=list(failure.problems),
            )
        if isinstance(failure, HttpFailure) and failure.status_code in HTTP_ERROR_CATEGORIES:
            category, default = HTTP_ERROR_CATEGORIES[failure.status_code]
            message = failure.message if default is None else (failure.message or default)
            return failure.status_code, ErrorEnvelope(error=category, message=message)

        status = 500
        if isinstance(failure, HttpFailure) and 400 <= failure.status_code <= 599:
            status = failure.status_code
        if self.is_production:
            message = GENERIC_SERVER_MESSAGE
        else:
            message = failure.message or DEFAULT_SERVER_MESSAGE
        return status, ErrorEnvelope(error=SERVER_ERROR_CATEGORY, message=message)

    def build_response(self, request: Request, exc: BaseException) -> JSONResponse:
        try:
            failure: Failure = classify_error(exc)
        except Exception:
            failure = UnknownFailure("")

        self._log(request, exc, failure)

        try:
            status, envelope = self.render(failure)
        except Exception:
            status, envelope = self.render(UnknownFailure(""))
        try:
            request.state.error = exc
        except Exception:
            pass
        return JSONResponse(
            status_code=status,
            content=envelope.to_dict(),
            headers=_response_headers(exc),
        )

    async def handle_exception(self, request: Request, exc: Exception) -> JSONResponse:
        """FastAPI exception-handler entry point."""
        return self.build_response(request, exc)

    def _log(self, request: Request, exc: BaseException, failure: Failure) -> None:
        try:
            problems = failure.problems if isinstance(failure, ValidationFailure) else ()
            self.logger.error(
                "Request error",
                requestId=request_info.request_id(request),
                error={
                    "message": safe_message(exc),
                    "stack": error_stack(exc),
                    "statusCode": error_status_code(exc),
                    "validation": [p.model_dump(exclude_unset=True) for p in problems] or None,
                },
                request={
                    "method": request.method,
                    "url": request_info.request_url(request),
                    "params": request_info.path_params(request),
                    "query": request_info.query_params(request),
                    "body": getattr(exc, "body", None),
                    "ip": request_info.client_ip(request),
                    "userAgent": request.headers.get("user-agent"),
                },
            )
        except Exception:
            # A broken request object must not stop the envelope going out
            self.logger.error("Request error", error={"message": safe_message(exc)})


def safe_message(exc: BaseException) -> str:
    try:
        return str(exc)
    except Exception:
        return type(exc).__name__


def error_stack(exc: BaseException) -> Optional[str]:
    if exc.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def _response_headers(exc: BaseException) -> Optional[Dict[str, str]]:
    headers = getattr(exc, "headers", None)
    if isinstance(headers, Mapping) and headers:
        return {str(k): str(v) for k, v in headers.items()}
    return None


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI wiring
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI, normalizer: ErrorNormalizer) -> None:
    """Route every error source through the one normalizer."""
    for exc_class in (
        RequestValidationError,
        PydanticValidationError,
        StarletteHTTPException,
        AppError,
        Exception,
    ):
        app.add_exception_handler(exc_class, normalizer.handle_exception)
