"""
API Error Handling
==================
Standard error codes, the `ApiError` exception raised by routes and
services, and the FastAPI exception handlers that render every failure as

    {"success": false, "error": {"code": ..., "message": ..., "details"?: ...}}

Successful payloads use `success_response()` -> {"success": true, "data": ...}.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

Details = Dict[str, Union[str, List[str]]]


class ErrorCodes:
    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FORMAT = "INVALID_FORMAT"

    # Authentication errors (401)
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"

    # Authorization errors (403)
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"

    # Conflict errors (409)
    CONFLICT = "CONFLICT"
    ALREADY_EXISTS = "ALREADY_EXISTS"

    # Rate limiting (429)
    RATE_LIMITED = "RATE_LIMITED"

    # Server errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"


class ApiError(Exception):
    """An error that maps directly onto an API error response."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        details: Optional[Details] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers or {}

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content=self.to_dict(),
            headers=self.headers or None,
        )


def success_response(data: Any, status_code: int = 200, meta: Optional[Dict[str, Any]] = None) -> JSONResponse:
    """Create a standardized success response."""
    content: Dict[str, Any] = {"success": True, "data": jsonable_encoder(data)}
    if meta:
        content["meta"] = jsonable_encoder(meta)
    return JSONResponse(status_code=status_code, content=content)


# ── Error helpers ───────────────────────────────────────────────────────────

def validation_error(message: str, details: Optional[Details] = None) -> ApiError:
    return ApiError(ErrorCodes.VALIDATION_ERROR, message, 400, details)


def missing_field_error(field: str) -> ApiError:
    return ApiError(
        ErrorCodes.MISSING_FIELD,
        f"{field} is required",
        400,
        {field: f"{field} is required"},
    )


def invalid_format_error(field: str, expected: str) -> ApiError:
    return ApiError(
        ErrorCodes.INVALID_FORMAT,
        f"Invalid {field} format",
        400,
        {field: f"Expected {expected}"},
    )


def unauthorized_error(message: str = "Authentication required") -> ApiError:
    return ApiError(ErrorCodes.UNAUTHORIZED, message, 401)


def forbidden_error(
    message: str = "You do not have permission to perform this action",
) -> ApiError:
    return ApiError(ErrorCodes.FORBIDDEN, message, 403)


def not_found_error(resource: str = "Resource") -> ApiError:
    return ApiError(ErrorCodes.NOT_FOUND, f"{resource} not found", 404)


def conflict_error(message: str) -> ApiError:
    return ApiError(ErrorCodes.CONFLICT, message, 409)


def already_exists_error(resource: str) -> ApiError:
    return ApiError(ErrorCodes.ALREADY_EXISTS, f"{resource} already exists", 409)


def rate_limited_error(
    retry_after: Optional[int] = None,
    message: str = "Too many requests. Please try again later.",
    headers: Optional[Dict[str, str]] = None,
) -> ApiError:
    merged = dict(headers or {})
    if retry_after:
        merged["Retry-After"] = str(retry_after)
    return ApiError(ErrorCodes.RATE_LIMITED, message, 429, headers=merged)


def internal_error(message: str = "An unexpected error occurred") -> ApiError:
    return ApiError(ErrorCodes.INTERNAL_ERROR, message, 500)


def database_error(message: str = "Database operation failed") -> ApiError:
    return ApiError(ErrorCodes.DATABASE_ERROR, message, 500)


def external_api_error(service: str) -> ApiError:
    return ApiError(
        ErrorCodes.EXTERNAL_API_ERROR,
        f"Failed to communicate with {service}",
        500,
    )


# ── Parsing helpers ─────────────────────────────────────────────────────────

def safe_json_parse(text: Optional[str], fallback: Any) -> Any:
    """Parse JSON, returning `fallback` on any decode error."""
    if text is None:
        return fallback
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return fallback


def constrain_pagination(limit: int, max_limit: int = 100) -> int:
    """Clamp a page size into [1, max_limit]."""
    return min(max(1, limit), max_limit)


def constrain_offset(offset: int) -> int:
    """Clamp an offset to be non-negative."""
    return max(0, offset)


# ── FastAPI wiring ──────────────────────────────────────────────────────────

def _validation_details(exc: RequestValidationError) -> Details:
    details: Dict[str, List[str]] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "header")]
        field = ".".join(loc) or "body"
        details.setdefault(field, []).append(err.get("msg", "Invalid value"))
    return details


def register_exception_handlers(app: FastAPI) -> None:
    """Attach envelope-rendering handlers to the app."""

    @app.exception_handler(ApiError)
    async def _api_error_handler(request: Request, exc: ApiError):
        if exc.status_code >= 500:
            logger.error(f"[API] {request.method} {request.url.path} -> {exc.code}: {exc.message}")
        return exc.to_response()

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError):
        details = _validation_details(exc)
        first = next(iter(details.values()), ["Validation failed"])
        message = first[0] if isinstance(first, list) else first
        return validation_error(message, details).to_response()

    @app.exception_handler(SQLAlchemyError)
    async def _database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"[DB] {request.method} {request.url.path} failed: {exc}")
        return database_error().to_response()
