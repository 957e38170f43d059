"""Shared error helpers and codes."""

from __future__ import annotations

from typing import Any

from starlette.responses import JSONResponse


class ErrorCode:
    INVALID_JSON = "invalid_json"
    MISSING_FIELD = "missing_field"
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UPSTREAM_FAILURE = "upstream_failure"
    MISCONFIGURED = "server_misconfigured"
    INTERNAL = "internal_error"


def error_response(
    code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
        }
    }
    if details:
        payload["error"]["details"] = details
    return JSONResponse(payload, status_code=status_code)


class ApiError(Exception):
    """Handler-level failure carrying its HTTP status and error code."""

    status_code = 500
    code = ErrorCode.INTERNAL

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> JSONResponse:
        return error_response(self.code, self.message, self.status_code, self.details)


class BadRequest(ApiError):
    status_code = 400
    code = ErrorCode.BAD_REQUEST


class InvalidJson(BadRequest):
    code = ErrorCode.INVALID_JSON


class MissingField(BadRequest):
    code = ErrorCode.MISSING_FIELD


class Unauthorized(ApiError):
    status_code = 401
    code = ErrorCode.UNAUTHORIZED


class Forbidden(ApiError):
    status_code = 403
    code = ErrorCode.FORBIDDEN


class NotFound(ApiError):
    status_code = 404
    code = ErrorCode.NOT_FOUND


class Conflict(ApiError):
    status_code = 409
    code = ErrorCode.CONFLICT


class UpstreamFailure(ApiError):
    """The identity provider or data store failed."""

    status_code = 500
    code = ErrorCode.UPSTREAM_FAILURE


class ServerMisconfigured(ApiError):
    """Operator error, e.g. a missing shared secret."""

    status_code = 500
    code = ErrorCode.MISCONFIGURED
