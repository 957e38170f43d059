"""Shared plumbing for resource handlers."""

from __future__ import annotations

import functools
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from dairyops.api.schemas import RequestBody, is_valid_uuid
from dairyops.common.errors import (
    ApiError,
    BadRequest,
    Conflict,
    ErrorCode,
    InvalidJson,
    MissingField,
    NotFound,
    UpstreamFailure,
    error_response,
)
from dairyops.common.logging import get_logger
from dairyops.identity import AdminIdentity, CallerIdentity, IdentityResolver
from dairyops.store import CircuitBreakerOpen, StoreClient, StoreError

logger = get_logger(__name__)

B = TypeVar("B", bound=RequestBody)
Handler = Callable[[Any, Request], Awaitable[JSONResponse]]


def guarded(func: Handler) -> Handler:
    """Convert every handler failure into a JSON error body."""

    @functools.wraps(func)
    async def wrapper(self: Any, request: Request) -> JSONResponse:
        try:
            return await func(self, request)
        except ApiError as e:
            if e.status_code >= 500:
                logger.error("Request failed", path=request.url.path, error=e.message)
            return e.to_response()
        except StoreError as e:
            if e.is_unique_violation:
                logger.info("Store rejected duplicate", path=request.url.path, error=e.message)
                return Conflict("Resource already exists").to_response()
            if e.is_foreign_key_violation:
                logger.info("Store rejected dangling reference", path=request.url.path, error=e.message)
                return NotFound("Referenced record not found").to_response()
            logger.error("Store operation failed", path=request.url.path, error=e.message)
            return UpstreamFailure("Server error").to_response()
        except CircuitBreakerOpen as e:
            logger.error("Store unavailable", path=request.url.path, error=str(e))
            return UpstreamFailure("Server error").to_response()
        except Exception:
            logger.exception("Unhandled handler error", path=request.url.path)
            return error_response(ErrorCode.INTERNAL, "Server error", status_code=500)

    return wrapper


def _validation_details(exc: ValidationError) -> dict[str, Any]:
    return {
        "errors": [
            {
                "field": ".".join(str(part) for part in err["loc"]) or None,
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
    }


class ResourceHandler:
    """Base class giving handlers caller resolution and input validation."""

    def __init__(self, store: StoreClient, resolver: IdentityResolver) -> None:
        self._store = store
        self._resolver = resolver

    async def _caller(self, request: Request) -> CallerIdentity:
        return await self._resolver.authenticate(request.headers.get("authorization"))

    async def _admin(self, caller: CallerIdentity) -> AdminIdentity:
        return await self._resolver.resolve_admin(caller.identity_id)

    @staticmethod
    async def _json_object(request: Request) -> dict[str, Any]:
        raw = await request.body()
        if not raw.strip():
            return {}
        try:
            body = json.loads(raw)
        except ValueError as e:
            raise InvalidJson("Invalid JSON body") from e
        if not isinstance(body, dict):
            raise BadRequest("Request body must be a JSON object")
        return body

    async def _body(self, request: Request, model: type[B]) -> B:
        body = await self._json_object(request)
        try:
            return model.model_validate(body)
        except ValidationError as e:
            if all(err["type"] == "missing" for err in e.errors()):
                raise MissingField("Missing required fields", _validation_details(e)) from e
            raise BadRequest("Invalid request body", _validation_details(e)) from e

    @staticmethod
    def _path_uuid(request: Request, name: str = "id", label: str = "id") -> str:
        value = request.path_params.get(name, "")
        if not is_valid_uuid(value):
            raise BadRequest(f"Invalid {label}")
        return value

    @staticmethod
    def _query_uuid(request: Request, name: str) -> str | None:
        value = request.query_params.get(name)
        if value is None or value == "":
            return None
        if not is_valid_uuid(value):
            raise BadRequest(f"{name} must be a valid UUID")
        return value
