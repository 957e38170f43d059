"""Per-request log context: request id and authenticated subject."""

from __future__ import annotations

import re
import uuid

import structlog
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

REQUEST_ID_HEADER = "X-Request-ID"

# Forwarded to the store verbatim, so only plain tokens are echoed
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def accept_request_id(value: str | None) -> str:
    """Return the caller's request id if it is a safe token, else a fresh one."""
    if value and _REQUEST_ID_RE.match(value):
        return value
    return uuid.uuid4().hex


def get_request_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("request_id")


def set_subject(value: str | None) -> None:
    """Bind the authenticated identity id to the log context."""
    if value is not None:
        structlog.contextvars.bind_contextvars(subject=value)


class RequestIdMiddleware:
    """
    Bind a request id for the lifetime of each HTTP request.

    The id is taken from the incoming header when well formed, bound into
    the structlog context (and so onto every log line and outbound store
    call) and echoed on the response.
    """

    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER) -> None:
        self.app = app
        self._header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = accept_request_id(Headers(scope=scope).get(self._header_name))

        async def send_with_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message).setdefault(self._header_name, request_id)
            await send(message)

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            await self.app(scope, receive, send_with_id)
