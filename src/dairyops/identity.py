"""Caller identity resolution against the identity provider and admin table."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any

import aiohttp

from dairyops.common.errors import Forbidden, Unauthorized, UpstreamFailure
from dairyops.common.http import set_subject
from dairyops.common.logging import get_logger
from dairyops.common.settings import Settings
from dairyops.common.tracing import span
from dairyops.store import CircuitBreakerOpen, StoreClient, StoreError, eq

logger = get_logger(__name__)

_BEARER_RE = re.compile(r"^Bearer(\s+|$)", re.IGNORECASE)

# Statuses with which the identity provider rejects a token
_REJECTED_STATUSES = {401, 403, 404}


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated caller as reported by the identity provider."""

    identity_id: str
    email: str | None = None


@dataclass(frozen=True)
class AdminIdentity:
    """Caller that maps to a row in the admins table."""

    identity_id: str
    admin_id: str


class IdentityProviderError(Exception):
    """The identity provider could not answer."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def extract_bearer_token(header: str | None) -> str | None:
    """Return the token from an Authorization header, or None if blank."""
    if not header:
        return None
    token = _BEARER_RE.sub("", header.strip()).strip()
    return token or None


class IdentityClient:
    """HTTP client for the Supabase auth user endpoint."""

    def __init__(self, settings: Settings) -> None:
        self._user_url = f"{settings.auth_url}/user"
        self._api_key = settings.supabase_service_role_key or ""
        self._timeout = aiohttp.ClientTimeout(total=settings.http_timeout)
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "IdentityClient":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if not self._session:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def get_user(self, token: str) -> dict[str, Any] | None:
        """
        Look up the user owning an access token.

        Returns:
            The user object, or None if the provider rejects the token

        Raises:
            IdentityProviderError: On transport failure or unexpected status
        """
        session = self._ensure_session()
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {token}",
        }
        try:
            with span("identity.get_user"):
                async with session.get(self._user_url, headers=headers) as response:
                    if response.status in _REJECTED_STATUSES:
                        return None
                    if response.status != 200:
                        text = await response.text()
                        raise IdentityProviderError(
                            f"Identity lookup failed: {text}", response.status
                        )
                    return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise IdentityProviderError(f"Identity request failed: {e!r}") from e


class IdentityResolver:
    """
    Two-step caller resolution shared by every resource handler.

    ``resolve_caller`` turns a bearer token into an identity id;
    ``resolve_admin`` maps that id onto an admins row.
    """

    def __init__(self, identity_client: IdentityClient, store: StoreClient) -> None:
        self._identity = identity_client
        self._store = store

    async def resolve_caller(self, token: str | None) -> CallerIdentity:
        if not token:
            raise Unauthorized("Missing bearer token")

        try:
            user = await self._identity.get_user(token)
        except IdentityProviderError as e:
            logger.error("Identity provider error", error=str(e), status=e.status_code)
            raise UpstreamFailure("Identity provider unavailable") from e

        identity_id = (user or {}).get("id")
        if not identity_id:
            raise Unauthorized("Invalid user token")

        set_subject(identity_id)
        return CallerIdentity(identity_id=str(identity_id), email=(user or {}).get("email"))

    async def resolve_admin(self, identity_id: str) -> AdminIdentity:
        try:
            row = await self._store.select_one(
                "admins",
                columns="id",
                filters=[eq("auth_uid", identity_id)],
            )
        except (StoreError, CircuitBreakerOpen) as e:
            logger.error("Admin lookup failed", identity_id=identity_id, error=str(e))
            raise UpstreamFailure("Failed to look up admin") from e

        if not row:
            raise Forbidden("User not mapped to admin")
        return AdminIdentity(identity_id=identity_id, admin_id=str(row["id"]))

    async def authenticate(self, authorization: str | None) -> CallerIdentity:
        """Resolve the caller from a raw Authorization header value."""
        return await self.resolve_caller(extract_bearer_token(authorization))

    async def authenticate_admin(self, authorization: str | None) -> AdminIdentity:
        """Resolve the caller and require an admin mapping."""
        caller = await self.authenticate(authorization)
        return await self.resolve_admin(caller.identity_id)
