"""Tests for caller identity resolution."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from dairyops.common.errors import Forbidden, Unauthorized, UpstreamFailure
from dairyops.identity import (
    AdminIdentity,
    CallerIdentity,
    IdentityClient,
    IdentityProviderError,
    IdentityResolver,
    extract_bearer_token,
)
from dairyops.store import CircuitBreakerOpen, StoreClient, StoreError

from conftest import ADMIN_ROW_ID, CALLER_UID


class TestExtractBearerToken:
    """Authorization header parsing."""

    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc", "abc"),
            ("bearer abc", "abc"),
            ("BEARER   abc  ", "abc"),
            ("abc", "abc"),
            ("Bearer ", None),
            ("   ", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract(self, header, expected):
        assert extract_bearer_token(header) == expected


@pytest.fixture
def identity_client() -> AsyncMock:
    client = AsyncMock(spec=IdentityClient)
    client.get_user = AsyncMock(return_value={"id": CALLER_UID, "email": "a@example.com"})
    return client


@pytest.fixture
def store() -> AsyncMock:
    store = AsyncMock(spec=StoreClient)
    store.select_one = AsyncMock(return_value={"id": ADMIN_ROW_ID})
    return store


@pytest.fixture
def resolver(identity_client, store) -> IdentityResolver:
    return IdentityResolver(identity_client, store)


class TestResolveCaller:
    """Token -> identity id."""

    @pytest.mark.asyncio
    async def test_valid_token(self, resolver, identity_client):
        caller = await resolver.resolve_caller("token")
        assert caller == CallerIdentity(identity_id=CALLER_UID, email="a@example.com")
        identity_client.get_user.assert_awaited_once_with("token")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, ""])
    async def test_missing_token(self, resolver, identity_client, token):
        with pytest.raises(Unauthorized):
            await resolver.resolve_caller(token)
        identity_client.get_user.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_token(self, resolver, identity_client):
        identity_client.get_user.return_value = None
        with pytest.raises(Unauthorized):
            await resolver.resolve_caller("expired")

    @pytest.mark.asyncio
    async def test_user_without_id(self, resolver, identity_client):
        identity_client.get_user.return_value = {"email": "a@example.com"}
        with pytest.raises(Unauthorized):
            await resolver.resolve_caller("token")

    @pytest.mark.asyncio
    async def test_provider_failure_is_upstream_error(self, resolver, identity_client):
        identity_client.get_user.side_effect = IdentityProviderError("boom", 503)
        with pytest.raises(UpstreamFailure):
            await resolver.resolve_caller("token")

    @pytest.mark.asyncio
    async def test_authenticate_strips_bearer_prefix(self, resolver, identity_client):
        await resolver.authenticate("Bearer my-token")
        identity_client.get_user.assert_awaited_once_with("my-token")


class TestResolveAdmin:
    """Identity id -> admin row."""

    @pytest.mark.asyncio
    async def test_admin_row(self, resolver, store):
        admin = await resolver.resolve_admin(CALLER_UID)
        assert admin == AdminIdentity(identity_id=CALLER_UID, admin_id=ADMIN_ROW_ID)

        call = store.select_one.await_args
        assert call.args[0] == "admins"
        assert call.kwargs["columns"] == "id"
        (flt,) = call.kwargs["filters"]
        assert flt.as_param() == ("auth_uid", f"eq.{CALLER_UID}")

    @pytest.mark.asyncio
    async def test_not_an_admin(self, resolver, store):
        store.select_one.return_value = None
        with pytest.raises(Forbidden):
            await resolver.resolve_admin(CALLER_UID)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [StoreError("db down", 500), CircuitBreakerOpen()],
    )
    async def test_lookup_failure_is_not_forbidden(self, resolver, store, error):
        store.select_one.side_effect = error
        with pytest.raises(UpstreamFailure):
            await resolver.resolve_admin(CALLER_UID)

    @pytest.mark.asyncio
    async def test_authenticate_admin(self, resolver):
        admin = await resolver.authenticate_admin("Bearer token")
        assert admin.admin_id == ADMIN_ROW_ID


def _response(status: int, payload=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    response.text = AsyncMock(return_value=text)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


class TestIdentityClient:
    """HTTP calls to the auth user endpoint."""

    @pytest.mark.asyncio
    async def test_get_user_success(self, settings):
        async with IdentityClient(settings) as client:
            session = client._ensure_session()
            with patch.object(
                session, "get", return_value=_response(200, {"id": CALLER_UID})
            ) as mock_get:
                user = await client.get_user("tok")

        assert user == {"id": CALLER_UID}
        url = mock_get.call_args.args[0]
        headers = mock_get.call_args.kwargs["headers"]
        assert url == "http://supabase.test/auth/v1/user"
        assert headers["Authorization"] == "Bearer tok"
        assert headers["apikey"] == "service-key"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403, 404])
    async def test_rejected_token_returns_none(self, settings, status):
        async with IdentityClient(settings) as client:
            session = client._ensure_session()
            with patch.object(session, "get", return_value=_response(status)):
                assert await client.get_user("tok") is None

    @pytest.mark.asyncio
    async def test_server_error_raises(self, settings):
        async with IdentityClient(settings) as client:
            session = client._ensure_session()
            with patch.object(session, "get", return_value=_response(502, text="bad gateway")):
                with pytest.raises(IdentityProviderError) as exc_info:
                    await client.get_user("tok")

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, settings):
        async with IdentityClient(settings) as client:
            session = client._ensure_session()
            with patch.object(
                session, "get", side_effect=aiohttp.ClientConnectionError("refused")
            ):
                with pytest.raises(IdentityProviderError):
                    await client.get_user("tok")

    @pytest.mark.asyncio
    async def test_timeout_raises_provider_error(self, settings):
        async with IdentityClient(settings) as client:
            session = client._ensure_session()
            with patch.object(session, "get", side_effect=asyncio.TimeoutError()):
                with pytest.raises(IdentityProviderError):
                    await client.get_user("tok")


@pytest.mark.asyncio
async def test_identity_timeout_is_upstream_failure(settings, store):
    identity = IdentityClient(settings)
    resolver = IdentityResolver(identity, store)
    try:
        with patch.object(
            identity._ensure_session(), "get", side_effect=asyncio.TimeoutError()
        ):
            with pytest.raises(UpstreamFailure):
                await resolver.authenticate("Bearer tok")
    finally:
        await identity.close()
