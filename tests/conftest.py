"""Pytest configuration and fixtures."""

from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock

import pytest
from starlette.testclient import TestClient

from dairyops.common.settings import Settings
from dairyops.identity import IdentityClient
from dairyops.server.main import create_app
from dairyops.store import StoreClient

WEBHOOK_SECRET = "test-secret"

CALLER_UID = "9ffd41d9-5d73-4fc5-b160-b523a1215677"
ADMIN_ROW_ID = "15c598fd-b18b-4e00-a480-6753d7f0f5e8"
CLIENT_ID = "2b1f0c4e-8a7d-4f3e-9c61-0d5e6f7a8b9c"
ORDER_ID = "6a0e3c2d-1b4f-4e8a-9d7c-5f3b2a1e0d9c"
COW_ID = "73052e07-e1ac-48fc-9710-57c4deb52712"

AUTH = {"Authorization": "Bearer some-valid-token"}


def select_one_router(
    admin_row: dict[str, Any] | None = None,
    rows: dict[tuple[str, ...], Any] | None = None,
):
    """
    Build a ``select_one`` side effect.

    The admins lookup returns ``admin_row``; other lookups are keyed by
    ``(table, first_filter_column)``.
    """
    rows = rows or {}

    async def _select_one(table: str, columns: str = "*", filters=()) -> Any:
        if table == "admins":
            return admin_row
        filters = list(filters)
        key = (table, filters[0].column) if filters else (table,)
        return rows.get(key)

    return _select_one


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        supabase_url="http://supabase.test",
        supabase_service_role_key="service-key",
        webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def mock_identity() -> AsyncMock:
    """Identity client that accepts every token as CALLER_UID."""
    client = AsyncMock(spec=IdentityClient)
    client.get_user = AsyncMock(return_value={"id": CALLER_UID, "email": "admin@example.com"})
    return client


@pytest.fixture
def mock_store() -> AsyncMock:
    """Store client whose caller maps to an admin row by default."""
    store = AsyncMock(spec=StoreClient)
    store.select_one = AsyncMock(side_effect=select_one_router(admin_row={"id": ADMIN_ROW_ID}))
    store.select = AsyncMock(return_value=[])
    store.insert = AsyncMock(
        side_effect=lambda table, rows: [{"id": "11111111-1111-1111-1111-111111111111", **rows[0]}]
    )
    store.update = AsyncMock(return_value=[])
    store.delete = AsyncMock(return_value=[])
    store.rpc = AsyncMock(return_value=[])
    return store


@pytest.fixture
def client(settings, mock_store, mock_identity) -> Iterator[TestClient]:
    """Test client wired to the mocked store and identity provider."""
    app = create_app(settings, store=mock_store, identity_client=mock_identity)
    with TestClient(app) as test_client:
        yield test_client
