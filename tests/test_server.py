"""Tests for the application shell: health, metrics, request ids and errors."""

from unittest.mock import AsyncMock

from starlette.testclient import TestClient

from dairyops.common.http import get_request_id
from dairyops.server.main import create_app

from conftest import AUTH


def test_health(client, mock_identity, mock_store):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["uptime"] >= 0
    mock_identity.get_user.assert_not_called()
    mock_store.select_one.assert_not_called()


def test_request_id_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_request_id_generated(client):
    response = client.get("/health")
    assert response.headers.get("X-Request-ID")


def test_malformed_request_id_replaced(client):
    response = client.get("/health", headers={"X-Request-ID": "bad id with spaces"})
    echoed = response.headers["X-Request-ID"]
    assert echoed != "bad id with spaces"
    assert len(echoed) == 32


def test_request_id_reaches_store(client, mock_store):
    seen = {}

    async def capture(*args, **kwargs):
        seen["request_id"] = get_request_id()
        return []

    mock_store.select.side_effect = capture
    client.get("/api/orders", headers={**AUTH, "X-Request-ID": "trace-7"})

    assert seen["request_id"] == "trace-7"


def test_metrics_endpoint(client):
    client.get("/api/orders", headers=AUTH)
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "dairyops_http_requests_total" in response.text


def test_unknown_route(client):
    assert client.get("/api/unknown").status_code == 404


def test_unexpected_error_is_json_500(client, mock_store):
    mock_store.select.side_effect = RuntimeError("boom")
    response = client.get("/api/orders", headers=AUTH)

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "internal_error"


def test_injected_clients_are_not_closed(settings):
    store = AsyncMock()
    identity = AsyncMock()
    app = create_app(settings, store=store, identity_client=identity)

    with TestClient(app):
        pass

    store.close.assert_not_called()
    identity.close.assert_not_called()
