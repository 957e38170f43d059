"""DairyOps API server."""

import time
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from dairyops.api import (
    ClientHandlers,
    MilkingHandlers,
    OrderHandlers,
    PaymentHandlers,
    WebhookHandlers,
)
from dairyops.common.http import RequestIdMiddleware
from dairyops.common.logging import get_logger, setup_logging
from dairyops.common.metrics import MetricsMiddleware, metrics_endpoint
from dairyops.common.settings import Settings, get_settings
from dairyops.common.signature import WebhookVerifier
from dairyops.common.tracing import setup_tracing
from dairyops.identity import IdentityClient, IdentityResolver
from dairyops.store import StoreClient

logger = get_logger(__name__)


class ApiServer:
    """Owns the external clients and the resource handlers."""

    def __init__(
        self,
        settings: Settings,
        store: StoreClient | None = None,
        identity_client: IdentityClient | None = None,
    ):
        self._settings = settings
        self._owns_store = store is None
        self._owns_identity = identity_client is None
        self._store = store if store is not None else StoreClient(settings)
        self._identity = identity_client if identity_client is not None else IdentityClient(settings)
        self._start_time = time.time()

        resolver = IdentityResolver(self._identity, self._store)
        self.clients = ClientHandlers(self._store, resolver)
        self.milking = MilkingHandlers(self._store, resolver)
        self.orders = OrderHandlers(self._store, resolver)
        self.payments = PaymentHandlers(self._store, resolver)
        self.webhook = WebhookHandlers(
            WebhookVerifier(settings.webhook_secret),
            settings.webhook_signature_header,
        )

    async def startup(self) -> None:
        """Initialize components."""
        logger.info("Starting DairyOps API", supabase_url=self._settings.supabase_url)
        if not self._settings.webhook_secret:
            logger.warning("Webhook secret not set; payment webhooks will fail with 500")
        if not self._settings.supabase_service_role_key:
            logger.warning("Supabase service role key not set")

    async def shutdown(self) -> None:
        """Clean up resources."""
        if self._owns_store:
            await self._store.close()
        if self._owns_identity:
            await self._identity.close()
        logger.info("DairyOps API stopped")

    async def handle_health(self, _request: Request) -> JSONResponse:
        """Liveness check."""
        return JSONResponse({
            "status": "healthy",
            "uptime": round(time.time() - self._start_time, 1),
        })


def create_app(
    settings: Settings | None = None,
    store: StoreClient | None = None,
    identity_client: IdentityClient | None = None,
) -> Starlette:
    """Create the Starlette application."""
    settings = settings or get_settings()
    server = ApiServer(settings, store=store, identity_client=identity_client)

    @asynccontextmanager
    async def lifespan(_app: Starlette):
        await server.startup()
        yield
        await server.shutdown()

    routes = [
        Route("/health", server.handle_health, methods=["GET"]),
        Route("/metrics", metrics_endpoint, methods=["GET"]),
        # Clients: fixed paths before /{id}
        Route("/api/clients", server.clients.handle_create, methods=["POST"]),
        Route("/api/clients", server.clients.handle_list, methods=["GET"]),
        Route("/api/clients/me", server.clients.handle_me, methods=["GET"]),
        Route("/api/clients/link-self", server.clients.handle_link_self, methods=["POST"]),
        Route("/api/clients/{id}", server.clients.handle_update, methods=["PUT"]),
        Route("/api/clients/{id}", server.clients.handle_delete, methods=["DELETE"]),
        Route("/api/clients/{id}/link", server.clients.handle_link, methods=["POST"]),
        # Milking
        Route("/api/milking_events", server.milking.handle_create, methods=["POST"]),
        # Orders
        Route("/api/orders", server.orders.handle_create, methods=["POST"]),
        Route("/api/orders", server.orders.handle_list, methods=["GET"]),
        Route("/api/orders/{id}", server.orders.handle_update, methods=["PUT"]),
        Route("/api/orders/{id}", server.orders.handle_delete, methods=["DELETE"]),
        Route("/api/orders/{id}/confirm", server.orders.handle_confirm, methods=["PATCH"]),
        # Payments
        Route("/api/payments", server.payments.handle_create, methods=["POST"]),
        Route("/api/payments", server.payments.handle_list, methods=["GET"]),
        # Webhooks
        Route("/api/webhook/payment", server.webhook.handle_payment, methods=["POST"]),
    ]

    app = Starlette(routes=routes, lifespan=lifespan)

    app.add_middleware(
        MetricsMiddleware,
        exclude_paths=["/health", "/metrics"],
    )
    app.add_middleware(RequestIdMiddleware)

    return app


def main():
    """Entry point for the API server."""
    settings = get_settings()
    setup_logging(settings.log_level, json_output=settings.log_json)
    if settings.tracing_enabled or settings.tracing_otlp_endpoint or settings.tracing_console:
        setup_tracing(
            otlp_endpoint=settings.tracing_otlp_endpoint,
            enable_console=settings.tracing_console,
        )
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
