"""Order handlers, including the client-side confirmation transition."""

from __future__ import annotations

from starlette.requests import Request
from starlette.responses import JSONResponse

from dairyops.api.base import ResourceHandler, guarded
from dairyops.api.schemas import OrderCreate, OrderUpdate
from dairyops.common.errors import BadRequest, NotFound
from dairyops.common.logging import get_logger
from dairyops.store import eq

logger = get_logger(__name__)

INITIAL_STATUS = "pending"

# confirm_order returns nothing both when the order is already confirmed
# and when the caller may not confirm it; the two are indistinguishable.
NO_TRANSITION_MESSAGE = "Order already confirmed or not confirmable by caller"


class OrderHandlers(ResourceHandler):
    """Handlers for /api/orders."""

    @guarded
    async def handle_create(self, request: Request) -> JSONResponse:
        caller = await self._caller(request)
        body = await self._body(request, OrderCreate)
        admin = await self._admin(caller)

        rows = await self._store.insert(
            "orders",
            [
                {
                    "client_id": body.client_id,
                    "created_by": admin.admin_id,
                    "scheduled_date": body.scheduled_date,
                    "scheduled_window": body.scheduled_window,
                    "quantity_liters": body.quantity_liters,
                    "status": INITIAL_STATUS,
                }
            ],
        )
        return JSONResponse({"data": rows}, status_code=201)

    @guarded
    async def handle_list(self, request: Request) -> JSONResponse:
        """List orders filtered by client_id, status and scheduled_date."""
        caller = await self._caller(request)
        client_id = self._query_uuid(request, "client_id")
        await self._admin(caller)

        filters = []
        if client_id:
            filters.append(eq("client_id", client_id))
        for column in ("status", "scheduled_date"):
            value = request.query_params.get(column)
            if value:
                filters.append(eq(column, value))

        rows = await self._store.select("orders", filters=filters)
        return JSONResponse({"data": rows})

    @guarded
    async def handle_update(self, request: Request) -> JSONResponse:
        caller = await self._caller(request)
        order_id = self._path_uuid(request, label="order id")
        updates = (await self._body(request, OrderUpdate)).changes()
        if not updates:
            raise BadRequest("No valid fields to update")
        await self._admin(caller)

        rows = await self._store.update("orders", updates, [eq("id", order_id)])
        if not rows:
            raise NotFound("Order not found")
        return JSONResponse({"data": rows})

    @guarded
    async def handle_delete(self, request: Request) -> JSONResponse:
        caller = await self._caller(request)
        order_id = self._path_uuid(request, label="order id")
        await self._admin(caller)

        rows = await self._store.delete("orders", [eq("id", order_id)])
        if not rows:
            raise NotFound("Order not found")
        return JSONResponse({"ok": True})

    @guarded
    async def handle_confirm(self, request: Request) -> JSONResponse:
        """
        Confirm an order on behalf of its owning client.

        Delegates to the ``confirm_order`` store function, which enforces
        ownership and the allowed source state atomically. An empty result
        is treated as a no-op: the current record is re-read and reported
        with 200, so retries are safe.
        """
        caller = await self._caller(request)
        order_id = self._path_uuid(request, label="order id")

        result = await self._store.rpc(
            "confirm_order",
            {"_order_id": order_id, "_caller": caller.identity_id},
        )
        updated = result[0] if isinstance(result, list) and result else result
        if updated:
            logger.info("Order confirmed", order_id=order_id)
            return JSONResponse({"data": updated})

        order = await self._store.select_one("orders", filters=[eq("id", order_id)])
        if not order:
            raise NotFound("Order not found")
        logger.info("Order confirmation was a no-op", order_id=order_id, status=order.get("status"))
        return JSONResponse({"message": NO_TRANSITION_MESSAGE, "order": order})
