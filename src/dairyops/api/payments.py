"""Manual payment record handlers."""

from starlette.requests import Request
from starlette.responses import JSONResponse

from dairyops.api.base import ResourceHandler, guarded
from dairyops.api.schemas import PaymentCreate
from dairyops.store import eq


class PaymentHandlers(ResourceHandler):
    """Handlers for /api/payments."""

    @guarded
    async def handle_create(self, request: Request) -> JSONResponse:
        caller = await self._caller(request)
        body = await self._body(request, PaymentCreate)
        await self._admin(caller)

        rows = await self._store.insert(
            "payments",
            [
                {
                    "order_id": body.order_id,
                    # numeric column; a string keeps every cent
                    "amount": str(body.amount),
                    "method": body.method,
                    "txn_ref": body.txn_ref,
                    "status": "pending",
                    "paid_at": None,
                }
            ],
        )
        return JSONResponse({"data": rows}, status_code=201)

    @guarded
    async def handle_list(self, request: Request) -> JSONResponse:
        caller = await self._caller(request)
        order_id = self._query_uuid(request, "order_id")
        await self._admin(caller)

        filters = [eq("order_id", order_id)] if order_id else []
        rows = await self._store.select("payments", filters=filters)
        return JSONResponse({"data": rows})
