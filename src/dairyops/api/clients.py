"""Client record handlers, including identity linking."""

from __future__ import annotations

from starlette.requests import Request
from starlette.responses import JSONResponse

from dairyops.api.base import ResourceHandler, guarded
from dairyops.api.schemas import ClientCreate, ClientLink, ClientSelfLink, ClientUpdate
from dairyops.common.errors import BadRequest, Conflict, NotFound
from dairyops.common.logging import get_logger
from dairyops.store import StoreError, contains_text, eq

logger = get_logger(__name__)

DEFAULT_WINDOW = "morning"


class ClientHandlers(ResourceHandler):
    """Handlers for /api/clients."""

    @guarded
    async def handle_create(self, request: Request) -> JSONResponse:
        """
        Create a client (admin only).

        A phone number that already exists is not an error: the stored
        record is returned with 200 instead of 201.
        """
        caller = await self._caller(request)
        body = await self._body(request, ClientCreate)
        admin = await self._admin(caller)

        row = {
            "name": body.name,
            "phone": body.phone,
            "address": body.address or None,
            "preferred_window": body.preferred_window or DEFAULT_WINDOW,
        }
        try:
            created = await self._store.insert("clients", [row])
        except StoreError as e:
            if not e.is_unique_violation:
                raise
            existing = await self._store.select_one("clients", filters=[eq("phone", body.phone)])
            logger.info("Client phone already registered", admin_id=admin.admin_id)
            return JSONResponse({"data": [existing]}, status_code=200)

        logger.info("Client created", admin_id=admin.admin_id)
        return JSONResponse({"data": created}, status_code=201)

    @guarded
    async def handle_list(self, request: Request) -> JSONResponse:
        """List clients (admin only), filtered by phone and/or name."""
        caller = await self._caller(request)
        await self._admin(caller)

        filters = []
        phone = request.query_params.get("phone")
        name = request.query_params.get("name")
        if phone:
            filters.append(eq("phone", phone))
        if name:
            filters.append(contains_text("name", name))

        rows = await self._store.select("clients", filters=filters)
        return JSONResponse({"data": rows})

    @guarded
    async def handle_update(self, request: Request) -> JSONResponse:
        caller = await self._caller(request)
        client_id = self._path_uuid(request, label="client id")
        updates = (await self._body(request, ClientUpdate)).changes()
        if not updates:
            raise BadRequest("No valid fields to update")
        await self._admin(caller)

        rows = await self._store.update("clients", updates, [eq("id", client_id)])
        if not rows:
            raise NotFound("Client not found")
        return JSONResponse({"data": rows})

    @guarded
    async def handle_delete(self, request: Request) -> JSONResponse:
        caller = await self._caller(request)
        client_id = self._path_uuid(request, label="client id")
        await self._admin(caller)

        rows = await self._store.delete("clients", [eq("id", client_id)])
        if not rows:
            raise NotFound("Client not found")
        return JSONResponse({"ok": True})

    @guarded
    async def handle_link(self, request: Request) -> JSONResponse:
        """Bind an auth user to a client record (admin only)."""
        caller = await self._caller(request)
        client_id = self._path_uuid(request, label="client id")
        body = await self._body(request, ClientLink)
        await self._admin(caller)

        target = await self._store.rpc("get_auth_user_by_id", {"_id": body.auth_user_id})
        if not target:
            raise NotFound("Auth user not found")

        linked = await self._store.select_one(
            "clients",
            columns="id",
            filters=[eq("auth_user_id", body.auth_user_id)],
        )
        if linked:
            raise Conflict("auth_user_id already linked to another client")

        rows = await self._store.update(
            "clients",
            {"auth_user_id": body.auth_user_id},
            [eq("id", client_id)],
        )
        if not rows:
            raise NotFound("Client not found")
        logger.info("Client linked", client_id=client_id, auth_user_id=body.auth_user_id)
        return JSONResponse({"data": rows})

    @guarded
    async def handle_link_self(self, request: Request) -> JSONResponse:
        """
        Bind the caller's identity to a client record.

        The record is selected by client_id or phone alone; no one-time
        code or other proof of ownership is requested.
        """
        caller = await self._caller(request)
        body = await self._body(request, ClientSelfLink)

        if body.client_id:
            selector = eq("id", body.client_id)
        else:
            selector = eq("phone", body.phone)
        client = await self._store.select_one("clients", filters=[selector])
        if not client:
            raise NotFound("Client row not found")
        if client.get("auth_user_id"):
            raise Conflict("Client already linked")

        existing = await self._store.select_one(
            "clients",
            columns="id",
            filters=[eq("auth_user_id", caller.identity_id)],
        )
        if existing:
            raise Conflict("Caller already linked to another client")

        rows = await self._store.update(
            "clients",
            {"auth_user_id": caller.identity_id},
            [eq("id", client["id"])],
        )
        logger.info("Client self-linked", client_id=client["id"])
        return JSONResponse({"data": rows})

    @guarded
    async def handle_me(self, request: Request) -> JSONResponse:
        """Return the caller's client record and its orders."""
        caller = await self._caller(request)

        client = await self._store.select_one(
            "clients",
            filters=[eq("auth_user_id", caller.identity_id)],
        )
        if not client:
            raise NotFound("Client not found")

        orders = await self._store.select("orders", filters=[eq("client_id", client["id"])])
        return JSONResponse({"client": client, "orders": orders})
