"""Milking event handlers."""

from starlette.requests import Request
from starlette.responses import JSONResponse

from dairyops.api.base import ResourceHandler, guarded
from dairyops.api.schemas import MilkingEventCreate
from dairyops.common.errors import NotFound
from dairyops.common.logging import get_logger
from dairyops.store import eq

logger = get_logger(__name__)


class MilkingHandlers(ResourceHandler):
    """Handlers for /api/milking_events."""

    async def _resolve_cow_tag(self, tag: str) -> str:
        cow = await self._store.select_one("cows", columns="id,tag", filters=[eq("tag", tag)])
        if not cow:
            raise NotFound("cow_tag not found")
        return str(cow["id"])

    @guarded
    async def handle_create(self, request: Request) -> JSONResponse:
        """Record a milking event; the cow may be given by id or by ear tag."""
        caller = await self._caller(request)
        body = await self._body(request, MilkingEventCreate)
        admin = await self._admin(caller)

        cow_id = body.cow_id or await self._resolve_cow_tag(body.cow_tag or "")

        rows = await self._store.insert(
            "milking_events",
            [
                {
                    "cow_id": cow_id,
                    "milk_liters": body.milk_liters,
                    "milking_time": body.milking_time,
                    "notes": body.notes,
                    "recorded_by": admin.admin_id,
                }
            ],
        )
        logger.info("Milking event recorded", cow_id=cow_id, liters=body.milk_liters)
        return JSONResponse({"data": rows}, status_code=201)
