"""Request body models for the resource handlers."""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    model_validator,
)

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def is_valid_uuid(value: Any) -> bool:
    """Whether ``value`` is a canonical hyphenated UUID string."""
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def _check_uuid(value: str) -> str:
    if not is_valid_uuid(value):
        raise ValueError("must be a valid UUID")
    return value


def _reject_bool(value: Any) -> Any:
    # JSON true/false would otherwise coerce to 1/0
    if isinstance(value, bool):
        raise ValueError("must be a number")
    return value


UuidStr = Annotated[str, AfterValidator(_check_uuid)]
NonEmptyStr = Annotated[str, Field(min_length=1)]
Liters = Annotated[float, BeforeValidator(_reject_bool), Field(ge=0, allow_inf_nan=False)]
Amount = Annotated[
    Decimal,
    BeforeValidator(_reject_bool),
    Field(gt=0, max_digits=14, decimal_places=2, allow_inf_nan=False),
]


class RequestBody(BaseModel):
    """Base for request bodies; unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    def changes(self) -> dict[str, Any]:
        """Fields explicitly present in the request."""
        return self.model_dump(exclude_unset=True)


# === Clients ===


class ClientCreate(RequestBody):
    name: NonEmptyStr
    phone: NonEmptyStr
    address: str | None = None
    preferred_window: str | None = None


class ClientUpdate(RequestBody):
    name: NonEmptyStr | None = None
    phone: NonEmptyStr | None = None
    address: str | None = None
    preferred_window: str | None = None


class ClientLink(RequestBody):
    auth_user_id: UuidStr


class ClientSelfLink(RequestBody):
    phone: NonEmptyStr | None = None
    client_id: UuidStr | None = None

    @model_validator(mode="after")
    def _one_selector(self) -> "ClientSelfLink":
        if not self.phone and not self.client_id:
            raise ValueError("Provide phone or client_id")
        return self


# === Milking events ===


class MilkingEventCreate(RequestBody):
    cow_id: UuidStr | None = None
    cow_tag: NonEmptyStr | None = None
    milk_liters: Liters
    milking_time: NonEmptyStr
    notes: str | None = None

    @model_validator(mode="after")
    def _one_cow(self) -> "MilkingEventCreate":
        if not self.cow_id and not self.cow_tag:
            raise ValueError("Provide either cow_id (UUID) or cow_tag")
        return self


# === Orders ===


class OrderCreate(RequestBody):
    client_id: UuidStr
    scheduled_date: NonEmptyStr
    scheduled_window: str | None = None
    quantity_liters: Liters


class OrderUpdate(RequestBody):
    scheduled_date: NonEmptyStr | None = None
    scheduled_window: str | None = None
    quantity_liters: Liters | None = None
    status: NonEmptyStr | None = None


# === Payments ===


class PaymentCreate(RequestBody):
    order_id: UuidStr
    amount: Amount
    method: NonEmptyStr
    txn_ref: str | None = None
