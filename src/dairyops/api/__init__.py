"""HTTP resource handlers."""

from dairyops.api.clients import ClientHandlers
from dairyops.api.milking import MilkingHandlers
from dairyops.api.orders import OrderHandlers
from dairyops.api.payments import PaymentHandlers
from dairyops.api.webhook import WebhookHandlers

__all__ = [
    "ClientHandlers",
    "MilkingHandlers",
    "OrderHandlers",
    "PaymentHandlers",
    "WebhookHandlers",
]
