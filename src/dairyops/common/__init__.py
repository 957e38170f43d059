"""Common utilities for DairyOps."""

from dairyops.common.settings import Settings, get_settings
from dairyops.common.signature import WebhookVerifier, verify_signature

__all__ = [
    "Settings",
    "get_settings",
    "WebhookVerifier",
    "verify_signature",
]
