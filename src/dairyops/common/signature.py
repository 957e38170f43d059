"""HMAC signature verification for payment-provider webhooks.

The provider signs the raw request body with HMAC-SHA256 using a shared
secret and sends the digest in a header, either as bare hex or as
``sha256=<hex>``. Verification must be fed the exact transport bytes;
re-serialising a parsed JSON body changes key order, whitespace and number
formatting and breaks the digest.
"""

from __future__ import annotations

import binascii
import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="
DIGEST_SIZE = hashlib.sha256().digest_size
HEX_LENGTH = DIGEST_SIZE * 2


def compute_signature(secret: str, body: bytes) -> str:
    """Create a lowercase hex-encoded HMAC-SHA256 signature."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def sign_header(secret: str, body: bytes, prefixed: bool = True) -> str:
    """Build a signature header value for ``body``."""
    digest = compute_signature(secret, body)
    return f"{SIGNATURE_PREFIX}{digest}" if prefixed else digest


def parse_signature(value: str | None) -> bytes | None:
    """
    Decode a claimed signature into raw digest bytes.

    Accepts ``<hex>`` or ``sha256=<hex>`` where hex is exactly 64
    characters of either case. Any other shape yields None.
    """
    if not value:
        return None
    if value.startswith(SIGNATURE_PREFIX):
        value = value[len(SIGNATURE_PREFIX):]
    if len(value) != HEX_LENGTH:
        return None
    try:
        return binascii.unhexlify(value)
    except (binascii.Error, ValueError):
        return None


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """
    Verify a webhook signature in constant time.

    Args:
        body: Raw request body bytes, exactly as received
        signature: Claimed signature header value
        secret: Shared secret; an empty secret never verifies

    Returns:
        True iff the claimed digest equals HMAC-SHA256(secret, body)
    """
    if not secret or not signature:
        return False

    claimed = parse_signature(signature)
    if claimed is None:
        return False

    expected = binascii.unhexlify(compute_signature(secret, body))
    if len(claimed) != len(expected):
        return False
    return hmac.compare_digest(claimed, expected)


class WebhookVerifier:
    """Signature verifier bound to a process-wide shared secret."""

    def __init__(self, secret: str | None) -> None:
        self._secret = secret or ""

    @property
    def configured(self) -> bool:
        """Whether a non-empty secret was supplied."""
        return bool(self._secret)

    def verify(self, body: bytes, signature: str | None) -> bool:
        return verify_signature(body, signature, self._secret)
