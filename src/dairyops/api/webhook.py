"""Payment-provider webhook receiver."""

from starlette.requests import Request
from starlette.responses import JSONResponse

from dairyops.common.errors import ErrorCode, ServerMisconfigured, error_response
from dairyops.common.logging import get_logger
from dairyops.common.metrics import record_webhook_verification
from dairyops.common.signature import WebhookVerifier

logger = get_logger(__name__)


class WebhookHandlers:
    """Handlers for /api/webhook/*."""

    def __init__(self, verifier: WebhookVerifier, signature_header: str) -> None:
        self._verifier = verifier
        self._signature_header = signature_header

    async def handle_payment(self, request: Request) -> JSONResponse:
        """
        Accept a signed payment callback.

        The HMAC is computed over the raw request body bytes, never over a
        re-serialised JSON document. Any verification failure is a uniform
        403 so callers cannot tell which part of the check failed.
        """
        if not self._verifier.configured:
            logger.error("Webhook secret is not configured")
            record_webhook_verification("misconfigured")
            return ServerMisconfigured("Server misconfiguration").to_response()

        try:
            body = await request.body()
        except Exception:
            logger.exception("Failed to read webhook body")
            return error_response(ErrorCode.INTERNAL, "Server error", status_code=500)

        signature = request.headers.get(self._signature_header)
        if not self._verifier.verify(body, signature):
            logger.warning(
                "Webhook signature mismatch",
                header_present=bool(signature),
                body_length=len(body),
            )
            record_webhook_verification("rejected")
            return error_response(ErrorCode.FORBIDDEN, "Invalid signature", status_code=403)

        record_webhook_verification("accepted")
        logger.info("Payment webhook accepted", body_length=len(body))
        return JSONResponse({"ok": True})
