import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from ..config import get_settings
from ..errors import TransportParseError
from ..pipeline import build_webhook_handler
from ..pipeline.webhook import WebhookHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])

_handler: WebhookHandler | None = None


def get_webhook_handler() -> WebhookHandler:
    """Return the process-wide handler so the processed-message store is shared."""
    global _handler
    if _handler is None:
        _handler = build_webhook_handler()
    return _handler


@router.get("/webhook")
def verify_webhook(
    mode: str | None = Query(default=None, alias="hub.mode"),
    verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
) -> Response:
    expected = get_settings().whatsapp_verify_token
    if mode == "subscribe" and expected and verify_token == expected:
        logger.info("Webhook verification successful")
        return PlainTextResponse(challenge or "")
    logger.warning("Webhook verification failed (mode=%r)", mode)
    return JSONResponse({"error": "Verification failed"}, status_code=status.HTTP_403_FORBIDDEN)


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> JSONResponse:
    raw = await request.body()
    try:
        try:
            body = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise TransportParseError(f"Webhook body is not JSON: {exc}") from exc
        summary = await asyncio.to_thread(handler.handle, body)
    except TransportParseError as exc:
        logger.error("WhatsApp webhook error: %s", exc)
        return JSONResponse(
            {"error": "Webhook processing failed"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    logger.info("WhatsApp webhook handled: %s", summary)
    return JSONResponse({"status": "success"})
