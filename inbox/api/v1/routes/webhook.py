import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from inbox.api.dependencies import get_inbound_service, settings
from inbox.schemas.webhook import WebhookPayload
from inbox.services.inbound_service import InboundService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/webhooks/whatsapp", response_class=PlainTextResponse)
async def verify_webhook(
    mode: str | None = Query(default=None, alias="hub.mode"),
    verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
) -> str:
    if mode == "subscribe" and verify_token == settings.whatsapp_webhook_verify_token:
        return challenge or ""
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@router.post("/webhooks/whatsapp")
async def receive_webhook(
    request: Request,
    service: InboundService = Depends(get_inbound_service),
) -> dict[str, object]:
    # The provider retries anything but a 200, so every outcome answers 200.
    try:
        payload = WebhookPayload.model_validate(await request.json())
    except (ValueError, ValidationError):
        logger.warning("Ignoring malformed webhook payload", exc_info=True)
        return {"status": "ignored"}

    try:
        result = await service.process_webhook(payload)
    except Exception:
        logger.exception("Webhook processing failed")
        return {"status": "error"}

    return {
        "status": "ok",
        "messages": result.messages_recorded,
        "duplicates": result.duplicates,
        "statuses": result.statuses_matched,
    }
