"""Messaging gateway webhooks."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from app.dependencies import Services, get_services
from app.errors import EventValidationError
from app.logging_config import get_logger
from app.schemas.webhook import WebhookResponse
from app.services.normalizer import normalize

logger = get_logger("webhook")

router = APIRouter()


@router.get("/webhook/meta")
async def verify_meta_webhook(
    hub_mode: Optional[str] = Query(default=None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    services: Services = Depends(get_services),
):
    """WhatsApp Cloud subscription handshake."""
    expected = services.settings.meta_verify_token
    if hub_mode == "subscribe" and expected and hub_verify_token == expected:
        logger.info("Meta webhook verified")
        return PlainTextResponse(hub_challenge or "")
    logger.warning("Meta webhook verification failed")
    raise HTTPException(status_code=403, detail="Verification failed")


@router.post("/webhook/{provider}", response_model=WebhookResponse)
async def handle_webhook(provider: str, request: Request, services: Services = Depends(get_services)):
    try:
        payload = await request.json()
    except ValueError as exc:
        raw = await request.body()
        if not raw or not raw.strip():
            logger.info("Webhook ping with empty body", extra={"context": {"provider": provider}})
            return WebhookResponse(success=True, message="Empty payload")
        logger.warning(
            "Webhook payload is not valid JSON",
            extra={"context": {"provider": provider, "error": str(exc), "body_preview": raw[:200].decode("utf-8", "ignore")}},
        )
        return WebhookResponse(success=False, message="Invalid JSON payload")

    try:
        events = normalize(provider, payload)
    except EventValidationError as exc:
        logger.warning(
            "Webhook payload validation failed",
            extra={
                "context": {
                    "provider": provider,
                    "error": exc.message,
                    "payload_keys": list(payload.keys())[:20] if isinstance(payload, dict) else None,
                }
            },
        )
        return WebhookResponse(success=False, message="Invalid webhook payload")

    if not events:
        return WebhookResponse(success=True, message="No messages")

    fresh = []
    for event in events:
        if services.dedup.seen(f"{provider}:{event.id}"):
            logger.info(f"Duplicate message_id skipped: {event.id}", extra={"context": {"provider": provider}})
            continue
        fresh.append(event)
    if not fresh:
        return WebhookResponse(success=True, message="Duplicate message_id", event_id=events[-1].id)

    response = WebhookResponse(success=True, message="Processed")
    for event in fresh:
        result = await services.conversations.handle_event(event)
        response.event_id = event.id
        if result.ok:
            response.state = result.value.state.value
        else:
            response.message = "Processed with fallback"
    return response
