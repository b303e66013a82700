from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from starlette.requests import ClientDisconnect

from martin_relay.logging_config import get_logger
from martin_relay.models import InboundEvent
from martin_relay.schemas.webhook import WebhookResponse, ZapiWebhookPayload
from martin_relay.services.alert_service import alert_critical
from martin_relay.services.orchestrator import TurnOrchestrator

logger = get_logger("webhook")

router = APIRouter()


def get_orchestrator(request: Request) -> Optional[TurnOrchestrator]:
    return getattr(request.app.state, "orchestrator", None)


async def _parse_webhook_request(request: Request) -> dict | WebhookResponse:
    try:
        payload = await request.json()
    except ClientDisconnect:
        logger.info("Webhook client disconnected during read")
        return WebhookResponse(success=True, message="Client disconnected")
    except Exception as exc:
        try:
            raw = await request.body()
        except ClientDisconnect:
            logger.info("Webhook client disconnected during body read")
            return WebhookResponse(success=True, message="Client disconnected")
        if not raw or not raw.strip():
            logger.info("Webhook probe with empty body")
            return WebhookResponse(success=True, message="Empty payload")

        logger.warning(
            "Webhook payload is not valid JSON",
            extra={"context": {"error": str(exc), "body_preview": raw[:200].decode("utf-8", "ignore")}},
        )
        return WebhookResponse(success=False, message="Invalid JSON payload")

    if not isinstance(payload, dict):
        return WebhookResponse(success=False, message="Invalid payload format")

    try:
        validated = ZapiWebhookPayload.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Webhook payload validation failed", extra={"context": {"error": str(exc)}})
        return WebhookResponse(success=False, message="Invalid webhook payload")
    return validated.model_dump(exclude_none=True)


@router.get("/webhook")
async def handle_webhook_probe():
    """Health probe for gateway UI checks; real webhooks must use POST."""
    return {"ok": True, "message": "Use POST with JSON payload"}


@router.post("/webhook", response_model=WebhookResponse)
async def handle_webhook(
    request: Request,
    orchestrator: Optional[TurnOrchestrator] = Depends(get_orchestrator),
):
    """Accept one gateway event and hand it to the turn orchestrator."""
    parsed = await _parse_webhook_request(request)
    if isinstance(parsed, WebhookResponse):
        return parsed

    if orchestrator is None:
        missing = getattr(request.app.state, "missing_credentials", [])
        logger.error("Webhook received but service is not configured", extra={"context": {"missing": missing}})
        await alert_critical("Webhook received without credentials", {"missing": ", ".join(missing) or "-"})
        return WebhookResponse(success=False, message="Service not configured")

    event = InboundEvent.from_payload(parsed)
    outcome = await orchestrator.ingest(event)
    return WebhookResponse(success=True, message=outcome.value)
