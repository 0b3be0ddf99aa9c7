"""
Webhook API Endpoints
Receives message events from Evolution API (WhatsApp gateway) instances
"""
from fastapi import APIRouter, Depends, HTTPException, status
import logging

from chat_sync.middleware.webhook_auth import get_webhook_secret
from chat_sync.models.webhook import EvolutionWebhookPayload, WebhookResponse
from chat_sync.services.webhook_service import EvolutionWebhookService, get_webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/evolution", response_model=WebhookResponse)
async def evolution_webhook(
    payload: EvolutionWebhookPayload,
    secret: str = Depends(get_webhook_secret),
    service: EvolutionWebhookService = Depends(get_webhook_service),
):
    """
    Store a WhatsApp message delivered by an Evolution instance.

    The instance is mapped to its channel table through api_instances and
    channel_api_mappings. Events other than messages.upsert are acknowledged
    without being stored. An instance with no channel is answered with
    success=false and status 200 so the gateway does not retry.
    """
    logger.info(f"📨 Evolution webhook: event={payload.event}, instance={payload.instance}")

    try:
        return await service.process_event(payload)
    except ValueError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))
    except Exception as e:
        logger.error(f"❌ Evolution webhook failed: {e}")
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process webhook")
