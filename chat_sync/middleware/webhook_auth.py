"""
Webhook Authentication
Validates Evolution API webhook calls with the shared X-API-Key secret
"""
from fastapi import HTTPException, status, Header
import logging
import secrets

from chat_sync.config import settings

logger = logging.getLogger(__name__)


def get_webhook_secret(
    x_api_key: str = Header(None, alias="X-API-Key", description="API Key for webhook authentication")
) -> str:
    """
    Dependency validating the X-API-Key header against WEBHOOK_SECRET_KEY.

    Raises:
        HTTPException: 500 if no secret is configured, 401 if the key is missing or wrong
    """
    expected_secret = settings.WEBHOOK_SECRET_KEY

    if not expected_secret:
        logger.error("WEBHOOK_SECRET_KEY environment variable is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook authentication is not properly configured"
        )

    if not x_api_key:
        logger.warning("Webhook request missing X-API-Key header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-API-Key header"
        )

    if not secrets.compare_digest(x_api_key, expected_secret):
        logger.warning(f"Invalid webhook secret. Provided: {x_api_key[:4]}...")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret key"
        )

    logger.debug("✅ Webhook request authenticated")
    return x_api_key
