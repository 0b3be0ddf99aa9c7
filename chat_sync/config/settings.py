"""
Application Configuration
Centralized configuration management using environment variables
"""
import json
import logging
import os
from typing import Dict, List, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def _parse_table_overrides(raw: str) -> Dict[str, str]:
    """Parse CHANNEL_TABLE_OVERRIDES ({"channel-id": "table_name", ...})"""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"⚠️  Ignoring invalid CHANNEL_TABLE_OVERRIDES: {e}")
        return {}
    if not isinstance(value, dict):
        logger.warning("⚠️  CHANNEL_TABLE_OVERRIDES must be a JSON object, ignoring")
        return {}
    return {str(k): str(v) for k, v in value.items()}


class Settings:
    """Application settings loaded from environment variables"""

    # Supabase Configuration
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")  # Anon key for client
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    SUPABASE_JWT_SECRET: str = os.getenv("SUPABASE_JWT_SECRET", "")

    # Redis Configuration (conversation status store)
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_PASSWORD: Optional[str] = os.getenv("REDIS_PASSWORD") or None

    # Webhook Configuration
    WEBHOOK_SECRET_KEY: str = os.getenv("WEBHOOK_SECRET_KEY", "")

    # Storage Configuration
    MEDIA_BUCKET: str = os.getenv("MEDIA_BUCKET", "media-files")
    # Download http(s) media referenced by incoming webhooks into MEDIA_BUCKET
    MIRROR_REMOTE_MEDIA: bool = os.getenv("MIRROR_REMOTE_MEDIA", "false").lower() == "true"
    MEDIA_DOWNLOAD_TIMEOUT: float = float(os.getenv("MEDIA_DOWNLOAD_TIMEOUT", "30"))

    # Cache Configuration (seconds)
    CONVERSATION_CACHE_TTL: int = int(os.getenv("CONVERSATION_CACHE_TTL", "30"))
    COUNT_CACHE_TTL: int = int(os.getenv("COUNT_CACHE_TTL", "60"))

    # Realtime / Polling Configuration
    REALTIME_ENABLED: bool = os.getenv("REALTIME_ENABLED", "true").lower() == "true"
    REALTIME_SUBSCRIBE_TIMEOUT: float = float(os.getenv("REALTIME_SUBSCRIBE_TIMEOUT", "10"))
    POLL_INTERVAL_SECONDS: float = float(os.getenv("POLL_INTERVAL_SECONDS", "2"))

    # Conversation status
    AUTO_RESOLVE_AFTER_HOURS: int = int(os.getenv("AUTO_RESOLVE_AFTER_HOURS", "24"))
    AUTO_RESOLVE_INTERVAL_SECONDS: int = int(os.getenv("AUTO_RESOLVE_INTERVAL_SECONDS", "3600"))
    STATUS_KEY_PREFIX: str = os.getenv("STATUS_KEY_PREFIX", "conversation_status")

    # Base64 media migration
    MIGRATION_BATCH_SIZE: int = int(os.getenv("MIGRATION_BATCH_SIZE", "10"))
    MIGRATION_UPLOAD_PAUSE: float = float(os.getenv("MIGRATION_UPLOAD_PAUSE", "0.2"))
    MIGRATION_BATCH_PAUSE: float = float(os.getenv("MIGRATION_BATCH_PAUSE", "0.5"))

    # Channel registry
    CHANNEL_TABLE_OVERRIDES: Dict[str, str] = _parse_table_overrides(os.getenv("CHANNEL_TABLE_OVERRIDES", ""))

    # WebSocket Configuration
    WEBSOCKET_ENABLED: bool = os.getenv("WEBSOCKET_ENABLED", "true").lower() == "true"

    # CORS Configuration
    CORS_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS",
            "http://localhost:8080,http://127.0.0.1:8080,http://localhost:5173,http://localhost:3000"
        ).split(",")
        if origin.strip()
    ]

    @property
    def is_supabase_configured(self) -> bool:
        """Check if Supabase configuration is present"""
        return bool(self.SUPABASE_URL and self.SUPABASE_JWT_SECRET)

    @property
    def is_webhook_configured(self) -> bool:
        """Check if webhook secret is present"""
        return bool(self.WEBHOOK_SECRET_KEY)


# Global settings instance
settings = Settings()
