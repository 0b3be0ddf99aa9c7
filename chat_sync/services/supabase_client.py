"""
Supabase Client Factory
Sync client for table/RPC/storage calls, async client for realtime channels
"""
import logging
from typing import Optional
from supabase import AsyncClient, Client, acreate_client, create_client

from chat_sync.config import settings

logger = logging.getLogger(__name__)

_client: Optional[Client] = None
_async_client: Optional[AsyncClient] = None


def _service_key() -> str:
    """Prefer SERVICE_ROLE_KEY so message tables and storage bypass RLS"""
    if not settings.SUPABASE_SERVICE_KEY:
        logger.warning(
            "⚠️  SUPABASE_SERVICE_KEY not configured! "
            "Using SUPABASE_KEY (anon key) which may fail due to RLS policies."
        )
    return settings.SUPABASE_SERVICE_KEY or settings.SUPABASE_KEY


def get_supabase_client() -> Client:
    """
    Get the shared Supabase client.

    Raises:
        RuntimeError: If Supabase is not configured
    """
    global _client

    if _client is None:
        if not settings.SUPABASE_URL:
            raise RuntimeError("Supabase is not configured (SUPABASE_URL missing)")
        _client = create_client(settings.SUPABASE_URL, _service_key())
        logger.info("✅ Supabase client initialized")

    return _client


async def get_async_supabase_client() -> AsyncClient:
    """Get the shared async Supabase client used for realtime subscriptions"""
    global _async_client

    if _async_client is None:
        if not settings.SUPABASE_URL:
            raise RuntimeError("Supabase is not configured (SUPABASE_URL missing)")
        _async_client = await acreate_client(settings.SUPABASE_URL, _service_key())
        logger.info("✅ Async Supabase client initialized (realtime)")

    return _async_client
