"""
Conversation Status API Endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Any, Dict, Optional
import logging

from chat_sync.auth.dependencies import get_current_user
from chat_sync.models.user import User
from chat_sync.services.channel_registry import ChannelRegistry, get_channel_registry
from chat_sync.services.conversation_service import ConversationService, get_conversation_service
from chat_sync.services.status_store import StatusStore, get_status_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/status", tags=["status"])


@router.get("/counts")
async def status_counts(
    channel_id: Optional[str] = Query(None, description="Restrict counts to one channel"),
    user: User = Depends(get_current_user),
    registry: ChannelRegistry = Depends(get_channel_registry),
    store: StatusStore = Depends(get_status_store),
) -> Dict[str, Any]:
    """Number of conversations per status"""
    if channel_id and not registry.is_valid_channel(channel_id):
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Unknown channel: {channel_id}")

    counts = await store.counts(channel_id)
    return {"channel_id": channel_id, **counts.as_dict()}


@router.post("/auto-resolve")
async def run_auto_resolve(
    user: User = Depends(get_current_user),
    store: StatusStore = Depends(get_status_store),
    conversations: ConversationService = Depends(get_conversation_service),
) -> Dict[str, Any]:
    """Resolve idle in_progress conversations now instead of waiting for the sweep"""
    resolved = await store.auto_resolve_stale()
    if resolved:
        conversations.invalidate_all()
    logger.info(f"🧹 Manual auto-resolve by {user.user_id}: {resolved} resolved")
    return {"success": True, "resolved": resolved}
