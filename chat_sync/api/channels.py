"""
Channels API Endpoints

Channel list, conversation lists, message histories and conversation status.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Any, Dict, List, Union
import logging

from chat_sync.auth.dependencies import get_current_user
from chat_sync.models.channel import ChannelInfo
from chat_sync.models.conversation import (
    ChatMessage,
    ConversationSummary,
    MessageGroup,
    StatusResponse,
    StatusUpdateRequest,
)
from chat_sync.models.user import User
from chat_sync.services.channel_registry import ChannelRegistry, get_channel_registry
from chat_sync.services.conversation_service import ConversationService, get_conversation_service
from chat_sync.services.status_store import StatusStore, get_status_store
from chat_sync.services.websocket_service import ConnectionManager, get_connection_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/channels", tags=["channels"])


def require_channel(channel_id: str, registry: ChannelRegistry) -> str:
    if not registry.is_valid_channel(channel_id):
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Unknown channel: {channel_id}")
    return channel_id


@router.get("", response_model=List[ChannelInfo])
async def list_channels(
    user: User = Depends(get_current_user),
    registry: ChannelRegistry = Depends(get_channel_registry),
):
    """List every support channel and its message table"""
    return registry.list_channels()


@router.get("/{channel_id}/stats")
async def channel_stats(
    channel_id: str,
    user: User = Depends(get_current_user),
    registry: ChannelRegistry = Depends(get_channel_registry),
    conversations: ConversationService = Depends(get_conversation_service),
    store: StatusStore = Depends(get_status_store),
) -> Dict[str, Any]:
    """Conversation and unread counters, plus stored status counts"""
    require_channel(channel_id, registry)
    counts = await conversations.get_channel_counts(channel_id)
    status_counts = await store.counts(channel_id)
    return {
        "channel_id": channel_id,
        "display_name": registry.get_display_name(channel_id),
        "counts": counts.model_dump(),
        "status": status_counts.as_dict(),
    }


@router.get("/{channel_id}/conversations", response_model=List[ConversationSummary])
async def list_conversations(
    channel_id: str,
    limit: int = Query(20, ge=1, le=200, description="Maximum conversations returned"),
    refresh: bool = Query(False, description="Bypass the conversation cache"),
    user: User = Depends(get_current_user),
    registry: ChannelRegistry = Depends(get_channel_registry),
    conversations: ConversationService = Depends(get_conversation_service),
):
    """Most recent conversations of a channel"""
    require_channel(channel_id, registry)
    try:
        return await conversations.list_conversations(channel_id, limit=limit, refresh=refresh)
    except Exception as e:
        logger.error(f"❌ Failed to list conversations for {channel_id}: {e}")
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, "Failed to load conversations")


@router.get(
    "/{channel_id}/conversations/{session_id}/messages",
    response_model=Union[List[MessageGroup], List[ChatMessage]],
)
async def get_messages(
    channel_id: str,
    session_id: str,
    limit: int = Query(200, ge=1, le=1000),
    grouped: bool = Query(False, description="Group consecutive messages by sender"),
    user: User = Depends(get_current_user),
    registry: ChannelRegistry = Depends(get_channel_registry),
    conversations: ConversationService = Depends(get_conversation_service),
    store: StatusStore = Depends(get_status_store),
):
    """Message history of one conversation, oldest first"""
    require_channel(channel_id, registry)
    try:
        if grouped:
            result = await conversations.get_grouped_messages(channel_id, session_id, limit=limit)
        else:
            result = await conversations.get_messages(channel_id, session_id, limit=limit)
    except Exception as e:
        logger.error(f"❌ Failed to load messages for {channel_id}/{session_id}: {e}")
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, "Failed to load messages")

    await store.mark_viewed(channel_id, session_id)
    return result


@router.post("/{channel_id}/conversations/{session_id}/read")
async def mark_conversation_read(
    channel_id: str,
    session_id: str,
    user: User = Depends(get_current_user),
    registry: ChannelRegistry = Depends(get_channel_registry),
    conversations: ConversationService = Depends(get_conversation_service),
    manager: ConnectionManager = Depends(get_connection_manager),
) -> Dict[str, Any]:
    require_channel(channel_id, registry)
    try:
        updated = await conversations.mark_conversation_read(channel_id, session_id)
    except Exception as e:
        logger.error(f"❌ Failed to mark {channel_id}/{session_id} read: {e}")
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, "Failed to mark messages as read")

    await manager.broadcast_event(channel_id, "messages_read", {"session_id": session_id, "updated": updated})
    return {"success": True, "updated": updated}


@router.get("/{channel_id}/conversations/{session_id}/status", response_model=StatusResponse)
async def get_conversation_status(
    channel_id: str,
    session_id: str,
    user: User = Depends(get_current_user),
    registry: ChannelRegistry = Depends(get_channel_registry),
    store: StatusStore = Depends(get_status_store),
):
    require_channel(channel_id, registry)
    record = await store.get(channel_id, session_id)
    return StatusResponse(channel_id=channel_id, conversation_id=session_id, record=record)


@router.put("/{channel_id}/conversations/{session_id}/status", response_model=StatusResponse)
async def update_conversation_status(
    channel_id: str,
    session_id: str,
    request: StatusUpdateRequest,
    user: User = Depends(get_current_user),
    registry: ChannelRegistry = Depends(get_channel_registry),
    store: StatusStore = Depends(get_status_store),
    conversations: ConversationService = Depends(get_conversation_service),
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """
    Change a conversation's status.

    Moving to in_progress or resolved also marks its messages read.
    """
    require_channel(channel_id, registry)
    record = await store.update_status(channel_id, session_id, request.status)
    conversations.invalidate(channel_id)

    logger.info(f"👤 {user.email or user.user_id} set {channel_id}/{session_id} to {request.status.value}")
    await manager.broadcast_event(
        channel_id,
        "status_update",
        {"session_id": session_id, "status": record.status.value, "updated_by": user.user_id},
    )
    return StatusResponse(channel_id=channel_id, conversation_id=session_id, record=record)
