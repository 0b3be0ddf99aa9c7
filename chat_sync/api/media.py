"""
Media API Endpoints
Base64 -> storage migration of message media
"""
from fastapi import APIRouter, Depends, HTTPException, status
import logging
from typing import Optional

from chat_sync.auth.dependencies import get_current_user
from chat_sync.models.media import MigrationReport, MigrationRequest
from chat_sync.models.user import User
from chat_sync.services.channel_registry import ChannelRegistry, get_channel_registry
from chat_sync.services.conversation_service import ConversationService, get_conversation_service
from chat_sync.services.media_migration_service import MediaMigrationService, get_media_migration_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/media", tags=["media"])


@router.post("/migrate", response_model=MigrationReport)
async def migrate_base64_media(
    request: Optional[MigrationRequest] = None,
    user: User = Depends(get_current_user),
    registry: ChannelRegistry = Depends(get_channel_registry),
    migration: MediaMigrationService = Depends(get_media_migration_service),
    conversations: ConversationService = Depends(get_conversation_service),
):
    """
    Upload inline base64 media of the channel tables to storage.

    Rows are rewritten to reference the stored object and their message text
    is replaced by a placeholder such as "[Imagem]".
    """
    request = request or MigrationRequest()
    known_tables = set(registry.get_all_tables())
    unknown = [t for t in request.tables or [] if t not in known_tables]
    if unknown:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Unknown tables: {', '.join(unknown)}")

    logger.info(f"🚚 Media migration started by {user.user_id} (tables={request.tables or 'all'})")
    report = await migration.migrate_all(request.tables, batch_size=request.batch_size)
    conversations.invalidate_all()
    return report
